# Copyright 2025 Tim Tsz-Kit Lau.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License

"""Halley's iteration for the polar decomposition.

Reference: Y. Nakatsukasa, Z. Bai and F. Gygi. "Optimizing Halley's iteration
for computing the matrix polar decomposition." SIAM J. Matrix Anal. Appl. 31,
no. 5 (2010): 2700-2720.
"""

from dataclasses import dataclass
from typing import Optional

import torch

from polar_common import PolarResult, PolarUpdater, Report, check_iter_params, eye_like, solve


class HalleyUpdater(PolarUpdater):
    def update(self, u, state):
        m, n = u.shape
        # U (3I + U^T U)(I + 3 U^T U)^{-1} == (I + 3 U U^T)^{-1} (3I + U U^T) U
        if m >= n:
            g = u.mT @ u
            eye = eye_like(u, n)
            return torch.linalg.solve(eye + 3 * g, u @ (3 * eye + g), left=False), state
        g = u @ u.mT
        eye = eye_like(u, m)
        return torch.linalg.solve(eye + 3 * g, (3 * eye + g) @ u), state


@dataclass(frozen=True)
class HalleyAlg:
    maxiter: int = 100
    tol: float = 1e-6
    verbose: bool = False

    def __post_init__(self):
        check_iter_params(self.maxiter, self.tol)

    def updater(self) -> HalleyUpdater:
        return HalleyUpdater()

    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return solve(self.updater(), x, self.maxiter, self.tol, self.verbose, report)
