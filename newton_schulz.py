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

import math
import warnings
from dataclasses import dataclass
from typing import Optional

import torch

from polar_common import PolarResult, PolarUpdater, Report, check_iter_params, solve
from polar_errors import PolarWarning

SCHULZ_RADIUS = math.sqrt(3)


class SchulzUpdater(PolarUpdater):
    """
    Newton-Schulz iteration U <- U (3I - U^T U) / 2. Inversion-free, but only
    converges when every singular value of the input lies in (0, sqrt(3)).
    """

    def init(self, x):
        # ||A||_F < sqrt(3) bounds every singular value below sqrt(3)
        norm_fro = torch.linalg.matrix_norm(x).item()
        if norm_fro >= SCHULZ_RADIUS:
            warnings.warn(
                f"Newton-Schulz convergence is only guaranteed for ||A||_F < sqrt(3), got {norm_fro:.4e}; "
                "the iteration may diverge.",
                PolarWarning,
                stacklevel=2,
            )
        return x.clone(), None

    def update(self, u, state):
        m, n = u.shape
        # use the smaller Gram matrix
        if m >= n:
            return 1.5 * u - 0.5 * u @ (u.mT @ u), state
        return 1.5 * u - 0.5 * (u @ u.mT) @ u, state


@dataclass(frozen=True)
class SchulzAlg:
    maxiter: int = 100
    tol: float = 1e-6
    verbose: bool = False

    def __post_init__(self):
        check_iter_params(self.maxiter, self.tol)

    def updater(self) -> SchulzUpdater:
        return SchulzUpdater()

    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return solve(self.updater(), x, self.maxiter, self.tol, self.verbose, report)
