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

"""Hybrid Newton / Newton-Schulz iteration.

Scaled Newton steps bring the iterate close to the orthogonal factor; as soon
as ``||U^T U - I||_F <= theta`` the iteration switches permanently to the
inversion-free Newton-Schulz step. With ``theta < 1`` every singular value
of the iterate satisfies ``|s^2 - 1| < 1`` at the switch, well inside the
Newton-Schulz convergence region ``(0, sqrt(3))``.

The default ``theta = sqrt(8 tol / 3)`` (capped at ``MAX_THETA``) delays the
switch until a single Newton-Schulz step reaches ``tol``: Newton iterates
have singular values ``1 + e >= 1``, so ``2e <= theta`` at the switch, and
the Newton-Schulz error ``1.5 e^2`` is then at most ``tol``. The hybrid thus
needs no more iterations than Newton while skipping the final inversions.
"""

import math
from dataclasses import dataclass
from typing import NamedTuple, Optional

import torch

from newton import NewtonState, NewtonUpdater
from newton_schulz import SchulzUpdater
from polar_common import PolarResult, PolarUpdater, Report, check_iter_params, orth_deviation, solve
from polar_errors import InvalidConfig

MAX_THETA = 0.6


def default_theta(tol: float) -> float:
    return min(MAX_THETA, math.sqrt(8 * tol / 3))


class HybridState(NamedTuple):
    schulz: bool
    inversions: int
    newton: NewtonState


class HybridUpdater(PolarUpdater):
    square_only = True

    def __init__(self, theta: float, scaling_tol: float = 1e-2):
        self.theta = theta
        self.newton = NewtonUpdater(scaling_tol)
        self.schulz = SchulzUpdater()

    def init(self, x):
        u, newton_state = self.newton.init(x)
        return u, HybridState(schulz=False, inversions=0, newton=newton_state)

    def update(self, u, state):
        if state.schulz:
            u, _ = self.schulz.update(u, None)
            return u, state
        u, newton_state = self.newton.update(u, state.newton)
        return u, HybridState(
            schulz=orth_deviation(u) <= self.theta,
            inversions=state.inversions + 1,
            newton=newton_state,
        )


@dataclass(frozen=True)
class HybridAlg:
    maxiter: int = 100
    tol: float = 1e-6
    verbose: bool = False
    theta: Optional[float] = None
    scaling_tol: float = 1e-2

    def __post_init__(self):
        check_iter_params(self.maxiter, self.tol)
        if self.theta is not None and not 0 < self.theta < 1:
            raise InvalidConfig("theta must lie in (0, 1).")
        if not self.scaling_tol >= 0:
            raise InvalidConfig("scaling_tol must be non-negative.")

    def updater(self) -> HybridUpdater:
        theta = self.theta if self.theta is not None else default_theta(self.tol)
        return HybridUpdater(theta, self.scaling_tol)

    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return solve(self.updater(), x, self.maxiter, self.tol, self.verbose, report)
