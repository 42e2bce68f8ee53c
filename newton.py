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

"""Scaled Newton iteration for the polar decomposition of a square matrix.

Each step averages the iterate with its inverse transpose,

    U <- (g U + U^{-T} / g) / 2,

with the (1, inf)-norm scaling factor

    g = (||U^{-1}||_1 ||U^{-1}||_inf / (||U||_1 ||U||_inf))^{1/4}.

Scaling speeds up the early iterations on ill-conditioned input. Once a step
changes the iterate by less than ``scaling_tol`` (relative), scaling is
switched off for good and the iteration finishes with plain Newton steps,
which converge quadratically.

Reference: N. J. Higham. "Computing the polar decomposition - with
applications." SIAM J. Sci. Stat. Comput. 7, no. 4 (1986): 1160-1174.
"""

from dataclasses import dataclass
from typing import NamedTuple, Optional

import torch

from polar_common import PolarResult, PolarUpdater, Report, check_iter_params, relative_change, solve
from polar_errors import InvalidConfig, SingularMatrix


def invert(u: torch.Tensor):
    """
    Inverts ``u``, refusing iterates that are singular to working precision.

    Returns:
        tuple: (u_inv, norm_1, norm_1_inv), the 1-norms being reused for scaling.
    """
    u_inv, info = torch.linalg.inv_ex(u)
    if int(info) != 0 or not torch.isfinite(u_inv).all():
        raise SingularMatrix("The iterate is singular; Newton's method requires an invertible matrix.")
    norm_1 = torch.linalg.matrix_norm(u, ord=1).item()
    norm_1_inv = torch.linalg.matrix_norm(u_inv, ord=1).item()
    if norm_1 * norm_1_inv * torch.finfo(u.dtype).eps >= 1:
        raise SingularMatrix(
            f"The iterate is singular to working precision (1-norm condition number {norm_1 * norm_1_inv:.3e})."
        )
    return u_inv, norm_1, norm_1_inv


class NewtonState(NamedTuple):
    scaled: bool = True


class NewtonUpdater(PolarUpdater):
    square_only = True

    def __init__(self, scaling_tol: float = 1e-2):
        self.scaling_tol = scaling_tol

    def init(self, x):
        return x.clone(), NewtonState(scaled=True)

    def update(self, u, state):
        u_inv, norm_1, norm_1_inv = invert(u)
        if state.scaled:
            norm_inf = torch.linalg.matrix_norm(u, ord=float('inf')).item()
            norm_inf_inv = torch.linalg.matrix_norm(u_inv, ord=float('inf')).item()
            g = (norm_1_inv * norm_inf_inv / (norm_1 * norm_inf)) ** (1 / 4)
        else:
            g = 1.0
        u_next = 0.5 * (g * u + u_inv.mT / g)
        # scaling stays off once the iteration has settled
        scaled = state.scaled and relative_change(u_next, u) > self.scaling_tol
        return u_next, NewtonState(scaled=scaled)


@dataclass(frozen=True)
class NewtonAlg:
    maxiter: int = 100
    tol: float = 1e-6
    verbose: bool = False
    scaling_tol: float = 1e-2

    def __post_init__(self):
        check_iter_params(self.maxiter, self.tol)
        if not self.scaling_tol >= 0:
            raise InvalidConfig("scaling_tol must be non-negative.")

    def updater(self) -> NewtonUpdater:
        return NewtonUpdater(self.scaling_tol)

    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return solve(self.updater(), x, self.maxiter, self.tol, self.verbose, report)
