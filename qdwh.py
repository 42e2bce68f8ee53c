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

"""QDWH-based polar decomposition.

QDWH is short for QR-based dynamically weighted Halley iteration. The Halley
iteration implemented through QR decompositions does not require matrix
inversion. The weights (a, b, c) of every step are chosen from a lower bound
L on the smallest singular value of the current iterate; L is updated along
with the iterate and increases monotonically to 1, at which point the
weights reach (3, 1, 3) and the step is the plain Halley step.

Reference: Nakatsukasa, Yuji, Zhaojun Bai, and François Gygi.
"Optimizing Halley's iteration for computing the matrix polar decomposition."
SIAM Journal on Matrix Analysis and Applications 31, no. 5 (2010): 2700-2720.
https://epubs.siam.org/doi/abs/10.1137/090774999

Limitations:
    1. Only square matrices are supported; an initial QR reduction for
       m > n would extend it to tall matrices.
    2. The scaling alpha is the 2-norm ||A||_2 rather than the Frobenius
       norm ||A||_F of the reference. Dividing by ||A||_F would move an
       orthogonal input off the fixed point (singular values 1/sqrt(n)), so
       A = I would no longer return after a single step.
    3. alpha and the bound L use the exact 2-norm and 1-norm condition
       number rather than cheaper estimates.
"""

import math
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

import scipy.linalg
import torch

from polar_common import PolarResult, PolarUpdater, Report, check_iter_params, eye_like, solve
from polar_errors import SingularMatrix


def _real_cbrt(x: float) -> float:
    """Real part of the principal cube root; negative radicands go through complex arithmetic."""
    if x < 0:
        return (complex(x, 0) ** (1 / 3)).real
    return x ** (1 / 3)


def qdwh_params(l: float) -> Tuple[float, float, float]:
    """
    Dynamically weighted Halley parameters for the lower bound ``l``.

    Args:
        l (float): Lower bound for the smallest singular value of the iterate, in (0, 1].

    Returns:
        tuple: (a, b, c). For l = 1 these are (3, 1, 3), Halley's method.
    """
    l2 = l * l
    dd = _real_cbrt(4 * (1 - l2) / (l2 * l2))
    sqd = math.sqrt(1 + dd)
    a = sqd + 0.5 * math.sqrt(8 - 4 * dd + 8 * (2 - l2) / (l2 * sqd))
    b = (a - 1) ** 2 / 4
    c = a + b - 1
    return a, b, c


def _orthonormal_factor(y: torch.Tensor, piv: bool) -> torch.Tensor:
    """Economy-size Q factor of ``y``, with column pivoting if ``piv``."""
    if piv:
        # torch.linalg.qr has no column pivoting; LAPACK's geqp3 through SciPy.
        q, _, _ = scipy.linalg.qr(y.detach().cpu().numpy(), mode='economic', pivoting=True)
        return torch.from_numpy(q).to(device=y.device, dtype=y.dtype)
    q, _ = torch.linalg.qr(y, mode='reduced')
    return q


class QDWHState(NamedTuple):
    l: float  # lower bound for the smallest singular value of the next iterate
    a: Optional[float] = None
    b: Optional[float] = None
    c: Optional[float] = None


class QDWHUpdater(PolarUpdater):
    square_only = True

    def __init__(self, piv: bool = True):
        self.piv = piv

    def init(self, x):
        # alpha is the largest singular value of the original matrix
        alpha = torch.linalg.matrix_norm(x, ord=2).item()
        if alpha == 0:
            raise SingularMatrix("QDWH requires a nonzero matrix.")
        u = x / alpha

        # L is a lower bound for the smallest singular value of X0
        n = u.shape[1]
        cond_1 = torch.linalg.cond(u, p=1).item()
        if not math.isfinite(cond_1):
            raise SingularMatrix("QDWH requires a nonsingular matrix.")
        smin_est = torch.linalg.matrix_norm(u, ord=1).item() / cond_1
        eps = torch.finfo(u.dtype).eps
        l = min(1.0, max(eps, smin_est / math.sqrt(n)))
        return u, QDWHState(l=l)

    def update(self, u, state):
        l = state.l
        a, b, c = qdwh_params(l)
        l2 = l * l
        # the bound never decreases and never passes 1
        l = min(1.0, max(l, l * (a + b * l2) / (1 + c * l2)))

        m, n = u.shape
        sqrt_c = math.sqrt(c)
        y = torch.cat([sqrt_c * u, eye_like(u, n)], dim=0)
        q = _orthonormal_factor(y, self.piv)
        q1 = q[:m, :]
        q2 = q[m:, :]
        e = b / c
        u = e * u + (a - e) / sqrt_c * (q1 @ q2.mT)
        return u, QDWHState(l=l, a=a, b=b, c=c)


@dataclass(frozen=True)
class QDWHAlg:
    maxiter: int = 100
    tol: float = 1e-6
    verbose: bool = False
    piv: bool = True  # whether to pivot the QR factorization

    def __post_init__(self):
        check_iter_params(self.maxiter, self.tol)

    def updater(self) -> QDWHUpdater:
        return QDWHUpdater(self.piv)

    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return solve(self.updater(), x, self.maxiter, self.tol, self.verbose, report)
