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

"""Shared pieces of the iterative polar decomposition methods.

Every iterative method is an updater with an ``init`` step, which builds the
starting iterate and its per-run state, and an ``update`` step, which maps
``(u, state)`` to the next ``(u, state)``. The convergence driver
``common_iter`` applies an updater until the relative change of the iterate
drops below ``tol``, and then forms the Hermitian factor from the final
iterate as ``h = sym(u^T a)``.
"""

import math
import numbers
from typing import Callable, NamedTuple, Optional, Tuple

import numpy as np
import torch

from polar_errors import InvalidConfig, ShapeMismatch


Report = Callable[[int, float, float], None]


class PolarResult(NamedTuple):
    """Result of a polar decomposition ``a = U @ H``.

    ``niters`` and ``converged`` are ``None`` for the non-iterative SVD method.
    """

    U: torch.Tensor  # (m, n) - orthonormal columns (m >= n) or rows (m < n)
    H: torch.Tensor  # (n, n) - symmetric positive semidefinite
    niters: Optional[int] = None
    converged: Optional[bool] = None


class PolarUpdater:
    """One iteration rule of the polar decomposition.

    Subclasses override ``update`` and, when they carry scalar state or need
    a different starting iterate, ``init``. The state is an immutable value
    returned alongside the new iterate, never stored on the updater.
    """

    square_only = False

    def check(self, x: torch.Tensor) -> None:
        m, n = x.shape
        if self.square_only and m != n:
            raise ShapeMismatch(
                f"{type(self).__name__} requires a square matrix, got {m} x {n}."
            )

    def init(self, x: torch.Tensor):
        return x.clone(), None

    def update(self, u: torch.Tensor, state):
        raise NotImplementedError


def check_iter_params(maxiter, tol) -> None:
    if isinstance(maxiter, bool) or not isinstance(maxiter, numbers.Integral):
        raise InvalidConfig("The `maxiter` argument must be an int")
    if maxiter <= 1:
        raise InvalidConfig("maxiter must be greater than 1.")
    if not tol > 0:
        raise InvalidConfig("tol must be positive.")


def as_matrix(a) -> torch.Tensor:
    """Converts ``a`` to a real floating-point 2-D tensor without copying when possible."""
    if torch.is_tensor(a) or isinstance(a, np.ndarray):
        x = torch.as_tensor(a)
    else:
        x = torch.as_tensor(a, dtype=torch.float64)
    if x.ndim != 2:
        raise ShapeMismatch(f"The input must be a 2-D matrix, got {x.ndim}-D.")
    if x.is_complex():
        raise ShapeMismatch("Complex matrices are not supported.")
    if x.numel() == 0:
        raise ShapeMismatch(f"The input matrix is empty ({x.shape[0]} x {x.shape[1]}).")
    if not x.is_floating_point():
        x = x.to(torch.float64)
    elif torch.finfo(x.dtype).bits < 32:
        # torch.linalg has no half-precision kernels
        x = x.to(torch.float32)
    return x


def symmetrize(h: torch.Tensor) -> torch.Tensor:
    # (h_ij + h_ji) / 2 rounds identically to (h_ji + h_ij) / 2
    return (h + h.mT) / 2


def eye_like(u: torch.Tensor, n: int) -> torch.Tensor:
    return torch.eye(n, dtype=u.dtype, device=u.device)


def orth_deviation(u: torch.Tensor) -> float:
    """Frobenius norm of ``U^T U - I`` (``U U^T - I`` for wide ``u``)."""
    m, n = u.shape
    g = u.mT @ u if m >= n else u @ u.mT
    return torch.linalg.matrix_norm(g - eye_like(u, g.shape[0])).item()


def relative_change(u: torch.Tensor, u_prev: torch.Tensor) -> float:
    diff = torch.linalg.matrix_norm(u - u_prev).item()
    norm = torch.linalg.matrix_norm(u).item()
    if norm == 0:
        return 0.0 if diff == 0 else math.inf
    return diff / norm


class IterationTable:
    """Reporting sink printing one row per iteration: index, relative error, objective."""

    def __init__(self, file=None):
        self.file = file
        self._started = False

    def __call__(self, k: int, relerr: float, obj: float) -> None:
        if not self._started:
            print(f"{'Iter.':<5}    {'Rel. err.':<13}    {'Obj.':<13}", file=self.file)
            self._started = True
        print(f"{k:<5d}    {relerr:<13.6e}    {obj:<13.6e}", file=self.file)


def iterate(updater: PolarUpdater,
            x: torch.Tensor,
            maxiter: int,
            tol: float,
            report: Optional[Report] = None) -> Tuple[torch.Tensor, object, int, bool]:
    """
    Runs the iteration loop of ``updater`` on ``x``.

    Args:
        updater: The per-iteration rule.
        x: The input matrix; never modified.
        maxiter: Maximum number of iterations.
        tol: Stop as soon as ``||u_k - u_{k-1}||_F / ||u_k||_F <= tol``.
        report: Called as ``report(k, relerr, obj)`` after every iteration,
            with ``k`` 1-based and ``obj = ||U^T U - I||_F^2``.

    Returns:
        tuple: (u, state, niters, converged) for the last iterate.
    """
    u, state = updater.init(x)
    converged = False
    k = 0
    while not converged and k < maxiter:
        k += 1
        u_prev = u
        u, state = updater.update(u, state)
        relerr = relative_change(u, u_prev)
        if report is not None:
            report(k, relerr, orth_deviation(u) ** 2)
        converged = relerr <= tol
    return u, state, k, converged


def common_iter(updater: PolarUpdater,
                x: torch.Tensor,
                maxiter: int,
                tol: float,
                verbose: bool = False,
                report: Optional[Report] = None):
    """
    Iterates ``updater`` to convergence and assembles the polar factors.

    With ``verbose=True`` and no ``report``, iterations are printed with an
    ``IterationTable``. An explicit ``report`` always receives every iteration.

    Returns:
        tuple: (u, h, niters, converged) where ``h = sym(u^T x)``.
    """
    if report is None and verbose:
        report = IterationTable()
    u, _, niters, converged = iterate(updater, x, maxiter, tol, report)
    h = symmetrize(u.mT @ x)
    return u, h, niters, converged


def solve(updater: PolarUpdater,
          x: torch.Tensor,
          maxiter: int,
          tol: float,
          verbose: bool = False,
          report: Optional[Report] = None) -> PolarResult:
    updater.check(x)
    u, h, niters, converged = common_iter(updater, x, maxiter, tol, verbose, report)
    return PolarResult(U=u, H=h, niters=niters, converged=converged)
