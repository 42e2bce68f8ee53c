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

from typing import Optional, Union

from halley import HalleyAlg
from hybrid import HybridAlg
from newton import NewtonAlg
from newton_schulz import SchulzAlg
from polar_common import PolarResult, Report, as_matrix
from polar_errors import InvalidConfig
from polar_svd import SVDAlg
from qdwh import QDWHAlg

ALGORITHMS = ("newton", "qdwh", "halley", "schulz", "hybrid", "svd")

PolarAlg = Union[NewtonAlg, SchulzAlg, HybridAlg, HalleyAlg, QDWHAlg, SVDAlg]


def make_alg(algorithm: str = "newton",
             maxiter: int = 100,
             tol: float = 1e-6,
             verbose: bool = False,
             piv: bool = True) -> PolarAlg:
    """
    Builds the configuration of a polar decomposition method.

    ``maxiter`` and ``tol`` are validated for every iterative method and
    ignored by ``"svd"``; ``piv`` only reaches ``"qdwh"``.

    Raises:
        InvalidConfig: If the method is unknown, ``maxiter <= 1`` or ``tol <= 0``.
    """
    if algorithm == "newton":
        return NewtonAlg(maxiter=maxiter, tol=tol, verbose=verbose)
    elif algorithm == "schulz":
        return SchulzAlg(maxiter=maxiter, tol=tol, verbose=verbose)
    elif algorithm == "hybrid":
        return HybridAlg(maxiter=maxiter, tol=tol, verbose=verbose)
    elif algorithm == "halley":
        return HalleyAlg(maxiter=maxiter, tol=tol, verbose=verbose)
    elif algorithm == "qdwh":
        return QDWHAlg(maxiter=maxiter, tol=tol, verbose=verbose, piv=piv)
    elif algorithm == "svd":
        return SVDAlg()
    raise InvalidConfig(
        f"Unknown polar decomposition method {algorithm!r}; expected one of {', '.join(ALGORITHMS)}."
    )


def factorize(a,
              algorithm: Union[str, PolarAlg] = "newton",
              maxiter: int = 100,
              tol: float = 1e-6,
              verbose: bool = False,
              piv: bool = True,
              report: Optional[Report] = None) -> PolarResult:
    r"""
    Computes the polar decomposition.

    Given the m x n matrix `a`, returns the factors of the polar
    decomposition ``U`` (also m x n) and ``H`` (n x n) such that
    ``a = U H``, where ``H`` is symmetric positive semidefinite.
    The orthogonal factor ``U`` has orthonormal columns unless n > m,
    in which case it has orthonormal rows.

    Six methods are supported:

      * ``algorithm="newton"``:
        Scaled Newton iteration; square matrices only.
      * ``algorithm="schulz"``:
        Newton-Schulz iteration. Inversion-free, but requires ``||a||_2 < sqrt(3)``
        and otherwise diverges (reported as ``converged=False``).
      * ``algorithm="hybrid"``:
        Newton iteration switching permanently to Newton-Schulz once the
        iterate is close to orthogonal; square matrices only.
      * ``algorithm="halley"``:
        Halley's cubically convergent iteration.
      * ``algorithm="qdwh"``:
        The QDWH (QR-based Dynamically Weighted Halley) algorithm; square
        matrices only. ``piv`` selects column-pivoted QR.
      * ``algorithm="svd"``:
        Direct construction from the SVD; ``niters`` and ``converged`` are ``None``.

    Args:
        a: A real input matrix of shape (m, n): a tensor, NumPy array or nested list.
        algorithm: A method name, or a configuration such as ``QDWHAlg(piv=False)``.
        maxiter: Maximum number of iterations (> 1).
        tol: Stop once the relative change of the iterate is at most ``tol`` (> 0).
        verbose: Print iteration index, relative error and ``||U^T U - I||_F^2`` per iteration.
        piv: Whether QDWH pivots its QR factorizations.
        report: Optional sink called as ``report(k, relerr, obj)`` after every iteration.

    Returns:
        PolarResult: ``(U, H, niters, converged)``.

    Raises:
        InvalidConfig: If the configuration is invalid; checked before any matrix work.
        ShapeMismatch: If `a` is not a real 2-D matrix or its shape is not supported by the method.
        SingularMatrix: If a Newton or QDWH iterate is singular.

    Examples:

        >>> import torch
        >>> a = torch.tensor([[1., 2., 3.],
        ...                   [5., 4., 2.],
        ...                   [3., 2., 1.]], dtype=torch.float64)
        >>> U, H, niters, converged = factorize(a, "qdwh")
        >>> torch.allclose(U.T @ U, torch.eye(3, dtype=torch.float64))
        True
        >>> torch.allclose(a, U @ H)
        True
    """
    alg = make_alg(algorithm, maxiter, tol, verbose, piv) if isinstance(algorithm, str) else algorithm
    x = as_matrix(a)
    return alg.solve(x, report=report)
