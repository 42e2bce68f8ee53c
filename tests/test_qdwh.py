import math

import pytest
import torch

from conftest import hilbert, orth_error, randn, recon_error
from polar import factorize
from qdwh import QDWHAlg, QDWHUpdater, _real_cbrt, qdwh_params


def qdwh_bounds(A, steps=8, piv=True):
    updater = QDWHUpdater(piv)
    u, state = updater.init(A)
    ls = [state.l]
    for _ in range(steps):
        u, state = updater.update(u, state)
        ls.append(state.l)
    return u, ls


MATRICES = [
    lambda: randn(6, 6, seed=0),
    lambda: randn(8, 8, seed=1),
    lambda: hilbert(5),
    lambda: hilbert(8),
    lambda: torch.diag(torch.logspace(0, -10, 6, dtype=torch.float64)),
    lambda: torch.eye(4, dtype=torch.float64),
]


@pytest.mark.parametrize("make", MATRICES)
def test_lower_bound_is_monotone_and_bounded(make):
    _, ls = qdwh_bounds(make())
    assert all(0 < l <= 1 for l in ls)
    assert all(l1 <= l2 for l1, l2 in zip(ls, ls[1:]))
    assert ls[-1] > 0.99


def test_initial_lower_bound_is_below_smallest_singular_value():
    A = hilbert(6)
    u, state = QDWHUpdater().init(A)
    s = torch.linalg.svdvals(u)
    assert s.max().item() == pytest.approx(1.0)
    assert state.l <= s.min().item()


def test_params_at_one_are_halley():
    a, b, c = qdwh_params(1.0)
    assert a == pytest.approx(3.0)
    assert b == pytest.approx(1.0)
    assert c == pytest.approx(3.0)


def test_params_for_small_bound_are_large():
    a, b, c = qdwh_params(1e-10)
    assert a > 1e4
    assert c == pytest.approx(a + b - 1)


def test_params_past_one_fall_back_to_complex_cube_root():
    # round-off can push l slightly past 1, making the radicand negative
    a, b, c = qdwh_params(1.0 + 1e-10)
    assert all(math.isfinite(v) for v in (a, b, c))
    assert a == pytest.approx(3.0, abs=1e-2)
    assert c == pytest.approx(a + b - 1)


def test_real_cbrt():
    assert _real_cbrt(27.0) == pytest.approx(3.0)
    assert _real_cbrt(0.0) == 0.0
    # principal root of -8 is 2 exp(i pi / 3)
    assert _real_cbrt(-8.0) == pytest.approx(1.0)


@pytest.mark.parametrize("piv", [True, False])
def test_qdwh_converges_quickly(piv):
    A = hilbert(6)
    res = factorize(A, "qdwh", piv=piv)
    assert res.converged
    assert res.niters <= 10
    assert orth_error(res.U) < 1e-6
    assert recon_error(res.U, res.H, A) < 1e-6


def test_pivoting_does_not_change_the_result():
    A = randn(6, 6, seed=42)
    with_piv = QDWHAlg(piv=True).solve(A)
    without_piv = QDWHAlg(piv=False).solve(A)
    assert torch.allclose(with_piv.U, without_piv.U, atol=1e-8)
    assert torch.allclose(with_piv.H, without_piv.H, atol=1e-8)


def test_state_records_weights():
    updater = QDWHUpdater()
    u, state = updater.init(randn(5, 5, seed=3))
    assert state.a is None
    u, state = updater.update(u, state)
    assert state.c == pytest.approx(state.a + state.b - 1)
    assert state.b == pytest.approx((state.a - 1) ** 2 / 4)


def test_float32_input():
    A = randn(6, 6, seed=8).to(torch.float32)
    res = factorize(A, "qdwh", tol=1e-4)
    assert res.U.dtype == torch.float32
    assert res.converged
    assert recon_error(res.U, res.H, A) < 1e-4
