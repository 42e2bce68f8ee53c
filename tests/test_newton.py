import pytest
import torch

from conftest import hilbert, randn
from halley import HalleyUpdater
from hybrid import MAX_THETA, HybridAlg, HybridUpdater, default_theta
from newton import NewtonAlg, NewtonState, NewtonUpdater, invert
from newton_schulz import SchulzUpdater
from polar import factorize
from polar_common import iterate, orth_deviation
from polar_errors import InvalidConfig, SingularMatrix


def test_scaling_switches_off_and_stays_off():
    A = hilbert(6)
    updater = NewtonUpdater()
    u, state = updater.init(A)
    flags = [state.scaled]
    for _ in range(10):
        u, state = updater.update(u, state)
        flags.append(state.scaled)
    assert flags[0]
    assert not flags[-1]
    # once off, never back on
    first_off = flags.index(False)
    assert not any(flags[first_off:])


def test_scaling_speeds_up_ill_conditioned_input():
    A = hilbert(6)
    scaled = factorize(A, NewtonAlg())
    _, _, niters, converged = iterate(_Unscaled(), A, 100, 1e-6)
    assert scaled.converged and converged
    assert scaled.niters < niters


class _Unscaled(NewtonUpdater):
    def init(self, x):
        return x.clone(), NewtonState(scaled=False)


def test_newton_update_on_diagonal():
    # unscaled step maps every singular value s to (s + 1/s) / 2
    u = torch.diag(torch.tensor([2., 0.5, 1.], dtype=torch.float64))
    u_next, _ = NewtonUpdater().update(u, NewtonState(scaled=False))
    assert torch.allclose(torch.diag(u_next), torch.tensor([1.25, 1.25, 1.], dtype=torch.float64))


def test_invert_rejects_nearly_singular():
    u = torch.tensor([[1., 1.], [1., 1. + 1e-17]], dtype=torch.float64)
    with pytest.raises(SingularMatrix):
        invert(u)


def test_invert_returns_norms():
    u = randn(4, 4, seed=2)
    u_inv, norm_1, norm_1_inv = invert(u)
    assert torch.allclose(u_inv @ u, torch.eye(4, dtype=torch.float64), atol=1e-10)
    assert norm_1 == pytest.approx(torch.linalg.matrix_norm(u, ord=1).item())
    assert norm_1_inv == pytest.approx(torch.linalg.matrix_norm(u_inv, ord=1).item())


def test_schulz_update_on_diagonal():
    u = torch.diag(torch.tensor([0.5, 1., 1.5], dtype=torch.float64))
    u_next, _ = SchulzUpdater().update(u, None)
    expected = torch.tensor([0.5 * (3 - 0.25) / 2, 1., 1.5 * (3 - 2.25) / 2], dtype=torch.float64)
    assert torch.allclose(torch.diag(u_next), expected)


def test_halley_update_on_diagonal():
    s = torch.tensor([0.1, 1., 4.], dtype=torch.float64)
    u_next, _ = HalleyUpdater().update(torch.diag(s), None)
    assert torch.allclose(torch.diag(u_next), s * (3 + s ** 2) / (1 + 3 * s ** 2))


def test_hybrid_crossover_on_hilbert():
    A = hilbert(6)
    newton = factorize(A, "newton")
    u, state, niters, converged = iterate(HybridAlg().updater(), A, 100, 1e-6)
    assert newton.converged and converged
    assert niters <= newton.niters
    assert state.schulz
    # every Newton iteration inverts once; the hybrid stops inverting after the switch
    assert state.inversions < newton.niters
    assert torch.allclose(u, newton.U, atol=1e-6)


def test_hybrid_never_switches_back():
    A = hilbert(6)
    updater = HybridUpdater(theta=0.5)
    u, state = updater.init(A)
    modes = []
    for _ in range(12):
        u, state = updater.update(u, state)
        modes.append(state.schulz)
    assert modes[-1]
    first = modes.index(True)
    assert all(modes[first:])
    assert state.inversions == first + 1


def test_hybrid_switches_below_theta():
    A = randn(6, 6, seed=4)
    updater = HybridUpdater(theta=0.5)
    u, state = updater.init(A)
    while not state.schulz:
        u, state = updater.update(u, state)
    assert orth_deviation(u) <= 0.5


def test_default_theta():
    assert default_theta(1e-6) == pytest.approx((8e-6 / 3) ** 0.5)
    assert default_theta(0.5) == MAX_THETA
    assert HybridAlg(tol=1e-6).updater().theta == pytest.approx(default_theta(1e-6))
    assert HybridAlg(theta=0.3).updater().theta == 0.3


@pytest.mark.parametrize("theta", [0., 1., 1.5, -0.1])
def test_hybrid_theta_validation(theta):
    with pytest.raises(InvalidConfig):
        HybridAlg(theta=theta)


def test_newton_scaling_tol_validation():
    with pytest.raises(InvalidConfig):
        NewtonAlg(scaling_tol=-1.)
