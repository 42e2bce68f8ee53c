import pytest
import scipy.linalg
import torch


def randn(m, n, seed=0):
    generator = torch.Generator().manual_seed(seed)
    return torch.randn(m, n, generator=generator, dtype=torch.float64)


def random_orthogonal(n, seed=0):
    q, _ = torch.linalg.qr(randn(n, n, seed))
    return q


def hilbert(n):
    return torch.from_numpy(scipy.linalg.hilbert(n))


def orth_error(U):
    m, n = U.shape
    G = U.T @ U if m >= n else U @ U.T
    return torch.linalg.matrix_norm(G - torch.eye(G.shape[0], dtype=U.dtype)).item()


def recon_error(U, H, A):
    return (torch.linalg.matrix_norm(U @ H - A) / torch.linalg.matrix_norm(A)).item()


@pytest.fixture
def A6():
    return randn(6, 6, seed=1234)
