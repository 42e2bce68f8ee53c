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

import os
import fire
from tqdm import tqdm

import numpy as np
import scipy.linalg
import matplotlib.pyplot as plt
import matplotlib as mpl
import scienceplots

import torch

from polar import factorize

ITERATIVE_METHODS = ("newton", "schulz", "hybrid", "halley", "qdwh")
LABELS = {
    "newton": "Newton (scaled)",
    "schulz": "Newton--Schulz",
    "hybrid": "Newton / Newton--Schulz",
    "halley": "Halley",
    "qdwh": "QDWH",
}


def make_matrix(kind: str, n: int, seed: int = 42) -> torch.Tensor:
    generator = torch.Generator().manual_seed(seed)
    if kind == "random":
        return torch.randn(n, n, generator=generator, dtype=torch.float64)
    if kind == "hilbert":
        return torch.from_numpy(scipy.linalg.hilbert(n))
    if kind == "orthogonal":
        q, _ = torch.linalg.qr(torch.randn(n, n, generator=generator, dtype=torch.float64))
        return q
    raise ValueError(f"Unknown test matrix {kind}.")


def run_method(a, method, maxiter, tol):
    trace = []
    res = factorize(a, method, maxiter=maxiter, tol=tol,
                    report=lambda k, relerr, obj: trace.append((k, relerr, obj)))
    return res, np.array(trace).reshape(-1, 3)


def main(kind="random", n=6, seed=42, tol=1e-6, maxiter=100, normalize=True, methods=ITERATIVE_METHODS, out="fig"):
    a = make_matrix(kind, n, seed)
    # Newton--Schulz is only guaranteed to converge for ||a||_F < sqrt(3); U is invariant under positive scaling
    if normalize:
        a = a / torch.linalg.matrix_norm(a)
    print(f"Matrix: {kind}, n = {n}, condition number: {torch.linalg.cond(a).item():.4e}")

    os.makedirs(out, exist_ok=True)
    traces = {}
    for method in tqdm(methods, desc=f"polar decomp of {kind} matrix (n = {n})"):
        res, trace = run_method(a, method, maxiter, tol)
        traces[method] = trace
        recon = (torch.linalg.matrix_norm(res.U @ res.H - a) / torch.linalg.matrix_norm(a)).item()
        tqdm.write(f"{method:<8}  niters = {res.niters:<4d}  converged = {str(res.converged):<5}  "
                   f"||UH - A||_F / ||A||_F = {recon:.3e}")
    np.savez(os.path.join(out, f"polar_{kind}_{n}_{seed}.npz"), **traces)

    ## Plots
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))
    for method, trace in traces.items():
        axes[0].semilogy(trace[:, 0], trace[:, 1], label=LABELS.get(method, method), marker='o')
        axes[1].semilogy(trace[:, 0], trace[:, 2], marker='o')
    axes[0].axhline(tol, color='gray', linestyle=':')
    axes[0].set_xlabel(r"iteration $k$")
    axes[0].set_ylabel(r"$\|U_k - U_{k-1}\|_F / \|U_k\|_F$")
    axes[1].set_xlabel(r"iteration $k$")
    axes[1].set_ylabel(r"$\|U_k^\top U_k - I\|_F^2$")

    fig.legend(loc='outside lower center', ncol=5, bbox_to_anchor=(0.5, -0.05), borderaxespad=0., fontsize=16)
    fig.subplots_adjust(bottom=0.22)
    fig.savefig(os.path.join(out, f"polar_{kind}_{n}_{seed}.pdf"), dpi=500, bbox_inches='tight')
    plt.close(fig)


if __name__ == "__main__":
    # Default settings
    mpl.rcParams.update(mpl.rcParamsDefault)
    plt.style.use(['science', 'grid', 'notebook'])
    plt.rcParams.update({"axes.prop_cycle": plt.cycler(color=list(plt.get_cmap('tab10').colors))})

    torch.set_printoptions(precision=8)

    fire.Fire(main)
