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

from dataclasses import dataclass
from typing import Optional

import torch

from polar_common import PolarResult, Report, symmetrize


def svd_polar(x: torch.Tensor) -> PolarResult:
    """
    Polar decomposition from the reduced SVD ``x = P diag(s) Q^T``:
    ``U = P Q^T`` and ``H = Q diag(s) Q^T``. No iteration is involved, so
    ``niters`` and ``converged`` are left as ``None``.
    """
    p, s, qh = torch.linalg.svd(x, full_matrices=False)
    u = p @ qh
    h = symmetrize(qh.mT @ (s.unsqueeze(-1) * qh))
    return PolarResult(U=u, H=h)


@dataclass(frozen=True)
class SVDAlg:
    def solve(self, x: torch.Tensor, report: Optional[Report] = None) -> PolarResult:
        return svd_polar(x)
