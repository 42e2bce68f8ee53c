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

"""Exceptions and warnings raised by the polar decomposition routines."""


class PolarError(Exception):
    """Base class for polar decomposition errors."""

    pass


class InvalidConfig(PolarError, ValueError):
    """An algorithm configuration is invalid (bad maxiter, tol, or method name)."""

    pass


class ShapeMismatch(PolarError, ValueError):
    """The input matrix has a shape or dtype the selected algorithm cannot handle."""

    pass


class SingularMatrix(PolarError, ArithmeticError):
    """An iterate is numerically singular and cannot be inverted."""

    pass


class PolarWarning(UserWarning):
    """Warning for iterations started outside their convergence region."""

    pass
