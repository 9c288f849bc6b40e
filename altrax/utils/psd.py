# Copyright 2024 Google LLC
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
# limitations under the License.

"""Positive definite matrix utilities used by the backward pass."""

from typing import Tuple

import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array


def symmetrize(H: Array) -> Array:
    return 0.5 * (H + H.T)


def regularize_hessian(H: Array, reg: float = 1e-6) -> Array:
    """Add regularization to a Hessian matrix.

    Adds reg * I to the matrix to improve numerical conditioning.

    Args:
        H: Hessian matrix of shape (n, n).
        reg: Regularization coefficient.

    Returns:
        H_reg: Regularized Hessian of shape (n, n).
    """
    n = H.shape[0]
    return H + reg * jnp.eye(n)


def pd_solve(H: Array, b: Array) -> Tuple[Array, Array]:
    """Solve H x = b through a Cholesky factorization.

    Args:
        H: Symmetric matrix of shape (m, m).
        b: Right-hand side of shape (m,) or (m, k).

    Returns:
        x: Solution with the shape of b. Not finite if H is not positive
            definite.
        ok: True if the factorization succeeded, i.e. H is positive definite.

    Example:
        >>> x, ok = pd_solve(jnp.eye(2), jnp.ones(2))
        >>> assert ok
    """
    L = jnp.linalg.cholesky(symmetrize(H))
    ok = jnp.all(jnp.isfinite(L))
    return jsp.linalg.cho_solve((L, True), b), ok


def is_positive_definite(H: Array) -> Array:
    """Return True if H is symmetric positive definite (Cholesky test)."""
    L = jnp.linalg.cholesky(symmetrize(H))
    return jnp.all(jnp.isfinite(L))
