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

"""Rollout utilities for trajectory optimization.

This module provides functions for simulating trajectories through discrete
dynamics x[k+1] = dynamics(x[k], u[k], *args).
"""

from functools import partial
from typing import Callable, Tuple

import jax.numpy as jnp
from jax import Array, lax, jit

from altrax.utils.linearize import vectorize


def rollout(
    dynamics: Callable,
    U: Array,
    x0: Array,
    *args,
) -> Array:
    """Roll out dynamics: x[k+1] = dynamics(x[k], U[k], *args).

    Args:
        dynamics: Dynamics function (x, u, *args) -> x_next.
        U: Control sequence of shape (N, m).
        x0: Initial state of shape (n,).
        *args: Additional arguments passed to dynamics.

    Returns:
        X: State trajectory of shape (N+1, n).

    Example:
        >>> X = rollout(dynamics, U, x0)
        >>> assert X.shape == (U.shape[0] + 1, x0.shape[0])
    """
    def dynamics_for_scan(x, u):
        x_next = dynamics(x, u, *args)
        return x_next, x_next

    _, X_rest = lax.scan(dynamics_for_scan, x0, U)
    return jnp.vstack((x0, X_rest))


@partial(jit, static_argnums=(0,))
def ddp_rollout(
    dynamics: Callable,
    X: Array,
    U: Array,
    K: Array,
    d: Array,
    alpha: float,
    *args,
) -> Tuple[Array, Array]:
    """Closed-loop rollout used by the iLQR line search.

        u_new[k] = U[k] + alpha * d[k] + K[k] @ (x_new[k] - X[k])
        x_new[k+1] = dynamics(x_new[k], u_new[k])

    Args:
        dynamics: Dynamics function (x, u, *args) -> x_next.
        X: Nominal state trajectory of shape (N+1, n).
        U: Nominal control sequence of shape (N, m).
        K: Feedback gains of shape (N, m, n).
        d: Feedforward terms of shape (N, m).
        alpha: Line search step size in (0, 1].
        *args: Additional arguments passed to dynamics.

    Returns:
        X_new: Updated state trajectory of shape (N+1, n).
        U_new: Updated control sequence of shape (N, m).

    Example:
        >>> X_new, U_new = ddp_rollout(dynamics, X, U, K, d, 0.5)
    """
    n = X.shape[1]
    N, m = U.shape

    X_new = jnp.zeros((N + 1, n))
    U_new = jnp.zeros((N, m))
    X_new = X_new.at[0].set(X[0])

    def body(k, inputs):
        X_new, U_new = inputs
        u = U[k] + alpha * d[k] + jnp.matmul(K[k], X_new[k] - X[k])
        x = dynamics(X_new[k], u, *args)
        U_new = U_new.at[k].set(u)
        X_new = X_new.at[k + 1].set(x)
        return X_new, U_new

    return lax.fori_loop(0, N, body, (X_new, U_new))


def evaluate(
    cost: Callable,
    X: Array,
    U: Array,
    *args,
) -> Array:
    """Evaluate a stage cost at each knot point.

    Args:
        cost: Cost function (x, u, *args) -> scalar.
        X: States of shape (N, n). Pass X[:-1] for a full trajectory.
        U: Controls of shape (N, m).
        *args: Additional arguments passed to cost.

    Returns:
        costs: Array of shape (N,).
    """
    return vectorize(cost)(X, U, *args)


def diverged(X: Array) -> Array:
    """Return True if any state of the trajectory is not finite."""
    return jnp.logical_not(jnp.all(jnp.isfinite(X)))
