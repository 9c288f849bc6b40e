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

"""Derivative utilities for stage functions along a trajectory.

Stage functions take `(x, u, *args)`. The operators here return batched
versions that evaluate derivatives at every knot point at once.
"""

from typing import Callable, Sequence, Tuple, Union

import jax
from jax import jacobian, hessian, vmap
from jax import Array
import jax.numpy as jnp


def vectorize(fun: Callable, argnums: int = 2) -> Callable:
    """Returns a vectorized version of the input function.

    Vectorizes the first `argnums` arguments of the function using vmap,
    allowing batch evaluation along a trajectory.

    Args:
        fun: A function f(*args) to be mapped over.
        argnums: Number of leading arguments of fun to vectorize.

    Returns:
        Batched function with arguments corresponding to fun, but with an
        extra batch dimension in axis 0 for the first argnums arguments
        (x, u typically). Remaining arguments are not batched.

    Example:
        >>> def cost(x, u):
        ...     return x @ x + u @ u
        ...
        >>> costs = vectorize(cost)(X[:-1], U)  # Shape: (N,)
    """
    def vfun(*args):
        _fun = lambda tup, *margs: fun(*(margs + tup))
        return vmap(
            _fun, in_axes=(None,) + (0,) * argnums
        )(args[argnums:], *args[:argnums])

    return vfun


def linearize(fun: Callable, argnums: int = 2) -> Callable:
    """Vectorized gradient or jacobian operator.

    Args:
        fun: Function with signature fun(x, u, *args). Can be scalar (cost)
            or vector (dynamics, constraints) valued.
        argnums: Number of leading arguments of fun to vectorize.

    Returns:
        A function that evaluates Jacobians along a trajectory:

        For dynamics:
            A, B = linearize(dynamics)(X[:-1], U)
        For cost:
            lx, lu = linearize(cost)(X[:-1], U)
    """
    jacobian_x = jacobian(fun)
    jacobian_u = jacobian(fun, argnums=1)

    def linearizer(*args):
        return jacobian_x(*args), jacobian_u(*args)

    return vectorize(linearizer, argnums)


def quadratize(fun: Callable, argnums: int = 2) -> Callable:
    """Vectorized Hessian operator for a scalar function.

    Args:
        fun: Scalar function with signature fun(x, u, *args).
        argnums: Number of leading arguments of fun to vectorize.

    Returns:
        A function that evaluates Hessians along a trajectory:
            lxx, luu, lxu = quadratize(cost)(X[:-1], U)

        with shapes (N, n, n), (N, m, m) and (N, n, m).
    """
    hessian_x = hessian(fun)
    hessian_u = hessian(fun, argnums=1)
    hessian_x_u = jacobian(jax.grad(fun), argnums=1)

    def quadratizer(*args):
        return hessian_x(*args), hessian_u(*args), hessian_x_u(*args)

    return vectorize(quadratizer, argnums)


def finite_difference_jacobian(
    fun: Callable,
    argnums: Union[int, Sequence[int]] = 0,
    eps: float = 1e-6,
) -> Callable:
    """Central-difference Jacobian operator.

    Used for functions that cannot be traced by JAX (for example NumPy code
    wrapped in a host callback). Perturbations are evaluated with vmap, so a
    host callback is invoked once per perturbed argument.

    Args:
        fun: Vector valued function of array arguments.
        argnums: Argument index, or sequence of indices, to differentiate.
        eps: Perturbation size.

    Returns:
        A function with the signature of fun returning the Jacobian of shape
        (out, in) for an int `argnums`, or a tuple of them for a sequence.
    """
    single = isinstance(argnums, int)
    indices = (argnums,) if single else tuple(argnums)

    def jacobian_wrt(args, i) -> Array:
        x = jnp.asarray(args[i])

        def perturbed(e):
            return fun(*args[:i], x + e, *args[i + 1:])

        E = eps * jnp.eye(x.shape[0], dtype=x.dtype)
        f_plus = vmap(perturbed)(E)
        f_minus = vmap(perturbed)(-E)
        return ((f_plus - f_minus) / (2.0 * eps)).T

    def fd_jacobian(*args) -> Union[Array, Tuple[Array, ...]]:
        jacobians = tuple(jacobian_wrt(args, i) for i in indices)
        return jacobians[0] if single else jacobians

    return fd_jacobian
