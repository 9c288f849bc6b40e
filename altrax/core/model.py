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

"""Dynamics models.

A `Model` turns a user vector field or discrete step into the single
interface used by the solvers:

    step(x, u, dt) -> x_next
    jacobians(x, u, dt) -> (A, B)

with A = d x_next / d x of shape (n, n) and B = d x_next / d u of shape
(n, m).
"""

from typing import Optional, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from altrax.core.callables import AdaptedFunction, CallForm, adapt
from altrax.core.errors import DimensionError, ModelError
from altrax.core.types import JacobiansFn, StepFn, VectorFieldFn
from altrax.utils.integrators import get_integrator
from altrax.utils.linearize import finite_difference_jacobian


class Model:
    """Dynamics model with fixed state and control dimensions.

    Both the pure form `f(x, u)` and the in-place form `f(xdot, x, u)` are
    accepted for continuous models, and likewise `step(x, u, dt)` and
    `step(x_next, x, u, dt)` for discrete ones. The form is probed once here.

    Jacobians come from, in order of preference: the `jacobians` callback,
    forward-mode autodiff of a JAX-traceable step, or central finite
    differences of a host (NumPy or in-place) step.

    Args:
        dynamics: Vector field or discrete step.
        n: State dimension.
        m: Control dimension.
        discrete: Whether `dynamics` is a discrete step taking dt.
        integration: Integration scheme for continuous models
            ('euler', 'midpoint', 'heun', 'rk3' or 'rk4').
        jacobians: Optional analytic Jacobians (x, u, dt) -> (A, B) of the
            discrete step. Must be JAX-traceable.

    Raises:
        ModelError: If the dynamics cannot be probed.
        DimensionError: If n or m is not a positive integer.

    Example:
        >>> def pendulum(x, u):
        ...     return jnp.array([x[1], -9.81 * jnp.sin(x[0]) + u[0]])
        ...
        >>> model = Model(pendulum, n=2, m=1)
        >>> A, B = model.jacobians(jnp.zeros(2), jnp.zeros(1), 0.1)
    """

    def __init__(
        self,
        dynamics: Union[VectorFieldFn, StepFn],
        n: int,
        m: int,
        *,
        discrete: bool = False,
        integration: str = 'rk4',
        jacobians: Optional[JacobiansFn] = None,
    ):
        if int(n) != n or n < 1:
            raise DimensionError(f'n must be a positive integer, got {n}')
        if int(m) != m or m < 1:
            raise DimensionError(f'm must be a positive integer, got {m}')
        if jacobians is not None and not discrete:
            raise ModelError('analytic jacobians are only supported for discrete models')
        self._n = int(n)
        self._m = int(m)
        self._discrete = discrete
        self._integration = None if discrete else integration

        probe = (np.zeros(self._n), np.zeros(self._m))
        if discrete:
            self._dynamics = adapt(dynamics, probe + (0.1,), 'dynamics', size=self._n)
            self._step = self._dynamics.fn
        else:
            integrator = get_integrator(integration)
            self._dynamics = adapt(dynamics, probe, 'dynamics', size=self._n)
            self._step = integrator(self._dynamics.fn)

        if jacobians is not None:
            self._jacobians = jacobians
        elif self._dynamics.traceable:
            self._jacobians = jax.jacfwd(self._step, argnums=(0, 1))
        else:
            self._jacobians = finite_difference_jacobian(self._step, argnums=(0, 1))

    @property
    def n(self) -> int:
        """Return the state dimension."""
        return self._n

    @property
    def m(self) -> int:
        """Return the control dimension."""
        return self._m

    @property
    def discrete(self) -> bool:
        return self._discrete

    @property
    def integration(self) -> Optional[str]:
        return self._integration

    @property
    def inplace(self) -> bool:
        """Return True if the user dynamics were given in the in-place form."""
        return self._dynamics.form is CallForm.INPLACE

    @property
    def traceable(self) -> bool:
        """Return True if the dynamics are traced by JAX (no host callback)."""
        return self._dynamics.traceable

    @property
    def dynamics(self) -> AdaptedFunction:
        return self._dynamics

    def step(self, x: Array, u: Array, dt: float) -> Array:
        """Propagate one interval: x_next = step(x, u, dt)."""
        return self._step(x, u, dt)

    def jacobians(self, x: Array, u: Array, dt: float) -> Tuple[Array, Array]:
        """Return (A, B), the Jacobians of `step` with respect to x and u."""
        A, B = self._jacobians(x, u, dt)
        return jnp.asarray(A), jnp.asarray(B)

    def __repr__(self) -> str:
        kind = 'discrete' if self._discrete else f'continuous, {self._integration}'
        return f'Model(n={self._n}, m={self._m}, {kind}, {self._dynamics.form.value})'
