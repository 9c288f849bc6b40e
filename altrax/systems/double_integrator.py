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

"""Double integrator, a linear test system.

State x = [position, velocity], control u = [acceleration]. The discrete
step is exact for piecewise constant acceleration.
"""

import jax.numpy as jnp
import numpy as np

from altrax.core.model import Model


def double_integrator_dynamics(x, u):
    return jnp.array([x[1], u[0]])


def double_integrator_step(x, u, dt):
    """Exact zero-order-hold discretization."""
    return jnp.array([
        x[0] + dt * x[1] + 0.5 * dt ** 2 * u[0],
        x[1] + dt * u[0],
    ])


def double_integrator_jacobians(x, u, dt):
    A = jnp.array([[1.0, dt], [0.0, 1.0]])
    B = jnp.array([[0.5 * dt ** 2], [dt]])
    return A, B


def double_integrator_model(discrete: bool = True, analytic_jacobians: bool = False) -> Model:
    if not discrete:
        return Model(double_integrator_dynamics, n=2, m=1)
    jacobians = double_integrator_jacobians if analytic_jacobians else None
    return Model(double_integrator_step, n=2, m=1, discrete=True, jacobians=jacobians)


def double_integrator_matrices(dt: float):
    """Return (A, B) of the discrete step as NumPy arrays."""
    A = np.array([[1.0, dt], [0.0, 1.0]])
    B = np.array([[0.5 * dt ** 2], [dt]])
    return A, B
