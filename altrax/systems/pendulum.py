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

"""Damped pendulum with a torque input.

State x = [theta, omega], control u = [torque]. theta = 0 hangs down and
theta = pi is the upright position.
"""

import jax.numpy as jnp
import numpy as np

from altrax.core.model import Model
from altrax.core.objective import UnconstrainedObjective

MASS = 1.0
LENGTH = 0.5
DAMPING = 0.1
CENTER_OF_MASS = 0.5
INERTIA = 0.25
GRAVITY = 9.81


def pendulum_dynamics(x, u):
    """Continuous pendulum dynamics written with jax.numpy."""
    theta, omega = x[0], x[1]
    alpha = (u[0] - MASS * GRAVITY * CENTER_OF_MASS * jnp.sin(theta)
             - DAMPING * omega) / INERTIA
    return jnp.array([omega, alpha])


def pendulum_dynamics_inplace(xdot, x, u):
    """Same dynamics in the in-place NumPy form f(xdot, x, u)."""
    xdot[0] = x[1]
    xdot[1] = (u[0] - MASS * GRAVITY * CENTER_OF_MASS * np.sin(x[0])
               - DAMPING * x[1]) / INERTIA


def pendulum_model(inplace: bool = False, integration: str = 'rk4') -> Model:
    dynamics = pendulum_dynamics_inplace if inplace else pendulum_dynamics
    return Model(dynamics, n=2, m=1, integration=integration)


def pendulum_objective(tf: float = 5.0, R: float = 1e-3) -> UnconstrainedObjective:
    """Swing-up from hanging down to upright in `tf` seconds."""
    return UnconstrainedObjective.create(
        Q=1e-3 * np.eye(2),
        R=R * np.eye(1),
        Qf=100.0 * np.eye(2),
        tf=tf,
        x0=np.zeros(2),
        xf=np.array([np.pi, 0.0]),
    )
