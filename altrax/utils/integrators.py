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

"""Numerical integration of continuous-time dynamics.

The solvers work with discrete steps x[k+1] = step(x[k], u[k], dt). A model
built from a vector field dx/dt = f(x, u) is discretized with one of the
explicit Runge-Kutta schemes below. The control is held constant over the
interval (zero-order hold).
"""

from typing import Callable, Dict


def euler(vector_field: Callable) -> Callable:
    """Explicit Euler step.

        x[k+1] = x[k] + dt * f(x[k], u[k])

    Args:
        vector_field: Continuous-time dynamics (x, u) -> dx/dt.

    Returns:
        Discrete step (x, u, dt) -> x_next.
    """
    def step(x, u, dt):
        return x + dt * vector_field(x, u)

    return step


def midpoint(vector_field: Callable) -> Callable:
    """Explicit midpoint step (2nd-order Runge-Kutta).

        k1 = f(x, u)
        k2 = f(x + dt/2 * k1, u)
        x[k+1] = x[k] + dt * k2
    """
    def step(x, u, dt):
        k1 = vector_field(x, u)
        k2 = vector_field(x + 0.5 * dt * k1, u)
        return x + dt * k2

    return step


def heun(vector_field: Callable) -> Callable:
    """Heun's method (explicit trapezoidal), second-order accurate."""
    def step(x, u, dt):
        k1 = vector_field(x, u)
        k2 = vector_field(x + dt * k1, u)
        return x + 0.5 * dt * (k1 + k2)

    return step


def rk3(vector_field: Callable) -> Callable:
    """Kutta's third-order method.

        k1 = f(x, u)
        k2 = f(x + dt/2 * k1, u)
        k3 = f(x - dt * k1 + 2 dt * k2, u)
        x[k+1] = x[k] + dt/6 * (k1 + 4*k2 + k3)
    """
    def step(x, u, dt):
        k1 = vector_field(x, u)
        k2 = vector_field(x + 0.5 * dt * k1, u)
        k3 = vector_field(x - dt * k1 + 2.0 * dt * k2, u)
        return x + dt / 6.0 * (k1 + 4.0 * k2 + k3)

    return step


def rk4(vector_field: Callable) -> Callable:
    """Classical 4th-order Runge-Kutta step.

        k1 = f(x, u)
        k2 = f(x + dt/2 * k1, u)
        k3 = f(x + dt/2 * k2, u)
        k4 = f(x + dt * k3, u)
        x[k+1] = x[k] + dt/6 * (k1 + 2*k2 + 2*k3 + k4)

    Fourth-order accurate and the default choice for most applications.

    Args:
        vector_field: Continuous-time dynamics (x, u) -> dx/dt.

    Returns:
        Discrete step (x, u, dt) -> x_next.

    Example:
        >>> def pendulum(x, u):
        ...     theta, omega = x
        ...     return jnp.array([omega, -jnp.sin(theta) + u[0]])
        ...
        >>> step = rk4(pendulum)
        >>> x_next = step(x, u, 0.01)
    """
    def step(x, u, dt):
        k1 = vector_field(x, u)
        k2 = vector_field(x + 0.5 * dt * k1, u)
        k3 = vector_field(x + 0.5 * dt * k2, u)
        k4 = vector_field(x + dt * k3, u)
        return x + dt / 6.0 * (k1 + 2.0 * k2 + 2.0 * k3 + k4)

    return step


INTEGRATORS: Dict[str, Callable] = {
    'euler': euler,
    'midpoint': midpoint,
    'heun': heun,
    'rk3': rk3,
    'rk4': rk4,
}


def get_integrator(name: str) -> Callable:
    """Look up an integration scheme by name.

    Raises:
        ValueError: If the scheme is unknown.
    """
    if name not in INTEGRATORS:
        raise ValueError(
            f"Unknown integration scheme '{name}'. "
            f"Available: {sorted(INTEGRATORS)}"
        )
    return INTEGRATORS[name]
