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

"""Trajectory data structures for trajectory optimization."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jax.numpy as jnp
from jax import Array

from altrax.core.results import ResultsLog
from altrax.core.types import SolverStatus


@dataclass
class Trajectory:
    """Container for solver results.

    The solver never raises for non-convergence; inspect `status`,
    `max_violation` and `info` to decide whether a result is usable.

    Attributes:
        X: State trajectory of shape (N+1, n). X[k] is the state at knot k.
        U: Control trajectory of shape (N, m). U[k] is held over [k, k+1).
        dt: Time step.
        obj: Cost of (X, U) without penalty terms.
        status: Solver status of the final stage.
        max_violation: Maximum constraint violation of (X, U).
        history: Results history, one entry per outer iteration.
        info: Dictionary of solver information:
            - 'outer_iterations': Outer iterations per stage
            - 'inner_iterations': Total iLQR iterations
            - 'penalty_max': Largest penalty weight at exit
            - 'dJ': Cost change of the last inner iteration
            - 'stages': Names of the solved stages

    Example:
        >>> result = solver.solve(U0)
        >>> print(f"Final cost: {result.obj}, violation: {result.max_violation}")
        >>> result.iter_type
        [2, 2, 2]
    """

    X: Array
    U: Array
    dt: float
    obj: float
    status: SolverStatus = SolverStatus.UNKNOWN
    max_violation: float = 0.0
    history: Optional[ResultsLog] = None
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def horizon(self) -> int:
        """Return the number of intervals N."""
        return self.U.shape[0]

    @property
    def state_dim(self) -> int:
        """Return the state dimension n."""
        return self.X.shape[1]

    @property
    def control_dim(self) -> int:
        """Return the control dimension m."""
        return self.U.shape[1]

    @property
    def converged(self) -> bool:
        """Return True if solver converged successfully."""
        return self.status == SolverStatus.SOLVED

    @property
    def result(self) -> Optional[ResultsLog]:
        """Alias of `history`."""
        return self.history

    @property
    def iter_type(self) -> List[int]:
        """Return the iteration type tag of every history entry."""
        return [] if self.history is None else self.history.iter_type


def line_trajectory(x0: Array, xf: Array, N: int) -> Array:
    """Straight-line interpolation between two states.

    Args:
        x0: Initial state of shape (n,).
        xf: Final state of shape (n,).
        N: Number of intervals.

    Returns:
        X: States of shape (N+1, n) with X[0] = x0 and X[N] = xf.

    Example:
        >>> X0 = line_trajectory(jnp.zeros(2), jnp.array([jnp.pi, 0.0]), 50)
        >>> solver.solve(X0, U0)
    """
    x0 = jnp.asarray(x0, dtype=float)
    xf = jnp.asarray(xf, dtype=float)
    s = jnp.linspace(0.0, 1.0, N + 1)[:, None]
    return x0 + s * (xf - x0)
