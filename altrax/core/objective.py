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

"""Quadratic objectives.

Every objective carries a `QuadraticCost`:

    J = sum_k (0.5 (x_k - xf)' Q (x_k - xf) + 0.5 u_k' R u_k + c) dt
        + 0.5 (x_N - xf)' Qf (x_N - xf)

`UnconstrainedObjective` and `ConstrainedObjective` are the two variants
accepted by the solver; the `is_constrained` tag tells them apart.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

import jax.numpy as jnp
import numpy as np
from jax import Array

from altrax.core.constraints import ConstraintSet
from altrax.core.errors import DimensionError, ObjectiveError
from altrax.core.types import MINIMUM_TIME

_COST_FIELDS = ('Q', 'R', 'Qf', 'tf', 'x0', 'xf', 'c')


def _square(value, dim: int, name: str) -> np.ndarray:
    matrix = np.asarray(value, dtype=float)
    if matrix.shape != (dim, dim):
        raise DimensionError(f'{name} must have shape ({dim}, {dim}), got {matrix.shape}')
    return matrix


def _positive_semidefinite(value, dim: int, name: str) -> np.ndarray:
    matrix = _square(value, dim, name)
    if not np.allclose(matrix, matrix.T):
        raise ObjectiveError(f'{name} must be symmetric')
    scale = max(1.0, float(np.max(np.abs(matrix))))
    if np.min(np.linalg.eigvalsh(matrix)) < -1e-10 * scale:
        raise ObjectiveError(f'{name} must be positive semi-definite')
    return matrix


@dataclass(frozen=True, eq=False)
class QuadraticCost:
    """Quadratic stage and terminal cost with goal state and horizon.

    Attributes:
        Q: State cost matrix of shape (n, n), positive semi-definite.
        R: Control cost matrix of shape (m, m), positive definite.
        Qf: Terminal state cost matrix of shape (n, n).
        tf: Final time. `MINIMUM_TIME` ('min') is stored as 0.
        x0: Initial state of shape (n,).
        xf: Goal state of shape (n,).
        c: Constant cost per unit time. Defaults to 1 for minimum-time
            objectives and 0 otherwise.
    """
    Q: np.ndarray
    R: np.ndarray
    Qf: np.ndarray
    tf: float
    x0: np.ndarray
    xf: np.ndarray
    c: Optional[float] = None

    def __post_init__(self):
        x0 = np.asarray(self.x0, dtype=float)
        if x0.ndim != 1 or x0.size == 0:
            raise DimensionError(f'x0 must be a non-empty vector, got shape {x0.shape}')
        n = x0.size
        xf = np.asarray(self.xf, dtype=float)
        if xf.shape != (n,):
            raise DimensionError(f'xf must have length {n}, got shape {xf.shape}')
        R = np.asarray(self.R, dtype=float)
        if R.ndim != 2 or R.shape[0] != R.shape[1] or R.shape[0] == 0:
            raise DimensionError(f'R must be a non-empty square matrix, got shape {R.shape}')
        try:
            np.linalg.cholesky(R)
        except np.linalg.LinAlgError:
            raise ObjectiveError('R must be positive definite') from None

        minimum_time = isinstance(self.tf, str)
        if minimum_time and self.tf != MINIMUM_TIME:
            raise ObjectiveError(f"tf must be a number or '{MINIMUM_TIME}', got '{self.tf}'")
        tf = 0.0 if minimum_time else float(self.tf)
        if tf < 0:
            raise ObjectiveError(f'tf must be non-negative, got {tf}')
        if self.c is None:
            c = 1.0 if minimum_time else 0.0
        else:
            c = float(self.c)
        if c < 0:
            raise ObjectiveError(f'c must be non-negative, got {c}')

        set_field = lambda name, value: object.__setattr__(self, name, value)
        set_field('Q', _positive_semidefinite(self.Q, n, 'Q'))
        set_field('R', R)
        set_field('Qf', _positive_semidefinite(self.Qf, n, 'Qf'))
        set_field('tf', tf)
        set_field('x0', x0)
        set_field('xf', xf)
        set_field('c', c)

    @property
    def n(self) -> int:
        return self.x0.size

    @property
    def m(self) -> int:
        return self.R.shape[0]

    @property
    def minimum_time(self) -> bool:
        """Return True for a free final time objective (tf == 0)."""
        return self.tf == 0.0

    def stage(self, x: Array, u: Array, dt: float) -> Array:
        """Stage cost integrated over one interval."""
        dx = x - self.xf
        return (0.5 * dx @ self.Q @ dx + 0.5 * u @ self.R @ u + self.c) * dt

    def terminal(self, x: Array) -> Array:
        dx = x - self.xf
        return 0.5 * dx @ self.Qf @ dx

    def total(self, X: Array, U: Array, dt: float) -> Array:
        """Cost of a trajectory with X of shape (N+1, n) and U of shape (N, m)."""
        dX = X[:-1] - self.xf
        stage = 0.5 * jnp.einsum('ki,ij,kj->k', dX, self.Q, dX)
        stage = stage + 0.5 * jnp.einsum('ki,ij,kj->k', U, self.R, U) + self.c
        return jnp.sum(stage) * dt + self.terminal(X[-1])

    def replace(self, **changes) -> QuadraticCost:
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class UnconstrainedObjective:
    """Objective without constraints beyond the dynamics."""
    cost: QuadraticCost
    is_constrained: ClassVar[bool] = False

    @classmethod
    def create(cls, Q, R, Qf, tf, x0, xf, c=None) -> UnconstrainedObjective:
        return cls(QuadraticCost(Q, R, Qf, tf, x0, xf, c))

    n = property(lambda self: self.cost.n)
    m = property(lambda self: self.cost.m)
    tf = property(lambda self: self.cost.tf)
    x0 = property(lambda self: self.cost.x0)
    xf = property(lambda self: self.cost.xf)


@dataclass(frozen=True)
class ConstrainedObjective:
    """Objective with box bounds, general constraints and a terminal goal.

    Example:
        >>> obj = ConstrainedObjective.create(
        ...     Q, R, Qf, tf=5.0, x0=x0, xf=xf,
        ...     u_min=-3.0, u_max=3.0, x_min=-10.0, x_max=10.0)
        >>> obj.constraints.p, obj.constraints.p_N
        (6, 6)
    """
    cost: QuadraticCost
    constraints: ConstraintSet
    is_constrained: ClassVar[bool] = True

    def __post_init__(self):
        if (self.constraints.n, self.constraints.m) != (self.cost.n, self.cost.m):
            raise DimensionError(
                f'constraints are for n={self.constraints.n}, m={self.constraints.m} '
                f'but the cost has n={self.cost.n}, m={self.cost.m}'
            )

    @classmethod
    def create(cls, Q, R, Qf, tf, x0, xf, c=None, **constraint_options) -> ConstrainedObjective:
        cost = QuadraticCost(Q, R, Qf, tf, x0, xf, c)
        return cls(cost, ConstraintSet(cost.n, cost.m, cost.xf, **constraint_options))

    @classmethod
    def from_unconstrained(
        cls, objective: UnconstrainedObjective, **constraint_options
    ) -> ConstrainedObjective:
        """Add constraints to an unconstrained objective."""
        cost = objective.cost
        return cls(cost, ConstraintSet(cost.n, cost.m, cost.xf, **constraint_options))

    n = property(lambda self: self.cost.n)
    m = property(lambda self: self.cost.m)
    tf = property(lambda self: self.cost.tf)
    x0 = property(lambda self: self.cost.x0)
    xf = property(lambda self: self.cost.xf)


Objective = Union[UnconstrainedObjective, ConstrainedObjective]


def update_objective(objective: Objective, **changes) -> Objective:
    """Return a copy of `objective` with the named fields replaced.

    Cost fields (Q, R, Qf, tf, x0, xf, c) and, for constrained objectives,
    constraint options (u_min, u_max, x_min, x_max, cI, cE, cI_N, cE_N,
    use_terminal_constraint) may be changed. The result is validated again.

    Raises:
        ObjectiveError: If a field name is not recognized.
    """
    cost_changes = {k: v for k, v in changes.items() if k in _COST_FIELDS}
    other = {k: v for k, v in changes.items() if k not in _COST_FIELDS}
    cost = objective.cost.replace(**cost_changes)

    if not objective.is_constrained:
        if other:
            raise ObjectiveError(
                f'unknown fields for an unconstrained objective: {sorted(other)}'
            )
        return UnconstrainedObjective(cost)

    options = objective.constraints.options
    unknown = set(other) - set(options)
    if unknown:
        raise ObjectiveError(f'unknown objective fields: {sorted(unknown)}')
    options.update(other)
    return ConstrainedObjective(cost, ConstraintSet(cost.n, cost.m, cost.xf, **options))
