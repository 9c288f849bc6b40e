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

"""Solver configuration."""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class SolverOptions:
    """Options of the iLQR / augmented Lagrangian / infeasible start solver.

    Attributes:
        iterations: Maximum iLQR iterations per inner solve.
        iterations_outerloop: Maximum augmented Lagrangian iterations per stage.
        iterations_linesearch: Maximum step sizes tried per forward pass.
        eps: Final cost change tolerance of the outer loop.
        eps_constraint: Maximum constraint violation at convergence.
        cost_tolerance: iLQR cost change tolerance on feasible trajectories.
        cost_tolerance_intermediate: iLQR cost change tolerance while
            constraints are still violated.
        gradient_tolerance: iLQR stops when max |d| / (|u| + 1) is below this.
        c1: Lower bound of the accepted actual/expected decrease ratio.
        c2: Upper bound of the accepted actual/expected decrease ratio.
        penalty_initial: Initial penalty weight of every constraint.
        mu_al_update: Penalty scaling factor.
        penalty_max: Upper bound of penalty weights.
        constraint_decrease_ratio: Penalties grow unless the maximum violation
            falls below this fraction of its previous value.
        infeasible_regularization: Cost weight of the infeasible start slacks.
        bp_reg_initial: Initial backward pass regularization.
        bp_reg_increase_factor: Growth factor of the regularization.
        bp_reg_min: Regularization below this value is reset to zero.
        bp_reg_max: Inner solve gives up above this regularization.
        verbose: Log one line per inner and outer iteration.
        cache: Keep every outer iteration in the results history. Otherwise
            only the latest entry of each stage is kept.
    """
    iterations: int = 500
    iterations_outerloop: int = 50
    iterations_linesearch: int = 20
    eps: float = 1e-5
    eps_constraint: float = 1e-3
    cost_tolerance: float = 1e-5
    cost_tolerance_intermediate: float = 1e-3
    gradient_tolerance: float = 1e-5
    c1: float = 1e-8
    c2: float = 10.0
    penalty_initial: float = 1.0
    mu_al_update: float = 10.0
    penalty_max: float = 1e8
    constraint_decrease_ratio: float = 0.25
    infeasible_regularization: float = 1.0
    bp_reg_initial: float = 0.0
    bp_reg_increase_factor: float = 1.6
    bp_reg_min: float = 1e-8
    bp_reg_max: float = 1e8
    verbose: bool = False
    cache: bool = True

    def __post_init__(self):
        """Validate option values."""
        for name in ('iterations', 'iterations_outerloop', 'iterations_linesearch'):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ValueError(f'{name} must be a positive integer, got {value}')
        for name in ('eps', 'eps_constraint', 'cost_tolerance',
                     'cost_tolerance_intermediate', 'gradient_tolerance',
                     'penalty_initial', 'infeasible_regularization', 'bp_reg_min'):
            if getattr(self, name) <= 0:
                raise ValueError(f'{name} must be positive, got {getattr(self, name)}')
        if not 0 < self.c1 < self.c2:
            raise ValueError(f'line search bounds must satisfy 0 < c1 < c2, got {self.c1}, {self.c2}')
        if self.mu_al_update <= 1:
            raise ValueError(f'mu_al_update must be > 1, got {self.mu_al_update}')
        if self.penalty_max < self.penalty_initial:
            raise ValueError('penalty_max must be >= penalty_initial')
        if not 0 < self.constraint_decrease_ratio < 1:
            raise ValueError(
                f'constraint_decrease_ratio must be in (0, 1), got {self.constraint_decrease_ratio}'
            )
        if self.bp_reg_increase_factor <= 1:
            raise ValueError(
                f'bp_reg_increase_factor must be > 1, got {self.bp_reg_increase_factor}'
            )
        if self.bp_reg_initial < 0 or self.bp_reg_max <= self.bp_reg_min:
            raise ValueError('regularization bounds must satisfy 0 <= initial, min < max')

    def replace(self, **overrides) -> 'SolverOptions':
        """Return a validated copy with the given options replaced.

        Raises:
            TypeError: If an option name is unknown.
        """
        unknown = set(overrides) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise TypeError(f'unknown solver options: {sorted(unknown)}')
        return dataclasses.replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
