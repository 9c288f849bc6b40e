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

"""Solver entry points.

`Solver` binds a model, an objective and a discretization. Calling
`solve(U0)` starts from a control guess; `solve(X0, U0)` starts from a state
and control guess that need not be dynamically consistent (infeasible
start).
"""

from typing import Optional, Tuple

import jax.numpy as jnp
from jax import Array

from altrax.core.errors import DimensionError, ObjectiveError
from altrax.core.model import Model
from altrax.core.objective import Objective
from altrax.core.problem import StageProblem
from altrax.core.results import ResultsLog
from altrax.core.trajectory import Trajectory
from altrax.solvers import augmented_lagrangian as al
from altrax.solvers import infeasible
from altrax.solvers.options import SolverOptions


class Solver:
    """Constrained iLQR solver for one model, objective and time grid.

    Args:
        model: Dynamics model.
        objective: UnconstrainedObjective or ConstrainedObjective.
        dt: Time step.
        N: Number of intervals. Defaults to round(tf / dt); required for
            minimum-time objectives (tf = 0).
        options: Solver options. Defaults to SolverOptions().
        **overrides: Individual options replacing those in `options`.

    Raises:
        ObjectiveError: If N cannot be derived from the objective.
        DimensionError: If model and objective dimensions disagree.

    Example:
        >>> solver = Solver(model, objective, dt=0.1, iterations=100)
        >>> result = solver.solve(U0)
        >>> result.converged, result.max_violation
    """

    def __init__(
        self,
        model: Model,
        objective: Objective,
        dt: float,
        N: Optional[int] = None,
        options: Optional[SolverOptions] = None,
        **overrides,
    ):
        if dt <= 0:
            raise ValueError(f'dt must be positive, got {dt}')
        options = SolverOptions() if options is None else options
        if overrides:
            options = options.replace(**overrides)
        if N is None:
            if objective.tf == 0.0:
                raise ObjectiveError(
                    'minimum-time objectives (tf = 0) require the number of intervals N')
            N = int(round(objective.tf / dt))
        if N < 1:
            raise ObjectiveError(f'the horizon must contain at least one interval, got N={N}')

        self.model = model
        self.objective = objective
        self.dt = float(dt)
        self.N = int(N)
        self.options = options
        self.problem = StageProblem.from_objective(model, objective, self.dt, self.N)

    def rollout(self, U: Array) -> Tuple[Array, float, float]:
        """Simulate controls from the initial state of the objective.

        Args:
            U: Controls of shape (N, m).

        Returns:
            X: States of shape (N+1, n). Non-finite entries mean divergence.
            cost: Cost of (X, U) without penalty terms.
            max_violation: Maximum constraint violation of (X, U).
        """
        U = self._check_controls(U)
        X = self.problem.rollout(U)
        C, C_N = self.problem.evaluate_constraints(X, U)
        c_max = al.max_violation(C, C_N, self.problem.is_equality, self.problem.is_equality_N)
        return X, float(self.problem.cost(X, U)), float(c_max)

    def solve(self, *initial_guess: Array) -> Trajectory:
        """Solve from `(U0,)` or, with infeasible start, from `(X0, U0)`.

        Args:
            *initial_guess: Either controls U0 of shape (N, m), or states X0
                of shape (N+1, n) followed by controls U0.

        Returns:
            Trajectory of the final stage with the full results history.
            Non-convergence is reported in `status`.
        """
        if len(initial_guess) == 1:
            return self._solve_feasible(self._check_controls(initial_guess[0]))
        if len(initial_guess) == 2:
            X0 = self._check_states(initial_guess[0])
            return self._solve_infeasible(X0, self._check_controls(initial_guess[1]))
        raise TypeError(
            f'solve() takes (U0) or (X0, U0), got {len(initial_guess)} arguments')

    def _solve_feasible(self, U0: Array) -> Trajectory:
        opts = self.options
        results = al.initialize(self.problem, U0, opts)
        if self.objective.is_constrained:
            history = ResultsLog(opts.iterations_outerloop, opts.cache)
            outer = al.solve(self.problem, results, opts, history)
        else:
            history = ResultsLog(1, opts.cache)
            outer = al.solve_unconstrained(self.problem, results, opts, history)
        return self._trajectory(outer, history, [outer])

    def _solve_infeasible(self, X0: Array, U0: Array) -> Trajectory:
        opts = self.options
        history = ResultsLog(2 * opts.iterations_outerloop, opts.cache)
        stages = infeasible.solve(self.problem, X0, U0, opts, history)
        return self._trajectory(stages[-1], history, list(stages))

    def _trajectory(self, outer: al.OuterResult, history: ResultsLog, stages) -> Trajectory:
        results = outer.results
        return Trajectory(
            X=results.X,
            U=results.U,
            dt=self.dt,
            obj=results.cost,
            status=outer.status,
            max_violation=results.max_violation,
            history=history,
            info={
                'outer_iterations': [stage.iterations for stage in stages],
                'inner_iterations': sum(stage.inner_iterations for stage in stages),
                'penalty_max': al.largest_penalty(results.mu, results.mu_N),
                'dJ': outer.dJ,
                'stages': [tag.name.lower() for tag in dict.fromkeys(
                    entry.iter_type for entry in history)],
            },
        )

    def _check_controls(self, U: Array) -> Array:
        U = jnp.asarray(U, dtype=float)
        if U.shape != (self.N, self.model.m):
            raise DimensionError(
                f'controls must have shape ({self.N}, {self.model.m}), got {U.shape}')
        return U

    def _check_states(self, X: Array) -> Array:
        X = jnp.asarray(X, dtype=float)
        if X.shape != (self.N + 1, self.model.n):
            raise DimensionError(
                f'states must have shape ({self.N + 1}, {self.model.n}), got {X.shape}')
        return X


def solve(
    model: Model,
    objective: Objective,
    *initial_guess: Array,
    dt: float,
    N: Optional[int] = None,
    options: Optional[SolverOptions] = None,
    **overrides,
) -> Trajectory:
    """Build a `Solver` and solve from `(U0,)` or `(X0, U0)`.

    Example:
        >>> result = solve(model, objective, X0, U0, dt=0.1, iterations_outerloop=250)
        >>> result.iter_type[0], result.iter_type[-1]
        (1, 2)
    """
    return Solver(model, objective, dt, N, options, **overrides).solve(*initial_guess)
