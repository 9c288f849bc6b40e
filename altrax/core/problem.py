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

"""Discretized trajectory optimization problem for a single solve stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, NamedTuple, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array, jit, vmap

from altrax.core.errors import DimensionError
from altrax.core.model import Model
from altrax.core.objective import Objective
from altrax.utils.linearize import linearize, quadratize
from altrax.utils.rollout import evaluate, rollout


class Expansion(NamedTuple):
    """Linear dynamics and quadratic cost along a trajectory.

    Stage terms have a leading axis of length N; Vx and Vxx are the gradient
    and Hessian of the terminal cost.
    """
    A: Array    # (N, n, n)
    B: Array    # (N, n, m)
    lx: Array   # (N, n)
    lu: Array   # (N, m)
    lxx: Array  # (N, n, n)
    luu: Array  # (N, m, m)
    lux: Array  # (N, m, n)
    Vx: Array   # (n,)
    Vxx: Array  # (n, n)


class ConstraintJacobians(NamedTuple):
    Cx: Array    # (N, p, n)
    Cu: Array    # (N, p, m)
    Cx_N: Array  # (p_N, n)


@dataclass(eq=False)
class StageProblem:
    """Problem solved by one stage of the solver.

        min  sum_k stage_cost(x_k, u_k) + terminal_cost(x_N)
        s.t. x_{k+1} = dynamics(x_k, u_k),  x_0 = x0
             constraints(x_k, u_k) <= 0 / = 0  (per `is_equality`)
             terminal_constraints(x_N) <= 0 / = 0  (per `is_equality_N`)

    The time step is already bound into the dynamics and the stage cost.
    Jitted kernels are compiled once per problem instance; instances compare
    and hash by identity so they can be passed as static arguments.

    Attributes:
        n: State dimension.
        m: Control dimension.
        N: Number of intervals. Trajectories have N+1 states and N controls.
        dt: Time step.
        x0: Initial state of shape (n,).
        dynamics: (x, u) -> x_next.
        dynamics_jacobians: (x, u) -> (A, B).
        stage_cost: (x, u) -> scalar.
        terminal_cost: (x) -> scalar.
        constraints: (x, u) -> values of shape (p,).
        constraint_jacobians: (x, u) -> (Cx, Cu).
        terminal_constraints: (x) -> values of shape (p_N,).
        terminal_jacobian: (x) -> Cx_N.
        is_equality: Boolean mask of shape (p,).
        is_equality_N: Boolean mask of shape (p_N,).
    """
    n: int
    m: int
    N: int
    dt: float
    x0: Array
    dynamics: Callable
    dynamics_jacobians: Callable
    stage_cost: Callable
    terminal_cost: Callable
    constraints: Callable
    constraint_jacobians: Callable
    terminal_constraints: Callable
    terminal_jacobian: Callable
    is_equality: np.ndarray
    is_equality_N: np.ndarray

    def __post_init__(self):
        if self.N < 1:
            raise DimensionError(f'N must be >= 1, got {self.N}')
        self.x0 = jnp.asarray(self.x0, dtype=float)
        self.is_equality = np.asarray(self.is_equality, dtype=bool)
        self.is_equality_N = np.asarray(self.is_equality_N, dtype=bool)
        self.rollout = jit(self._rollout)
        self.cost = jit(self._cost)
        self.evaluate_constraints = jit(self._evaluate_constraints)
        self.expand = jit(self._expand)
        self.linearize_constraints = jit(self._linearize_constraints)

    @classmethod
    def from_objective(
        cls, model: Model, objective: Objective, dt: float, N: int,
    ) -> StageProblem:
        """Discretize a model and objective with time step dt over N intervals."""
        n, m = model.n, model.m
        if (objective.n, objective.m) != (n, m):
            raise DimensionError(
                f'objective is for n={objective.n}, m={objective.m} '
                f'but the model has n={n}, m={m}'
            )
        cost = objective.cost

        if objective.is_constrained:
            cs = objective.constraints
            constraints = cs.stage
            constraint_jacobians = cs.stage_jacobians
            terminal_constraints = cs.terminal
            terminal_jacobian = cs.terminal_jacobian
            is_equality, is_equality_N = cs.is_equality, cs.is_equality_N
        else:
            constraints = lambda x, u: jnp.zeros(0)
            constraint_jacobians = lambda x, u: (jnp.zeros((0, n)), jnp.zeros((0, m)))
            terminal_constraints = lambda x: jnp.zeros(0)
            terminal_jacobian = lambda x: jnp.zeros((0, n))
            is_equality, is_equality_N = np.zeros(0, bool), np.zeros(0, bool)

        return cls(
            n=n,
            m=m,
            N=int(N),
            dt=float(dt),
            x0=cost.x0,
            dynamics=lambda x, u: model.step(x, u, dt),
            dynamics_jacobians=lambda x, u: model.jacobians(x, u, dt),
            stage_cost=lambda x, u: cost.stage(x, u, dt),
            terminal_cost=cost.terminal,
            constraints=constraints,
            constraint_jacobians=constraint_jacobians,
            terminal_constraints=terminal_constraints,
            terminal_jacobian=terminal_jacobian,
            is_equality=is_equality,
            is_equality_N=is_equality_N,
        )

    @property
    def p(self) -> int:
        """Return the number of stage constraints."""
        return self.is_equality.size

    @property
    def p_N(self) -> int:
        """Return the number of terminal constraints."""
        return self.is_equality_N.size

    def _rollout(self, U: Array) -> Array:
        return rollout(self.dynamics, U, self.x0)

    def _cost(self, X: Array, U: Array) -> Array:
        return jnp.sum(evaluate(self.stage_cost, X[:-1], U)) + self.terminal_cost(X[-1])

    def _evaluate_constraints(self, X: Array, U: Array) -> Tuple[Array, Array]:
        C = vmap(self.constraints)(X[:-1], U)
        C_N = self.terminal_constraints(X[-1])
        return C, C_N

    def _expand(self, X: Array, U: Array) -> Tuple[Expansion, ConstraintJacobians]:
        X_stage = X[:-1]
        A, B = vmap(self.dynamics_jacobians)(X_stage, U)
        lx, lu = linearize(self.stage_cost)(X_stage, U)
        lxx, luu, lxu = quadratize(self.stage_cost)(X_stage, U)
        Vx = jax.grad(self.terminal_cost)(X[-1])
        Vxx = jax.hessian(self.terminal_cost)(X[-1])
        expansion = Expansion(A, B, lx, lu, lxx, luu, jnp.swapaxes(lxu, 1, 2), Vx, Vxx)
        return expansion, self._linearize_constraints(X, U)

    def _linearize_constraints(self, X: Array, U: Array) -> ConstraintJacobians:
        Cx, Cu = vmap(self.constraint_jacobians)(X[:-1], U)
        return ConstraintJacobians(Cx, Cu, self.terminal_jacobian(X[-1]))
