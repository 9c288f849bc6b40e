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

"""Infeasible start.

A state trajectory guess X0 is usually not reachable with any controls. The
controls are augmented with n slack inputs w so that

    x[k+1] = step(x[k], u[k]) + w[k]

and the slacks w[k] = X0[k+1] - step(X0[k], U0[k]) make the guess an exact
rollout. The slacks carry a quadratic cost and are constrained to zero, so
the augmented Lagrangian loop drives them out. Afterwards the slacks are
dropped and the original problem is solved from the resulting controls.
"""

import dataclasses
import logging
from typing import Tuple

import jax.numpy as jnp
import numpy as np
from jax import Array, vmap

from altrax.core.problem import StageProblem
from altrax.core.results import ResultsLog
from altrax.core.types import IterationType
from altrax.solvers import augmented_lagrangian as al
from altrax.solvers.options import SolverOptions

logger = logging.getLogger(__name__)


def augment(problem: StageProblem, regularization: float) -> StageProblem:
    """Add n slack controls, their cost and the constraints w = 0.

    Args:
        problem: Original stage problem.
        regularization: Weight of the slack cost 0.5 * regularization * w'w.

    Returns:
        StageProblem with controls [u; w] of dimension m + n. The slack
        equalities follow the original stage constraints.
    """
    n, m, p = problem.n, problem.m, problem.p

    def dynamics(x, v):
        return problem.dynamics(x, v[:m]) + v[m:]

    def dynamics_jacobians(x, v):
        A, B = problem.dynamics_jacobians(x, v[:m])
        return A, jnp.hstack([B, jnp.eye(n)])

    def stage_cost(x, v):
        w = v[m:]
        return problem.stage_cost(x, v[:m]) + 0.5 * regularization * w @ w

    def constraints(x, v):
        return jnp.concatenate([problem.constraints(x, v[:m]), v[m:]])

    def constraint_jacobians(x, v):
        Cx, Cu = problem.constraint_jacobians(x, v[:m])
        Cx = jnp.vstack([Cx, jnp.zeros((n, n))])
        Cu = jnp.block([
            [Cu, jnp.zeros((p, n))],
            [jnp.zeros((n, m)), jnp.eye(n)],
        ])
        return Cx, Cu

    return dataclasses.replace(
        problem,
        m=m + n,
        dynamics=dynamics,
        dynamics_jacobians=dynamics_jacobians,
        stage_cost=stage_cost,
        constraints=constraints,
        constraint_jacobians=constraint_jacobians,
        is_equality=np.concatenate([problem.is_equality, np.ones(n, bool)]),
    )


def initial_slack(problem: StageProblem, X0: Array, U0: Array) -> Array:
    """Slacks that make the rollout of [U0; w] reproduce X0.

    X0[0] is replaced by the initial state of the problem.
    """
    X0 = jnp.asarray(X0, dtype=float).at[0].set(problem.x0)
    return X0[1:] - vmap(problem.dynamics)(X0[:-1], U0)


def solve(
    problem: StageProblem,
    X0: Array,
    U0: Array,
    options: SolverOptions,
    history: ResultsLog,
) -> Tuple[al.OuterResult, al.OuterResult]:
    """Two-stage solve from a state and control guess.

    The first stage solves the slack augmented problem (iteration type 1),
    the second re-solves the original problem from its controls (iteration
    type 2). Multipliers of the original constraints are carried over and
    penalties start again from `penalty_initial`.

    Args:
        problem: Original stage problem.
        X0: State guess of shape (N+1, n).
        U0: Control guess of shape (N, m).
        options: Solver options.
        history: Log receiving the snapshots of both stages.

    Returns:
        The outer results of the infeasible and of the feasible stage.
    """
    U0 = jnp.asarray(U0, dtype=float)
    m, p = problem.m, problem.p
    augmented = augment(problem, options.infeasible_regularization)
    W = initial_slack(problem, X0, U0)

    results = al.initialize(augmented, jnp.hstack([U0, W]), options)
    infeasible = al.solve(augmented, results, options, history, IterationType.INFEASIBLE)

    slack = float(jnp.max(jnp.abs(infeasible.results.U[:, m:])))
    if slack > options.eps_constraint:
        logger.warning(
            'infeasible start did not remove the slack controls (max |w| = %.3e > %.1e); '
            'solving the original problem from this warm start anyway',
            slack, options.eps_constraint,
        )

    results = al.initialize(
        problem,
        infeasible.results.U[:, :m],
        options,
        lam=infeasible.results.lam[:, :p],
        lam_N=infeasible.results.lam_N,
    )
    feasible = al.solve(problem, results, options, history, IterationType.FEASIBLE)
    return infeasible, feasible
