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

"""Augmented Lagrangian outer loop.

Constraints c(x, u) are folded into the cost as

    L = J + sum_i lam_i c_i + 0.5 I_mu,i c_i^2

where I_mu,i = mu_i for active constraints and 0 otherwise. Equalities are
always active; an inequality (c <= 0) is active when violated or when its
multiplier is positive. Each outer iteration minimizes L with iLQR, then
updates

    lam <- lam + mu c          (clamped at 0 for inequalities)
    mu  <- min(mu * mu_al_update, penalty_max)

where the penalty grows only if the maximum violation did not drop below
`constraint_decrease_ratio` times its previous value.
"""

import logging
from functools import partial
from typing import NamedTuple, Optional

import jax.numpy as jnp
import numpy as np
from jax import Array, jit

from altrax.core.problem import Expansion, StageProblem
from altrax.core.results import ConstrainedResults, ResultsLog
from altrax.core.types import IterationType, SolverStatus
from altrax.solvers import ilqr
from altrax.solvers.options import SolverOptions

logger = logging.getLogger(__name__)


def active_set(c: Array, lam: Array, is_equality) -> Array:
    """Constraints that contribute to the penalty."""
    return jnp.logical_or(is_equality, jnp.logical_or(c > 0.0, lam > 0.0))


def violation(c: Array, is_equality) -> Array:
    """Elementwise violation: |c| for equalities, max(c, 0) for inequalities."""
    return jnp.where(is_equality, jnp.abs(c), jnp.maximum(c, 0.0))


def max_violation(C: Array, C_N: Array, is_equality, is_equality_N) -> Array:
    """Infinity norm of the violation over stage and terminal constraints."""
    stage = jnp.max(violation(C, is_equality), initial=0.0)
    terminal = jnp.max(violation(C_N, is_equality_N), initial=0.0)
    return jnp.maximum(stage, terminal)


def penalty(c: Array, lam: Array, mu: Array, is_equality) -> Array:
    """Multiplier and quadratic penalty terms summed over all entries."""
    I_mu = jnp.where(active_set(c, lam, is_equality), mu, 0.0)
    return jnp.sum(lam * c + 0.5 * I_mu * c * c)


def update_multipliers(c: Array, lam: Array, mu: Array, is_equality) -> Array:
    """First-order multiplier update, clamped at zero for inequalities."""
    lam = lam + mu * c
    return jnp.where(is_equality, lam, jnp.maximum(lam, 0.0))


def update_penalties(
    mu: Array, c_max: float, c_max_prev: float, options: SolverOptions,
) -> Array:
    """Scale penalties unless the violation decreased sufficiently."""
    if c_max > options.constraint_decrease_ratio * c_max_prev:
        return jnp.minimum(mu * options.mu_al_update, options.penalty_max)
    return mu


class Multipliers(NamedTuple):
    lam: Array
    mu: Array
    lam_N: Array
    mu_N: Array


@partial(jit, static_argnums=0)
def _al_cost(problem: StageProblem, X: Array, U: Array, mult: Multipliers) -> Array:
    C, C_N = problem.evaluate_constraints(X, U)
    return (
        problem.cost(X, U)
        + penalty(C, mult.lam, mult.mu, problem.is_equality)
        + penalty(C_N, mult.lam_N, mult.mu_N, problem.is_equality_N)
    )


@partial(jit, static_argnums=0)
def _al_expand(problem: StageProblem, X: Array, U: Array, mult: Multipliers) -> Expansion:
    """Gauss-Newton expansion of the augmented Lagrangian."""
    expansion, jac = problem.expand(X, U)
    C, C_N = problem.evaluate_constraints(X, U)
    Cx, Cu, Cx_N = jac

    I_mu = jnp.where(active_set(C, mult.lam, problem.is_equality), mult.mu, 0.0)
    g = mult.lam + I_mu * C
    I_mu_N = jnp.where(active_set(C_N, mult.lam_N, problem.is_equality_N), mult.mu_N, 0.0)
    g_N = mult.lam_N + I_mu_N * C_N

    return expansion._replace(
        lx=expansion.lx + jnp.einsum('kpi,kp->ki', Cx, g),
        lu=expansion.lu + jnp.einsum('kpi,kp->ki', Cu, g),
        lxx=expansion.lxx + jnp.einsum('kpi,kp,kpj->kij', Cx, I_mu, Cx),
        luu=expansion.luu + jnp.einsum('kpi,kp,kpj->kij', Cu, I_mu, Cu),
        lux=expansion.lux + jnp.einsum('kpi,kp,kpj->kij', Cu, I_mu, Cx),
        Vx=expansion.Vx + Cx_N.T @ g_N,
        Vxx=expansion.Vxx + Cx_N.T @ (I_mu_N[:, None] * Cx_N),
    )


@partial(jit, static_argnums=0)
def _max_violation(problem: StageProblem, X: Array, U: Array) -> Array:
    C, C_N = problem.evaluate_constraints(X, U)
    return max_violation(C, C_N, problem.is_equality, problem.is_equality_N)


class AugmentedLagrangian:
    """Penalized objective handed to iLQR for fixed multipliers and penalties."""

    def __init__(self, problem: StageProblem, multipliers: Multipliers):
        self.problem = problem
        self.multipliers = multipliers

    def cost(self, X: Array, U: Array) -> Array:
        return _al_cost(self.problem, X, U, self.multipliers)

    def expand(self, X: Array, U: Array) -> Expansion:
        return _al_expand(self.problem, X, U, self.multipliers)

    def max_violation(self, X: Array, U: Array) -> Array:
        return _max_violation(self.problem, X, U)


def initialize(
    problem: StageProblem,
    U: Array,
    options: SolverOptions,
    lam: Optional[Array] = None,
    lam_N: Optional[Array] = None,
) -> ConstrainedResults:
    """Build the workspace for a stage from initial controls.

    Args:
        problem: Stage problem.
        U: Initial controls of shape (N, m).
        options: Solver options; penalties start at `penalty_initial`.
        lam: Warm start stage multipliers of shape (N, p). Zero if None.
        lam_N: Warm start terminal multipliers of shape (p_N,). Zero if None.

    Returns:
        ConstrainedResults for the stage.
    """
    U = jnp.asarray(U, dtype=float)
    X = problem.rollout(U)
    C, C_N = problem.evaluate_constraints(X, U)
    lam = jnp.zeros_like(C) if lam is None else jnp.asarray(lam, dtype=float)
    lam_N = jnp.zeros_like(C_N) if lam_N is None else jnp.asarray(lam_N, dtype=float)
    return ConstrainedResults(
        X=X,
        U=U,
        C=C,
        C_N=C_N,
        lam=lam,
        lam_N=lam_N,
        mu=jnp.full(C.shape, options.penalty_initial),
        mu_N=jnp.full(C_N.shape, options.penalty_initial),
        active=active_set(C, lam, problem.is_equality),
        active_N=active_set(C_N, lam_N, problem.is_equality_N),
        jacobians=problem.linearize_constraints(X, U),
        K=jnp.zeros((problem.N, U.shape[1], problem.n)),
        d=jnp.zeros_like(U),
        cost=float(problem.cost(X, U)),
        max_violation=float(max_violation(C, C_N, problem.is_equality, problem.is_equality_N)),
    )


def _update_constraints(problem: StageProblem, results: ConstrainedResults):
    C, C_N = problem.evaluate_constraints(results.X, results.U)
    results.C = C
    results.C_N = C_N
    results.active = active_set(C, results.lam, problem.is_equality)
    results.active_N = active_set(C_N, results.lam_N, problem.is_equality_N)
    results.jacobians = problem.linearize_constraints(results.X, results.U)
    results.cost = float(problem.cost(results.X, results.U))
    results.max_violation = float(
        max_violation(C, C_N, problem.is_equality, problem.is_equality_N))


class OuterResult(NamedTuple):
    """Outcome of the outer loop of one stage."""
    results: ConstrainedResults
    status: SolverStatus
    iterations: int
    inner_iterations: int
    dJ: float


def solve(
    problem: StageProblem,
    results: ConstrainedResults,
    options: SolverOptions,
    history: ResultsLog,
    iter_type: IterationType = IterationType.FEASIBLE,
) -> OuterResult:
    """Run augmented Lagrangian iterations until the constraints are met.

    Success requires a maximum violation below `eps_constraint` and a last
    inner cost change below `eps`. Exhausting `iterations_outerloop` is
    reported as MAX_ITERATIONS.

    Args:
        problem: Stage problem.
        results: Workspace from `initialize`, updated in place.
        options: Solver options.
        history: Log receiving one snapshot per outer iteration.
        iter_type: Tag of the snapshots.

    Returns:
        OuterResult wrapping the final workspace.
    """
    c_max_prev = results.max_violation
    status = SolverStatus.MAX_ITERATIONS
    inner_total = 0
    dJ = np.inf

    iteration = 0
    for iteration in range(1, options.iterations_outerloop + 1):
        multipliers = Multipliers(results.lam, results.mu, results.lam_N, results.mu_N)
        inner = ilqr.solve(
            problem, AugmentedLagrangian(problem, multipliers),
            results.X, results.U, options)
        inner_total += inner.iterations
        dJ = inner.dJ

        results.X, results.U = inner.X, inner.U
        results.K, results.d = inner.K, inner.d
        _update_constraints(problem, results)
        history.append(results.snapshot(iter_type, inner.iterations, inner.status))

        c_max = results.max_violation
        if options.verbose:
            logger.info(
                '%s outer iter %d: cost %.6e  c_max %.3e  inner iters %d (%s)  mu max %.2e',
                iter_type.name.lower(), iteration, results.cost, c_max,
                inner.iterations, inner.status.name, largest_penalty(results.mu, results.mu_N),
            )

        if c_max < options.eps_constraint and dJ < options.eps:
            status = SolverStatus.SOLVED
            break

        results.lam = update_multipliers(
            results.C, results.lam, results.mu, problem.is_equality)
        results.lam_N = update_multipliers(
            results.C_N, results.lam_N, results.mu_N, problem.is_equality_N)
        results.mu = update_penalties(results.mu, c_max, c_max_prev, options)
        results.mu_N = update_penalties(results.mu_N, c_max, c_max_prev, options)
        results.active = active_set(results.C, results.lam, problem.is_equality)
        results.active_N = active_set(results.C_N, results.lam_N, problem.is_equality_N)
        c_max_prev = c_max

    return OuterResult(results, status, iteration, inner_total, dJ)


def solve_unconstrained(
    problem: StageProblem,
    results: ConstrainedResults,
    options: SolverOptions,
    history: ResultsLog,
) -> OuterResult:
    """Single iLQR solve for an objective without constraints."""
    multipliers = Multipliers(results.lam, results.mu, results.lam_N, results.mu_N)
    inner = ilqr.solve(
        problem, AugmentedLagrangian(problem, multipliers), results.X, results.U, options)
    results.X, results.U = inner.X, inner.U
    results.K, results.d = inner.K, inner.d
    _update_constraints(problem, results)
    history.append(results.snapshot(IterationType.UNCONSTRAINED, inner.iterations, inner.status))
    if options.verbose:
        logger.info('unconstrained solve: cost %.6e  iters %d (%s)',
                    results.cost, inner.iterations, inner.status.name)
    return OuterResult(results, inner.status, 1, inner.iterations, inner.dJ)


def largest_penalty(mu: Array, mu_N: Array) -> float:
    return float(max(jnp.max(mu, initial=0.0), jnp.max(mu_N, initial=0.0)))
