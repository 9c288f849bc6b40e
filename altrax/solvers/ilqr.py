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

"""Iterative Linear Quadratic Regulator (iLQR).

iLQR is the inner solver of the augmented Lagrangian method. Each iteration:
1. Expands the dynamics to first order and the (penalized) cost to second
   order around the current trajectory
2. Runs a regularized Riccati backward pass for feedback gains K and
   feedforward terms d
3. Line searches over step sizes 1, 1/2, 1/4, ... with closed-loop rollouts

The objective is any object with `cost(X, U)`, `expand(X, U)` and
`max_violation(X, U)` methods. The regularization state lives only for the
duration of one call to `solve`.
"""

import logging
from typing import NamedTuple, Protocol, Tuple

import jax.numpy as jnp
import numpy as np
from jax import Array, jit, lax

from altrax.core.problem import Expansion, StageProblem
from altrax.core.types import SolverStatus
from altrax.solvers.options import SolverOptions
from altrax.utils.psd import pd_solve, regularize_hessian, symmetrize
from altrax.utils.rollout import ddp_rollout, diverged

logger = logging.getLogger(__name__)


class Objective(Protocol):
    """Cost seen by iLQR: stage costs plus any penalty terms."""

    def cost(self, X: Array, U: Array) -> Array:
        ...

    def expand(self, X: Array, U: Array) -> Expansion:
        ...

    def max_violation(self, X: Array, U: Array) -> Array:
        ...


class InnerResult(NamedTuple):
    """Outcome of one iLQR solve.

    Attributes:
        X: Final states of shape (N+1, n).
        U: Final controls of shape (N, m).
        K: Gains of the last backward pass, shape (N, m, n).
        d: Feedforward terms of the last backward pass, shape (N, m).
        cost: Objective value of (X, U).
        dJ: Cost decrease of the last iteration. Zero if the last iteration
            stopped on the gradient test, inf if no step was accepted.
        iterations: Number of iterations performed.
        status: SOLVED, MAX_ITERATIONS, LINE_SEARCH_FAILED or
            BACKWARD_PASS_FAILED.
        regularization: Regularization at exit.
    """
    X: Array
    U: Array
    K: Array
    d: Array
    cost: float
    dJ: float
    iterations: int
    status: SolverStatus
    regularization: float


@jit
def backward_pass(expansion: Expansion, rho: float) -> Tuple[Array, Array, Array, Array]:
    """Regularized Riccati recursion from the terminal stage backward.

        Qx  = lx  + A' Vx           Qu  = lu  + B' Vx
        Qxx = lxx + A' Vxx A        Quu = luu + B' Vxx B
        Qux = lux + B' Vxx A
        K = -(Quu + rho I)^-1 Qux,  d = -(Quu + rho I)^-1 Qu

    Args:
        expansion: Local expansion of dynamics and cost.
        rho: Control regularization added to Quu.

    Returns:
        K: Feedback gains of shape (N, m, n).
        d: Feedforward terms of shape (N, m).
        dV: Expected change terms [sum d'Qu, sum 0.5 d'Quu d]. For a step
            size alpha the expected cost change is alpha dV[0] + alpha^2 dV[1].
        ok: False if Quu + rho I was not positive definite at some stage, in
            which case K, d and dV are not usable.
    """
    def body(carry, stage):
        Vx, Vxx, dV, ok = carry
        A, B, lx, lu, lxx, luu, lux = stage

        Qx = lx + A.T @ Vx
        Qu = lu + B.T @ Vx
        Qxx = lxx + A.T @ Vxx @ A
        Quu = luu + B.T @ Vxx @ B
        Qux = lux + B.T @ Vxx @ A

        gains, pd = pd_solve(regularize_hessian(Quu, rho), jnp.column_stack((Qu, Qux)))
        d = -gains[:, 0]
        K = -gains[:, 1:]

        Vx = Qx + K.T @ Quu @ d + K.T @ Qu + Qux.T @ d
        Vxx = symmetrize(Qxx + K.T @ Quu @ K + K.T @ Qux + Qux.T @ K)
        dV = dV + jnp.array([d @ Qu, 0.5 * d @ Quu @ d])
        return (Vx, Vxx, dV, jnp.logical_and(ok, pd)), (K, d)

    stages = (expansion.A, expansion.B, expansion.lx, expansion.lu,
              expansion.lxx, expansion.luu, expansion.lux)
    init = (expansion.Vx, expansion.Vxx, jnp.zeros(2), jnp.array(True))
    (_, _, dV, ok), (K, d) = lax.scan(body, init, stages, reverse=True)
    return K, d, dV, ok


class _Regularization:
    """Backward pass regularization with a geometric schedule."""

    def __init__(self, options: SolverOptions):
        self.rho = options.bp_reg_initial
        self.drho = 0.0
        self._factor = options.bp_reg_increase_factor
        self._min = options.bp_reg_min
        self._max = options.bp_reg_max

    def increase(self):
        self.drho = max(self.drho * self._factor, self._factor)
        self.rho = max(self.rho * self.drho, self._min)
        logger.debug('regularization increased to %.3e', self.rho)

    def decrease(self):
        self.drho = min(self.drho / self._factor, 1.0 / self._factor)
        self.rho = self.rho * self.drho
        if self.rho < self._min:
            self.rho = 0.0

    @property
    def exhausted(self) -> bool:
        return self.rho > self._max


def _regularized_backward_pass(expansion: Expansion, reg: _Regularization):
    """Run the backward pass, raising the regularization until it succeeds."""
    while True:
        K, d, dV, ok = backward_pass(expansion, reg.rho)
        if bool(ok):
            return K, d, np.asarray(dV), True
        reg.increase()
        if reg.exhausted:
            return K, d, np.asarray(dV), False


def forward_pass(
    problem: StageProblem,
    objective: Objective,
    X: Array,
    U: Array,
    K: Array,
    d: Array,
    dV: np.ndarray,
    J: float,
    options: SolverOptions,
):
    """Line search along the closed-loop update.

    A step size alpha is accepted when the rollout stays finite and the ratio
    z of actual to expected decrease satisfies c1 < z < c2.

    Returns:
        (accepted, X_new, U_new, J_new, alpha). On failure the nominal
        trajectory is returned with alpha = 0.
    """
    for i in range(options.iterations_linesearch):
        alpha = 0.5 ** i
        X_new, U_new = ddp_rollout(problem.dynamics, X, U, K, d, alpha)
        if bool(diverged(X_new)):
            continue
        J_new = float(objective.cost(X_new, U_new))
        if not np.isfinite(J_new):
            continue
        expected = -(alpha * dV[0] + alpha ** 2 * dV[1])
        if expected <= 0.0:
            continue
        z = (J - J_new) / expected
        if options.c1 < z < options.c2:
            return True, X_new, U_new, J_new, alpha
    return False, X, U, J, 0.0


def _gradient(d: Array, U: Array) -> float:
    return float(jnp.max(jnp.abs(d) / (jnp.abs(U) + 1.0)))


def solve(
    problem: StageProblem,
    objective: Objective,
    X: Array,
    U: Array,
    options: SolverOptions,
) -> InnerResult:
    """Run iLQR from a dynamically feasible trajectory.

    Args:
        problem: Stage problem providing the dynamics.
        objective: Cost to minimize, usually an augmented Lagrangian.
        X: Initial states of shape (N+1, n), the rollout of U.
        U: Initial controls of shape (N, m).
        options: Solver options.

    Returns:
        InnerResult with the best trajectory found. Running out of
        iterations is reported in `status`, never raised.
    """
    reg = _Regularization(options)
    J = float(objective.cost(X, U))
    K = jnp.zeros((problem.N, U.shape[1], problem.n))
    d = jnp.zeros_like(U)
    dJ = np.inf
    status = SolverStatus.MAX_ITERATIONS

    iteration = 0
    while iteration < options.iterations:
        iteration += 1
        expansion = objective.expand(X, U)
        K, d, dV, ok = _regularized_backward_pass(expansion, reg)
        if not ok:
            status = SolverStatus.BACKWARD_PASS_FAILED
            break

        gradient = _gradient(d, U)
        if gradient < options.gradient_tolerance:
            dJ = 0.0
            status = SolverStatus.SOLVED
            break

        accepted, X_new, U_new, J_new, alpha = forward_pass(
            problem, objective, X, U, K, d, dV, J, options)
        if not accepted:
            reg.increase()
            if reg.exhausted:
                status = SolverStatus.LINE_SEARCH_FAILED
                break
            continue

        reg.decrease()
        dJ = J - J_new
        X, U, J = X_new, U_new, J_new

        c_max = float(objective.max_violation(X, U))
        if c_max < options.eps_constraint:
            tolerance = options.cost_tolerance
        else:
            tolerance = options.cost_tolerance_intermediate
        if options.verbose:
            logger.info(
                'iter %3d: cost %.6e  dJ %.3e  grad %.3e  alpha %.4f  rho %.2e  c_max %.3e',
                iteration, J, dJ, gradient, alpha, reg.rho, c_max,
            )
        if dJ < tolerance or dJ < tolerance * abs(J):
            status = SolverStatus.SOLVED
            break

    return InnerResult(
        X=X,
        U=U,
        K=K,
        d=d,
        cost=J,
        dJ=dJ,
        iterations=iteration,
        status=status,
        regularization=reg.rho,
    )
