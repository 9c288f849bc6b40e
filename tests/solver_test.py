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

"""Tests for the Solver entry points."""

from absl.testing import absltest
from absl.testing import parameterized

import jax.numpy as jnp
from jax import config
import numpy as np

import altrax
from altrax.core import (
    MINIMUM_TIME,
    ConstrainedObjective,
    DimensionError,
    Model,
    ObjectiveError,
    SolverStatus,
    UnconstrainedObjective,
)
from altrax.solvers import Solver, SolverOptions, solve
from altrax.systems import double_integrator_model, pendulum_model, pendulum_objective

config.update('jax_enable_x64', True)


def double_integrator_objective(tf=2.0, **constraint_options):
    return ConstrainedObjective.create(
        Q=np.eye(2), R=0.1 * np.eye(1), Qf=10.0 * np.eye(2), tf=tf,
        x0=np.array([1.0, 0.0]), xf=np.zeros(2), **constraint_options)


class SolverConstructionTest(parameterized.TestCase):

    def test_horizon_from_final_time(self):
        solver = Solver(pendulum_model(), pendulum_objective(), dt=0.1)
        self.assertEqual(solver.N, 50)
        self.assertEqual(solver.options, SolverOptions())

    def test_overrides(self):
        solver = Solver(pendulum_model(), pendulum_objective(), dt=0.1,
                        options=SolverOptions(iterations=7), eps=1e-6)
        self.assertEqual(solver.options.iterations, 7)
        self.assertEqual(solver.options.eps, 1e-6)
        with self.assertRaises(TypeError):
            Solver(pendulum_model(), pendulum_objective(), dt=0.1, tolerance=1.0)

    def test_minimum_time_requires_horizon(self):
        objective = double_integrator_objective(tf=MINIMUM_TIME)
        with self.assertRaises(ObjectiveError):
            Solver(double_integrator_model(), objective, dt=0.1)
        solver = Solver(double_integrator_model(), objective, dt=0.1, N=30)
        _, cost, _ = solver.rollout(jnp.zeros((30, 1)))
        # Constant time cost c = 1 integrated over N dt plus the state cost.
        expected = 30 * 0.1 * (1.0 + 0.5) + 0.5 * 10.0
        self.assertAlmostEqual(cost, expected)

    @parameterized.parameters(0.0, -0.1)
    def test_invalid_time_step(self, dt):
        with self.assertRaises(ValueError):
            Solver(pendulum_model(), pendulum_objective(), dt=dt)

    def test_empty_horizon(self):
        with self.assertRaises(ObjectiveError):
            Solver(pendulum_model(), pendulum_objective(tf=0.04), dt=0.1)
        with self.assertRaises(ObjectiveError):
            Solver(pendulum_model(), pendulum_objective(), dt=0.1, N=0)

    def test_dimension_mismatch(self):
        model = Model(lambda x, u: jnp.concatenate([x[1:], u]), n=3, m=1)
        with self.assertRaises(DimensionError):
            Solver(model, pendulum_objective(), dt=0.1)

    def test_initial_guess_shapes(self):
        solver = Solver(pendulum_model(), pendulum_objective(), dt=0.1)
        with self.assertRaises(DimensionError):
            solver.solve(jnp.zeros((49, 1)))
        with self.assertRaises(DimensionError):
            solver.solve(jnp.zeros((50, 2)), jnp.zeros((50, 1)))
        with self.assertRaises(TypeError):
            solver.solve()
        with self.assertRaises(TypeError):
            solver.solve(jnp.zeros((51, 2)), jnp.zeros((50, 1)), jnp.zeros(1))


class SolveTest(absltest.TestCase):

    def test_unconstrained_pendulum(self):
        solver = Solver(pendulum_model(), pendulum_objective(), dt=0.1)
        result = solver.solve(jnp.zeros((50, 1)))
        self.assertTrue(result.converged)
        self.assertEqual(result.iter_type, [0])
        self.assertEqual(result.max_violation, 0.0)
        self.assertEqual((result.horizon, result.state_dim, result.control_dim), (50, 2, 1))
        self.assertEqual(result.info['outer_iterations'], [1])
        self.assertEqual(result.info['stages'], ['unconstrained'])
        np.testing.assert_allclose(result.X[-1], [np.pi, 0.0], atol=0.1)

        # Solving again from the solution does not move it.
        again = solver.solve(result.U)
        tolerance = solver.options.cost_tolerance * max(1.0, abs(result.obj))
        self.assertAlmostEqual(again.obj, result.obj, delta=tolerance)

    def test_constrained_double_integrator(self):
        objective = double_integrator_objective(tf=4.0, u_min=-1.0, u_max=1.0)
        result = solve(double_integrator_model(), objective, jnp.zeros((40, 1)), dt=0.1)
        self.assertEqual(result.status, SolverStatus.SOLVED)
        self.assertLess(result.max_violation, 1e-3)
        self.assertTrue(all(t == 2 for t in result.iter_type))
        self.assertEqual(result.info['outer_iterations'], [len(result.history)])
        self.assertGreaterEqual(result.info['penalty_max'], 1.0)

    def test_host_dynamics_match_traced_dynamics(self):
        def step(x_next, x, u, dt):
            x_next[0] = x[0] + dt * x[1] + 0.5 * dt ** 2 * u[0]
            x_next[1] = x[1] + dt * u[0]

        objective = double_integrator_objective(tf=2.0, u_min=-2.0, u_max=2.0)
        U0 = jnp.zeros((20, 1))
        host = solve(Model(step, n=2, m=1, discrete=True), objective, U0, dt=0.1)
        traced = solve(double_integrator_model(), objective, U0, dt=0.1)
        self.assertTrue(host.converged)
        np.testing.assert_allclose(host.U, traced.U, atol=1e-3)

    def test_state_bound_and_general_inequality(self):
        # The velocity bound is active on the way to the origin and the
        # position limit sits just above the initial position.
        def pure(x, u):
            return jnp.array([x[0] - 1.05])

        def inplace(c, x, u):
            c[0] = x[0] - 1.05

        U0 = jnp.zeros((40, 1))
        eps_constraint = SolverOptions().eps_constraint
        results = []
        for cI in (pure, inplace):
            objective = double_integrator_objective(
                tf=4.0, x_min=[-np.inf, -0.3], cI=cI)
            result = solve(double_integrator_model(), objective, U0, dt=0.1)
            self.assertEqual(result.status, SolverStatus.SOLVED)
            self.assertLess(result.max_violation, eps_constraint)
            self.assertGreaterEqual(float(jnp.min(result.X[:, 1])), -0.3 - eps_constraint)
            self.assertLessEqual(float(jnp.max(result.X[:, 0])), 1.05 + eps_constraint)
            results.append(result)
        self.assertLess(float(jnp.min(results[0].X[:, 1])), -0.29)
        np.testing.assert_allclose(results[0].U, results[1].U, atol=1e-6)

    def test_results_cache(self):
        objective = double_integrator_objective(tf=4.0, u_min=-1.0, u_max=1.0)
        X0 = altrax.line_trajectory(objective.x0, objective.xf, 40)
        result = solve(double_integrator_model(), objective, X0, jnp.zeros((40, 1)),
                       dt=0.1, cache=False)
        self.assertEqual(result.iter_type, [1, 2])
        self.assertEqual(len(result.info['outer_iterations']), 2)

    def test_unconstrained_objective_type(self):
        objective = UnconstrainedObjective(double_integrator_objective().cost)
        result = solve(double_integrator_model(), objective, jnp.zeros((20, 1)), dt=0.1)
        self.assertTrue(result.converged)
        self.assertEqual(result.iter_type, [0])


if __name__ == '__main__':
    absltest.main()
