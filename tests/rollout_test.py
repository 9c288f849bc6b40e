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

"""Tests for rollouts, derivative operators and PD utilities."""

from absl.testing import absltest
from absl.testing import parameterized

import jax
import jax.numpy as jnp
from jax import config
import numpy as np

from altrax.systems import double_integrator_matrices, double_integrator_step
from altrax.utils import (
    ddp_rollout,
    diverged,
    evaluate,
    finite_difference_jacobian,
    is_positive_definite,
    linearize,
    pd_solve,
    quadratize,
    regularize_hessian,
    rollout,
)

config.update('jax_enable_x64', True)


def step(x, u):
    return double_integrator_step(x, u, 0.1)


class RolloutTest(absltest.TestCase):

    def test_rollout_linear_system(self):
        A, B = double_integrator_matrices(0.1)
        U = jnp.sin(jnp.arange(10.0)).reshape(10, 1)
        x0 = jnp.array([1.0, -0.5])
        X = rollout(step, U, x0)
        self.assertEqual(X.shape, (11, 2))
        x = np.asarray(x0)
        for k in range(10):
            np.testing.assert_allclose(X[k], x, atol=1e-12)
            x = A @ x + B @ np.asarray(U[k])
        np.testing.assert_allclose(X[-1], x, atol=1e-12)

    def test_rollout_is_deterministic(self):
        U = jnp.cos(jnp.arange(30.0)).reshape(30, 1)
        first = rollout(step, U, jnp.array([0.2, 0.1]))
        second = rollout(step, U, jnp.array([0.2, 0.1]))
        np.testing.assert_array_equal(first, second)

    def test_ddp_rollout_without_update_reproduces_nominal(self):
        U = jnp.ones((8, 1))
        X = rollout(step, U, jnp.zeros(2))
        K = jnp.zeros((8, 1, 2))
        d = jnp.zeros((8, 1))
        X_new, U_new = ddp_rollout(step, X, U, K, d, 1.0)
        np.testing.assert_allclose(X_new, X)
        np.testing.assert_allclose(U_new, U)

    def test_ddp_rollout_feedforward_and_feedback(self):
        U = jnp.zeros((5, 1))
        X = rollout(step, U, jnp.zeros(2))
        K = jnp.tile(jnp.array([[[-1.0, -2.0]]]), (5, 1, 1))
        d = jnp.ones((5, 1))
        X_new, U_new = ddp_rollout(step, X, U, K, d, 0.5)
        # Feedback acts on the deviation from the nominal, which is zero at k = 0.
        self.assertAlmostEqual(float(U_new[0, 0]), 0.5)
        expected = 0.5 + K[1] @ (X_new[1] - X[1])
        np.testing.assert_allclose(U_new[1], expected)
        np.testing.assert_allclose(X_new, rollout(step, U_new, jnp.zeros(2)))

    def test_evaluate(self):
        cost = lambda x, u: x @ x + u @ u
        X = jnp.ones((4, 2))
        U = 2.0 * jnp.ones((4, 1))
        np.testing.assert_allclose(evaluate(cost, X, U), 6.0 * np.ones(4))

    def test_diverged(self):
        self.assertFalse(bool(diverged(jnp.zeros((3, 2)))))
        self.assertTrue(bool(diverged(jnp.array([[0.0, jnp.nan]]))))
        self.assertTrue(bool(diverged(jnp.array([[jnp.inf, 0.0]]))))


class DerivativesTest(parameterized.TestCase):

    def test_linearize_dynamics(self):
        A, B = double_integrator_matrices(0.1)
        X = jnp.zeros((6, 2))
        U = jnp.zeros((6, 1))
        As, Bs = linearize(step)(X, U)
        self.assertEqual(As.shape, (6, 2, 2))
        self.assertEqual(Bs.shape, (6, 2, 1))
        np.testing.assert_allclose(As, np.broadcast_to(A, (6, 2, 2)))
        np.testing.assert_allclose(Bs, np.broadcast_to(B, (6, 2, 1)))

    def test_quadratize_cost(self):
        Q = jnp.array([[2.0, 0.5], [0.5, 1.0]])
        R = jnp.array([[3.0]])
        M = jnp.array([[0.25], [-1.0]])
        cost = lambda x, u: 0.5 * x @ Q @ x + 0.5 * u @ R @ u + x @ M @ u
        X = jnp.ones((3, 2))
        U = jnp.ones((3, 1))
        lxx, luu, lxu = quadratize(cost)(X, U)
        np.testing.assert_allclose(lxx[0], Q)
        np.testing.assert_allclose(luu[0], R)
        np.testing.assert_allclose(lxu[0], M)

    @parameterized.parameters(1e-4, 1e-6)
    def test_finite_difference_matches_autodiff(self, eps):
        def f(x, u):
            return jnp.array([jnp.sin(x[0]) * u[0], x[1] ** 3, jnp.exp(u[0] - x[0])])

        x = jnp.array([0.3, -0.7])
        u = jnp.array([1.1])
        Jx, Ju = finite_difference_jacobian(f, (0, 1), eps=eps)(x, u)
        self.assertEqual(Jx.shape, (3, 2))
        self.assertEqual(Ju.shape, (3, 1))
        np.testing.assert_allclose(Jx, jax.jacfwd(f, 0)(x, u), atol=1e-6)
        np.testing.assert_allclose(Ju, jax.jacfwd(f, 1)(x, u), atol=1e-6)

    def test_finite_difference_single_argument(self):
        f = lambda x: jnp.array([x[0] * x[1]])
        J = finite_difference_jacobian(f)(jnp.array([2.0, 3.0]))
        np.testing.assert_allclose(J, [[3.0, 2.0]], atol=1e-8)


class PDTest(absltest.TestCase):

    def test_pd_solve(self):
        H = jnp.array([[4.0, 1.0], [1.0, 3.0]])
        b = jnp.array([[1.0, 0.0], [2.0, 1.0]])
        x, ok = pd_solve(H, b)
        self.assertTrue(bool(ok))
        np.testing.assert_allclose(H @ x, b, atol=1e-12)

    def test_pd_solve_reports_indefinite(self):
        _, ok = pd_solve(jnp.array([[1.0, 0.0], [0.0, -1.0]]), jnp.ones(2))
        self.assertFalse(bool(ok))

    def test_regularization_restores_definiteness(self):
        H = jnp.array([[1.0, 0.0], [0.0, -1.0]])
        self.assertFalse(bool(is_positive_definite(H)))
        self.assertTrue(bool(is_positive_definite(regularize_hessian(H, 2.0))))


if __name__ == '__main__':
    absltest.main()
