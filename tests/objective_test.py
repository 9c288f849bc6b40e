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

"""Tests for objectives and constraint sets."""

from absl.testing import absltest
from absl.testing import parameterized

import jax
import jax.numpy as jnp
from jax import config
import numpy as np

from altrax.core import (
    MINIMUM_TIME,
    ConstrainedObjective,
    ConstraintSet,
    DimensionError,
    ObjectiveError,
    QuadraticCost,
    UnconstrainedObjective,
    update_objective,
)
from altrax.systems import pendulum_objective

config.update('jax_enable_x64', True)


def cost_args(**changes):
    args = dict(
        Q=np.eye(2), R=0.1 * np.eye(1), Qf=10.0 * np.eye(2),
        tf=5.0, x0=np.zeros(2), xf=np.array([np.pi, 0.0]),
    )
    args.update(changes)
    return args


class QuadraticCostTest(parameterized.TestCase):

    def test_stage_and_terminal(self):
        cost = QuadraticCost(**cost_args())
        x = jnp.array([1.0, 2.0])
        u = jnp.array([3.0])
        dx = np.array([1.0 - np.pi, 2.0])
        expected_stage = (0.5 * dx @ dx + 0.5 * 0.1 * 9.0) * 0.1
        self.assertAlmostEqual(float(cost.stage(x, u, 0.1)), expected_stage)
        self.assertAlmostEqual(float(cost.terminal(x)), 5.0 * dx @ dx)
        self.assertEqual((cost.n, cost.m), (2, 1))
        self.assertFalse(cost.minimum_time)
        self.assertEqual(cost.c, 0.0)

    def test_total_matches_stage_sum(self):
        cost = QuadraticCost(**cost_args())
        X = jnp.linspace(0.0, 1.0, 12).reshape(6, 2)
        U = jnp.arange(5.0).reshape(5, 1)
        expected = sum(cost.stage(X[k], U[k], 0.2) for k in range(5)) + cost.terminal(X[-1])
        self.assertAlmostEqual(float(cost.total(X, U, 0.2)), float(expected))

    def test_minimum_time(self):
        cost = QuadraticCost(**cost_args(tf=MINIMUM_TIME))
        self.assertEqual(cost.tf, 0.0)
        self.assertTrue(cost.minimum_time)
        self.assertEqual(cost.c, 1.0)
        self.assertEqual(QuadraticCost(**cost_args(tf=MINIMUM_TIME, c=2.0)).c, 2.0)

    @parameterized.named_parameters(
        ('negative_tf', dict(tf=-1.0)),
        ('unknown_tf_string', dict(tf='max')),
        ('negative_c', dict(c=-1.0)),
        ('indefinite_R', dict(R=-np.eye(1))),
        ('singular_R', dict(R=np.zeros((1, 1)))),
        ('indefinite_Q', dict(Q=-np.eye(2))),
        ('asymmetric_Q', dict(Q=np.array([[1.0, 1.0], [0.0, 1.0]]))),
        ('indefinite_Qf', dict(Qf=np.diag([1.0, -1.0]))),
    )
    def test_invalid_values(self, changes):
        with self.assertRaises(ObjectiveError):
            QuadraticCost(**cost_args(**changes))

    @parameterized.named_parameters(
        ('Q', dict(Q=np.eye(3))),
        ('Qf', dict(Qf=np.eye(1))),
        ('xf', dict(xf=np.zeros(3))),
        ('R', dict(R=np.ones(2))),
        ('x0', dict(x0=np.zeros((2, 1)))),
    )
    def test_invalid_shapes(self, changes):
        with self.assertRaises(DimensionError):
            QuadraticCost(**cost_args(**changes))


class ConstraintSetTest(absltest.TestCase):

    def test_box_layout(self):
        cs = ConstraintSet(2, 1, xf=[np.pi, 0.0], u_min=-3.0, u_max=3.0,
                           x_min=-10.0, x_max=10.0)
        self.assertEqual((cs.pI, cs.pE, cs.p), (6, 0, 6))
        self.assertEqual((cs.pI_N, cs.pE_N, cs.p_N), (4, 2, 6))
        x = jnp.array([1.0, -2.0])
        u = jnp.array([4.0])
        np.testing.assert_allclose(
            cs.stage(x, u), [1.0, -7.0, -9.0, -12.0, -11.0, -8.0])
        np.testing.assert_allclose(
            cs.terminal(x), [-9.0, -12.0, -11.0, -8.0, 1.0 - np.pi, -2.0])
        np.testing.assert_array_equal(cs.is_equality, np.zeros(6, bool))
        np.testing.assert_array_equal(cs.is_equality_N, [0, 0, 0, 0, 1, 1])

    def test_infinite_bounds_are_dropped(self):
        cs = ConstraintSet(2, 1, xf=np.zeros(2), u_max=1.0,
                           x_min=np.array([-np.inf, -5.0]))
        self.assertEqual(cs.p, 2)
        np.testing.assert_allclose(cs.stage(jnp.array([0.0, 1.0]), jnp.array([2.0])),
                                   [1.0, -6.0])

    def test_general_constraints_and_jacobians(self):
        def cI(x, u):
            return jnp.array([x[0] ** 2 + u[0] - 1.0])

        def cE(out, x, u):
            out[0] = x[1] - 2.0 * u[0]

        cs = ConstraintSet(2, 1, xf=np.zeros(2), u_max=2.0, cI=cI, cE=cE,
                           use_terminal_constraint=False)
        self.assertEqual((cs.pI, cs.pE, cs.p_N), (2, 1, 0))
        np.testing.assert_array_equal(cs.is_equality, [False, False, True])

        x = jnp.array([3.0, 1.0])
        u = jnp.array([0.5])
        np.testing.assert_allclose(cs.stage(x, u), [-1.5, 8.5, 0.0])
        Cx, Cu = cs.stage_jacobians(x, u)
        np.testing.assert_allclose(Cx, [[0.0, 0.0], [6.0, 0.0], [0.0, 1.0]], atol=1e-6)
        np.testing.assert_allclose(Cu, [[1.0], [1.0], [-2.0]], atol=1e-6)
        self.assertEqual(cs.terminal(x).shape, (0,))
        self.assertEqual(cs.terminal_jacobian(x).shape, (0, 2))

    def test_terminal_jacobian_matches_autodiff(self):
        cs = ConstraintSet(2, 1, xf=np.ones(2), x_max=5.0,
                           cI_N=lambda x: jnp.array([x[0] * x[1]]))
        x = jnp.array([2.0, 3.0])
        np.testing.assert_allclose(cs.terminal_jacobian(x), jax.jacfwd(cs.terminal)(x))

    def test_empty_box(self):
        with self.assertRaises(ObjectiveError):
            ConstraintSet(2, 1, xf=np.zeros(2), u_min=1.0, u_max=1.0)
        with self.assertRaises(ObjectiveError):
            ConstraintSet(2, 1, xf=np.zeros(2), x_min=[0.0, 0.0], x_max=[1.0, -1.0])
        with self.assertRaises(ObjectiveError):
            ConstraintSet(2, 1, xf=np.zeros(2), u_min=np.nan, u_max=3.0)
        with self.assertRaises(ObjectiveError):
            ConstraintSet(2, 1, xf=np.zeros(2), x_min=[0.0, np.nan], x_max=np.inf)

    def test_bound_length(self):
        with self.assertRaises(DimensionError):
            ConstraintSet(2, 1, xf=np.zeros(2), u_max=[1.0, 2.0])


class ObjectiveTest(absltest.TestCase):

    def test_variants(self):
        unconstrained = pendulum_objective()
        self.assertFalse(unconstrained.is_constrained)
        constrained = ConstrainedObjective.from_unconstrained(
            unconstrained, u_min=-3.0, u_max=3.0)
        self.assertTrue(constrained.is_constrained)
        self.assertIs(constrained.cost, unconstrained.cost)
        self.assertEqual((constrained.n, constrained.m, constrained.tf), (2, 1, 5.0))
        np.testing.assert_allclose(constrained.xf, [np.pi, 0.0])

    def test_create_counts(self):
        obj = ConstrainedObjective.create(
            **cost_args(), u_min=-3.0, u_max=3.0, x_min=-10.0, x_max=10.0)
        self.assertEqual((obj.constraints.p, obj.constraints.p_N), (6, 6))

    def test_constraint_dimensions_must_match_cost(self):
        cost = QuadraticCost(**cost_args())
        with self.assertRaises(DimensionError):
            ConstrainedObjective(cost, ConstraintSet(3, 1, xf=np.zeros(3)))

    def test_update_cost_fields(self):
        obj = pendulum_objective()
        updated = update_objective(obj, tf=3.0, R=np.eye(1))
        self.assertIsInstance(updated, UnconstrainedObjective)
        self.assertEqual(updated.tf, 3.0)
        np.testing.assert_allclose(updated.cost.R, np.eye(1))
        self.assertEqual(obj.tf, 5.0)

    def test_update_constraint_fields(self):
        obj = ConstrainedObjective.create(**cost_args(), u_min=-3.0, u_max=3.0)
        updated = update_objective(obj, u_max=1.0, use_terminal_constraint=False)
        self.assertEqual(updated.constraints.u_max.tolist(), [1.0])
        self.assertEqual(updated.constraints.u_min.tolist(), [-3.0])
        self.assertEqual(updated.constraints.p_N, 0)

    def test_update_is_validated(self):
        obj = pendulum_objective()
        with self.assertRaises(ObjectiveError):
            update_objective(obj, tf=-1.0)
        with self.assertRaises(ObjectiveError):
            update_objective(obj, u_max=1.0)
        constrained = ConstrainedObjective.from_unconstrained(obj)
        with self.assertRaises(ObjectiveError):
            update_objective(constrained, horizon=10)


if __name__ == '__main__':
    absltest.main()
