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

"""Tests for solver options."""

from absl.testing import absltest
from absl.testing import parameterized

from altrax.solvers import SolverOptions


class SolverOptionsTest(parameterized.TestCase):

    def test_defaults(self):
        options = SolverOptions()
        self.assertEqual(options.iterations, 500)
        self.assertEqual(options.eps_constraint, 1e-3)
        self.assertEqual(options.bp_reg_increase_factor, 1.6)
        self.assertTrue(options.cache)
        self.assertFalse(options.verbose)

    def test_replace(self):
        options = SolverOptions().replace(mu_al_update=100.0, verbose=True)
        self.assertEqual(options.mu_al_update, 100.0)
        self.assertTrue(options.verbose)
        self.assertEqual(SolverOptions().mu_al_update, 10.0)

    def test_replace_unknown(self):
        with self.assertRaisesRegex(TypeError, 'tolerance'):
            SolverOptions().replace(tolerance=1.0)

    def test_to_dict(self):
        options = SolverOptions(iterations=3)
        self.assertEqual(options.to_dict()['iterations'], 3)
        self.assertEqual(SolverOptions(**options.to_dict()), options)

    @parameterized.named_parameters(
        ('zero_iterations', dict(iterations=0)),
        ('fractional_iterations', dict(iterations_outerloop=2.5)),
        ('negative_eps', dict(eps=-1.0)),
        ('zero_eps_constraint', dict(eps_constraint=0.0)),
        ('c1_above_c2', dict(c1=2.0, c2=1.0)),
        ('zero_c1', dict(c1=0.0)),
        ('penalty_factor', dict(mu_al_update=1.0)),
        ('penalty_max', dict(penalty_max=0.5)),
        ('decrease_ratio', dict(constraint_decrease_ratio=1.0)),
        ('regularization_factor', dict(bp_reg_increase_factor=1.0)),
        ('regularization_bounds', dict(bp_reg_max=1e-9)),
        ('negative_regularization', dict(bp_reg_initial=-1.0)),
        ('slack_weight', dict(infeasible_regularization=0.0)),
    )
    def test_invalid(self, changes):
        with self.assertRaises(ValueError):
            SolverOptions(**changes)
        with self.assertRaises(ValueError):
            SolverOptions().replace(**changes)


if __name__ == '__main__':
    absltest.main()
