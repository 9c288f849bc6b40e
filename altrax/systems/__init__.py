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

"""Example systems used in the documentation and tests."""

from altrax.systems.double_integrator import (
    double_integrator_dynamics,
    double_integrator_step,
    double_integrator_jacobians,
    double_integrator_model,
    double_integrator_matrices,
)

from altrax.systems.pendulum import (
    pendulum_dynamics,
    pendulum_dynamics_inplace,
    pendulum_model,
    pendulum_objective,
)

__all__ = [
    'double_integrator_dynamics',
    'double_integrator_step',
    'double_integrator_jacobians',
    'double_integrator_model',
    'double_integrator_matrices',
    'pendulum_dynamics',
    'pendulum_dynamics_inplace',
    'pendulum_model',
    'pendulum_objective',
]
