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

"""Utility functions for trajectory optimization.

- Linearization and quadratization of dynamics and costs
- Finite difference Jacobians for functions JAX cannot trace
- Rollout and evaluation utilities
- Positive definite solves and regularization
- Numerical integrators for continuous-time dynamics
"""

# Linearization utilities
from altrax.utils.linearize import (
    vectorize,
    linearize,
    quadratize,
    finite_difference_jacobian,
)

# Rollout utilities
from altrax.utils.rollout import (
    rollout,
    ddp_rollout,
    evaluate,
    diverged,
)

# PD utilities
from altrax.utils.psd import (
    symmetrize,
    regularize_hessian,
    pd_solve,
    is_positive_definite,
)

# Integrators
from altrax.utils.integrators import (
    euler,
    midpoint,
    heun,
    rk3,
    rk4,
    INTEGRATORS,
    get_integrator,
)

__all__ = [
    'vectorize',
    'linearize',
    'quadratize',
    'finite_difference_jacobian',
    'rollout',
    'ddp_rollout',
    'evaluate',
    'diverged',
    'symmetrize',
    'regularize_hessian',
    'pd_solve',
    'is_positive_definite',
    'euler',
    'midpoint',
    'heun',
    'rk3',
    'rk4',
    'INTEGRATORS',
    'get_integrator',
]
