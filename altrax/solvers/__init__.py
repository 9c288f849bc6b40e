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

"""Trajectory optimization solvers.

- ilqr: Regularized iLQR, the inner solver
- augmented_lagrangian: Outer loop handling constraints
- infeasible: Infeasible start from a state trajectory guess
- Solver / solve: Entry points combining the above
"""

from altrax.solvers import augmented_lagrangian
from altrax.solvers import ilqr
from altrax.solvers import infeasible

from altrax.solvers.options import SolverOptions

from altrax.solvers.solver import (
    Solver,
    solve,
)

__all__ = [
    'augmented_lagrangian',
    'ilqr',
    'infeasible',
    'SolverOptions',
    'Solver',
    'solve',
]
