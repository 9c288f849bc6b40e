"""Altrax: constrained trajectory optimization in JAX.

iLQR inner solver, augmented Lagrangian outer loop and infeasible start
initialization for dynamics models written with jax.numpy or NumPy.

Main modules:
- altrax.core: Models, objectives, constraints, results containers
- altrax.solvers: iLQR, augmented Lagrangian, infeasible start, Solver
- altrax.utils: Integrators, derivatives, rollouts, PD solves
- altrax.systems: Example dynamics (pendulum, double integrator)
"""

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

from jax import config

# Tolerances down to 1e-8 need double precision.
config.update('jax_enable_x64', True)

from altrax import core
from altrax import solvers
from altrax import systems
from altrax import utils

from altrax.core import (
    MINIMUM_TIME,
    AltraxError,
    ConstrainedObjective,
    ConstraintSet,
    DimensionError,
    IterationType,
    Model,
    ModelError,
    ObjectiveError,
    QuadraticCost,
    SolverStatus,
    Trajectory,
    UnconstrainedObjective,
    line_trajectory,
    update_objective,
)
from altrax.solvers import Solver, SolverOptions, solve

__all__ = [
    'MINIMUM_TIME',
    'AltraxError',
    'ConstrainedObjective',
    'ConstraintSet',
    'DimensionError',
    'IterationType',
    'Model',
    'ModelError',
    'ObjectiveError',
    'QuadraticCost',
    'Solver',
    'SolverOptions',
    'SolverStatus',
    'Trajectory',
    'UnconstrainedObjective',
    'line_trajectory',
    'solve',
    'update_objective',
]
