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

"""Core abstractions for constrained trajectory optimization.

- Model: Dynamics in pure or in-place form, continuous or discrete
- QuadraticCost, UnconstrainedObjective, ConstrainedObjective: Objectives
- ConstraintSet: Box bounds and general stage and terminal constraints
- StageProblem: Discretized problem solved by one solver stage
- ResultsLog, Trajectory: Solver history and solution container
"""

from altrax.core.types import (
    MINIMUM_TIME,
    SolverStatus,
    IterationType,
    StepFn,
    VectorFieldFn,
    JacobiansFn,
    StageConstraintFn,
    TerminalConstraintFn,
)

from altrax.core.errors import (
    AltraxError,
    ModelError,
    ObjectiveError,
    DimensionError,
)

from altrax.core.model import Model

from altrax.core.constraints import ConstraintSet

from altrax.core.objective import (
    QuadraticCost,
    UnconstrainedObjective,
    ConstrainedObjective,
    Objective,
    update_objective,
)

from altrax.core.problem import (
    Expansion,
    ConstraintJacobians,
    StageProblem,
)

from altrax.core.results import (
    ConstrainedResults,
    OuterIterate,
    ResultsLog,
)

from altrax.core.trajectory import (
    Trajectory,
    line_trajectory,
)

__all__ = [
    # Types
    'MINIMUM_TIME',
    'SolverStatus',
    'IterationType',
    'StepFn',
    'VectorFieldFn',
    'JacobiansFn',
    'StageConstraintFn',
    'TerminalConstraintFn',
    # Errors
    'AltraxError',
    'ModelError',
    'ObjectiveError',
    'DimensionError',
    # Problem definition
    'Model',
    'ConstraintSet',
    'QuadraticCost',
    'UnconstrainedObjective',
    'ConstrainedObjective',
    'Objective',
    'update_objective',
    'Expansion',
    'ConstraintJacobians',
    'StageProblem',
    # Results
    'ConstrainedResults',
    'OuterIterate',
    'ResultsLog',
    'Trajectory',
    'line_trajectory',
]
