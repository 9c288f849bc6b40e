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

"""Type definitions for constrained trajectory optimization."""

from __future__ import annotations

from enum import Enum, IntEnum, auto
from typing import Protocol, Tuple

from jax import Array


# Type aliases for common shapes
# State: (n,) array
# Control: (m,) array
# StateTrajectory: (N+1, n) array
# ControlTrajectory: (N, m) array

# Passing this as `tf` requests a minimum-time objective.
MINIMUM_TIME = 'min'


class SolverStatus(Enum):
    """Status codes for trajectory optimization solvers."""
    SOLVED = auto()                # Converged to solution
    MAX_ITERATIONS = auto()        # Reached maximum iterations
    LINE_SEARCH_FAILED = auto()    # No step size accepted at maximum regularization
    BACKWARD_PASS_FAILED = auto()  # Regularization exceeded its upper bound
    UNKNOWN = auto()               # Unknown status


class IterationType(IntEnum):
    """Tags for entries of the results history.

    The integer values are part of the results surface: callers may compare
    `iter_type` sequences against plain integers.
    """
    UNCONSTRAINED = 0
    INFEASIBLE = 1
    FEASIBLE = 2


# Function type protocols

class StepFn(Protocol):
    """Protocol for discrete dynamics.

    Signature: step(x, u, dt) -> x_next
    """
    def __call__(self, x: Array, u: Array, dt: float) -> Array:
        ...


class VectorFieldFn(Protocol):
    """Protocol for continuous dynamics.

    Signature: f(x, u) -> xdot
    """
    def __call__(self, x: Array, u: Array) -> Array:
        ...


class JacobiansFn(Protocol):
    """Protocol for dynamics Jacobians.

    Signature: jacobians(x, u, dt) -> (A, B)

    Returns:
        A: d x_next / d x of shape (n, n)
        B: d x_next / d u of shape (n, m)
    """
    def __call__(self, x: Array, u: Array, dt: float) -> Tuple[Array, Array]:
        ...


class StageConstraintFn(Protocol):
    """Protocol for stage constraints.

    Signature: c(x, u) -> values, with inequalities meaning values <= 0.
    """
    def __call__(self, x: Array, u: Array) -> Array:
        ...


class TerminalConstraintFn(Protocol):
    """Protocol for terminal constraints.

    Signature: c_N(x) -> values
    """
    def __call__(self, x: Array) -> Array:
        ...
