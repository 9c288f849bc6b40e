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

"""Exceptions raised while building models, objectives and solvers.

All errors are raised at construction time. Numerical trouble during a solve
is never raised; it is reported through `SolverStatus` on the result.
"""


class AltraxError(Exception):
    """Base class for all altrax construction errors."""


class ModelError(AltraxError, TypeError):
    """A dynamics or constraint callable has an unrecognized form."""


class ObjectiveError(AltraxError, ValueError):
    """An objective or constraint set holds invalid values."""


class DimensionError(AltraxError, ValueError):
    """An array does not have the dimension required by the problem."""
