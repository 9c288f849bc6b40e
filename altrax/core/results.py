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

"""Solver workspace and results history."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Iterator, List, Optional

from jax import Array

from altrax.core.problem import ConstraintJacobians
from altrax.core.types import IterationType, SolverStatus


@dataclass
class ConstrainedResults:
    """Mutable workspace of one solver stage.

    Owned by the augmented Lagrangian loop, which updates multipliers,
    penalties and constraint values. The iLQR solve writes the trajectory
    and the gains of its last backward pass.

    Attributes:
        X: States of shape (N+1, n).
        U: Controls of shape (N, m).
        C: Stage constraint values of shape (N, p).
        C_N: Terminal constraint values of shape (p_N,).
        lam: Stage multipliers of shape (N, p).
        lam_N: Terminal multipliers of shape (p_N,).
        mu: Stage penalties of shape (N, p), strictly positive.
        mu_N: Terminal penalties of shape (p_N,).
        active: Stage active set of shape (N, p).
        active_N: Terminal active set of shape (p_N,).
        jacobians: Constraint Jacobians Cx (N, p, n), Cu (N, p, m) and
            Cx_N (p_N, n) at (X, U).
        K: Feedback gains of shape (N, m, n).
        d: Feedforward terms of shape (N, m).
        cost: Cost of (X, U) without penalty terms.
        max_violation: Maximum constraint violation of (X, U).
    """
    X: Array
    U: Array
    C: Array
    C_N: Array
    lam: Array
    lam_N: Array
    mu: Array
    mu_N: Array
    active: Array
    active_N: Array
    jacobians: ConstraintJacobians
    K: Array
    d: Array
    cost: float
    max_violation: float

    def snapshot(
        self,
        iter_type: IterationType,
        inner_iterations: int,
        status: SolverStatus,
    ) -> 'OuterIterate':
        return OuterIterate(
            X=self.X,
            U=self.U,
            C=self.C,
            C_N=self.C_N,
            lam=self.lam,
            lam_N=self.lam_N,
            mu=self.mu,
            mu_N=self.mu_N,
            cost=self.cost,
            max_violation=self.max_violation,
            iter_type=iter_type,
            inner_iterations=inner_iterations,
            status=status,
        )


@dataclass(frozen=True)
class OuterIterate:
    """Snapshot of the workspace after one outer iteration.

    For infeasible start entries, U includes the n slack controls after the
    m original controls, and C includes the slack equalities last.
    """
    X: Array
    U: Array
    C: Array
    C_N: Array
    lam: Array
    lam_N: Array
    mu: Array
    mu_N: Array
    cost: float
    max_violation: float
    iter_type: IterationType
    inner_iterations: int
    status: SolverStatus


class ResultsLog(Sequence):
    """Append-only history of outer iterations with a fixed capacity.

    Callers get read-only access; only the solver appends.

    Args:
        capacity: Maximum number of entries.
        cache: If False, an entry replaces the previous one when both have
            the same iteration type, so each stage keeps only its latest
            snapshot.

    Example:
        >>> result = solver.solve(X0, U0)
        >>> result.history.iter_type
        [1, 1, 1, 2, 2]
        >>> result.history[-1].X.shape
        (51, 2)
    """

    def __init__(self, capacity: int, cache: bool = True):
        self._capacity = int(capacity)
        self._cache = cache
        self._entries: List[OuterIterate] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, entry: OuterIterate):
        if (not self._cache and self._entries
                and self._entries[-1].iter_type == entry.iter_type):
            self._entries[-1] = entry
            return
        if len(self._entries) >= self._capacity:
            raise RuntimeError(f'results log is full ({self._capacity} entries)')
        self._entries.append(entry)

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[OuterIterate]:
        return iter(self._entries)

    @property
    def iter_type(self) -> List[int]:
        """Return the iteration type tag of every entry."""
        return [int(entry.iter_type) for entry in self._entries]

    def last(self, iter_type: Optional[IterationType] = None) -> Optional[OuterIterate]:
        """Return the latest entry, optionally of one iteration type."""
        for entry in reversed(self._entries):
            if iter_type is None or entry.iter_type == iter_type:
                return entry
        return None

    def __repr__(self) -> str:
        return f'ResultsLog({len(self)}/{self._capacity} entries)'
