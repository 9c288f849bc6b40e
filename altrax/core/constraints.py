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

"""Stage and terminal constraints.

Inequalities follow the convention c(x, u) <= 0, equalities c(x, u) = 0.
The stage constraint vector is laid out as

    [u - u_max, u_min - u, x - x_max, x_min - x, cI(x, u), cE(x, u)]

keeping only the bound entries that are finite, so inequalities come first
and equalities last. The terminal constraint vector is

    [x - x_max, x_min - x, cI_N(x), cE_N(x), x - xf]

where the last block is present only when `use_terminal_constraint` is set.
"""

from typing import Any, Dict, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from jax import Array

from altrax.core.callables import AdaptedFunction, adapt
from altrax.core.errors import DimensionError, ObjectiveError
from altrax.core.types import StageConstraintFn, TerminalConstraintFn


def _broadcast_bound(value, dim: int, name: str) -> np.ndarray:
    bound = np.asarray(value, dtype=float)
    if bound.ndim == 0:
        return np.full(dim, float(bound))
    if bound.shape != (dim,):
        raise DimensionError(f'{name} must have length {dim}, got shape {bound.shape}')
    return bound.copy()


def _validate_bounds(lower: np.ndarray, upper: np.ndarray, name: str):
    # NaN bounds fail the comparison and are rejected with the empty ones.
    valid = upper > lower
    if not np.all(valid):
        bad = np.flatnonzero(~valid)
        raise ObjectiveError(
            f'{name}_max must be greater than {name}_min, violated at indices {bad.tolist()}'
        )


class ConstraintSet:
    """Box bounds and general constraints of a constrained objective.

    Scalar bounds are broadcast to vectors of the control or state dimension.
    General constraints may be written in the pure form `c(x, u) -> values`
    or the in-place form `c(out, x, u)`; terminal ones take only x. Their
    output sizes are measured once here and never change afterwards.

    Args:
        n: State dimension.
        m: Control dimension.
        xf: Goal state, used by the terminal equality x - xf = 0.
        u_min, u_max: Control bounds (scalars or length-m vectors).
        x_min, x_max: State bounds (scalars or length-n vectors).
        cI: Stage inequality constraints c(x, u) <= 0.
        cE: Stage equality constraints c(x, u) = 0.
        cI_N: Terminal inequality constraints c(x) <= 0.
        cE_N: Terminal equality constraints c(x) = 0.
        use_terminal_constraint: Whether to add x_N - xf = 0.

    Raises:
        DimensionError: If a bound has the wrong length.
        ObjectiveError: If a box is empty (max <= min somewhere).
        ModelError: If a constraint function cannot be probed.
    """

    def __init__(
        self,
        n: int,
        m: int,
        xf,
        u_min=-np.inf,
        u_max=np.inf,
        x_min=-np.inf,
        x_max=np.inf,
        cI: Optional[StageConstraintFn] = None,
        cE: Optional[StageConstraintFn] = None,
        cI_N: Optional[TerminalConstraintFn] = None,
        cE_N: Optional[TerminalConstraintFn] = None,
        use_terminal_constraint: bool = True,
    ):
        self.n = n
        self.m = m
        self.xf = _broadcast_bound(xf, n, 'xf')
        self.u_min = _broadcast_bound(u_min, m, 'u_min')
        self.u_max = _broadcast_bound(u_max, m, 'u_max')
        self.x_min = _broadcast_bound(x_min, n, 'x_min')
        self.x_max = _broadcast_bound(x_max, n, 'x_max')
        _validate_bounds(self.u_min, self.u_max, 'u')
        _validate_bounds(self.x_min, self.x_max, 'x')
        self.use_terminal_constraint = bool(use_terminal_constraint)

        self._user_functions = {'cI': cI, 'cE': cE, 'cI_N': cI_N, 'cE_N': cE_N}
        stage_probe = (np.zeros(n), np.zeros(m))
        terminal_probe = (np.zeros(n),)
        self.cI = None if cI is None else adapt(cI, stage_probe, 'cI')
        self.cE = None if cE is None else adapt(cE, stage_probe, 'cE')
        self.cI_N = None if cI_N is None else adapt(cI_N, terminal_probe, 'cI_N')
        self.cE_N = None if cE_N is None else adapt(cE_N, terminal_probe, 'cE_N')

        self._iu_max = np.flatnonzero(np.isfinite(self.u_max))
        self._iu_min = np.flatnonzero(np.isfinite(self.u_min))
        self._ix_max = np.flatnonzero(np.isfinite(self.x_max))
        self._ix_min = np.flatnonzero(np.isfinite(self.x_min))

        # Counts are fixed here.
        n_box_u = self._iu_max.size + self._iu_min.size
        n_box_x = self._ix_max.size + self._ix_min.size
        self.pI = n_box_u + n_box_x + _size(self.cI)
        self.pE = _size(self.cE)
        self.p = self.pI + self.pE
        self.pI_N = n_box_x + _size(self.cI_N)
        self.pE_N = _size(self.cE_N) + (n if self.use_terminal_constraint else 0)
        self.p_N = self.pI_N + self.pE_N

        self.is_equality = np.arange(self.p) >= self.pI
        self.is_equality_N = np.arange(self.p_N) >= self.pI_N

    @property
    def options(self) -> Dict[str, Any]:
        """Keyword arguments that rebuild this constraint set."""
        return {
            'u_min': self.u_min,
            'u_max': self.u_max,
            'x_min': self.x_min,
            'x_max': self.x_max,
            'use_terminal_constraint': self.use_terminal_constraint,
            **self._user_functions,
        }

    def _box_stage(self, x: Array, u: Array) -> Array:
        return jnp.concatenate([
            u[self._iu_max] - self.u_max[self._iu_max],
            self.u_min[self._iu_min] - u[self._iu_min],
            x[self._ix_max] - self.x_max[self._ix_max],
            self.x_min[self._ix_min] - x[self._ix_min],
        ])

    def _box_terminal(self, x: Array) -> Array:
        return jnp.concatenate([
            x[self._ix_max] - self.x_max[self._ix_max],
            self.x_min[self._ix_min] - x[self._ix_min],
        ])

    def stage(self, x: Array, u: Array) -> Array:
        """Stage constraint values of shape (p,)."""
        parts = [self._box_stage(x, u)]
        parts += [c(x, u) for c in (self.cI, self.cE) if c is not None]
        return jnp.concatenate(parts)

    def terminal(self, x: Array) -> Array:
        """Terminal constraint values of shape (p_N,)."""
        parts = [self._box_terminal(x)]
        parts += [c(x) for c in (self.cI_N, self.cE_N) if c is not None]
        if self.use_terminal_constraint:
            parts.append(x - self.xf)
        return jnp.concatenate(parts)

    def stage_jacobians(self, x: Array, u: Array) -> Tuple[Array, Array]:
        """Return (Cx, Cu) of shapes (p, n) and (p, m)."""
        eye_x = jnp.eye(self.n)
        eye_u = jnp.eye(self.m)
        Cx = [
            jnp.zeros((self._iu_max.size + self._iu_min.size, self.n)),
            eye_x[self._ix_max],
            -eye_x[self._ix_min],
        ]
        Cu = [
            eye_u[self._iu_max],
            -eye_u[self._iu_min],
            jnp.zeros((self._ix_max.size + self._ix_min.size, self.m)),
        ]
        for c in (self.cI, self.cE):
            if c is not None:
                cx, cu = c.jacobian(argnums=(0, 1))(x, u)
                Cx.append(jnp.reshape(cx, (c.size, self.n)))
                Cu.append(jnp.reshape(cu, (c.size, self.m)))
        return jnp.concatenate(Cx), jnp.concatenate(Cu)

    def terminal_jacobian(self, x: Array) -> Array:
        """Return Cx_N of shape (p_N, n)."""
        eye_x = jnp.eye(self.n)
        Cx = [eye_x[self._ix_max], -eye_x[self._ix_min]]
        for c in (self.cI_N, self.cE_N):
            if c is not None:
                Cx.append(jnp.reshape(c.jacobian(argnums=0)(x), (c.size, self.n)))
        if self.use_terminal_constraint:
            Cx.append(eye_x)
        return jnp.concatenate(Cx)

    def __repr__(self) -> str:
        return (
            f'ConstraintSet(p={self.p}, pI={self.pI}, p_N={self.p_N}, '
            f'pI_N={self.pI_N}, use_terminal_constraint={self.use_terminal_constraint})'
        )


def _size(fn: Optional[AdaptedFunction]) -> int:
    return 0 if fn is None else fn.size
