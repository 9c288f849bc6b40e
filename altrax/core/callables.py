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

"""Normalization of user supplied dynamics and constraint functions.

Users may write a function in one of two forms:

    pure:      f(x, u)        -> values
    in-place:  f(out, x, u)   writes values into a pre-allocated buffer

and may write it with `jax.numpy` or with plain NumPy. The form is decided
once, when a model or constraint set is built, and the function is wrapped
into a pure function usable inside `jit`, `vmap` and `lax.scan`. NumPy code
and in-place functions run on the host through `jax.pure_callback`, which
works everywhere but is much slower than a traced function.
"""

import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

from altrax.core.errors import ModelError
from altrax.utils.linearize import finite_difference_jacobian

logger = logging.getLogger(__name__)

# Raised when a NumPy function receives tracers.
_TRACER_ERRORS = (
    jax.errors.TracerArrayConversionError,
    jax.errors.ConcretizationTypeError,
    jax.errors.TracerBoolConversionError,
    jax.errors.TracerIntegerConversionError,
)

# Buffer sizes tried when counting the outputs of an in-place function.
_PROBE_SIZES = (100, 1000, 10000, 100000)


class CallForm(enum.Enum):
    PURE = 'pure'
    INPLACE = 'inplace'


@dataclass(frozen=True)
class AdaptedFunction:
    """A user function normalized to the pure calling convention.

    Attributes:
        fn: Pure function of the original arguments returning a 1-D array.
        form: Calling convention of the user function.
        traceable: Whether the user function can be traced by JAX.
        size: Length of the output vector.
        name: Name used in log and error messages.
    """
    fn: Callable
    form: CallForm
    traceable: bool
    size: int
    name: str

    def __call__(self, *args):
        return self.fn(*args)

    def jacobian(self, argnums: Union[int, Sequence[int]] = 0) -> Callable:
        """Jacobian operator: forward-mode autodiff or central differences."""
        if self.traceable:
            return jax.jacfwd(self.fn, argnums=argnums)
        return finite_difference_jacobian(self.fn, argnums)


def adapt(
    fun: Callable,
    probe_args: Tuple,
    name: str,
    size: Optional[int] = None,
) -> AdaptedFunction:
    """Decide the calling convention of `fun` and wrap it.

    Args:
        fun: User function in pure or in-place form.
        probe_args: Example arguments of the pure form, used for probing.
        name: Name used in log and error messages.
        size: Required output length. Measured from the function if None.

    Returns:
        AdaptedFunction wrapping fun.

    Raises:
        ModelError: If the signature is not one of the two accepted forms or
            if the probing call fails.
    """
    probe_args = tuple(probe_args)
    form = _call_form(fun, probe_args, name)

    traceable = False
    if form is CallForm.PURE:
        try:
            out = jax.eval_shape(fun, *map(_shape_struct, probe_args))
            traceable = True
        except _TRACER_ERRORS:
            out = _host_call(fun, probe_args, name)
        except Exception as e:
            raise ModelError(f'{name} failed when called with probe inputs: {e}') from e
        out_size = _output_size(out, name)
    elif size is not None:
        buffer = np.zeros(size)
        _host_call(fun, (buffer,) + probe_args, name)
        out_size = size
    else:
        out_size = _count_outputs(fun, probe_args, name)

    if size is not None and out_size != size:
        raise ModelError(f'{name} returns {out_size} values, expected {size}')

    if traceable:
        def fn(*args):
            return jnp.asarray(fun(*args), dtype=float)
    else:
        logger.warning(
            '%s is %s; evaluating it through a host callback, which is slow. '
            'Write it with jax.numpy and return the result for best performance.',
            name,
            'written in-place' if form is CallForm.INPLACE else 'not traceable by JAX',
        )
        fn = _host_function(fun, form, out_size)

    return AdaptedFunction(fn=fn, form=form, traceable=traceable, size=out_size, name=name)


def _call_form(fun: Callable, probe_args: Tuple, name: str) -> CallForm:
    """Decide between the pure and the in-place form from the signature."""
    nargs = len(probe_args)
    try:
        signature = inspect.signature(fun)
    except (TypeError, ValueError):
        return _trial_call_form(fun, probe_args)
    if _accepts(signature, nargs):
        return CallForm.PURE
    if _accepts(signature, nargs + 1):
        return CallForm.INPLACE
    raise ModelError(
        f'{name} must take {nargs} arguments (pure form) or {nargs + 1} '
        f'arguments (in-place form, output buffer first); got {signature}'
    )


def _trial_call_form(fun: Callable, probe_args: Tuple) -> CallForm:
    # Without a signature, an arity TypeError from the pure call selects the
    # in-place form. The in-place call itself is validated by the caller.
    try:
        fun(*probe_args)
    except TypeError:
        return CallForm.INPLACE
    return CallForm.PURE


def _accepts(signature: inspect.Signature, nargs: int) -> bool:
    try:
        signature.bind(*range(nargs))
    except TypeError:
        return False
    return True


def _shape_struct(arg) -> jax.ShapeDtypeStruct:
    return jax.ShapeDtypeStruct(np.shape(arg), jnp.float64)


def _host_call(fun: Callable, args: Tuple, name: str):
    try:
        return fun(*args)
    except Exception as e:
        raise ModelError(f'{name} failed when called with probe inputs: {e}') from e


def _output_size(out, name: str) -> int:
    shape = np.shape(out)
    if len(shape) != 1:
        raise ModelError(f'{name} must return a 1-D array, got shape {shape}')
    return int(shape[0])


def _count_outputs(fun: Callable, probe_args: Tuple, name: str) -> int:
    """Count the entries an in-place function writes into a NaN buffer."""
    for size in _PROBE_SIZES:
        buffer = np.full(size, np.nan)
        try:
            fun(buffer, *probe_args)
        except IndexError:
            continue
        except Exception as e:
            raise ModelError(f'{name} failed when called with probe inputs: {e}') from e
        written = np.flatnonzero(~np.isnan(buffer))
        return int(written[-1]) + 1 if written.size else 0
    raise ModelError(f'{name} writes more than {_PROBE_SIZES[-1]} values')


def _host_function(fun: Callable, form: CallForm, size: int) -> Callable:
    """Wrap a NumPy or in-place function with `jax.pure_callback`."""
    if size == 0:
        return lambda *args: jnp.zeros(0)

    result_shape = jax.ShapeDtypeStruct((size,), jnp.float64)

    def host(*args):
        args = tuple(np.asarray(a) for a in args)
        if form is CallForm.INPLACE:
            out = np.zeros(size)
            fun(out, *args)
        else:
            out = fun(*args)
        return np.asarray(out, dtype=np.float64).reshape(size)

    def wrapped(*args):
        return jax.pure_callback(host, result_shape, *args, vmap_method='sequential')

    return wrapped
