from numbers import Integral, Number
from typing import Any, Iterable, TypeVar, Union

import numpy as np

from tensorla.errors import DTypeError

ElementKind = TypeVar(
    "ElementKind",
    np.int8, np.int16, np.int32, np.int64,
    np.uint8, np.uint16, np.uint32, np.uint64,
    np.float32, np.float64,
    np.bool_,
    np.complex64, np.complex128,
)
"""TypeVar: Element kinds a :class:`~tensorla.tensor.Tensor` may hold."""

SUPPORTED_DTYPES = frozenset(np.dtype(t) for t in ElementKind.__constraints__)

DEFAULT_INT = np.dtype(np.int32)
DEFAULT_FLOAT = np.dtype(np.float64)
DEFAULT_COMPLEX = np.dtype(np.complex128)

# Kinds the dense kernels accept directly; everything else is promoted.
KERNEL_DTYPES = (
    np.dtype(np.float32),
    np.dtype(np.float64),
    np.dtype(np.complex64),
    np.dtype(np.complex128),
)


def check_dtype(dtype: Any) -> np.dtype:
    """
    Normalize ``dtype`` and make sure it is a permitted element kind.

    Parameters
    ----------
    dtype : numpy.dtype, type or str
        Anything ``numpy.dtype`` understands.

    Returns
    -------
    numpy.dtype
        The normalized dtype.

    Raises
    ------
    DTypeError
        If the kind is not one of the integer, float, bool or complex kinds
        listed in :data:`ElementKind`.

    Examples
    --------
    >>> check_dtype("float32")
    dtype('float32')
    >>> check_dtype(np.float16)
    Traceback (most recent call last):
        ...
    tensorla.errors.DTypeError: Bad dtype: float16 is not supported for Tensors
    """
    try:
        dt = np.dtype(dtype)
    except TypeError as e:
        raise DTypeError(f"Bad dtype: {dtype!r} is not a numeric type") from e
    if dt not in SUPPORTED_DTYPES:
        raise DTypeError(f"Bad dtype: {dt} is not supported for Tensors", dtype=dt)
    return dt


def _int_kind(value: int) -> np.dtype:
    # Smallest of int32, int64, uint64 that holds the value.
    if -2**31 <= value < 2**31:
        return DEFAULT_INT
    if -2**63 <= value < 2**63:
        return np.dtype(np.int64)
    if 0 <= value < 2**64:
        return np.dtype(np.uint64)
    raise DTypeError(f"Integer {value} does not fit any supported element kind")


def scalar_kind(value: Any) -> np.dtype:
    """Return the element kind a single Python or NumPy scalar maps to."""
    if isinstance(value, np.generic):
        return check_dtype(value.dtype)
    if isinstance(value, (bool, np.bool_)):
        return np.dtype(np.bool_)
    if isinstance(value, Integral):
        return _int_kind(int(value))
    if isinstance(value, float):
        return DEFAULT_FLOAT
    if isinstance(value, complex):
        return DEFAULT_COMPLEX
    if isinstance(value, Number):
        return DEFAULT_FLOAT
    raise DTypeError(f"Cannot infer an element kind for {type(value).__name__!r}")


def common_kind(kinds: Iterable[np.dtype]) -> np.dtype:
    """
    Smallest kind able to hold every kind in ``kinds``.

    Python integers map to ``int32`` and stay there unless a float or complex
    value is mixed in, so ``[[1, 2], [3, 4]]`` infers ``int32`` rather than
    NumPy's platform ``int64``.

    Parameters
    ----------
    kinds : iterable of numpy.dtype
        Kinds of the individual values.

    Returns
    -------
    numpy.dtype
        The promoted kind. An empty iterable yields ``float64``.
    """
    kinds = list(kinds)
    if not kinds:
        return DEFAULT_FLOAT
    out = kinds[0]
    for k in kinds[1:]:
        out = np.promote_types(out, k)
    return check_dtype(out)


def kernel_dtype(*dtypes: Union[np.dtype, type]) -> np.dtype:
    """
    Kind a dense kernel is called with for operands of ``dtypes``.

    Float and complex kinds are kept (``float32`` stays single precision);
    integer and bool operands are promoted to ``float64``.
    """
    out = np.result_type(*dtypes)
    if out in KERNEL_DTYPES:
        return out
    if np.issubdtype(out, np.complexfloating):
        return DEFAULT_COMPLEX
    return DEFAULT_FLOAT


def is_complex(dtype: np.dtype) -> bool:
    """bool: Whether ``dtype`` is a complex kind."""
    return np.issubdtype(dtype, np.complexfloating)

