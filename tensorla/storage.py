from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence, Tuple

import numpy as np


class Order(str, Enum):
    """Element order of a contiguous buffer (NumPy's ``order`` letters)."""
    ROW_MAJOR = "C"
    COL_MAJOR = "F"


@dataclass(frozen=True)
class LayoutFlags:
    """
    Contiguity of a tensor's buffer.

    Attributes
    ----------
    contiguous : bool
        Elements are laid out row-major without gaps.
    fortran : bool
        Elements are laid out column-major without gaps.

    Notes
    -----
    Both flags are set for tensors of rank <= 1 and for tensors with at most
    one element; neither is set for strided views such as ``t[:, ::2]``.
    """
    contiguous: bool
    fortran: bool

    @classmethod
    def of(cls, array: Any) -> "LayoutFlags":
        """Read the flags of a NumPy (or CuPy) array."""
        return cls(bool(array.flags.c_contiguous), bool(array.flags.f_contiguous))


_bounds_check_enabled = True
"""bool: Global flag enabling bounds checks in :func:`buffer_index`.

Toggled by :class:`bounds_checking` and :func:`set_bounds_checking`.
"""


def is_bounds_checking() -> bool:
    """Return whether element access is currently bounds checked."""
    return _bounds_check_enabled


def set_bounds_checking(enabled: bool) -> None:
    """Turn bounds checking for element access on or off process-wide."""
    global _bounds_check_enabled
    _bounds_check_enabled = bool(enabled)


class bounds_checking:
    """
    Context manager that sets bounds checking for the duration of a block.

    Parameters
    ----------
    enabled : bool, default=True
        Value of the flag inside the block.

    Examples
    --------
    >>> with bounds_checking(False):
    ...     v = t.get((0, 0))   # unchecked
    >>> # Outside the context the previous setting is restored.

    Notes
    -----
    Contexts nest; the previous state is restored on exit.
    """
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = bool(enabled)

    def __enter__(self):
        global _bounds_check_enabled
        self.prev = _bounds_check_enabled
        _bounds_check_enabled = self.enabled

    def __exit__(self, *args):
        global _bounds_check_enabled
        _bounds_check_enabled = self.prev


def element_strides(array: Any) -> Tuple[int, ...]:
    """Strides of ``array`` counted in elements rather than bytes."""
    return tuple(s // array.itemsize for s in array.strides)


def root_buffer(array: np.ndarray) -> np.ndarray:
    """Follow ``.base`` links to the array that owns the memory."""
    while isinstance(array.base, np.ndarray):
        array = array.base
    return array


def element_offset(array: np.ndarray) -> int:
    """Element offset of ``array``'s first element inside its root buffer."""
    base = root_buffer(array)
    start = array.__array_interface__["data"][0]
    origin = base.__array_interface__["data"][0]
    return (start - origin) // array.itemsize


def unravel_index(flat: int, shape: Sequence[int]) -> Tuple[int, ...]:
    """
    Convert a row-major flat position into a multi-index.

    Parameters
    ----------
    flat : int
        Position in ``[0, prod(shape))``.
    shape : sequence of int
        Tensor shape.

    Returns
    -------
    tuple of int
        The multi-index. For a 2-D shape ``(m, n)`` this is
        ``(flat // n, flat % n)``.

    Raises
    ------
    IndexError
        If ``flat`` is outside the tensor.

    Examples
    --------
    >>> unravel_index(5, (2, 3))
    (1, 2)
    """
    size = int(np.prod(shape, dtype=np.int64))
    if not 0 <= flat < size:
        raise IndexError(f"flat index {flat} is out of bounds for shape {tuple(shape)}")
    index = []
    for dim in reversed(shape):
        flat, i = divmod(flat, dim)
        index.append(i)
    return tuple(reversed(index))


def ravel_index(index: Sequence[int], shape: Sequence[int]) -> int:
    """
    Convert a multi-index into its row-major flat position.

    Inverse of :func:`unravel_index`. Negative entries are not wrapped.

    Raises
    ------
    IndexError
        If ``index`` has the wrong length or an entry is out of range.
    """
    _check_index(index, shape)
    flat = 0
    for i, dim in zip(index, shape):
        flat = flat * dim + i
    return flat


def buffer_index(
    index: Sequence[int],
    shape: Sequence[int],
    strides: Sequence[int],
    offset: int = 0,
) -> int:
    """
    Buffer position of a multi-index: ``offset + sum(index[d] * strides[d])``.

    The index is validated against ``shape`` while bounds checking is enabled
    (see :class:`bounds_checking`).
    """
    if _bounds_check_enabled:
        _check_index(index, shape)
    return offset + sum(i * s for i, s in zip(index, strides))


def triangle_coordinates(shape: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row and column of every element of a 2-D tensor, in row-major order.

    Uses the same flat mapping as :func:`unravel_index`
    (``row = flat // ncols``, ``col = flat % ncols``), vectorized over the
    whole tensor. The triangular operations build their masks from it.

    Returns
    -------
    (numpy.ndarray, numpy.ndarray)
        Row and column arrays, each of shape ``shape``.
    """
    m, n = shape
    flat = np.arange(m * n)
    if n == 0:
        empty = flat.reshape(m, n)
        return empty, empty
    rows, cols = np.divmod(flat, n)
    return rows.reshape(m, n), cols.reshape(m, n)


def _check_index(index: Sequence[int], shape: Sequence[int]) -> None:
    if len(index) != len(shape):
        raise IndexError(
            f"index {tuple(index)} has {len(index)} entries, tensor has rank {len(shape)}"
        )
    for d, (i, dim) in enumerate(zip(index, shape)):
        if not 0 <= i < dim:
            raise IndexError(
                f"index {i} is out of bounds for axis {d} with size {dim}"
            )
