"""
Shape validation and layout normalization for the linear-algebra operations.

Validators follow a fail-fast rule: they raise before anything is allocated
or handed to a kernel, and they never touch the tensor they inspect.
"""

from typing import Any, Optional

from tensorla.dtypes import kernel_dtype
from tensorla.errors import LayoutError, ShapeError, ShapeErrorKind
from tensorla.storage import Order
from tensorla.tensor import Tensor


def require_matrix(t: Tensor, name: str = "tensor") -> None:
    """
    Verify ``t`` has rank 2.

    Raises:
        ShapeError: kind ``NOT_A_MATRIX`` if ``t.ndim != 2``
    """
    if t.ndim != 2:
        raise ShapeError(
            f"{name}: expected a matrix (rank 2), got rank {t.ndim} with shape {t.shape}",
            kind=ShapeErrorKind.NOT_A_MATRIX,
            shape=t.shape,
        )


def require_square_matrix(t: Tensor, name: str = "tensor") -> None:
    """
    Verify ``t`` is a square matrix.

    Raises:
        ShapeError: kind ``NOT_A_MATRIX`` if ``t`` is not rank 2,
            kind ``NOT_SQUARE`` if its two dimensions differ
    """
    require_matrix(t, name)
    if t.shape[0] != t.shape[1]:
        raise ShapeError(
            f"{name}: expected a square matrix, got shape {t.shape}",
            kind=ShapeErrorKind.NOT_SQUARE,
            shape=t.shape,
        )


def require_same_inner(a: Tensor, b: Tensor) -> None:
    """
    Verify ``a @ b`` is well-formed for matrices: ``a.shape[1] == b.shape[0]``.

    Raises:
        ShapeError: kind ``DIMENSION_MISMATCH`` if the inner dimensions differ
    """
    if a.shape[1] != b.shape[0]:
        raise ShapeError(
            f"inner dimensions differ: {a.shape} and {b.shape}",
            kind=ShapeErrorKind.DIMENSION_MISMATCH,
            shape=a.shape,
            other_shape=b.shape,
        )


def require_rows(b: Tensor, n: int, name: str = "b") -> None:
    """
    Verify a right-hand side has ``n`` rows (or ``n`` entries for a vector).

    Raises:
        ShapeError: kind ``NOT_A_MATRIX`` if ``b`` is neither rank 1 nor 2,
            kind ``DIMENSION_MISMATCH`` if its leading dimension is not ``n``
    """
    if b.ndim not in (1, 2):
        raise ShapeError(
            f"{name}: expected a vector or a matrix, got rank {b.ndim} with shape {b.shape}",
            kind=ShapeErrorKind.NOT_A_MATRIX,
            shape=b.shape,
        )
    if b.shape[0] != n:
        raise ShapeError(
            f"{name}: expected {n} rows, got shape {b.shape}",
            kind=ShapeErrorKind.DIMENSION_MISMATCH,
            shape=b.shape,
        )


def require_column_major(t: Tensor, dtype: Optional[Any] = None) -> Tensor:
    """
    Return a column-major version of ``t`` with a kernel-compatible kind.

    ``t`` itself is returned when it is already column-major contiguous and of
    the requested kind; otherwise a column-major duplicate is made. The
    original is never modified and layout alone never raises.

    Parameters
    ----------
    t : Tensor
        Source tensor.
    dtype : numpy dtype, optional
        Kind for the kernel call. Defaults to :func:`kernel_dtype` of ``t``.

    Returns
    -------
    Tensor
        A column-major tensor.
    """
    dt = kernel_dtype(t.dtype) if dtype is None else dtype
    if t.is_fortran and t.dtype == dt:
        return t
    return column_major_copy(t, dt)


def column_major_copy(t: Tensor, dtype: Optional[Any] = None) -> Tensor:
    """
    Fresh column-major duplicate of ``t`` converted to the kernel kind.

    Used by every out-of-place operation so the kernel can overwrite its input
    without touching the caller's buffer.
    """
    dt = kernel_dtype(t.dtype) if dtype is None else dtype
    out = t.dup(Order.COL_MAJOR)
    if out.dtype != dt:
        out = out.astype(dt)
    return out


def require_fortran_kernel_layout(t: Tensor, name: str = "tensor") -> None:
    """
    Verify ``t`` can be handed to a kernel as-is for an in-place operation.

    Raises:
        LayoutError: if ``t`` is not column-major contiguous or its kind is
            not one the kernels accept directly
    """
    if not t.is_fortran:
        raise LayoutError(
            f"{name}: in-place kernel operations need a column-major tensor; "
            f"use dup(Order.COL_MAJOR) first"
        )
    if kernel_dtype(t.dtype) != t.dtype:
        raise LayoutError(
            f"{name}: in-place kernel operations need a float or complex tensor, got {t.dtype}"
        )
