import numpy as np
import pytest

from tensorla.errors import LayoutError, ShapeError, ShapeErrorKind
from tensorla.shape_ops import (
    column_major_copy,
    require_column_major,
    require_fortran_kernel_layout,
    require_matrix,
    require_rows,
    require_same_inner,
    require_square_matrix,
)
from tensorla.storage import Order
from tensorla.tensor import Tensor
from tests.utils import assert_close, tdata


def test_require_matrix():
    require_matrix(Tensor.zeros(2, 3))
    with pytest.raises(ShapeError) as ei:
        require_matrix(Tensor.zeros(4))
    assert ei.value.kind is ShapeErrorKind.NOT_A_MATRIX
    assert ei.value.shape == (4,)
    with pytest.raises(ShapeError):
        require_matrix(Tensor.zeros(2, 2, 2))


def test_require_square_matrix():
    require_square_matrix(Tensor.zeros(3, 3))
    with pytest.raises(ShapeError) as ei:
        require_square_matrix(Tensor.zeros(2, 3))
    assert ei.value.kind is ShapeErrorKind.NOT_SQUARE
    with pytest.raises(ShapeError) as ei:
        require_square_matrix(Tensor.zeros(3))
    assert ei.value.kind is ShapeErrorKind.NOT_A_MATRIX


def test_require_same_inner():
    require_same_inner(Tensor.zeros(2, 3), Tensor.zeros(3, 5))
    with pytest.raises(ShapeError) as ei:
        require_same_inner(Tensor.zeros(2, 3), Tensor.zeros(2, 3))
    assert ei.value.kind is ShapeErrorKind.DIMENSION_MISMATCH
    assert ei.value.other_shape == (2, 3)


def test_require_rows():
    require_rows(Tensor.zeros(3), 3)
    require_rows(Tensor.zeros(3, 2), 3)
    with pytest.raises(ShapeError) as ei:
        require_rows(Tensor.zeros(4), 3)
    assert ei.value.kind is ShapeErrorKind.DIMENSION_MISMATCH
    with pytest.raises(ShapeError) as ei:
        require_rows(Tensor.zeros(3, 1, 1), 3)
    assert ei.value.kind is ShapeErrorKind.NOT_A_MATRIX


def test_require_column_major_returns_same_tensor_when_ready():
    f = Tensor.ones(3, 3, order=Order.COL_MAJOR)
    assert require_column_major(f) is f


def test_require_column_major_duplicates_row_major():
    c = Tensor(np.arange(6.0).reshape(2, 3))
    out = require_column_major(c)
    assert out is not c
    assert out.is_fortran
    assert_close(tdata(out), tdata(c))
    assert c.is_contiguous


def test_require_column_major_promotes_integers():
    i = Tensor.ones(2, 2, dtype=np.int32, order=Order.COL_MAJOR)
    out = require_column_major(i)
    assert out.dtype == np.float64
    assert out.is_fortran
    assert i.dtype == np.int32


def test_require_column_major_keeps_single_precision():
    s = Tensor.ones(2, 2, dtype=np.float32)
    assert require_column_major(s).dtype == np.float32
    z = Tensor.ones(2, 2, dtype=np.complex64)
    assert require_column_major(z).dtype == np.complex64


def test_column_major_copy_always_copies():
    f = Tensor.ones(2, 2, order=Order.COL_MAJOR)
    out = column_major_copy(f)
    assert out is not f
    assert not np.shares_memory(out.data, f.data)
    assert column_major_copy(f, np.complex128).dtype == np.complex128


def test_require_fortran_kernel_layout():
    require_fortran_kernel_layout(Tensor.ones(2, 2, order=Order.COL_MAJOR))
    with pytest.raises(LayoutError):
        require_fortran_kernel_layout(Tensor.ones(3, 2))
    with pytest.raises(LayoutError, match="float or complex"):
        require_fortran_kernel_layout(Tensor.ones(2, 2, dtype=np.int64, order=Order.COL_MAJOR))
