import numpy as np
import pytest

from tensorla.storage import (
    LayoutFlags,
    Order,
    bounds_checking,
    buffer_index,
    is_bounds_checking,
    ravel_index,
    set_bounds_checking,
    triangle_coordinates,
    unravel_index,
)
from tensorla.tensor import Tensor
from tests.utils import assert_close, tdata


def _grid():
    return Tensor(np.arange(6, dtype=np.int32).reshape(2, 3))


def test_unravel_index_row_major():
    assert unravel_index(0, (2, 3)) == (0, 0)
    assert unravel_index(5, (2, 3)) == (1, 2)
    assert unravel_index(3, (2, 3)) == (1, 0)
    assert unravel_index(7, (2, 2, 2)) == (1, 1, 1)


def test_unravel_index_out_of_bounds():
    with pytest.raises(IndexError):
        unravel_index(6, (2, 3))
    with pytest.raises(IndexError):
        unravel_index(-1, (2, 3))


def test_ravel_index_inverts_unravel():
    shape = (3, 4)
    for flat in range(12):
        assert ravel_index(unravel_index(flat, shape), shape) == flat


def test_ravel_index_rejects_bad_index():
    with pytest.raises(IndexError):
        ravel_index((0, 4), (3, 4))
    with pytest.raises(IndexError):
        ravel_index((0,), (3, 4))


def test_buffer_index_uses_strides_and_offset():
    assert buffer_index((1, 2), (2, 3), (3, 1)) == 5
    assert buffer_index((1, 2), (2, 3), (1, 2)) == 5
    assert buffer_index((0, 1), (2, 2), (3, 1), offset=4) == 5


def test_strides_are_in_elements():
    t = Tensor(np.zeros((2, 3), dtype=np.float64))
    assert t.strides == (3, 1)
    assert t.T.strides == (1, 3)
    f = Tensor.zeros(2, 3, dtype=np.float32, order=Order.COL_MAJOR)
    assert f.strides == (1, 2)


def test_get_reads_through_transposed_view():
    t = _grid()
    tt = t.T
    assert tt.shape == (3, 2)
    assert tt.is_view
    assert tt.get((2, 1)) == 5
    assert tt.get((1, 0)) == 1


def test_slice_view_offset_and_shared_buffer():
    t = _grid()
    s = t[1:, 1:]
    assert s.offset == 4
    assert s.buffer is t.buffer
    assert s.get((0, 0)) == 4
    s.set((0, 1), 50)
    assert t.get((1, 2)) == 50


def test_get_out_of_bounds_raises():
    t = _grid()
    with pytest.raises(IndexError):
        t.get((2, 0))
    with pytest.raises(IndexError):
        t.get((0, 0, 0))


def test_bounds_checking_context_restores_previous_state():
    t = _grid()
    assert is_bounds_checking()
    with bounds_checking(False):
        assert not is_bounds_checking()
        assert t.get((1, 1)) == 4
        with bounds_checking(True):
            assert is_bounds_checking()
        assert not is_bounds_checking()
    assert is_bounds_checking()


def test_set_bounds_checking_global():
    set_bounds_checking(False)
    assert not is_bounds_checking()
    set_bounds_checking(True)
    assert is_bounds_checking()


def test_layout_flags():
    t = _grid()
    assert t.flags == LayoutFlags(contiguous=True, fortran=False)
    assert t.T.flags == LayoutFlags(contiguous=False, fortran=True)
    assert t[:, ::2].flags == LayoutFlags(contiguous=False, fortran=False)
    v = Tensor(np.arange(4, dtype=np.int32))
    assert v.flags == LayoutFlags(contiguous=True, fortran=True)


def test_dup_column_major_is_independent():
    t = _grid()
    f = t.dup(Order.COL_MAJOR)
    assert f.is_fortran and not f.is_contiguous
    assert not f.is_view
    assert f.strides == (1, 2)
    assert_close(tdata(f), tdata(t))
    f.set((0, 0), 99)
    assert t.get((0, 0)) == 0


def test_dup_of_strided_view_is_contiguous():
    t = Tensor(np.arange(20, dtype=np.float64).reshape(4, 5))
    v = t[::2, 1::2]
    assert not (v.is_contiguous or v.is_fortran)
    c = v.dup()
    f = v.dup("F")
    assert c.is_contiguous and f.is_fortran
    assert_close(tdata(c), np.arange(20.0).reshape(4, 5)[::2, 1::2])
    assert_close(tdata(f), tdata(c))


def test_copy_and_astype_keep_values():
    t = _grid()
    c = t.copy()
    assert c.dtype == np.int32 and c.is_contiguous
    d = t.T.astype(np.float64)
    assert d.dtype == np.float64
    assert d.is_fortran
    assert_close(tdata(d), np.arange(6).reshape(2, 3).T)


def test_triangle_coordinates():
    rows, cols = triangle_coordinates((2, 3))
    assert rows.tolist() == [[0, 0, 0], [1, 1, 1]]
    assert cols.tolist() == [[0, 1, 2], [0, 1, 2]]
    rows, cols = triangle_coordinates((3, 0))
    assert rows.shape == (3, 0) and cols.shape == (3, 0)
