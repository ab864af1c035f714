import logging

import numpy as np
import pytest

from tensorla import kernels
from tensorla.errors import NumericalError, NumericalErrorKind
from tensorla.kernels import (
    KernelCall,
    check_status,
    geev_workspace,
    gehrd_workspace,
    getri_workspace,
    lange_workspace,
    svd_workspace,
    syev_workspace,
)
from tensorla.storage import Order
from tensorla.tensor import Tensor
from tests.utils import assert_close, make_tensor, tdata


def test_svd_workspace_formula():
    lwork, liwork = svd_workspace(100, 50)
    assert lwork == 2 * 100 * 50 + 2 * 50 * 50 + 50
    assert liwork == 8 * 50
    assert svd_workspace(50, 100) == (lwork, liwork)


def test_svd_workspace_respects_lapack_minimum():
    lwork, liwork = svd_workspace(5, 1)
    assert lwork >= 4 + 6 + 5
    assert liwork == 8
    assert svd_workspace(0, 0) == (1, 1)


def test_eigen_workspaces():
    assert syev_workspace(4) == 11
    assert syev_workspace(0) == 1
    assert geev_workspace(4, vectors=False) == 12
    assert geev_workspace(4, vectors=True) == 16
    assert geev_workspace(0, vectors=False) == 1


def test_other_workspaces():
    assert getri_workspace(3) == 9
    assert getri_workspace(0) == 1
    assert gehrd_workspace(5) == 5
    assert lange_workspace("I", 7) == 7
    assert lange_workspace("i", 7) == 7
    assert lange_workspace("F", 7) == 0


@pytest.mark.parametrize("name, dtype, expected", [
    ("syev", np.float64, "dsyev"),
    ("syev", np.float32, "ssyev"),
    ("syev", np.complex128, "zheev"),
    ("orgqr", np.complex64, "cungqr"),
    ("getrf", np.complex128, "zgetrf"),
])
def test_lapack_func_resolves_typed_kernels(name, dtype, expected):
    t = Tensor.ones(2, 2, dtype=dtype, order=Order.COL_MAJOR)
    func, typed = kernels.lapack_func(name, t)
    assert typed == expected
    assert callable(func)


def test_blas_func_resolves_gemm():
    t = Tensor.ones(2, 2, dtype=np.float32)
    _, typed = kernels.blas_func("gemm", t, t)
    assert typed == "sgemm"


def test_check_status_success_is_silent():
    check_status(KernelCall("dgetrf", (2, 2), 2), 0, kernels.LU_FAILURE)


@pytest.mark.parametrize("family, info, text", [
    (NumericalErrorKind.SINGULAR_MATRIX, 2, "singular"),
    (NumericalErrorKind.CONVERGENCE_FAILURE, 3, "converge"),
    (NumericalErrorKind.NOT_POSITIVE_DEFINITE, 1, "positive definite"),
    (NumericalErrorKind.SINGULAR_MATRIX, -4, "illegal value"),
])
def test_check_status_translates_failures(family, info, text):
    call = KernelCall("dxxx", (3, 3), 3)
    with pytest.raises(NumericalError, match=text) as ei:
        check_status(call, info, family)
    assert ei.value.kind is family
    assert ei.value.kernel == "dxxx"
    assert ei.value.info == info


def test_kernel_calls_are_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="tensorla.kernels")
    a = make_tensor([[4.0, 3.0], [6.0, 3.0]], order=Order.COL_MAJOR)
    kernels.getrf(a)
    assert any("calling dgetrf" in r.getMessage() for r in caplog.records)


def test_getrf_pivots_are_zero_based():
    a = make_tensor([[1.0, 2.0], [3.0, 4.0]], order=Order.COL_MAJOR)
    piv = kernels.getrf(a)
    assert piv.tolist() == [1, 1]
    assert_close(tdata(a)[0], [3.0, 4.0])


def test_getrf_singular_raises():
    a = make_tensor([[1.0, 2.0], [2.0, 4.0]], order=Order.COL_MAJOR)
    with pytest.raises(NumericalError) as ei:
        kernels.getrf(a)
    assert ei.value.kind is NumericalErrorKind.SINGULAR_MATRIX
    assert ei.value.info == 2
    assert ei.value.kernel == "dgetrf"


@pytest.mark.parametrize("order_a, order_b", [
    (Order.ROW_MAJOR, Order.ROW_MAJOR),
    (Order.ROW_MAJOR, Order.COL_MAJOR),
    (Order.COL_MAJOR, Order.ROW_MAJOR),
    (Order.COL_MAJOR, Order.COL_MAJOR),
])
def test_gemm_layouts(rng, order_a, order_b):
    a_np = rng.normal(size=(4, 3))
    b_np = rng.normal(size=(3, 5))
    a = make_tensor(a_np, order=order_a)
    b = make_tensor(b_np, order=order_b)
    out = kernels.gemm(a, b)
    assert out.shape == (4, 5)
    assert_close(tdata(out), a_np @ b_np, atol=1e-12, rtol=1e-12)
    assert_close(tdata(a), a_np)


def test_gemm_operand_flags():
    c = Tensor.zeros(4, 3)
    f = Tensor.zeros(4, 3, order=Order.COL_MAJOR)
    buf, trans, ld = kernels._gemm_operand(c)
    assert (trans, ld) == (1, 3)
    assert buf.flags.f_contiguous and buf.shape == (3, 4)
    buf, trans, ld = kernels._gemm_operand(f)
    assert (trans, ld) == (0, 4)
    assert buf is f.data


def test_syev_writes_vectors_back(rng):
    a_np = rng.normal(size=(4, 4))
    a_np = a_np + a_np.T
    a = make_tensor(a_np, order=Order.COL_MAJOR)
    w = kernels.syev(a, vectors=True)
    v = tdata(a)
    assert_close(a_np @ v, v * tdata(w), atol=1e-10)


def test_lange_norm_orders():
    a = make_tensor([[1.0, -2.0], [3.0, 4.0]], order=Order.COL_MAJOR)
    assert kernels.lange(a, "M") == 4.0
    assert kernels.lange(a, "1") == 6.0
    assert kernels.lange(a, "I") == 7.0
    assert kernels.lange(a, "F") == pytest.approx(np.sqrt(30.0))
