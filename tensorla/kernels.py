"""
Bindings to the dense LAPACK/BLAS kernels.

Each binding takes tensors already validated by :mod:`tensorla.shape_ops`
and laid out column-major, computes the parameters the kernel expects
(dimensions, leading dimension, workspace), calls the typed kernel resolved
through SciPy, and turns a nonzero status into a
:class:`~tensorla.errors.NumericalError`.

Conventions:
    - Kernels are resolved per element kind (``s``/``d``/``c``/``z``) with
      ``scipy.linalg.get_lapack_funcs`` and ``get_blas_funcs``
    - Inputs are passed with ``overwrite_*=1``; a column-major buffer of the
      kernel kind is then updated in place
    - Pivot indices returned by the bindings are zero-based
    - Failures are never retried
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from scipy.linalg import get_blas_funcs, get_lapack_funcs

from tensorla.dtypes import is_complex
from tensorla.errors import NumericalError, NumericalErrorKind
from tensorla.tensor import Tensor

logger = logging.getLogger(__name__)

# Status-code families: LU-based, eigen/SVD and Householder kernels.
LU_FAILURE = NumericalErrorKind.SINGULAR_MATRIX
EIGEN_FAILURE = NumericalErrorKind.CONVERGENCE_FAILURE
CHOLESKY_FAILURE = NumericalErrorKind.NOT_POSITIVE_DEFINITE

# Real kernel names whose complex counterpart has a different name.
_COMPLEX_ALIASES: Dict[str, str] = {
    "syev": "heev",
    "orgqr": "ungqr",
}

NORM_ORDERS = frozenset("FfEeIi1OoMm")


@dataclass(frozen=True)
class KernelCall:
    """
    Parameters of one kernel invocation.

    Attributes:
        kernel: Typed kernel name, e.g. ``'dgesdd'``
        dims: Matrix dimensions passed to the kernel
        lda: Leading dimension of the primary buffer
        lwork: Size of the real/complex workspace, if any
        liwork: Size of the integer workspace, if any
    """
    kernel: str
    dims: Tuple[int, ...]
    lda: int
    lwork: Optional[int] = None
    liwork: Optional[int] = None

    def log(self) -> None:
        logger.debug(
            "calling %s dims=%s lda=%d lwork=%s liwork=%s",
            self.kernel, self.dims, self.lda, self.lwork, self.liwork,
        )


# Workspace sizing. LAPACK rejects a zero-length workspace, so every size is
# floored at 1.

def svd_workspace(m: int, n: int) -> Tuple[int, int]:
    """
    Real and integer workspace for ``gesdd`` in full-matrix (``'A'``) mode.

    Real scratch is ``max(5*mn**2 + 5*mn, 2*mx*mn + 2*mn**2 + mn)`` and integer
    scratch ``8*mn`` with ``mn = min(m, n)`` and ``mx = max(m, n)``. The real
    size never drops below the documented LAPACK minimum
    ``4*mn**2 + 6*mn + mx`` (larger only when ``mn == 1``) nor below the
    bound the SciPy wrapper enforces.
    """
    mn, mx = min(m, n), max(m, n)
    lwork = max(5 * mn * mn + 5 * mn, 2 * mx * mn + 2 * mn * mn + mn)
    lapack_min = 4 * mn * mn + 6 * mn + mx
    wrapper_min = 4 * mn * mn + mx + 9 * mn
    return max(lwork, lapack_min, wrapper_min, 1), max(8 * mn, 1)


def syev_workspace(n: int) -> int:
    """Workspace for the symmetric eigensolver: ``3n - 1``."""
    return max(3 * n - 1, 1)


def geev_workspace(n: int, vectors: bool) -> int:
    """
    Workspace for the general eigensolver: ``3n``.

    LAPACK requires ``4n`` once either side's eigenvectors are computed, so
    that size is used whenever ``vectors`` is true.
    """
    return max(4 * n if vectors else 3 * n, 1)


def getri_workspace(n: int) -> int:
    """Workspace for the LU-based inverse: ``n*n``."""
    return max(n * n, 1)


def gehrd_workspace(n: int) -> int:
    """Workspace for the Hessenberg reduction: ``n``."""
    return max(n, 1)


def lange_workspace(order: str, m: int) -> int:
    """Workspace for the matrix norm: the row count for ``'I'``, none otherwise."""
    return m if order.upper() == "I" else 0


def lapack_func(name: str, *tensors: Tensor) -> Tuple[Callable[..., Any], str]:
    """
    Resolve the typed LAPACK kernel ``name`` for the kinds of ``tensors``.

    Complex kinds use the Hermitian/unitary counterparts of the symmetric and
    orthogonal kernels (``syev`` → ``heev``, ``orgqr`` → ``ungqr``).

    Returns:
        The kernel and its typed name (e.g. ``zheev``)
    """
    arrays = tuple(t.data for t in tensors)
    if any(is_complex(a.dtype) for a in arrays):
        name = _COMPLEX_ALIASES.get(name, name)
    (func,) = get_lapack_funcs((name,), arrays)
    return func, func.typecode + name


def blas_func(name: str, *tensors: Tensor) -> Tuple[Callable[..., Any], str]:
    """Resolve the typed BLAS kernel ``name`` for the kinds of ``tensors``."""
    (func,) = get_blas_funcs((name,), tuple(t.data for t in tensors))
    return func, func.typecode + name


def check_status(call: KernelCall, info: int, kind: NumericalErrorKind) -> None:
    """
    Translate a kernel status into success or a :class:`NumericalError`.

    Args:
        call: The call that produced the status
        info: Status returned by the kernel; 0 means success
        kind: Failure family of the calling operation

    Raises:
        NumericalError: If ``info`` is nonzero
    """
    info = int(info)
    if info == 0:
        return
    if info < 0:
        detail = f"argument {-info} had an illegal value"
    elif kind is LU_FAILURE:
        detail = f"U[{info - 1}, {info - 1}] is exactly zero; the matrix is singular"
    elif kind is CHOLESKY_FAILURE:
        detail = f"the leading minor of order {info} is not positive definite"
    else:
        detail = f"the algorithm failed to converge ({info})"
    logger.debug("%s returned info=%d", call.kernel, info)
    raise NumericalError(
        f"{call.kernel} failed: {detail}",
        kind=kind,
        kernel=call.kernel,
        info=info,
    )


def query_workspace(func: Callable[..., Any], *args: Any, **kwargs: Any) -> int:
    """
    Ask a kernel for its optimal workspace with the standard ``lwork=-1`` query.

    The kernel must return its ``work`` array second to last.
    """
    ret = func(*args, lwork=-1, **kwargs)
    return max(int(ret[-2][0].real), 1)


def _writeback(target: Tensor, result: np.ndarray) -> None:
    # The kernel updates a column-major buffer of its own kind in place;
    # anything else comes back as a copy.
    if not np.shares_memory(target.data, result):
        target.data[...] = result


def potrf(a: Tensor, lower: bool) -> None:
    """
    Cholesky factorization of the square column-major ``a``, in place.

    Only the selected triangle is written; the other one keeps its input
    values and is left for the caller to clear.
    """
    func, name = lapack_func("potrf", a)
    n = a.shape[0]
    call = KernelCall(name, (n,), max(n, 1))
    call.log()
    c, info = func(a.data, lower=int(lower), clean=0, overwrite_a=1)
    check_status(call, info, CHOLESKY_FAILURE)
    _writeback(a, c)


def geqrf(a: Tensor) -> Tensor:
    """
    Householder QR of the column-major ``a``, in place.

    On return ``a`` holds ``R`` on and above the diagonal and the reflectors
    below it.

    Returns:
        The ``min(m, n)`` reflector scalars (``tau``)
    """
    func, name = lapack_func("geqrf", a)
    m, n = a.shape
    lwork = query_workspace(func, a.data)
    call = KernelCall(name, (m, n), max(m, 1), lwork=lwork)
    call.log()
    qr, tau, _, info = func(a.data, lwork=lwork, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    _writeback(a, qr)
    return Tensor(tau)


def orgqr(a: Tensor, tau: Tensor) -> Tensor:
    """
    Accumulate the reflectors held in ``a`` into an explicit ``Q``.

    ``a`` is ``m x k`` with ``m >= k`` and ``len(tau) <= k``.

    Returns:
        ``Q`` with the shape of ``a``
    """
    func, name = lapack_func("orgqr", a)
    m, k = a.shape
    lwork = query_workspace(func, a.data, tau.data)
    call = KernelCall(name, (m, k, tau.shape[0]), max(m, 1), lwork=lwork)
    call.log()
    q, _, info = func(a.data, tau.data, lwork=lwork, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    return Tensor(q)


def gesdd(a: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """
    Divide-and-conquer SVD of ``a`` in full-matrix mode.

    ``a`` is destroyed.

    Returns:
        ``(U, S, Vt)`` with ``U`` ``m x m``, ``S`` the ``min(m, n)`` singular
        values in descending order and ``Vt`` ``n x n``
    """
    func, name = lapack_func("gesdd", a)
    m, n = a.shape
    lwork, liwork = svd_workspace(m, n)
    call = KernelCall(name, (m, n), max(m, 1), lwork=lwork, liwork=liwork)
    call.log()
    u, s, vt, info = func(a.data, compute_uv=1, full_matrices=1, lwork=lwork, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    return Tensor(u), Tensor(s), Tensor(vt)


def syev(a: Tensor, vectors: bool) -> Tensor:
    """
    Symmetric (Hermitian) eigensolver on the lower triangle of ``a``.

    With ``vectors`` the eigenvectors overwrite ``a`` column by column;
    otherwise ``a`` is destroyed.

    Returns:
        Eigenvalues in ascending order (always real)
    """
    func, name = lapack_func("syev", a)
    n = a.shape[0]
    lwork = syev_workspace(n)
    call = KernelCall(name, (n,), max(n, 1), lwork=lwork)
    call.log()
    w, v, info = func(a.data, compute_v=int(vectors), lower=1, lwork=lwork, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    if vectors:
        _writeback(a, v)
    return Tensor(w)


@dataclass(frozen=True)
class GeevOutput:
    """
    Raw output of the general eigensolver.

    Attributes:
        values: Eigenvalues; for real kinds only their real parts
        imag: Imaginary parts for real kinds, ``None`` for complex kinds
        left: Left eigenvectors as columns, if computed
        right: Right eigenvectors as columns, if computed

    For real kinds a complex-conjugate pair ``j, j+1`` (``imag[j] > 0``) is
    stored as two real columns holding the real and imaginary parts of the
    eigenvector for ``j``.
    """
    values: Tensor
    imag: Optional[Tensor]
    left: Optional[Tensor]
    right: Optional[Tensor]


def geev(a: Tensor, left: bool, right: bool) -> GeevOutput:
    """General eigensolver; ``a`` is destroyed."""
    func, name = lapack_func("geev", a)
    n = a.shape[0]
    lwork = geev_workspace(n, left or right)
    call = KernelCall(name, (n,), max(n, 1), lwork=lwork)
    call.log()
    ret = func(a.data, compute_vl=int(left), compute_vr=int(right), lwork=lwork, overwrite_a=1)
    check_status(call, ret[-1], EIGEN_FAILURE)
    if is_complex(a.dtype):
        w, vl, vr, _ = ret
        imag = None
    else:
        w, wi, vl, vr, _ = ret
        imag = Tensor(wi)
    return GeevOutput(
        values=Tensor(w),
        imag=imag,
        left=Tensor(vl) if left else None,
        right=Tensor(vr) if right else None,
    )


def getrf(a: Tensor) -> np.ndarray:
    """
    LU factorization with partial pivoting of ``a``, in place.

    Returns:
        Zero-based pivot indices: row ``j`` was interchanged with ``piv[j]``

    Raises:
        NumericalError: ``SINGULAR_MATRIX`` if a pivot is exactly zero
    """
    func, name = lapack_func("getrf", a)
    m, n = a.shape
    call = KernelCall(name, (m, n), max(m, 1))
    call.log()
    lu, piv, info = func(a.data, overwrite_a=1)
    check_status(call, info, LU_FAILURE)
    _writeback(a, lu)
    return piv


def getri(lu: Tensor, piv: np.ndarray) -> Tensor:
    """Inverse from an LU factorization; ``lu`` is overwritten when possible."""
    func, name = lapack_func("getri", lu)
    n = lu.shape[0]
    lwork = getri_workspace(n)
    call = KernelCall(name, (n,), max(n, 1), lwork=lwork)
    call.log()
    inv_a, info = func(lu.data, piv, lwork=lwork, overwrite_lu=1)
    check_status(call, info, LU_FAILURE)
    return Tensor(inv_a)


def gesv(a: Tensor, b: Tensor) -> Tensor:
    """
    Solve ``a @ x = b`` by LU; ``a`` is destroyed.

    ``b`` is ``n x nrhs`` column-major and receives the solution in place.
    """
    func, name = lapack_func("gesv", a, b)
    n, nrhs = b.shape
    call = KernelCall(name, (n, nrhs), max(n, 1))
    call.log()
    _, _, x, info = func(a.data, b.data, overwrite_a=1, overwrite_b=1)
    check_status(call, info, LU_FAILURE)
    _writeback(b, x)
    return b


def gebal(a: Tensor) -> Tuple[int, int]:
    """
    Balance ``a`` in place, permuting and scaling (``'B'``).

    Returns:
        Zero-based ``(lo, hi)``: rows/columns outside ``lo..hi`` are already
        isolated eigenvalues
    """
    func, name = lapack_func("gebal", a)
    n = a.shape[0]
    call = KernelCall(name, (n,), max(n, 1))
    call.log()
    ba, lo, hi, _, info = func(a.data, scale=1, permute=1, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    _writeback(a, ba)
    return int(lo), int(hi)


def gehrd(a: Tensor, lo: int, hi: int) -> None:
    """
    Reduce ``a`` to upper-Hessenberg form in place.

    On return ``a`` holds ``H`` on and above the first sub-diagonal and the
    reflectors below it.
    """
    func, name = lapack_func("gehrd", a)
    n = a.shape[0]
    lwork = gehrd_workspace(n)
    call = KernelCall(name, (n, lo, hi), max(n, 1), lwork=lwork)
    call.log()
    ht, _, info = func(a.data, lo=lo, hi=hi, lwork=lwork, overwrite_a=1)
    check_status(call, info, EIGEN_FAILURE)
    _writeback(a, ht)


def lange(a: Tensor, order: str) -> float:
    """
    Matrix norm of the column-major ``a`` selected by the single-letter ``order``.

    ``'F'``/``'E'`` Frobenius, ``'I'`` infinity (max row sum), ``'1'``/``'O'``
    one (max column sum), ``'M'`` largest magnitude.
    """
    func, name = lapack_func("lange", a)
    m, n = a.shape
    call = KernelCall(name, (m, n), max(m, 1), lwork=lange_workspace(order, m))
    call.log()
    return float(func(order, a.data))


def gemm(a: Tensor, b: Tensor) -> Tensor:
    """
    General matrix product ``a @ b`` with ``alpha = 1.0`` and ``beta = 0.0``.

    Each operand must be contiguous row- or column-major and of the kernel
    kind. A row-major operand is handed over as its column-major transpose
    with the transpose flag set (leading dimension = its column count), a
    column-major one as-is (leading dimension = its row count), so neither is
    copied.

    Returns:
        The ``m x n`` product, column-major
    """
    func, name = blas_func("gemm", a, b)
    m, k = a.shape
    n = b.shape[1]
    a_buf, trans_a, lda = _gemm_operand(a)
    b_buf, trans_b, ldb = _gemm_operand(b)
    call = KernelCall(name, (m, n, k), lda)
    call.log()
    logger.debug("%s trans_a=%d trans_b=%d ldb=%d", name, trans_a, trans_b, ldb)
    c = func(1.0, a_buf, b_buf, beta=0.0, trans_a=trans_a, trans_b=trans_b)
    return Tensor(c)


def _gemm_operand(t: Tensor) -> Tuple[np.ndarray, int, int]:
    rows, cols = t.shape
    if t.is_contiguous:
        return t.data.T, 1, max(cols, 1)
    return t.data, 0, max(rows, 1)

