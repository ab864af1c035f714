"""
Dense linear algebra on tensors.

Every operation validates shapes first (nothing is allocated or modified when
validation fails), then works on a fresh column-major duplicate of its input
unless it is an explicit in-place variant (trailing underscore), and hands
that duplicate to the kernels in :mod:`tensorla.kernels`.
"""

from typing import Any, Tuple

import numpy as np

from tensorla import kernels
from tensorla.dtypes import kernel_dtype
from tensorla.shape_ops import (
    column_major_copy,
    require_fortran_kernel_layout,
    require_column_major,
    require_matrix,
    require_rows,
    require_same_inner,
    require_square_matrix,
)
from tensorla.storage import Order, triangle_coordinates
from tensorla.tensor import Tensor


def triu_(t: Tensor, k: int = 0) -> Tensor:
    """
    Zero the elements of ``t`` below the ``k``-th diagonal, in place.

    An element at ``(row, col)`` is cleared when ``row > col - k``. Positions
    come from the flat-index mapping ``row = flat // ncols``,
    ``col = flat % ncols``.

    Parameters
    ----------
    t : Tensor
        Matrix to modify. Any layout, including strided views.
    k : int, default=0
        Diagonal offset. ``k > 0`` moves the kept diagonal up, ``k < 0`` down.

    Returns
    -------
    Tensor
        ``t`` itself.

    Examples
    --------
    >>> a = Tensor.ones(3, 3, dtype=np.int32)
    >>> triu_(a)
    tensor([[1, 1, 1],
            [0, 1, 1],
            [0, 0, 1]], dtype=int32, layout='C')
    """
    require_matrix(t)
    rows, cols = triangle_coordinates(t.shape)
    t.data[rows > cols - k] = 0
    return t


def triu(t: Tensor, k: int = 0) -> Tensor:
    """Upper triangle of ``t`` from the ``k``-th diagonal on, as a copy. See :func:`triu_`."""
    require_matrix(t)
    return triu_(t.dup(), k)


def tril_(t: Tensor, k: int = 0) -> Tensor:
    """
    Zero the elements of ``t`` above the ``k``-th diagonal, in place.

    An element at ``(row, col)`` is cleared when ``row < col - k``.

    Examples
    --------
    >>> a = Tensor.ones(3, 3, dtype=np.int32)
    >>> tril_(a)
    tensor([[1, 0, 0],
            [1, 1, 0],
            [1, 1, 1]], dtype=int32, layout='C')
    """
    require_matrix(t)
    rows, cols = triangle_coordinates(t.shape)
    t.data[rows < cols - k] = 0
    return t


def tril(t: Tensor, k: int = 0) -> Tensor:
    """Lower triangle of ``t`` up to the ``k``-th diagonal, as a copy. See :func:`tril_`."""
    require_matrix(t)
    return tril_(t.dup(), k)


def diagonal(t: Tensor) -> Tensor:
    """Main diagonal of the matrix ``t`` as a new 1-D tensor."""
    require_matrix(t)
    return Tensor(np.diagonal(t.data).copy())


def cholesky_(t: Tensor, *, lower: bool = True) -> Tensor:
    """
    Cholesky factorization of ``t`` in its own buffer.

    Parameters
    ----------
    t : Tensor
        Square, Hermitian positive-definite, column-major matrix of a float
        or complex kind.
    lower : bool, default=True
        Return ``L`` with ``t = L @ L.H``; otherwise ``U`` with ``t = U.H @ U``.

    Returns
    -------
    Tensor
        ``t`` itself, holding the factor with the other triangle zeroed.

    Raises
    ------
    ShapeError
        If ``t`` is not a square matrix.
    LayoutError
        If ``t`` is not column-major or not a float/complex kind.
    NumericalError
        ``NOT_POSITIVE_DEFINITE`` if the factorization breaks down.
    """
    require_square_matrix(t)
    require_fortran_kernel_layout(t)
    kernels.potrf(t, lower)
    return tril_(t) if lower else triu_(t)


def cholesky(t: Tensor, *, lower: bool = True) -> Tensor:
    """
    Cholesky factorization, returning ``L`` (or ``U``) as a new tensor.

    Returns the factor ``L`` of ``t = L @ L.H`` where ``t`` is Hermitian
    (symmetric if real) and positive definite. Only the factor is returned.

    Examples
    --------
    >>> t = Tensor([[2, -1, 0], [-1, 2, -1], [0, -1, 2]], dtype=np.float32)
    >>> cholesky(t)
    tensor([[ 1.4142135,  0.       ,  0.       ],
            [-0.70710677,  1.2247449,  0.       ],
            [ 0.       , -0.8164966,  1.1547005]], dtype=float32, layout='F')
    """
    require_square_matrix(t)
    return cholesky_(column_major_copy(t), lower=lower)


def qr(t: Tensor) -> Tuple[Tensor, Tensor]:
    """
    QR factorization ``t = Q @ R``.

    ``R`` is read from the upper triangle of the factored buffer before the
    reflectors in it are accumulated into ``Q``.

    Parameters
    ----------
    t : Tensor
        ``m x n`` matrix.

    Returns
    -------
    (Tensor, Tensor)
        ``Q`` (``m x k``) with orthonormal columns and upper-triangular ``R``
        (``k x n``), ``k = min(m, n)``.

    Examples
    --------
    >>> t = Tensor([[0, 1], [1, 1], [1, 1], [2, 1]], dtype=np.float32)
    >>> q, r = qr(t)
    >>> q.shape, r.shape
    ((4, 2), (2, 2))
    """
    require_matrix(t)
    m, n = t.shape
    k = min(m, n)
    a = column_major_copy(t)
    if a.size == 0:
        q = Tensor.zeros(m, k, dtype=a.dtype, order=Order.COL_MAJOR)
        return q, Tensor.zeros(k, n, dtype=a.dtype, order=Order.COL_MAJOR)
    tau = kernels.geqrf(a)
    r = triu_(Tensor(np.array(a.data[:k, :], order="F")))
    q = kernels.orgqr(a[:, :k], tau)
    return q, r


def svd(t: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
    """
    Full singular value decomposition ``t = U @ diag(S) @ Vt``.

    Returns
    -------
    (Tensor, Tensor, Tensor)
        ``U`` (``m x m``), singular values ``S`` in descending order
        (``min(m, n)``, real kind) and ``Vt`` (``n x n``).

    Raises
    ------
    NumericalError
        ``CONVERGENCE_FAILURE`` if the kernel does not converge.
    """
    require_matrix(t)
    a = column_major_copy(t)
    if a.size == 0:
        # An empty matrix has no singular values; U and Vt stay orthogonal.
        m, n = a.shape
        return (
            Tensor(np.eye(m, dtype=a.dtype, order="F")),
            Tensor(np.zeros(0, dtype=a.data.real.dtype)),
            Tensor(np.eye(n, dtype=a.dtype, order="F")),
        )
    return kernels.gesdd(a)


def eigh(t: Tensor) -> Tuple[Tensor, Tensor]:
    """
    Eigen-decomposition of a symmetric (Hermitian) matrix.

    Only the lower triangle of ``t`` is read.

    Returns
    -------
    (Tensor, Tensor)
        Ascending eigenvalues ``w`` and eigenvectors ``v`` as columns, so
        ``t @ v[:, i] == w[i] * v[:, i]``.

    Examples
    --------
    >>> w, v = eigh(Tensor([[0, 1], [1, 1]], dtype=np.float32))
    >>> w
    tensor([-0.618034,  1.618034], dtype=float32, layout='C')
    """
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return Tensor(np.zeros(0, dtype=a.data.real.dtype)), a
    w = kernels.syev(a, vectors=True)
    return w, a


def eigvalsh(t: Tensor) -> Tensor:
    """Ascending eigenvalues of a symmetric (Hermitian) matrix; no eigenvectors."""
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return Tensor(np.zeros(0, dtype=a.data.real.dtype))
    return kernels.syev(a, vectors=False)


def _pair_up(values: np.ndarray, imag: np.ndarray) -> np.ndarray:
    return values + 1j * imag


def _pair_up_vectors(v: np.ndarray, imag: np.ndarray) -> np.ndarray:
    # Columns j, j+1 of a conjugate pair hold the real and imaginary parts of
    # the eigenvector for eigenvalue j; eigenvector j+1 is its conjugate.
    out = v.astype(np.result_type(v.dtype, np.complex64), order="F")
    j = 0
    n = imag.shape[0]
    while j < n:
        if imag[j] != 0 and j + 1 < n:
            re, im = v[:, j], v[:, j + 1]
            out[:, j] = re + 1j * im
            out[:, j + 1] = re - 1j * im
            j += 2
        else:
            j += 1
    return out


def eig(t: Tensor, side: str = "right") -> Tuple[Tensor, Tensor]:
    """
    Eigenvalues and eigenvectors of a general square matrix.

    Parameters
    ----------
    t : Tensor
        Square matrix.
    side : {'right', 'left'}, default='right'
        Which eigenvectors to return: right (``t @ v = w * v``) or left
        (``u.H @ t = w * u.H``). Both are computed by the kernel.

    Returns
    -------
    (Tensor, Tensor)
        Eigenvalues ``w`` and eigenvectors as columns. When the matrix is real
        and some eigenvalues form complex-conjugate pairs, both results are
        complex; otherwise they keep the real kind.

    Examples
    --------
    >>> w, v = eig(Tensor([[0, -1], [1, 0]], dtype=np.float64))
    >>> w
    tensor([0.+1.j, 0.-1.j], dtype=complex128, layout='C')
    """
    if side not in ("right", "left"):
        raise ValueError(f"side must be 'right' or 'left', got {side!r}")
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return Tensor(np.zeros(0, dtype=a.dtype)), a
    out = kernels.geev(a, left=True, right=True)
    vectors = out.right if side == "right" else out.left
    if out.imag is None or not np.any(out.imag.data):
        return out.values, vectors
    w = _pair_up(out.values.data, out.imag.data)
    v = _pair_up_vectors(vectors.data, out.imag.data)
    return Tensor(w), Tensor(v)


def eigvals(t: Tensor) -> Tensor:
    """
    Eigenvalues of a general square matrix; no eigenvectors are computed.

    Complex-conjugate pairs of a real matrix are returned as a complex tensor.
    """
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return Tensor(np.zeros(0, dtype=a.dtype))
    out = kernels.geev(a, left=False, right=False)
    if out.imag is None or not np.any(out.imag.data):
        return out.values
    return Tensor(_pair_up(out.values.data, out.imag.data))


def det(t: Tensor) -> Any:
    """
    Determinant via LU factorization.

    The product of the diagonal of the factored buffer, negated once for each
    row interchange (every ``j`` whose pivot is not ``j``).

    Returns
    -------
    scalar
        NumPy scalar of the kernel kind.

    Raises
    ------
    NumericalError
        ``SINGULAR_MATRIX`` if the factorization hits an exactly zero pivot.

    Examples
    --------
    >>> round(float(det(Tensor([[1, 2], [3, 4]], dtype=np.float32))), 6)
    -2.0
    """
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return a.dtype.type(1)
    piv = kernels.getrf(a)
    ldet = np.prod(np.diagonal(a.data))
    swaps = int(np.count_nonzero(piv != np.arange(piv.shape[0])))
    return -ldet if swaps % 2 else ldet


def inv(t: Tensor) -> Tensor:
    """
    Multiplicative inverse of a square matrix.

    Returns ``ainv`` with ``t @ ainv == ainv @ t == eye(n)``.

    Raises
    ------
    NumericalError
        ``SINGULAR_MATRIX`` if any pivot of the LU factorization is zero.

    Examples
    --------
    >>> inv(Tensor([[1, 2], [3, 4]], dtype=np.float64))
    tensor([[-2. ,  1. ],
            [ 1.5, -0.5]], dtype=float64, layout='F')
    """
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] == 0:
        return a
    piv = kernels.getrf(a)
    return kernels.getri(a, piv)


def solve(a: Tensor, b: Tensor) -> Tensor:
    """
    Solve the linear system ``a @ x = b``.

    Parameters
    ----------
    a : Tensor
        Square, non-singular ``n x n`` matrix.
    b : Tensor
        Right-hand side: a vector of length ``n`` or an ``n x k`` matrix.

    Returns
    -------
    Tensor
        ``x`` with the shape of ``b``.

    Raises
    ------
    ShapeError
        If ``a`` is not square or ``b`` does not have ``n`` rows.
    NumericalError
        ``SINGULAR_MATRIX`` if ``a`` is singular.

    Examples
    --------
    >>> solve(Tensor([[3, 1], [1, 2]], dtype=np.float32), Tensor([9, 8], dtype=np.float32))
    tensor([2., 3.], dtype=float32, layout='C')
    """
    require_square_matrix(a, "a")
    require_rows(b, a.shape[0], "b")
    dt = kernel_dtype(a.dtype, b.dtype)
    lhs = column_major_copy(a, dt)
    rhs = column_major_copy(b, dt)
    if rhs.size == 0:
        return rhs
    if rhs.ndim == 1:
        x = kernels.gesv(lhs, rhs.reshape(rhs.shape[0], 1))
        return x.reshape(b.shape[0])
    return kernels.gesv(lhs, rhs)


def hessenberg(t: Tensor) -> Tensor:
    """
    Upper-Hessenberg form of a square matrix.

    The matrix is balanced (permuted and scaled) and then reduced by
    orthogonal similarity, so the result has the eigenvalues of ``t`` and is
    zero below the first sub-diagonal.

    Returns
    -------
    Tensor
        ``H``. Matrices smaller than 2 x 2 come back as an unchanged copy.

    Examples
    --------
    >>> a = Tensor([[2, 5, 8, 7], [5, 2, 2, 8], [7, 5, 6, 6], [5, 4, 4, 8]], dtype=np.float64)
    >>> h = hessenberg(a)
    >>> bool(np.allclose(np.tril(h.data, -2), 0))
    True
    """
    require_square_matrix(t)
    a = column_major_copy(t)
    if a.shape[0] < 2:
        return a
    lo, hi = kernels.gebal(a)
    kernels.gehrd(a, lo, hi)
    return triu_(a, -1)


def norm(t: Tensor, *, order: str = "F") -> float:
    """
    Matrix norm selected by a single-character ``order``.

    Parameters
    ----------
    t : Tensor
        Matrix.
    order : {'F', 'E', 'I', '1', 'O', 'M'}, default='F'
        ``'F'``/``'E'`` Frobenius, ``'I'`` infinity (max absolute row sum),
        ``'1'``/``'O'`` one (max absolute column sum), ``'M'`` largest
        magnitude. Case-insensitive.

    Returns
    -------
    float

    Examples
    --------
    >>> round(norm(Tensor([[0, 1], [1, 1], [1, 1], [2, 1]], dtype=np.float32)), 6)
    3.162278
    """
    if not isinstance(order, str) or len(order) != 1 or order not in kernels.NORM_ORDERS:
        raise ValueError(f"Unknown norm order: {order!r}")
    require_matrix(t)
    if t.size == 0:
        return 0.0
    return kernels.lange(require_column_major(t), order.upper())


def matmul(a: Tensor, b: Tensor) -> Tensor:
    """
    Matrix product of two matrices through the general matrix-multiply kernel.

    Operands that are already contiguous (row- or column-major) are passed
    without copying by choosing the transpose flag and leading dimension to
    match their layout; strided operands are first duplicated row-major.
    Integer and bool operands are promoted to ``float64``.

    Raises
    ------
    ShapeError
        ``NOT_A_MATRIX`` if either operand is not rank 2,
        ``DIMENSION_MISMATCH`` if ``a.shape[1] != b.shape[0]``.

    Examples
    --------
    >>> a = Tensor([[1, 2], [3, 4]], dtype=np.float64)
    >>> matmul(a, a.T)
    tensor([[ 5., 11.],
            [11., 25.]], dtype=float64, layout='F')
    """
    require_matrix(a, "a")
    require_matrix(b, "b")
    require_same_inner(a, b)
    dt = kernel_dtype(a.dtype, b.dtype)
    lhs = _gemm_ready(a, dt)
    rhs = _gemm_ready(b, dt)
    return kernels.gemm(lhs, rhs)


def _gemm_ready(t: Tensor, dt: np.dtype) -> Tensor:
    if not (t.is_contiguous or t.is_fortran):
        t = t.dup(Order.ROW_MAJOR)
    if t.dtype != dt:
        t = t.astype(dt)
    return t
