from numbers import Number
from typing import Any, Generic, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np

from tensorla.dtypes import ElementKind, check_dtype, common_kind, scalar_kind
from tensorla.errors import DTypeError
from tensorla.storage import (
    LayoutFlags,
    Order,
    buffer_index,
    element_offset,
    element_strides,
    root_buffer,
)

_DeviceStr = Literal["cpu", "cuda"]
def _normalize_device(device: Optional[Union[str, _DeviceStr]]) -> Optional[_DeviceStr]:
    """
    Normalize a device specifier to 'cpu', 'cuda', or None.

    Parameters
    ----------
    device : {None, 'cpu', 'cuda', str}
        Device specifier. If a string starts with 'cuda' (e.g. 'cuda', 'cuda:0'),
        it is normalized to 'cuda'. 'cpu' is preserved. None is returned as None.

    Returns
    -------
    {'cpu', 'cuda', None}
        Normalized device identifier.

    Raises
    ------
    ValueError
        If ``device`` is a string that is neither 'cpu' nor startswith 'cuda'.

    Examples
    --------
    >>> _normalize_device('cuda:1')
    'cuda'
    >>> _normalize_device('gpu')
    Traceback (most recent call last):
        ...
    ValueError: Unknown device spec: 'gpu'
    """
    if device is None:
        return None
    if isinstance(device, str):
        dev = device.lower()
        if dev.startswith("cuda"):
            return "cuda"
        if dev == "cpu":
            return "cpu"
    raise ValueError(f"Unknown device spec: {device!r}")


def _nested_shape_and_values(value: Any, values: List[Any]) -> Tuple[int, ...]:
    """Walk nested lists/tuples, appending leaves to ``values`` in iteration order."""
    if not isinstance(value, (list, tuple)):
        values.append(value)
        return ()
    if len(value) == 0:
        return (0,)
    shapes = [_nested_shape_and_values(v, values) for v in value]
    first = shapes[0]
    if any(s != first for s in shapes[1:]):
        raise ValueError(
            f"inhomogeneous nesting: sub-sequences have shapes {sorted(set(shapes))}"
        )
    return (len(value),) + first


def _filled(shape: Tuple[int, ...], kind: np.dtype, values: List[Any]) -> np.ndarray:
    out = np.empty(shape, dtype=kind)
    if values:
        out.flat[:] = values
    return out


def _to_array(value: Any) -> np.ndarray:
    """
    Build a fresh contiguous NumPy buffer from a scalar, nested sequence or
    base array, inferring the element kind.
    """
    if isinstance(value, (Number, np.generic)):
        return np.array([value], dtype=scalar_kind(value))

    if isinstance(value, (list, tuple)):
        values: List[Any] = []
        shape = _nested_shape_and_values(value, values)
        kind = common_kind(scalar_kind(v) for v in values)
        return _filled(shape, kind, values)

    if hasattr(value, "__array__"):
        arr = np.array(value, copy=True)
        check_dtype(arr.dtype)
        return np.ascontiguousarray(arr)

    if hasattr(value, "shape") and hasattr(value, "__getitem__"):
        shape = tuple(int(d) for d in value.shape)
        values = [value[idx] for idx in np.ndindex(*shape)]
        if hasattr(value, "dtype"):
            kind = check_dtype(value.dtype)
        else:
            kind = common_kind(scalar_kind(v) for v in values)
        return _filled(shape, kind, values)

    raise DTypeError(f"Cannot convert {type(value).__name__!r} to a Tensor")


class Tensor(Generic[ElementKind]):
    """
    An N-dimensional strided numeric array.

    The elements live in a NumPy buffer. A tensor either owns that buffer or
    is a view sharing it with the tensor it was taken from (``t.T``,
    ``t[1:, :]``). Shape, element strides, offset and layout flags describe
    how the buffer is addressed.

    Notes
    -----
    - Element kinds are restricted to the integer, float, bool and complex
      kinds of :data:`tensorla.dtypes.ElementKind`. Anything else raises
      :class:`~tensorla.errors.DTypeError` at construction.
    - Arithmetic and comparison operators delegate to
      :func:`tensorla.elementwise.dispatch`; ``@`` delegates to
      :func:`tensorla.linalg.matmul`.
    - Tensors live on the host. :meth:`to` with ``'cuda'`` returns a
      separate :class:`~tensorla.device.DeviceTensor` handle.
    """
    def __init__(
        self,
        data: Any,
        dtype: Optional[Any] = None,
    ) -> None:
        """
        Wrap or build a tensor.

        Parameters
        ----------
        data : Tensor, numpy.ndarray, nested sequence, scalar or base array
            A ``numpy.ndarray`` (or another tensor's buffer) is wrapped without
            copying. Anything else is converted into a fresh contiguous buffer
            with the kind inferred as in :func:`astensor`.
        dtype : numpy dtype, optional
            Target element kind. If it differs from the data's kind the buffer
            is converted (which copies).

        Raises
        ------
        DTypeError
            If the resulting kind is not supported.

        Examples
        --------
        >>> Tensor([[1, 2], [3, 4]]).dtype
        dtype('int32')
        >>> Tensor(np.zeros((2, 2), np.float32)).dtype
        dtype('float32')
        >>> Tensor([1.5, 2.5], dtype=np.float32)
        tensor([1.5, 2.5], dtype=float32, layout='C')
        """
        if isinstance(data, Tensor):
            arr = data.data
        elif isinstance(data, np.ndarray):
            arr = data
        else:
            arr = _to_array(data)

        if dtype is not None:
            dt = check_dtype(dtype)
            if arr.dtype != dt:
                arr = arr.astype(dt)
        check_dtype(arr.dtype)

        self.data = arr

    @property
    def shape(self) -> Tuple[int, ...]:
        """tuple of int: The tensor's shape."""
        return self.data.shape

    @property
    def dtype(self) -> np.dtype:
        """numpy.dtype: The element kind."""
        return self.data.dtype

    @property
    def ndim(self) -> int:
        """int: The number of dimensions (rank)."""
        return self.data.ndim

    @property
    def size(self) -> int:
        """int: Total number of elements."""
        return self.data.size

    @property
    def strides(self) -> Tuple[int, ...]:
        """tuple of int: Per-dimension steps, counted in elements."""
        return element_strides(self.data)

    @property
    def buffer(self) -> np.ndarray:
        """numpy.ndarray: The buffer owning the memory, shared by all views."""
        return root_buffer(self.data)

    @property
    def offset(self) -> int:
        """int: Element offset of the first element inside :attr:`buffer`."""
        return element_offset(self.data)

    @property
    def flags(self) -> LayoutFlags:
        """LayoutFlags: Row-/column-major contiguity of the tensor."""
        return LayoutFlags.of(self.data)

    @property
    def is_contiguous(self) -> bool:
        """bool: Whether the tensor is contiguous row-major."""
        return bool(self.data.flags.c_contiguous)

    @property
    def is_fortran(self) -> bool:
        """bool: Whether the tensor is contiguous column-major."""
        return bool(self.data.flags.f_contiguous)

    @property
    def is_view(self) -> bool:
        """bool: Whether the tensor shares a buffer it does not own."""
        return self.data.base is not None

    @property
    def T(self) -> "Tensor":
        """Tensor: Transposed view (reversed axes), sharing the buffer."""
        return self.transpose()

    def dup(self, order: Union[Order, str] = Order.ROW_MAJOR) -> "Tensor":
        """
        Copy the tensor into a freshly allocated buffer.

        Parameters
        ----------
        order : Order or {'C', 'F'}, default=Order.ROW_MAJOR
            Element order of the new buffer. The copy is made in this order
            whatever the layout of the source, including strided views that
            are neither row- nor column-major.

        Returns
        -------
        Tensor
            An independently owned tensor with the same shape, kind and values.

        Examples
        --------
        >>> t = Tensor([[1, 2], [3, 4]])
        >>> f = t.dup(Order.COL_MAJOR)
        >>> f.is_fortran, f.strides
        (True, (1, 2))
        """
        order = Order(order)
        return Tensor(np.array(self.data, order=order.value, copy=True))

    def copy(self) -> "Tensor":
        """Row-major copy; same as ``dup(Order.ROW_MAJOR)``."""
        return self.dup(Order.ROW_MAJOR)

    def astype(self, dtype: Any) -> "Tensor":
        """Copy with elements converted to ``dtype``, keeping the layout."""
        dt = check_dtype(dtype)
        return Tensor(self.data.astype(dt, order="K", copy=True))

    def _flat_buffer(self) -> np.ndarray:
        return np.ravel(self.buffer, order="K")

    def get(self, index: Sequence[int]) -> Any:
        """
        Read one element through the stride mapping.

        Parameters
        ----------
        index : sequence of int
            Multi-index with one non-negative entry per dimension.

        Returns
        -------
        scalar
            The element, as a NumPy scalar.

        Raises
        ------
        IndexError
            If bounds checking is enabled and ``index`` is outside the tensor.
        """
        pos = buffer_index(tuple(index), self.shape, self.strides, self.offset)
        return self._flat_buffer()[pos]

    def set(self, index: Sequence[int], value: Any) -> None:
        """Write one element through the stride mapping (see :meth:`get`)."""
        pos = buffer_index(tuple(index), self.shape, self.strides, self.offset)
        self._flat_buffer()[pos] = value

    def __getitem__(self, idx: Union[int, slice, tuple]) -> "Tensor":
        """
        Index or slice into the tensor (NumPy-style).

        Basic indexing (integers, slices, ``None``, ``...``) returns a view
        sharing the buffer; advanced indexing returns a copy, as in NumPy.

        Examples
        --------
        >>> x = Tensor([[1, 2, 3], [4, 5, 6]])
        >>> x[:, 1:].is_view
        True
        """
        out = self.data[idx]
        if not isinstance(out, np.ndarray):
            out = np.asarray(out)
        return Tensor(out)

    def __setitem__(self, idx: Union[int, slice, tuple], value: Any) -> None:
        self.data[idx] = value.data if isinstance(value, Tensor) else value

    def __len__(self) -> int:
        if self.ndim == 0:
            raise TypeError("len() of a 0-d tensor")
        return self.shape[0]

    def __bool__(self) -> bool:
        if self.size != 1:
            raise ValueError(
                "The truth value of a tensor with more than one element is ambiguous"
            )
        return bool(self.data.reshape(-1)[0])

    def item(self) -> Any:
        """Return the only element as a Python scalar."""
        return self.data.item()

    def tolist(self) -> Any:
        """Nested Python lists with the tensor's values."""
        return self.data.tolist()

    def numpy(self) -> np.ndarray:
        """The underlying NumPy array (shares memory)."""
        return self.data

    def __array__(self, dtype: Any = None, copy: Any = None) -> np.ndarray:
        if dtype is not None and np.dtype(dtype) != self.data.dtype:
            return self.data.astype(dtype)
        if copy:
            return self.data.copy()
        return self.data

    def transpose(self, *axes: int) -> "Tensor":
        """
        View with permuted axes (reversed when ``axes`` is empty).

        Transposing a row-major matrix yields a column-major view of the same
        buffer and vice versa.
        """
        return Tensor(self.data.transpose(*axes) if axes else self.data.T)

    def reshape(self, *shape: int) -> "Tensor":
        """Reshape; a view when the layout allows it, otherwise a copy."""
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])
        return Tensor(self.data.reshape(shape))

    def __repr__(self) -> str:
        """
        Readable representation with values, kind and layout.

        Examples
        --------
        >>> Tensor([[1, 2], [3, 4]])
        tensor([[1, 2],
                [3, 4]], dtype=int32, layout='C')
        """
        data_str = np.array2string(self.data, separator=', ', prefix='tensor(')
        f = self.flags
        layout = "C" if f.contiguous else "F" if f.fortran else "strided"
        return f"tensor({data_str}, dtype={self.data.dtype}, layout='{layout}')"

    def to(
        self,
        device: Optional[str],
    ) -> Union["Tensor", Any]:
        """
        Move the tensor to a device.

        Parameters
        ----------
        device : str or None
            ``"cpu"`` or ``None`` returns ``self``. ``"cuda"`` (or
            ``"cuda:N"``) copies a contiguous version of the tensor to the
            GPU through the process-wide device queue.

        Returns
        -------
        Tensor or DeviceTensor
            ``self`` for the CPU, a :class:`~tensorla.device.DeviceTensor`
            handle for CUDA.

        Raises
        ------
        RuntimeError
            If ``"cuda"`` is requested but CuPy is not installed or available.
        """
        dev = _normalize_device(device)
        if dev != "cuda":
            return self
        from tensorla.device import to_device
        return to_device(self)

    def _binary(self, op: str, other: Any, reflected: bool = False) -> "Tensor":
        from tensorla.elementwise import dispatch
        return dispatch(op, other, self) if reflected else dispatch(op, self, other)

    def __add__(self, other: Any) -> "Tensor":
        return self._binary("add", other)

    def __radd__(self, other: Any) -> "Tensor":
        return self._binary("add", other, reflected=True)

    def __sub__(self, other: Any) -> "Tensor":
        return self._binary("subtract", other)

    def __rsub__(self, other: Any) -> "Tensor":
        return self._binary("subtract", other, reflected=True)

    def __mul__(self, other: Any) -> "Tensor":
        return self._binary("multiply", other)

    def __rmul__(self, other: Any) -> "Tensor":
        return self._binary("multiply", other, reflected=True)

    def __truediv__(self, other: Any) -> "Tensor":
        return self._binary("divide", other)

    def __rtruediv__(self, other: Any) -> "Tensor":
        return self._binary("divide", other, reflected=True)

    def __floordiv__(self, other: Any) -> "Tensor":
        return self._binary("floordiv", other)

    def __rfloordiv__(self, other: Any) -> "Tensor":
        return self._binary("floordiv", other, reflected=True)

    def __pow__(self, other: Any) -> "Tensor":
        return self._binary("power", other)

    def __rpow__(self, other: Any) -> "Tensor":
        return self._binary("power", other, reflected=True)

    def __lshift__(self, other: Any) -> "Tensor":
        return self._binary("left_shift", other)

    def __rlshift__(self, other: Any) -> "Tensor":
        return self._binary("left_shift", other, reflected=True)

    def __rshift__(self, other: Any) -> "Tensor":
        return self._binary("right_shift", other)

    def __rrshift__(self, other: Any) -> "Tensor":
        return self._binary("right_shift", other, reflected=True)

    def __and__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_and", other)

    def __rand__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_and", other, reflected=True)

    def __or__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_or", other)

    def __ror__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_or", other, reflected=True)

    def __xor__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_xor", other)

    def __rxor__(self, other: Any) -> "Tensor":
        return self._binary("bitwise_xor", other, reflected=True)

    def __eq__(self, other: Any) -> "Tensor":  # type: ignore[override]
        return self._binary("equal", other)

    def __ne__(self, other: Any) -> "Tensor":  # type: ignore[override]
        return self._binary("not_equal", other)

    def __lt__(self, other: Any) -> "Tensor":
        return self._binary("less", other)

    def __le__(self, other: Any) -> "Tensor":
        return self._binary("less_equal", other)

    def __gt__(self, other: Any) -> "Tensor":
        return self._binary("greater", other)

    def __ge__(self, other: Any) -> "Tensor":
        return self._binary("greater_equal", other)

    __hash__ = None  # type: ignore[assignment]

    def __neg__(self) -> "Tensor":
        from tensorla.elementwise import negative
        return negative(self)

    def __abs__(self) -> "Tensor":
        from tensorla.elementwise import absolute
        return absolute(self)

    def __matmul__(self, other: Any) -> "Tensor":
        """Matrix product; see :func:`tensorla.linalg.matmul`."""
        from tensorla.linalg import matmul
        return matmul(self, astensor(other))

    def __rmatmul__(self, other: Any) -> "Tensor":
        from tensorla.linalg import matmul
        return matmul(astensor(other), self)

    # Linear algebra, bound as methods. See tensorla.linalg for details.

    def triu(self, k: int = 0) -> "Tensor":
        from tensorla.linalg import triu
        return triu(self, k)

    def triu_(self, k: int = 0) -> "Tensor":
        from tensorla.linalg import triu_
        return triu_(self, k)

    def tril(self, k: int = 0) -> "Tensor":
        from tensorla.linalg import tril
        return tril(self, k)

    def tril_(self, k: int = 0) -> "Tensor":
        from tensorla.linalg import tril_
        return tril_(self, k)

    def diagonal(self) -> "Tensor":
        from tensorla.linalg import diagonal
        return diagonal(self)

    def cholesky(self, *, lower: bool = True) -> "Tensor":
        from tensorla.linalg import cholesky
        return cholesky(self, lower=lower)

    def cholesky_(self, *, lower: bool = True) -> "Tensor":
        from tensorla.linalg import cholesky_
        return cholesky_(self, lower=lower)

    def qr(self) -> Tuple["Tensor", "Tensor"]:
        from tensorla.linalg import qr
        return qr(self)

    def svd(self) -> Tuple["Tensor", "Tensor", "Tensor"]:
        from tensorla.linalg import svd
        return svd(self)

    def eigh(self) -> Tuple["Tensor", "Tensor"]:
        from tensorla.linalg import eigh
        return eigh(self)

    def eigvalsh(self) -> "Tensor":
        from tensorla.linalg import eigvalsh
        return eigvalsh(self)

    def eig(self, side: str = "right") -> Tuple["Tensor", "Tensor"]:
        from tensorla.linalg import eig
        return eig(self, side=side)

    def eigvals(self) -> "Tensor":
        from tensorla.linalg import eigvals
        return eigvals(self)

    def det(self) -> Any:
        from tensorla.linalg import det
        return det(self)

    def inv(self) -> "Tensor":
        from tensorla.linalg import inv
        return inv(self)

    def solve(self, b: Any) -> "Tensor":
        from tensorla.linalg import solve
        return solve(self, astensor(b))

    def hessenberg(self) -> "Tensor":
        from tensorla.linalg import hessenberg
        return hessenberg(self)

    def norm(self, *, order: str = "F") -> float:
        from tensorla.linalg import norm
        return norm(self, order=order)

    def matmul(self, other: Any) -> "Tensor":
        from tensorla.linalg import matmul
        return matmul(self, astensor(other))

    @staticmethod
    def _shape_arg(shape: Tuple[Any, ...]) -> Tuple[int, ...]:
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            return tuple(shape[0])
        return tuple(shape)

    @staticmethod
    def empty(
        *shape: int,
        dtype: Any = np.float64,
        order: Union[Order, str] = Order.ROW_MAJOR,
    ) -> "Tensor":
        """Uninitialized tensor of ``shape`` in the given element order."""
        dt = check_dtype(dtype)
        return Tensor(np.empty(Tensor._shape_arg(shape), dtype=dt, order=Order(order).value))

    @staticmethod
    def zeros(
        *shape: int,
        dtype: Any = np.float64,
        order: Union[Order, str] = Order.ROW_MAJOR,
    ) -> "Tensor":
        """
        Create a tensor filled with zeros.

        Parameters
        ----------
        *shape : int
            Shape of the output tensor (a single tuple/list is accepted too).
        dtype : numpy dtype, default=numpy.float64
            Element kind.
        order : Order or {'C', 'F'}, default=Order.ROW_MAJOR
            Element order of the new buffer.

        Returns
        -------
        Tensor
            A freshly allocated tensor of zeros.
        """
        dt = check_dtype(dtype)
        return Tensor(np.zeros(Tensor._shape_arg(shape), dtype=dt, order=Order(order).value))

    @staticmethod
    def ones(
        *shape: int,
        dtype: Any = np.float64,
        order: Union[Order, str] = Order.ROW_MAJOR,
    ) -> "Tensor":
        """Create a tensor filled with ones (see :meth:`zeros`)."""
        dt = check_dtype(dtype)
        return Tensor(np.ones(Tensor._shape_arg(shape), dtype=dt, order=Order(order).value))

    @staticmethod
    def full(
        shape: Union[int, Tuple[int, ...]],
        value: Any,
        dtype: Optional[Any] = None,
    ) -> "Tensor":
        """Tensor of ``shape`` filled with ``value``; kind inferred when omitted."""
        dt = check_dtype(dtype) if dtype is not None else scalar_kind(value)
        return Tensor(np.full(shape, value, dtype=dt))

    @staticmethod
    def eye(
        n: int,
        m: Optional[int] = None,
        dtype: Any = np.float64,
    ) -> "Tensor":
        """Identity matrix of ``n`` rows and ``m`` (default ``n``) columns."""
        dt = check_dtype(dtype)
        return Tensor(np.eye(n, m, dtype=dt))

    @staticmethod
    def arange(
        start: Union[int, float],
        stop: Optional[Union[int, float]] = None,
        step: Union[int, float] = 1,
        dtype: Optional[Any] = None,
    ) -> "Tensor":
        """Evenly spaced values in ``[start, stop)``; integers default to int32."""
        if stop is None:
            start, stop = 0, start
        if dtype is None:
            dtype = common_kind(scalar_kind(v) for v in (start, stop, step))
        dt = check_dtype(dtype)
        return Tensor(np.arange(start, stop, step, dtype=dt))


def astensor(value: Any) -> Tensor:
    """
    Coerce ``value`` into a :class:`Tensor`.

    Parameters
    ----------
    value : Any
        - a ``Tensor``: returned unchanged (the same object);
        - a base array, i.e. anything with ``shape`` and element access or
          an ``__array__`` method: copied, keeping shape and kind;
        - nested lists/tuples: rank from nesting depth, kind is the smallest
          common kind of the values (integers become ``int32``);
        - a scalar: a one-element tensor of shape ``(1,)``.

    Returns
    -------
    Tensor

    Raises
    ------
    DTypeError
        If the value (or one of its elements) has no supported kind.
    ValueError
        If nested sequences are ragged.

    Examples
    --------
    >>> astensor(3)
    tensor([3], dtype=int32, layout='C')
    >>> astensor([[1, 2, 3], [4, 5, 6]]).shape
    (2, 3)
    """
    if isinstance(value, Tensor):
        return value
    return Tensor(_to_array(value))
