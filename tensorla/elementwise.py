"""
Elementwise dispatcher behind the ``Tensor`` operators.

Operands are tensors, scalars or anything :func:`~tensorla.tensor.astensor`
accepts. The result is a new tensor with the broadcast shape of the inputs,
computed by the matching NumPy ufunc.
"""

from typing import Any, Callable, Dict

import numpy as np

from tensorla.errors import ShapeError, ShapeErrorKind
from tensorla.tensor import Tensor, astensor

_UFUNCS: Dict[str, Callable[..., Any]] = {
    "add": np.add,
    "subtract": np.subtract,
    "multiply": np.multiply,
    "divide": np.true_divide,
    "floordiv": np.floor_divide,
    "power": np.power,
    "left_shift": np.left_shift,
    "right_shift": np.right_shift,
    "bitwise_and": np.bitwise_and,
    "bitwise_or": np.bitwise_or,
    "bitwise_xor": np.bitwise_xor,
    "equal": np.equal,
    "not_equal": np.not_equal,
    "less": np.less,
    "less_equal": np.less_equal,
    "greater": np.greater,
    "greater_equal": np.greater_equal,
}


def _operand(x: Any) -> Any:
    # Bare Python scalars stay scalars so NumPy's weak scalar promotion
    # keeps ``int32 + 1`` in int32.
    if isinstance(x, Tensor):
        return x.data
    if isinstance(x, (bool, int, float, complex)):
        return x
    return astensor(x).data


def dispatch(op: str, a: Any, b: Any) -> Tensor:
    """
    Apply the binary elementwise operation ``op`` with broadcasting.

    Parameters
    ----------
    op : str
        One of the keys of the dispatch table (``'add'``, ``'less'``, ...).
    a, b : Tensor or scalar or array-like
        Operands.

    Returns
    -------
    Tensor
        Freshly allocated result with the broadcast shape.

    Raises
    ------
    KeyError
        If ``op`` is unknown.
    ShapeError
        If the operand shapes cannot be broadcast together.

    Examples
    --------
    >>> dispatch("add", Tensor([[1], [2]]), Tensor([10, 20])).shape
    (2, 2)
    """
    ufunc = _UFUNCS[op]
    x, y = _operand(a), _operand(b)
    try:
        out = ufunc(x, y)
    except ValueError as e:
        raise ShapeError(
            f"operands could not be broadcast together for {op}: "
            f"{np.shape(x)} and {np.shape(y)}",
            kind=ShapeErrorKind.DIMENSION_MISMATCH,
            shape=np.shape(x),
            other_shape=np.shape(y),
        ) from e
    return Tensor(np.asarray(out))


def negative(a: Any) -> Tensor:
    """Elementwise negation."""
    return Tensor(np.negative(_operand(a)))


def absolute(a: Any) -> Tensor:
    """Elementwise absolute value (magnitude for complex kinds)."""
    return Tensor(np.absolute(_operand(a)))
