"""
Exception hierarchy for tensorla.

Every exception inherits from :class:`TensorError` so callers can catch any
library failure in one place. Shape problems are detected before any kernel
is called and never leave a tensor modified; numerical problems are reported
by the kernels themselves after the call.
"""

from enum import Enum
from typing import Any, Optional, Tuple


class TensorError(Exception):
    """Base exception for all tensorla errors."""
    pass


class DTypeError(TensorError, TypeError):
    """
    Element kind is not supported.

    Raised when a tensor would be created with a kind outside the permitted
    integer, float, bool and complex kinds.

    Attributes:
        dtype: The rejected dtype, if it could be normalized
    """

    def __init__(self, message: str, dtype: Any = None):
        super().__init__(message)
        self.dtype = dtype


class ShapeErrorKind(Enum):
    NOT_A_MATRIX = "not_a_matrix"
    NOT_SQUARE = "not_square"
    DIMENSION_MISMATCH = "dimension_mismatch"


class ShapeError(TensorError, ValueError):
    """
    Tensor has the wrong rank or shape for the requested operation.

    Attributes:
        kind: Which check failed
        shape: Shape of the offending tensor
        other_shape: Shape of the second operand for mismatches
    """

    def __init__(
        self,
        message: str,
        kind: ShapeErrorKind,
        shape: Optional[Tuple[int, ...]] = None,
        other_shape: Optional[Tuple[int, ...]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.shape = shape
        self.other_shape = other_shape


class LayoutError(TensorError, ValueError):
    """
    In-place kernel operation on a tensor that is not column-major.

    Out-of-place operations duplicate instead of raising; only the in-place
    variants that hand the caller's own buffer to a kernel can fail this way.
    """
    pass


class NumericalErrorKind(Enum):
    SINGULAR_MATRIX = "singular_matrix"
    CONVERGENCE_FAILURE = "convergence_failure"
    NOT_POSITIVE_DEFINITE = "not_positive_definite"


class NumericalError(TensorError, ArithmeticError):
    """
    A kernel reported a nonzero status.

    The buffer passed to the kernel may be partially overwritten.

    Attributes:
        kind: Failure family of the operation
        kernel: Name of the kernel that failed (e.g. ``'dgetrf'``)
        info: The raw status value returned by the kernel
    """

    def __init__(
        self,
        message: str,
        kind: NumericalErrorKind,
        kernel: Optional[str] = None,
        info: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.kernel = kernel
        self.info = info
