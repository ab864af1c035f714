"""
Host to GPU transfers through a single process-wide queue.

The linear-algebra operations never run on the device; this module only moves
tensor data there and back. The queue is created on first use, bound to the
current CuPy device, and lives for the rest of the process.
"""

import logging
import threading
from typing import Any, Optional, Tuple

import numpy as np
try:
    import cupy as cp
    _HAS_CUPY = True
except Exception:
    cp = None
    _HAS_CUPY = False

from tensorla.tensor import Tensor, _normalize_device

logger = logging.getLogger(__name__)


def _require_cupy() -> None:
    if not _HAS_CUPY:
        raise RuntimeError("CUDA requested but CuPy is not installed/available.")


class DeviceQueue:
    """
    Ordered transfer queue on one CUDA device.

    Submissions and fetches are serialized by a lock and issued on a private
    stream, so transfers from several threads never interleave.

    Attributes
    ----------
    device_id : int
        CuPy device the queue is bound to.
    stream : cupy.cuda.Stream
        Stream the copies are enqueued on.
    submitted : int
        Number of arrays submitted so far.
    """
    def __init__(self) -> None:
        _require_cupy()
        self.device_id = int(cp.cuda.Device().id)
        self.stream = cp.cuda.Stream(non_blocking=True)
        self.submitted = 0
        self._lock = threading.Lock()

    def submit(self, array: np.ndarray) -> Any:
        """
        Enqueue a host-to-device copy of ``array``.

        Parameters
        ----------
        array : numpy.ndarray
            Contiguous host buffer.

        Returns
        -------
        cupy.ndarray
            Device handle for the copy.
        """
        with self._lock:
            with self.stream:
                handle = cp.asarray(array)
            self.submitted += 1
        return handle

    def fetch(self, handle: Any) -> np.ndarray:
        """Wait for pending copies and bring ``handle`` back to the host."""
        with self._lock:
            self.stream.synchronize()
            return cp.asnumpy(handle)


_QUEUE: Optional[DeviceQueue] = None
_QUEUE_LOCK = threading.Lock()


def get_queue() -> DeviceQueue:
    """
    Return the process-wide device queue, creating it on the first call.

    Raises
    ------
    RuntimeError
        If CuPy is not installed or available.
    """
    global _QUEUE
    with _QUEUE_LOCK:
        if _QUEUE is None:
            _QUEUE = DeviceQueue()
            logger.info("device queue initialized on CUDA device %d", _QUEUE.device_id)
        return _QUEUE


class DeviceTensor:
    """
    Handle to a tensor's data on the GPU.

    Only transfer back to the host is supported; see :meth:`to`.
    """
    def __init__(self, handle: Any, queue: DeviceQueue) -> None:
        self.handle = handle
        self.queue = queue

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.handle.shape)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.handle.dtype)

    def to(self, device: str) -> Any:
        """``"cpu"`` returns a host :class:`Tensor`; ``"cuda"`` returns ``self``."""
        dev = _normalize_device(device)
        if dev == "cpu":
            return Tensor(self.queue.fetch(self.handle))
        return self

    def __repr__(self) -> str:
        return f"DeviceTensor(shape={self.shape}, dtype={self.dtype}, device='cuda')"


def to_device(t: Tensor) -> DeviceTensor:
    """
    Copy ``t`` to the GPU through the device queue.

    Strided tensors are first duplicated row-major so the device receives a
    contiguous buffer.
    """
    queue = get_queue()
    src = t if t.is_contiguous else t.dup()
    return DeviceTensor(queue.submit(src.data), queue)
