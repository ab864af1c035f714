import numpy as np
import torch

from tensorla.storage import Order
from tensorla.tensor import Tensor

ATOL = 1e-6
RTOL = 1e-5

def _is_cupy(x):
    return x.__class__.__module__.startswith("cupy")

def to_numpy(x):
    if _is_cupy(x):
        import cupy as cp
        return cp.asnumpy(x)
    return np.asarray(x)

def tdata(t: Tensor):
    return to_numpy(t.data)

def make_tensor(x_np: np.ndarray, dtype=np.float64, order: Order = Order.ROW_MAJOR) -> Tensor:
    return Tensor(np.array(x_np, dtype=dtype, order=Order(order).value))

def make_torch(x_np: np.ndarray, dtype=torch.float64) -> torch.Tensor:
    return torch.tensor(np.ascontiguousarray(x_np), dtype=dtype)

def random_spd(rng, n: int, dtype=np.float64) -> np.ndarray:
    a = rng.normal(size=(n, n))
    return (a @ a.T + n * np.eye(n)).astype(dtype)

def random_hermitian_pd(rng, n: int) -> np.ndarray:
    a = rng.normal(size=(n, n)) + 1j * rng.normal(size=(n, n))
    return a @ a.conj().T + n * np.eye(n)

def assert_close(a, b, atol=ATOL, rtol=RTOL):
    a = to_numpy(a)
    b = to_numpy(b)
    assert np.allclose(a, b, atol=atol, rtol=rtol), f"max|diff|={np.max(np.abs(a-b))}"
