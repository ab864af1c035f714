import threading

import numpy as np
import pytest

from tensorla import device as device_mod
from tensorla.device import DeviceTensor, get_queue, to_device
from tensorla.tensor import Tensor, _normalize_device
from tests.utils import assert_close, tdata, to_numpy


class FakeQueue:
    """Host-only stand-in recording queue creation and submissions."""

    created = 0

    def __init__(self):
        type(self).created += 1
        self.device_id = 0
        self.submitted = []

    def submit(self, array):
        self.submitted.append(array)
        return np.array(array, copy=True)

    def fetch(self, handle):
        return np.asarray(handle)


@pytest.fixture
def fake_queue(monkeypatch):
    FakeQueue.created = 0
    monkeypatch.setattr(device_mod, "_HAS_CUPY", True)
    monkeypatch.setattr(device_mod, "DeviceQueue", FakeQueue)
    monkeypatch.setattr(device_mod, "_QUEUE", None)
    return FakeQueue


def test_normalize_device():
    assert _normalize_device("CPU") == "cpu"
    assert _normalize_device("cuda:1") == "cuda"
    assert _normalize_device(None) is None
    with pytest.raises(ValueError):
        _normalize_device("gpu")


def test_to_cpu_is_identity():
    t = Tensor.ones(2, 3)
    assert t.to("cpu") is t


def test_to_none_stays_on_host(monkeypatch):
    monkeypatch.setattr(device_mod, "_HAS_CUPY", False)
    t = Tensor.ones(2, 3)
    assert t.to(None) is t


def test_to_unknown_device_raises():
    with pytest.raises(ValueError):
        Tensor.ones(2).to("tpu")


def test_cuda_without_cupy_raises(monkeypatch):
    monkeypatch.setattr(device_mod, "_HAS_CUPY", False)
    monkeypatch.setattr(device_mod, "_QUEUE", None)
    with pytest.raises(RuntimeError, match="CuPy"):
        Tensor.ones(2).to("cuda")
    with pytest.raises(RuntimeError, match="CuPy"):
        get_queue()
    assert device_mod._QUEUE is None


def test_queue_is_created_once_across_threads(fake_queue):
    seen = []
    threads = [threading.Thread(target=lambda: seen.append(get_queue())) for _ in range(8)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()
    assert fake_queue.created == 1
    assert len(seen) == 8
    assert all(q is seen[0] for q in seen)
    assert get_queue() is seen[0]


def test_queue_initialization_is_logged(fake_queue, caplog):
    caplog.set_level("INFO", logger="tensorla.device")
    get_queue()
    assert any("device queue initialized" in r.getMessage() for r in caplog.records)


def test_transfer_submits_contiguous_copy(fake_queue):
    t = Tensor(np.arange(12.0).reshape(3, 4))
    view = t[:, ::2]
    d = view.to("cuda")
    assert isinstance(d, DeviceTensor)
    assert d.shape == (3, 2) and d.dtype == np.float64
    queue = get_queue()
    assert queue.submitted[0].flags.c_contiguous
    assert d.to("cuda") is d
    back = d.to("cpu")
    assert isinstance(back, Tensor)
    assert_close(tdata(back), np.arange(12.0).reshape(3, 4)[:, ::2])


def test_to_device_passes_contiguous_buffer_through(fake_queue):
    t = Tensor.ones(2, 2)
    to_device(t)
    assert get_queue().submitted[0] is t.data
    assert "device='cuda'" in repr(to_device(t))


def test_roundtrip(device):
    x = Tensor(np.arange(6, dtype=np.float32).reshape(2, 3))
    y = x.to(device).to("cpu")
    assert_close(to_numpy(y.data), to_numpy(x.data))
