import numpy as np
import pytest
import importlib

from tensorla.storage import set_bounds_checking

@pytest.fixture
def rng():
    return np.random.default_rng(0)

def _has_cupy():
    return importlib.util.find_spec("cupy") is not None

@pytest.fixture(params=["cpu", "cuda"])
def device(request):
    if request.param == "cuda" and not _has_cupy():
        pytest.skip("cupy not installed")
    return request.param

@pytest.fixture(autouse=True)
def _bounds_checked():
    set_bounds_checking(True)
    yield
    set_bounds_checking(True)
