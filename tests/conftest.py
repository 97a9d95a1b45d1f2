import numpy as np
import pytest

from bunchnet import MirroredBuffer


@pytest.fixture
def cupy():
    cp = pytest.importorskip("cupy")
    try:
        if cp.cuda.runtime.getDeviceCount() == 0:
            pytest.skip("no CUDA device")
    except cp.cuda.runtime.CUDARuntimeError:
        pytest.skip("no CUDA device")
    return cp


def make_buffer(values):
    values = np.asarray(values, dtype=np.float32).ravel()
    buf = MirroredBuffer(values.size)
    buf.read_write()[...] = values
    return buf
