"""
Numeric backend over MirroredBuffers.

BLAS-shaped primitives (count, scale, shift, increment) running on NumPy
or CuPy depending on `use_cuda`. The `_loop` variants repeat a primitive
`times` times, advancing both operands by their stride, which is how
a bunch of unit-major vectors is walked.
"""
import numpy as np

from .memory import get_cupy


def get_array_module(use_cuda=False):
    """NumPy or CuPy, matching the side the buffers are read from."""
    if use_cuda:
        return get_cupy()
    return np


def _strided(arr, n, shift, inc):
    if inc == 0:
        return arr[shift:shift + 1]
    return arr[shift:shift + (n - 1) * inc + 1:inc]


def do_scopy(n, x, x_shift, x_inc, y, y_shift, y_inc, use_cuda=False):
    """y[y_shift::y_inc] = x[x_shift::x_inc] for n elements."""
    src = _strided(x.get(use_cuda), n, x_shift, x_inc)
    # x may alias y, take the values before the write view invalidates them
    src = src.copy()
    dst = _strided(y.get(use_cuda, write=True), n, y_shift, y_inc)
    dst[...] = src


def do_saxpy(n, alpha, x, x_shift, x_inc, y, y_shift, y_inc, use_cuda=False):
    """y += alpha * x over n strided elements."""
    src = _strided(x.get(use_cuda), n, x_shift, x_inc).copy()
    dst = _strided(y.get(use_cuda, write=True), n, y_shift, y_inc)
    dst += np.float32(alpha) * src


def do_sscal(n, alpha, x, shift, inc, use_cuda=False):
    """x *= alpha over n strided elements."""
    dst = _strided(x.get(use_cuda, write=True), n, shift, inc)
    dst *= np.float32(alpha)


def do_scopy_loop(n, x, x_inc, y, y_inc, times, x_stride, y_stride, use_cuda=False):
    for t in range(times):
        do_scopy(n, x, t * x_stride, x_inc, y, t * y_stride, y_inc, use_cuda)


def do_saxpy_loop(n, alpha, x, x_inc, y, y_inc, times, x_stride, y_stride, use_cuda=False):
    for t in range(times):
        do_saxpy(n, alpha, x, t * x_stride, x_inc, y, t * y_stride, y_inc, use_cuda)


def do_vector_set_to_zero(x, n, inc, shift, use_cuda=False):
    _strided(x.get(use_cuda, write=True), n, shift, inc)[...] = 0


def do_sum(n, x, shift, inc, use_cuda=False):
    return float(_strided(x.get(use_cuda), n, shift, inc).sum())


def do_sgemm(alpha, a, b, beta, c, use_cuda=False):
    """
    c = alpha * (a @ b) + beta * c on 2-D views.

    Args:
        a, b: Arrays from the same side as c
        c: Writable view, updated in place
    """
    xp = get_array_module(use_cuda)
    prod = xp.matmul(a, b)
    if beta == 0:
        c[...] = np.float32(alpha) * prod
    else:
        c *= np.float32(beta)
        c += np.float32(alpha) * prod


def matrix_view(buf, rows, cols, use_cuda=False, write=False):
    """(rows, cols) row-major view of the first rows*cols floats of buf."""
    return buf.get(use_cuda, write=write)[:rows * cols].reshape(rows, cols)


def ceiling_power_of_two(value):
    value = int(value)
    if value <= 1:
        return 1
    return 1 << (value - 1).bit_length()
