"""
Activation Functions over bunches of units.

A units buffer holds `units_size` rows of `conf.max_bunch_size` slots;
only the first `conf.cur_bunch_size` slots of each row are touched.
Derivatives are always computed from the stored forward output.
"""
import copy

import numpy as np

from .blas import ceiling_power_of_two, get_array_module
from .errors import NotImplementedYetError, UsageError
from .memory import MirroredBuffer


def _units(buf, units_size, conf, write=False):
    data = buf.get(conf.use_cuda, write=write)[:units_size * conf.max_bunch_size]
    return data.reshape(units_size, conf.max_bunch_size)[:, :conf.cur_bunch_size]


def _sigmoid(xp, x):
    return 1 / (1 + xp.exp(-xp.clip(x, -80, 80)))


class ActivationFunction:
    """Base class for activation functions."""
    def apply_activation(self, units, units_size, conf):
        """Transform the units in place."""
        raise NotImplementedError

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        """Multiply input_errors in place by the derivative at the stored output."""
        raise NotImplementedError

    def clone(self):
        return type(self)()


class LinearActivationFunction(ActivationFunction):
    def apply_activation(self, units, units_size, conf):
        pass

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        pass


class LogisticActivationFunction(ActivationFunction):
    """σ(x) = 1 / (1 + e^(-x)), derivative y * (1 - y)."""
    def apply_activation(self, units, units_size, conf):
        xp = get_array_module(conf.use_cuda)
        y = _units(units, units_size, conf, write=True)
        y[...] = _sigmoid(xp, y)

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        y = _units(units, units_size, conf)
        err = _units(input_errors, units_size, conf, write=True)
        err *= y * (1 - y)


class TanhActivationFunction(ActivationFunction):
    """tanh(x), derivative 1 - y^2."""
    def apply_activation(self, units, units_size, conf):
        xp = get_array_module(conf.use_cuda)
        y = _units(units, units_size, conf, write=True)
        y[...] = xp.tanh(y)

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        y = _units(units, units_size, conf)
        err = _units(input_errors, units_size, conf, write=True)
        err *= 1 - y * y


class SoftmaxActivationFunction(ActivationFunction):
    """
    Per-pattern softmax with the maximum subtracted before exponentiating.

    The first call fixes the units size and allocates the reduction
    buffers (minimums, maximums, sums) of `ceil_pow2(size) / 2` slots per
    pattern; reusing the instance with another size is an error.
    """
    def __init__(self):
        self.size = 0
        self.minimums = None
        self.maximums = None
        self.sums = None

    def _prepare(self, units_size, conf):
        if self.size == 0:
            self.size = units_size
        elif self.size != units_size:
            raise UsageError(128, "A softmax activation function could only be "
                                  f"used with one units size ({self.size}), "
                                  f"found {units_size}")
        reduction_size = max(1, ceiling_power_of_two(units_size) >> 1) * conf.max_bunch_size
        if self.sums is None or len(self.sums) < reduction_size:
            self.minimums = MirroredBuffer(reduction_size)
            self.maximums = MirroredBuffer(reduction_size)
            self.sums = MirroredBuffer(reduction_size)

    def apply_activation(self, units, units_size, conf):
        self._prepare(units_size, conf)
        xp = get_array_module(conf.use_cuda)
        y = _units(units, units_size, conf, write=True)
        n = conf.cur_bunch_size
        mins = self.minimums.get(conf.use_cuda, write=True)
        maxs = self.maximums.get(conf.use_cuda, write=True)
        sums = self.sums.get(conf.use_cuda, write=True)
        mins[:n] = xp.min(y, axis=0)
        maxs[:n] = xp.max(y, axis=0)
        y[...] = xp.exp(y - maxs[:n][None, :])
        sums[:n] = xp.sum(y, axis=0)
        y /= sums[:n][None, :]

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        # same as logistic
        y = _units(units, units_size, conf)
        err = _units(input_errors, units_size, conf, write=True)
        err *= y * (1 - y)

    def clone(self):
        return SoftmaxActivationFunction()


class StochasticActivationFunction(ActivationFunction):
    """Activation functions drawing from an attached numpy.random.Generator."""
    def __init__(self, rng=None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def randomize(self, units, units_size, conf):
        """Fill the units with uniform [0, 1) draws."""
        if conf.use_cuda:
            raise NotImplementedYetError(255, "NOT IMPLEMENTED YET FOR USE_CUDA=TRUE")
        y = _units(units, units_size, conf, write=True)
        y[...] = self.rng.random(y.shape)

    def clone(self):
        # the clone gets its own copy of the generator state
        return type(self)(copy.deepcopy(self.rng))


class BinarySamplingActivationFunction(StochasticActivationFunction):
    """Each unit becomes a Bernoulli sample with probability sigmoid(x)."""
    def apply_activation(self, units, units_size, conf):
        if conf.use_cuda:
            raise NotImplementedYetError(255, "NOT IMPLEMENTED YET FOR USE_CUDA=TRUE")
        y = _units(units, units_size, conf, write=True)
        probs = _sigmoid(np, y)
        y[...] = (self.rng.random(y.shape) < probs).astype(np.float32)

    def multiply_derivatives(self, units, input_errors, units_size, conf):
        raise NotImplementedYetError(255, "Binary sampling has no derivative")


ACTIVATION_FUNCTIONS = {
    'inputs': LinearActivationFunction,
    'linear': LinearActivationFunction,
    'logistic': LogisticActivationFunction,
    'tanh': TanhActivationFunction,
    'softmax': SoftmaxActivationFunction,
}


def get_activation_function_by_name(name):
    try:
        return ACTIVATION_FUNCTIONS[name]()
    except KeyError:
        raise UsageError(256, f"Incorrect activation function type '{name}'") from None
