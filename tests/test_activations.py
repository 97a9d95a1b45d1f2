import numpy as np
import pytest

from bunchnet import (
    ANNConfiguration, BinarySamplingActivationFunction, LinearActivationFunction,
    LogisticActivationFunction, NotImplementedYetError, SoftmaxActivationFunction,
    TanhActivationFunction, UsageError, get_activation_function_by_name,
)
from conftest import make_buffer


def unit_error(n):
    return make_buffer(np.ones(n))


def test_logistic_values():
    conf = ANNConfiguration(max_bunch_size=1, cur_bunch_size=1)
    units = make_buffer([0.0, 2.0])
    act = LogisticActivationFunction()
    act.apply_activation(units, 2, conf)
    y = units.to_numpy()
    assert np.allclose(y, [0.5, 1 / (1 + np.exp(-2.0))])

    err = unit_error(2)
    act.multiply_derivatives(units, err, 2, conf)
    assert np.allclose(err.read(), y * (1 - y))
    assert np.isclose(err.read()[0], 0.25)


def test_tanh_values():
    conf = ANNConfiguration(max_bunch_size=3, cur_bunch_size=3)
    x = np.array([-1.0, 0.0, 0.5], dtype=np.float32)
    units = make_buffer(x)
    act = TanhActivationFunction()
    act.apply_activation(units, 1, conf)
    assert np.allclose(units.read(), np.tanh(x))

    err = unit_error(3)
    act.multiply_derivatives(units, err, 1, conf)
    assert np.allclose(err.read(), 1 - np.tanh(x) ** 2)


def test_linear_is_identity():
    conf = ANNConfiguration(max_bunch_size=2, cur_bunch_size=2)
    units = make_buffer([3.0, -4.0])
    err = make_buffer([0.5, 0.5])
    act = LinearActivationFunction()
    act.apply_activation(units, 1, conf)
    act.multiply_derivatives(units, err, 1, conf)
    assert np.allclose(units.read(), [3.0, -4.0])
    assert np.allclose(err.read(), [0.5, 0.5])


def test_only_current_bunch_slots_are_touched():
    # 2 units x 3 physical slots, 2 patterns in use
    conf = ANNConfiguration(max_bunch_size=3, cur_bunch_size=2)
    units = make_buffer(np.zeros(6))
    units.read_write().reshape(2, 3)[:, 2] = 5.0
    LogisticActivationFunction().apply_activation(units, 2, conf)
    y = units.read().reshape(2, 3)
    assert np.allclose(y[:, :2], 0.5)
    assert np.allclose(y[:, 2], 5.0)


def test_softmax_sums_to_one_and_is_stable():
    conf = ANNConfiguration(max_bunch_size=2, cur_bunch_size=2)
    # unit-major: column b is pattern b
    x = np.array([[1000.0, 1.0], [1000.0, 2.0], [1000.0, 3.0]], dtype=np.float32)
    units = make_buffer(x)
    act = SoftmaxActivationFunction()
    act.apply_activation(units, 3, conf)
    y = units.read().reshape(3, 2)
    assert np.all(np.isfinite(y))
    assert np.allclose(y.sum(axis=0), 1.0)
    assert np.allclose(y[:, 0], 1 / 3)
    e = np.exp([1.0, 2.0, 3.0])
    assert np.allclose(y[:, 1], e / e.sum())
    # reduction buffers: ceil_pow2(3) / 2 slots per pattern
    assert len(act.sums) == 2 * 2


def test_softmax_size_is_fixed_after_first_use():
    conf = ANNConfiguration(max_bunch_size=1, cur_bunch_size=1)
    act = SoftmaxActivationFunction()
    act.apply_activation(make_buffer([1, 2, 3]), 3, conf)
    with pytest.raises(UsageError):
        act.apply_activation(make_buffer([1, 2, 3, 4]), 4, conf)
    assert act.clone().size == 0


def test_softmax_derivative_matches_logistic():
    conf = ANNConfiguration(max_bunch_size=1, cur_bunch_size=1)
    units = make_buffer([0.2, 0.8])
    err = unit_error(2)
    SoftmaxActivationFunction().multiply_derivatives(units, err, 2, conf)
    assert np.allclose(err.read(), [0.16, 0.16])


def test_binary_sampling():
    conf = ANNConfiguration(max_bunch_size=4, cur_bunch_size=4)
    act = BinarySamplingActivationFunction(np.random.default_rng(7))
    units = make_buffer(np.concatenate([np.full(4, 100.0), np.full(4, -100.0),
                                        np.zeros(4)]))
    act.apply_activation(units, 3, conf)
    y = units.read().reshape(3, 4)
    assert np.all(y[0] == 1.0)
    assert np.all(y[1] == 0.0)
    assert set(np.unique(y[2])) <= {0.0, 1.0}


def test_binary_sampling_clone_copies_generator_state():
    conf = ANNConfiguration(max_bunch_size=64, cur_bunch_size=64)
    act = BinarySamplingActivationFunction(np.random.default_rng(3))
    other = act.clone()
    assert other.rng is not act.rng
    a, b = make_buffer(np.zeros(64)), make_buffer(np.zeros(64))
    act.apply_activation(a, 1, conf)
    other.apply_activation(b, 1, conf)
    assert np.array_equal(a.read(), b.read())


def test_binary_sampling_cuda_is_not_implemented():
    conf = ANNConfiguration(max_bunch_size=1, cur_bunch_size=1, use_cuda=True)
    act = BinarySamplingActivationFunction(np.random.default_rng(0))
    with pytest.raises(NotImplementedYetError):
        act.apply_activation(make_buffer([0.0]), 1, conf)


def test_activation_by_name():
    assert isinstance(get_activation_function_by_name('inputs'), LinearActivationFunction)
    assert isinstance(get_activation_function_by_name('softmax'), SoftmaxActivationFunction)
    with pytest.raises(UsageError):
        get_activation_function_by_name('relu6')


def test_softmax_on_device(cupy):
    conf = ANNConfiguration(max_bunch_size=1, cur_bunch_size=1, use_cuda=True)
    units = make_buffer([1.0, 2.0, 3.0])
    SoftmaxActivationFunction().apply_activation(units, 3, conf)
    assert np.isclose(units.read().sum(), 1.0)
