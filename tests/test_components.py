import math

import numpy as np
import pytest

from bunchnet import (
    ActivationFunctionComponent, BiasComponent, DotProductComponent, StackComponent,
    TokenBunchVector, TokenMemoryBlock, UsageError, all_all_stack,
)


def tok(patterns):
    return TokenMemoryBlock.from_array(patterns)


def built_bias(values, name='b', weights_dict=None, lr=0.1):
    weights_dict = {} if weights_dict is None else weights_dict
    bias = BiasComponent(name)
    bias.build(len(values), len(values), weights_dict, {})
    weights_dict[bias.weights_name].load_weights(np.asarray(values, dtype=np.float32))
    bias.set_option('learning_rate', lr)
    return bias, weights_dict


def test_bias_forward_backward_update():
    bias, wd = built_bias([1, 2, 3])
    out = bias.forward(tok([[0, 0, 0]]))
    assert np.allclose(out.to_array(3), [[1, 2, 3]])

    err = tok([[0.1, 0.1, 0.1]])
    assert bias.backward(err) is err
    bias.update()
    # -0.1 / sqrt(1 * 1) * 0.1 per element
    assert np.allclose(wd['b'].weights.read(), [0.99, 1.99, 2.99])


def test_bias_bunch():
    bias, wd = built_bias([1, 2, 3])
    out = bias.forward(tok([[0, 0, 0], [1, 1, 1]]))
    assert bias.bunch_size == 2
    assert np.allclose(out.to_array(3), [[1, 2, 3], [2, 3, 4]])
    bias.backward(tok([[0.1] * 3, [0.3] * 3]))
    bias.update()
    delta = -0.1 / math.sqrt(2) * 0.4
    assert np.allclose(wd['b'].weights.read(), np.array([1, 2, 3]) + delta)


def test_bias_shared_weights_update_once():
    bias1, wd = built_bias([1, 2, 3], name='b1')
    bias2 = BiasComponent('b2', weights_name='b1')
    bias2.build(3, 3, wd, {})
    bias2.set_option('learning_rate', 0.1)
    conn = wd['b1']
    assert bias2.bias_vector is conn and conn.num_references == 2

    for bias, e in ((bias2, 0.2), (bias1, 0.1)):
        bias.forward(tok([[0, 0, 0]]))
        bias.backward(tok([[e] * 3]))
    bias2.update()
    assert np.allclose(conn.weights.read(), [1, 2, 3])
    bias1.update()
    delta = -0.1 / math.sqrt(2) * 0.3
    assert np.allclose(conn.weights.read(), np.array([1, 2, 3]) + delta)


def test_bias_build_errors():
    with pytest.raises(UsageError):
        BiasComponent('b').build(3, 4, {}, {})
    wd = {}
    BiasComponent('b').build(3, 3, wd, {})
    with pytest.raises(UsageError):
        BiasComponent('c', weights_name='b').build(4, 4, wd, {})
    with pytest.raises(UsageError):
        BiasComponent('b').build(3, 3, {}, {'b': BiasComponent('other')})


def test_bias_usage_errors():
    with pytest.raises(UsageError):
        BiasComponent('b').forward(tok([[0, 0]]))
    bias, _ = built_bias([1, 2])
    with pytest.raises(UsageError):
        bias.forward(TokenBunchVector([tok([[0, 0]])]))
    with pytest.raises(UsageError):
        bias.backward(None)
    bias.forward(tok([[0, 0]]))
    bias.backward(tok([[1, 1]]))
    bias.set_option('learning_rate', -1.0)
    with pytest.raises(UsageError):
        bias.update()


def test_forward_rejects_partial_pattern():
    bias, _ = built_bias([1, 2, 3])
    with pytest.raises(UsageError):
        bias.forward(tok([[1, 2, 3, 4]]))
    actf = ActivationFunctionComponent('logistic', 'a', 3)
    actf.build()
    with pytest.raises(UsageError):
        actf.forward(tok([[1, 2, 3, 4]]))
    dense = DotProductComponent('w', input_size=2, output_size=2)
    dense.build()
    with pytest.raises(UsageError):
        dense.forward(tok([[1, 2, 3]]))


def test_backward_rejects_wrong_bunch():
    bias, _ = built_bias([1, 2])
    bias.forward(tok([[0, 0], [1, 1]]))
    with pytest.raises(UsageError):
        bias.backward(tok([[1, 1]]))
    # a rejected error is not recorded, update still needs a valid backward
    with pytest.raises(UsageError):
        bias.update()

    dense = DotProductComponent('w', input_size=2, output_size=2)
    dense.build()
    dense.forward(tok([[1, 2], [3, 4]]))
    with pytest.raises(UsageError):
        dense.backward(tok([[1, 1]]))

    actf = ActivationFunctionComponent('tanh', 'a', 2)
    actf.build()
    actf.forward(tok([[1, 2]]))
    with pytest.raises(UsageError):
        actf.backward(tok([[1, 1], [1, 1]]))


def test_bias_options_and_clone():
    bias, wd = built_bias([1, 2, 3])
    bias.set_option('momentum', 0.5)
    assert bias.has_option('learning_rate')
    assert not bias.has_option('dropout')
    assert bias.get_option('momentum') == 0.5
    with pytest.raises(UsageError):
        bias.get_option('dropout')
    with pytest.raises(UsageError):
        bias.set_option('dropout', 0.1)

    copy = bias.clone()
    assert copy.name == 'b' and copy.weights_name == 'b'
    assert copy.learning_rate == 0.1 and copy.momentum == 0.5
    assert copy.bias_vector is None and not copy.is_built
    with pytest.raises(UsageError):
        copy.copy_weights({})

    other = {}
    bias.copy_weights(other)
    assert other['b'] is wd['b']


def test_bias_reset():
    bias, _ = built_bias([1, 2, 3])
    bias.forward(tok([[0, 0, 0]]))
    bias.backward(tok([[1, 1, 1]]))
    bias.reset()
    assert bias.input is None and bias.error is None
    assert np.all(bias.output.mem_block.read() == 0)


def test_dot_product():
    rng = np.random.default_rng(0)
    W = rng.standard_normal((3, 2)).astype(np.float32)
    x = rng.standard_normal((4, 3)).astype(np.float32)
    e = rng.standard_normal((4, 2)).astype(np.float32)
    wd = {}
    dense = DotProductComponent('w', input_size=3, output_size=2)
    dense.build(3, 2, wd, {})
    # one row per output, num_inputs values each
    wd['w'].load_weights(np.ascontiguousarray(W.T))
    assert np.allclose(wd['w'].weights_matrix(), W)

    out = dense.forward(tok(x), True)
    assert np.allclose(out.to_array(2), x @ W, atol=1e-5)
    err = dense.backward(tok(e))
    assert np.allclose(err.to_array(3), e @ W.T, atol=1e-5)

    dense.set_option('learning_rate', 0.1)
    dense.update()
    expected = W - 0.1 / math.sqrt(4) * (x.T @ e)
    assert np.allclose(wd['w'].weights_matrix(), expected, atol=1e-5)


def test_dot_product_reads_tokens_on_its_own_side(monkeypatch):
    def no_device():
        raise AssertionError("host component touched device memory")

    monkeypatch.setattr('bunchnet.memory.get_cupy', no_device)
    monkeypatch.setattr('bunchnet.blas.get_cupy', no_device)
    dense = DotProductComponent('w', input_size=2, output_size=1)
    dense.build()
    dense.weights_matrix.load_weights(np.array([1.0, 2.0], dtype=np.float32))
    x = TokenMemoryBlock.from_array([[1, 1], [2, 0]], use_cuda=True)
    out = dense.forward(x)
    assert np.allclose(out.to_array(1), [[3], [2]])
    err = dense.backward(TokenMemoryBlock.from_array([[1], [1]], use_cuda=True))
    assert np.allclose(err.to_array(2), [[1, 2], [1, 2]])
    dense.set_option('learning_rate', 0.1)
    dense.update()


def test_dot_product_gradient_matches_finite_differences():
    rng = np.random.default_rng(1)
    W = rng.uniform(-1, 1, (3, 2)).astype(np.float32)
    x = rng.uniform(-1, 1, (2, 3)).astype(np.float32)
    e = rng.uniform(-1, 1, (2, 2)).astype(np.float32)
    wd = {}
    dense = DotProductComponent('w', input_size=3, output_size=2)
    actf = ActivationFunctionComponent('tanh', 'a')
    net = StackComponent('net', [dense, actf])
    net.build(3, 2, wd, {})
    wd['w'].load_weights(np.ascontiguousarray(W.T))

    # L = sum(out * e), so backward(e) returns dL/dx
    def loss(inputs):
        out = net.forward(tok(inputs)).to_array(2)
        return float(np.sum(out.astype(np.float64) * e))

    net.forward(tok(x))
    analytic = net.backward(tok(e)).to_array(3)
    eps = 1e-2
    numeric = np.zeros_like(analytic)
    for b in range(x.shape[0]):
        for i in range(x.shape[1]):
            plus, minus = x.copy(), x.copy()
            plus[b, i] += eps
            minus[b, i] -= eps
            numeric[b, i] = (loss(plus) - loss(minus)) / (2 * eps)
    assert np.allclose(analytic, numeric, atol=1e-3)

    # the weight step is -lr/sqrt(bunch) * dL/dW
    net.forward(tok(x))
    net.backward(tok(e))
    grad_w = np.zeros_like(W)
    for i in range(3):
        for j in range(2):
            saved = wd['w'].weights_matrix().copy()
            for delta, sign in ((eps, 1), (-eps, -1)):
                shifted = saved.copy()
                shifted[i, j] += delta
                wd['w'].load_weights(np.ascontiguousarray(shifted.T))
                grad_w[i, j] += sign * loss(x) / (2 * eps)
            wd['w'].load_weights(np.ascontiguousarray(saved.T))
    net.forward(tok(x))
    net.backward(tok(e))
    dense.set_option('learning_rate', 0.1)
    dense.update()
    expected = W - 0.1 / math.sqrt(2) * grad_w
    assert np.allclose(wd['w'].weights_matrix(), expected, atol=1e-3)


def test_dot_product_weight_decay_without_momentum():
    wd = {}
    dense = DotProductComponent('w', input_size=1, output_size=1)
    dense.build(0, 0, wd, {})
    wd['w'].load_weights(np.array([2.0], dtype=np.float32))
    dense.set_option('learning_rate', 0.1)
    dense.set_option('weight_decay', 0.5)
    dense.forward(tok([[0.0]]))
    dense.backward(tok([[1.0]]))
    dense.update()
    assert np.allclose(wd['w'].weights.read(), [1.0])


def test_activation_component():
    act = ActivationFunctionComponent('logistic', name='a')
    act.build(2, 0, {}, {})
    assert act.output_size == 2
    out = act.forward(tok([[0.0, 0.0], [0.0, 2.0]]))
    y = out.to_array(2)
    assert np.allclose(y[0], 0.5)
    err = act.backward(tok(np.ones((2, 2))))
    assert np.allclose(err.to_array(2), y * (1 - y))
    with pytest.raises(UsageError):
        ActivationFunctionComponent(42)


def test_stack_build_and_options():
    stack = all_all_stack([2, 3, 1], ['tanh', 'logistic'], name='net')
    wd, cd = stack.build(2, 1, {}, {})
    assert sorted(wd) == ['b0', 'b1', 'w0', 'w1']
    assert set(cd) == {'net', 'w0', 'b0', 'actf0', 'w1', 'b1', 'actf1'}
    assert stack.input_size == 2 and stack.output_size == 1
    assert wd['w0'].num_inputs == 2 and wd['w0'].num_outputs == 3

    stack.set_option('learning_rate', 0.2)
    assert stack.get_option('learning_rate') == 0.2
    assert stack[1].learning_rate == 0.2
    with pytest.raises(UsageError):
        stack.set_option('dropout', 0.1)

    out = stack.forward(tok(np.zeros((5, 2))))
    assert out.used_size == 5
    err = stack.backward(tok(np.ones((5, 1))))
    assert err.used_size == 10

    copy = stack.clone()
    assert isinstance(copy, StackComponent) and len(copy) == len(stack)
    assert not copy[0].is_built and copy[0].learning_rate == 0.2


def test_stack_push_after_build():
    stack = StackComponent('s', [BiasComponent('b')])
    stack.build(2, 2, {}, {})
    with pytest.raises(UsageError):
        stack.push(BiasComponent('c'))
    with pytest.raises(UsageError):
        StackComponent('empty').build(1, 1)
