"""
Bias component: adds a shared bias vector to every pattern of the bunch.
"""
import logging

from .base import ANNComponent, OptionsMixin
from .blas import do_saxpy_loop, do_scopy_loop, do_vector_set_to_zero
from .connections import Connections, normalized_learning_rate
from .errors import UsageError
from .token import TokenMemoryBlock, check_mem_block

logger = logging.getLogger(__name__)


class BiasComponent(OptionsMixin, ANNComponent):
    """
    output = input + bias, broadcast over the bunch.

    Backward is a pass-through; the recorded error drives the update of
    the bias vector (a 1 x output_size Connections).
    """
    name_prefix = 'b'
    options = ('learning_rate', 'momentum')

    def __init__(self, name=None, weights_name=None):
        super().__init__(name, weights_name if weights_name is not None else name)
        self.input = None
        self.output = TokenMemoryBlock()
        self.error = None
        self.bias_vector = None
        self.learning_rate = -1.0
        self.momentum = 0.0

    def build(self, input_size=0, output_size=0, weights_dict=None, components_dict=None):
        weights_dict, components_dict = super().build(input_size, output_size,
                                                      weights_dict, components_dict)
        # sizes are equal, a known one gives the other
        if self.input_size == 0 or self.output_size == 0:
            self.input_size = self.output_size = self.input_size or self.output_size
        if self.input_size == 0:
            raise UsageError(141, "Impossible to compute input/output sizes for this component")
        if self.input_size != self.output_size:
            raise UsageError(142, "BiasComponent input/output sizes must be equal")
        if self.weights_name is None:
            self.weights_name = self.name
        w = weights_dict.get(self.weights_name)
        if w is not None:
            if not w.check_input_output_sizes(1, self.output_size):
                raise UsageError(256, "The weights matrix input/output sizes are not "
                                      f"correct, expected 1,{self.output_size}")
        else:
            w = Connections(1, self.output_size, use_cuda=self.use_cuda)
            weights_dict[self.weights_name] = w
        self.bias_vector = w
        w.count_reference()
        return weights_dict, components_dict

    def forward(self, input_token, during_training=False):
        self._check_built()
        self.input = check_mem_block(input_token, 129)
        bunch_size = self._input_bunch_size(self.input)
        self.bunch_size = bunch_size
        self.output.set_use_cuda(self.use_cuda)
        self.output.resize(bunch_size * self.output_size)
        in_ptr = self.input.mem_block
        out_ptr = self.output.mem_block
        # copy the whole bunch, then add bias[j] to every slot of row j
        do_scopy_loop(self.output_size, in_ptr, bunch_size, out_ptr, bunch_size,
                      bunch_size, 1, 1, self.use_cuda)
        do_saxpy_loop(self.output_size, 1.0, self.bias_vector.weights, 1,
                      out_ptr, bunch_size, bunch_size, 0, 1, self.use_cuda)
        return self.output

    def backward(self, error_token):
        error = check_mem_block(error_token, 129, 'error')
        self._check_error_size(error)
        self.error = error
        return error_token

    def update(self):
        if self.learning_rate <= 0.0:
            raise UsageError(143, "Learning rate needs to be fixed with set_option method")
        if self.error is None:
            raise UsageError(144, f"update() without a previous backward() at {self.name}")
        bias = self.bias_vector
        bias.begin_update(self.momentum, 1.0)
        alpha = normalized_learning_rate(self.learning_rate, bias.num_references,
                                         self.bunch_size)
        # prev_bias[j] += alpha * sum_b error[j, b]
        do_saxpy_loop(self.output_size, alpha, self.error.mem_block, self.bunch_size,
                      bias.prev_weights, 1, self.bunch_size, 1, 0, self.use_cuda)
        bias.end_update()

    def reset(self):
        if self.output is not None:
            do_vector_set_to_zero(self.output.mem_block, self.output.max_size, 1, 0,
                                  self.use_cuda)
        self.input = None
        self.error = None

    def clone(self):
        component = BiasComponent(self.name, self.weights_name)
        component.learning_rate = self.learning_rate
        component.momentum = self.momentum
        component.use_cuda = self.use_cuda
        return component

    def copy_weights(self, weights_dict):
        if self.bias_vector is None:
            raise UsageError(100, "Component not built, impossible execute copy_weights")
        w = weights_dict.get(self.weights_name)
        if w is not None and w is not self.bias_vector:
            raise UsageError(101, f"Weights dictionary contains {self.weights_name} weights "
                                  "name which is not shared with bias_vector attribute")
        weights_dict[self.weights_name] = self.bias_vector
