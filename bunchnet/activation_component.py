from .activations import ActivationFunction, get_activation_function_by_name
from .base import ANNComponent
from .blas import do_scopy
from .config import ANNConfiguration
from .errors import UsageError
from .token import TokenMemoryBlock, check_mem_block


class ActivationFunctionComponent(ANNComponent):
    """Applies an activation function unit-wise; it has no weights."""
    name_prefix = 'actf'

    def __init__(self, activation, name=None, size=0):
        super().__init__(name, None, size, size)
        if isinstance(activation, str):
            activation = get_activation_function_by_name(activation)
        if not isinstance(activation, ActivationFunction):
            raise UsageError(256, f"Expected an ActivationFunction, found {activation!r}")
        self.activation = activation.clone()
        self.input = None
        self.output = TokenMemoryBlock()
        self.error = None
        self.error_output = TokenMemoryBlock()

    def build(self, input_size=0, output_size=0, weights_dict=None, components_dict=None):
        weights_dict, components_dict = super().build(input_size, output_size,
                                                      weights_dict, components_dict)
        size = self.input_size or self.output_size
        if size == 0:
            raise UsageError(141, "Impossible to compute input/output sizes for this component")
        if self.input_size and self.output_size and self.input_size != self.output_size:
            raise UsageError(142, "Activation input/output sizes must be equal")
        self.input_size = self.output_size = size
        return weights_dict, components_dict

    def _conf(self):
        return ANNConfiguration(max_bunch_size=self.bunch_size,
                                cur_bunch_size=self.bunch_size,
                                use_cuda=self.use_cuda)

    def forward(self, input_token, during_training=False):
        self._check_built()
        self.input = check_mem_block(input_token, 129)
        self.bunch_size = self._input_bunch_size(self.input)
        n = self.bunch_size * self.output_size
        self.output.set_use_cuda(self.use_cuda)
        self.output.resize(n)
        do_scopy(n, self.input.mem_block, 0, 1, self.output.mem_block, 0, 1, self.use_cuda)
        self.activation.apply_activation(self.output.mem_block, self.output_size, self._conf())
        return self.output

    def backward(self, error_token):
        error = check_mem_block(error_token, 129, 'error')
        self._check_error_size(error)
        self.error = error
        n = self.bunch_size * self.input_size
        self.error_output.set_use_cuda(self.use_cuda)
        self.error_output.resize(n)
        do_scopy(n, self.error.mem_block, 0, 1, self.error_output.mem_block, 0, 1,
                 self.use_cuda)
        self.activation.multiply_derivatives(self.output.mem_block,
                                             self.error_output.mem_block,
                                             self.output_size, self._conf())
        return self.error_output

    def reset(self):
        self.output.mem_block.fill(0.0, self.use_cuda)
        self.error_output.mem_block.fill(0.0, self.use_cuda)
        self.input = None
        self.error = None

    def clone(self):
        component = ActivationFunctionComponent(self.activation, self.name,
                                                self.input_size)
        component.use_cuda = self.use_cuda
        return component
