"""
Dense (all-to-all) component.
"""
from .base import ANNComponent, OptionsMixin
from .blas import do_sgemm, do_sscal, matrix_view
from .connections import Connections, normalized_learning_rate
from .errors import UsageError
from .token import TokenMemoryBlock, check_mem_block


class DotProductComponent(OptionsMixin, ANNComponent):
    """
    Fully connected layer without bias: out = W^T x for every pattern.

    Tokens are (size, bunch) matrices, the weights (input_size, output_size).

    Args:
        name: Component name
        weights_name: Weights name in the weights dictionary
        input_size: Input size (0 to take it from build)
        output_size: Output size (0 to take it from build)
    """
    name_prefix = 'w'
    options = ('learning_rate', 'momentum', 'weight_decay')

    def __init__(self, name=None, weights_name=None, input_size=0, output_size=0):
        super().__init__(name, weights_name if weights_name is not None else name,
                         input_size, output_size)
        self.input = None
        self.output = TokenMemoryBlock()
        self.error = None
        self.error_output = TokenMemoryBlock()
        self.weights_matrix = None
        self.learning_rate = -1.0
        self.momentum = 0.0
        self.weight_decay = 0.0

    def build(self, input_size=0, output_size=0, weights_dict=None, components_dict=None):
        weights_dict, components_dict = super().build(input_size, output_size,
                                                      weights_dict, components_dict)
        if self.input_size == 0 or self.output_size == 0:
            raise UsageError(141, "Impossible to compute input/output sizes for this component")
        if self.weights_name is None:
            self.weights_name = self.name
        w = weights_dict.get(self.weights_name)
        if w is not None:
            if not w.check_input_output_sizes(self.input_size, self.output_size):
                raise UsageError(256, "The weights matrix input/output sizes are not correct, "
                                      f"expected {self.input_size},{self.output_size}")
        else:
            w = Connections(self.input_size, self.output_size, use_cuda=self.use_cuda)
            weights_dict[self.weights_name] = w
        self.weights_matrix = w
        w.count_reference()
        return weights_dict, components_dict

    def _weights(self, buf):
        return matrix_view(buf, self.input_size, self.output_size, self.use_cuda)

    def forward(self, input_token, during_training=False):
        self._check_built()
        self.input = check_mem_block(input_token, 129)
        self.bunch_size = self._input_bunch_size(self.input)
        self.output.set_use_cuda(self.use_cuda)
        self.output.resize(self.bunch_size * self.output_size)
        x = self.input.bunch_view(self.input_size, use_cuda=self.use_cuda)
        out = self.output.bunch_view(self.output_size, write=True, use_cuda=self.use_cuda)
        w = self._weights(self.weights_matrix.weights)
        do_sgemm(1.0, w.T, x, 0.0, out, self.use_cuda)
        return self.output

    def backward(self, error_token):
        error = check_mem_block(error_token, 129, 'error')
        self._check_error_size(error)
        self.error = error
        self.error_output.set_use_cuda(self.use_cuda)
        self.error_output.resize(self.bunch_size * self.input_size)
        e = self.error.bunch_view(self.output_size, use_cuda=self.use_cuda)
        err_out = self.error_output.bunch_view(self.input_size, write=True, use_cuda=self.use_cuda)
        w = self._weights(self.weights_matrix.weights)
        do_sgemm(1.0, w, e, 0.0, err_out, self.use_cuda)
        return self.error_output

    def update(self):
        if self.learning_rate <= 0.0:
            raise UsageError(143, "Learning rate needs to be fixed with set_option method")
        if self.error is None or self.input is None:
            raise UsageError(144, f"update() without a previous backward() at {self.name}")
        conn = self.weights_matrix
        conn.begin_update(self.momentum, 1.0 - self.weight_decay)
        if conn.is_first_update_call() and self.momentum <= 0.0 and self.weight_decay > 0.0:
            do_sscal(conn.total_size, 1.0 - self.weight_decay, conn.prev_weights, 0, 1,
                     self.use_cuda)
        alpha = normalized_learning_rate(self.learning_rate, conn.num_references,
                                         self.bunch_size)
        x = self.input.bunch_view(self.input_size, use_cuda=self.use_cuda)
        e = self.error.bunch_view(self.output_size, use_cuda=self.use_cuda)
        prev = matrix_view(conn.prev_weights, self.input_size, self.output_size,
                           self.use_cuda, write=True)
        # prev += alpha * x e^T
        do_sgemm(alpha, x, e.T, 1.0, prev, self.use_cuda)
        conn.end_update()

    def reset(self):
        self.output.mem_block.fill(0.0, self.use_cuda)
        self.error_output.mem_block.fill(0.0, self.use_cuda)
        self.input = None
        self.error = None

    def clone(self):
        component = DotProductComponent(self.name, self.weights_name,
                                        self.input_size, self.output_size)
        component.learning_rate = self.learning_rate
        component.momentum = self.momentum
        component.weight_decay = self.weight_decay
        component.use_cuda = self.use_cuda
        return component

    def copy_weights(self, weights_dict):
        if self.weights_matrix is None:
            raise UsageError(100, "Component not built, impossible execute copy_weights")
        w = weights_dict.get(self.weights_name)
        if w is not None and w is not self.weights_matrix:
            raise UsageError(101, f"Weights dictionary contains {self.weights_name} weights "
                                  "name which is not shared with this component")
        weights_dict[self.weights_name] = self.weights_matrix
