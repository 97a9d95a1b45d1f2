"""
Loss Functions over bunches.

`add_loss` returns the loss of one bunch and accumulates it;
`get_accum_loss` is the mean of the accumulated values since the last
`reset`. `compute_gradient` returns dLoss/dOutput as a token shaped like
the output, the seed of the backward pass.
"""
from .blas import get_array_module
from .errors import UsageError
from .token import TokenMemoryBlock, check_mem_block

NEAR_ZERO = 1e-5


class LossFunction:
    """
    Base class for loss functions.

    Args:
        size: Expected size of every output vector
    """
    def __init__(self, size):
        if size == 0:
            raise UsageError(128, "Impossible to build ZERO size LossFunction")
        self.size = size
        self.error_output = None
        self.accumulated_loss = 0.0
        self.N = 0

    def _check_tokens(self, input_token, target_token):
        check_mem_block(input_token, 128, 'input')
        check_mem_block(target_token, 128, 'target')
        if input_token.used_size != target_token.used_size:
            raise UsageError(128, f"Different token sizes found, input={input_token.used_size} "
                                  f"target={target_token.used_size}")
        if input_token.used_size % self.size != 0:
            raise UsageError(128, f"Token size {input_token.used_size} is not a multiple "
                                  f"of loss size {self.size}")
        bunch_size = input_token.used_size // self.size
        xp = get_array_module(input_token.use_cuda)
        y = input_token.mem_block.get(input_token.use_cuda)[:input_token.used_size]
        t = target_token.mem_block.get(input_token.use_cuda)[:input_token.used_size]
        return xp, y, t, bunch_size

    def _error_token(self, input_token):
        if self.error_output is None:
            self.error_output = TokenMemoryBlock(use_cuda=input_token.use_cuda)
        self.error_output.set_use_cuda(input_token.use_cuda)
        self.error_output.resize(input_token.used_size)
        return self.error_output

    def add_loss(self, input_token, target_token):
        xp, y, t, bunch_size = self._check_tokens(input_token, target_token)
        loss = float(self._loss(xp, y, t, bunch_size))
        self.accumulated_loss += loss
        self.N += 1
        return loss

    def compute_gradient(self, input_token, target_token):
        xp, y, t, bunch_size = self._check_tokens(input_token, target_token)
        error = self._error_token(input_token)
        out = error.mem_block.get(error.use_cuda, write=True)[:error.used_size]
        out[...] = self._gradient(xp, y, t, bunch_size)
        return error

    def get_accum_loss(self):
        if self.N == 0:
            return 0.0
        return self.accumulated_loss / self.N

    def reset(self):
        self.accumulated_loss = 0.0
        self.N = 0
        self.error_output = None

    def clone(self):
        return type(self)(self.size)

    def _loss(self, xp, y, t, bunch_size):
        raise NotImplementedError

    def _gradient(self, xp, y, t, bunch_size):
        raise NotImplementedError


class MSELossFunction(LossFunction):
    """Mean Squared Error: 0.5 / bunch_size * sum((y - t)^2)."""
    def _loss(self, xp, y, t, bunch_size):
        d = y - t
        return 0.5 / bunch_size * xp.sum(d * d)

    def _gradient(self, xp, y, t, bunch_size):
        return y - t


class MAELossFunction(LossFunction):
    """Mean Absolute Error: sum(|y - t|) / bunch_size."""
    def _loss(self, xp, y, t, bunch_size):
        return xp.sum(xp.abs(y - t)) / bunch_size

    def _gradient(self, xp, y, t, bunch_size):
        d = y - t
        return xp.where(xp.abs(d) < NEAR_ZERO, 0.0, xp.sign(d))
