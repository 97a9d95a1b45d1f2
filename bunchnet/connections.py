"""
Shared weight matrices.

A Connections object keeps the live weights and a staging buffer
(`prev_weights`). Every component that references it contributes its
gradient into the staging buffer; only when the last referencing
component has contributed are the two buffers swapped. The counters make
that barrier independent of the order in which components update.
"""
import logging
import math

import numpy as np

from .blas import do_saxpy, do_scopy, do_sscal
from .errors import NumericIntegrityError, UsageError
from .memory import MirroredBuffer

logger = logging.getLogger(__name__)


class Connections:
    """
    A num_inputs x num_outputs weight matrix shared by name between components.

    Weight (i, j), input i to output j, lives at flat index
    `i * num_outputs + j`.

    Args:
        num_inputs: Input size of the matrix
        num_outputs: Output size of the matrix
        use_cuda: Run the update arithmetic on the GPU side
    """
    WEIGHT_NEAR_ZERO = 1e-7

    def __init__(self, num_inputs, num_outputs, use_cuda=False):
        if num_inputs == 0 or num_outputs == 0:
            raise UsageError(130, "Impossible to build a ZERO size Connections object")
        self.num_inputs = num_inputs
        self.num_outputs = num_outputs
        self.total_size = num_inputs * num_outputs
        self.weights = MirroredBuffer(self.total_size)
        self.prev_weights = MirroredBuffer(self.total_size)
        self.use_cuda = use_cuda
        self._num_references = 0
        self.update_weights_calls = 0

    def __len__(self):
        return self.total_size

    def set_use_cuda(self, use_cuda):
        self.use_cuda = use_cuda

    def check_input_output_sizes(self, input_size, output_size):
        if self.num_inputs != input_size:
            logger.error("Incorrect input size %d, expected %d", input_size, self.num_inputs)
            return False
        if self.num_outputs != output_size:
            logger.error("Incorrect output size %d, expected %d", output_size, self.num_outputs)
            return False
        return True

    # ------------------------------------------------------------------
    # Reference counted update barrier
    # ------------------------------------------------------------------

    def count_reference(self):
        self._num_references += 1

    @property
    def num_references(self):
        return self._num_references

    def begin_update(self, momentum=0.0, c_weight_decay=1.0):
        """
        Register one update call. The first call of a cycle seeds the staging
        buffer: momentum rule plus weight decay when momentum > 0, a plain
        copy of the weights otherwise.
        """
        if self._num_references == 0:
            raise UsageError(131, "Connections updated without any counted reference")
        if self.update_weights_calls >= self._num_references:
            raise UsageError(132, f"More update calls than references "
                                  f"({self._num_references}) in one cycle")
        self.update_weights_calls += 1
        if self.is_first_update_call():
            if momentum > 0.0:
                self.compute_momentum_on_prev_vector(momentum)
                self.compute_weight_decay_on_prev_vector(c_weight_decay)
            else:
                self.copy_to_prev_vector()

    def end_update(self):
        """Swap weights and staging once every reference has contributed."""
        if self.update_weights_calls == self._num_references:
            self.weights, self.prev_weights = self.prev_weights, self.weights
            self.update_weights_calls = 0
            logger.debug("Connections %dx%d swapped after %d contributions",
                         self.num_inputs, self.num_outputs, self._num_references)
            return True
        return False

    def is_first_update_call(self):
        return self.update_weights_calls == 1

    def compute_momentum_on_prev_vector(self, momentum):
        # prev = -momentum * (prev - w)
        do_saxpy(self.total_size, -1.0, self.weights, 0, 1,
                 self.prev_weights, 0, 1, self.use_cuda)
        do_sscal(self.total_size, -momentum, self.prev_weights, 0, 1, self.use_cuda)

    def compute_weight_decay_on_prev_vector(self, c_weight_decay):
        # prev += c_weight_decay * w
        do_saxpy(self.total_size, c_weight_decay, self.weights, 0, 1,
                 self.prev_weights, 0, 1, self.use_cuda)

    def copy_to_prev_vector(self):
        do_scopy(self.total_size, self.weights, 0, 1,
                 self.prev_weights, 0, 1, self.use_cuda)

    # ------------------------------------------------------------------
    # Initialisation and dense matrix interchange
    # ------------------------------------------------------------------

    def _random_block(self, rng, shape, low, high, near_zero):
        if abs(low) <= near_zero or abs(high) <= near_zero:
            raise UsageError(133, f"Weight range [{low}, {high}] touches the "
                                  f"near-zero band {near_zero}")
        values = rng.uniform(low, high, size=shape)
        bad = np.abs(values) < near_zero
        while bad.any():
            values[bad] = rng.uniform(low, high, size=int(bad.sum()))
            bad = np.abs(values) < near_zero
        return values.astype(np.float32)

    def randomize_weights(self, rng, low, high, near_zero=WEIGHT_NEAR_ZERO):
        """
        Uniform weights in [low, high], never inside (-near_zero, near_zero).

        Args:
            rng: numpy.random.Generator
        """
        w = self.weights.read_write()
        w[...] = self._random_block(rng, self.total_size, low, high, near_zero)
        self.prev_weights.read_write()[...] = w

    def randomize_weights_at_column(self, col, rng, low, high, near_zero=WEIGHT_NEAR_ZERO):
        """Randomize the weights feeding output `col` only."""
        if not 0 <= col < self.num_outputs:
            raise UsageError(134, f"Column {col} out of range [0, {self.num_outputs})")
        w = self.weights.read_write().reshape(self.num_inputs, self.num_outputs)
        w[:, col] = self._random_block(rng, self.num_inputs, low, high, near_zero)
        self.prev_weights.read_write().reshape(self.num_inputs, self.num_outputs)[:, col] = w[:, col]

    def _check_matrix(self, data, old_data, first_weight_pos, column_size):
        if column_size < self.num_inputs:
            raise UsageError(24, f"Column size {column_size} smaller than "
                                 f"num_inputs {self.num_inputs}")
        # one past the last weight of the last row
        min_size = first_weight_pos + (self.num_outputs - 1) * column_size + self.num_inputs
        for m in (data, old_data):
            if m is None:
                continue
            if min_size > m.size:
                raise UsageError(24, f"Incorrect matrix size, was {m.size}, "
                                     f"expected >= {min_size}")
            if not (m.flags.c_contiguous and m.dtype == np.float32):
                raise UsageError(128, "Matrices need to be simple (not sub-matrix "
                                      "and in row-major float32)")

    def _positions(self, first_weight_pos, column_size):
        # (num_outputs, num_inputs) flat positions, one row per output
        rows = np.arange(self.num_outputs)[:, None] * column_size
        return first_weight_pos + rows + np.arange(self.num_inputs)[None, :]

    def load_weights(self, data, old_data=None, first_weight_pos=0, column_size=None):
        """
        Read weights from a dense row-major matrix: for each output j,
        `num_inputs` values starting at `first_weight_pos + j * column_size`.
        `old_data` fills the staging buffer and defaults to `data`.

        Returns:
            int: Flat position right after the last row read
        """
        if column_size is None:
            column_size = self.num_inputs
        if old_data is None:
            old_data = data
        self._check_matrix(data, old_data, first_weight_pos, column_size)
        pos = self._positions(first_weight_pos, column_size)
        shape = (self.num_inputs, self.num_outputs)
        self.weights.read_write().reshape(shape)[...] = data.ravel()[pos].T
        self.prev_weights.read_write().reshape(shape)[...] = old_data.ravel()[pos].T
        return first_weight_pos + self.num_outputs * column_size

    def copy_weights_to(self, data, old_data=None, first_weight_pos=0, column_size=None):
        """Inverse of load_weights. A None `old_data` skips the staging buffer."""
        if column_size is None:
            column_size = self.num_inputs
        self._check_matrix(data, old_data, first_weight_pos, column_size)
        pos = self._positions(first_weight_pos, column_size)
        shape = (self.num_inputs, self.num_outputs)
        data.ravel()[pos] = self.weights.read().reshape(shape).T
        if old_data is not None:
            old_data.ravel()[pos] = self.prev_weights.read().reshape(shape).T
        return first_weight_pos + self.num_outputs * column_size

    # ------------------------------------------------------------------

    def clone(self):
        """Deep copy of both buffers, with no references counted."""
        conn = Connections(self.num_inputs, self.num_outputs, use_cuda=self.use_cuda)
        conn.weights = self.weights.clone()
        conn.prev_weights = self.prev_weights.clone()
        return conn

    def scale(self, alpha):
        do_sscal(self.total_size, alpha, self.weights, 0, 1, self.use_cuda)
        do_sscal(self.total_size, alpha, self.prev_weights, 0, 1, self.use_cuda)

    def prune_subnormal_and_check_normal(self):
        w = self.weights.read_write()
        if not np.all(np.isfinite(w)):
            raise NumericIntegrityError(128, "No finite numbers at weights matrix!!!")
        w[np.abs(w) < np.finfo(np.float32).tiny] = 0.0

    def weights_matrix(self):
        """Host copy of the live weights as (num_inputs, num_outputs)."""
        return self.weights.to_numpy().reshape(self.num_inputs, self.num_outputs)

    def print_debug(self):
        logger.debug("Connections %dx%d refs=%d calls=%d\nweights=%s\nprev=%s",
                     self.num_inputs, self.num_outputs, self._num_references,
                     self.update_weights_calls, self.weights.read(),
                     self.prev_weights.read())

    def __repr__(self):
        return (f"Connections(num_inputs={self.num_inputs}, num_outputs={self.num_outputs}, "
                f"refs={self._num_references})")


def normalized_learning_rate(learning_rate, references, bunch_size):
    """-lr / sqrt(references * bunch_size), the per-contribution step."""
    return -learning_rate / math.sqrt(references * bunch_size)
