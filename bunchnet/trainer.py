"""
Training driver.

Runs the step order the components rely on: forward left-to-right, loss
and gradient, backward right-to-left, then update.
"""
import logging

import numpy as np
from tqdm import tqdm

from .config import TrainingConfig
from .token import TokenMemoryBlock

logger = logging.getLogger(__name__)


class Trainer:
    """
    Args:
        component: Root component (usually a StackComponent)
        loss: LossFunction matching the component output size
        config: TrainingConfig with the hyperparameters
    """
    def __init__(self, component, loss, config=None):
        self.component = component
        self.loss = loss
        self.config = config if config is not None else TrainingConfig()
        self.weights_dict = {}
        self.components_dict = {}

    def build(self, input_size=0, output_size=0):
        self.component.set_use_cuda(self.config.use_cuda)
        self.component.build(input_size, output_size,
                             self.weights_dict, self.components_dict)
        for name in ('learning_rate', 'momentum', 'weight_decay'):
            if self.component.has_option(name):
                self.component.set_option(name, getattr(self.config, name))
        for conn in self.weights_dict.values():
            conn.set_use_cuda(self.config.use_cuda)
        return self

    def randomize_weights(self, rng=None, low=None, high=None):
        if rng is None:
            rng = np.random.default_rng(self.config.seed)
        low = self.config.weights_low if low is None else low
        high = self.config.weights_high if high is None else high
        # sorted so a given seed always gives the same weights
        for name in sorted(self.weights_dict):
            self.weights_dict[name].randomize_weights(rng, low, high)

    def _token(self, patterns):
        return TokenMemoryBlock.from_array(patterns, use_cuda=self.config.use_cuda)

    def train_step(self, input_token, target_token):
        """One forward/backward/update step, returns the bunch loss."""
        self.component.reset()
        output = self.component.forward(input_token, True)
        loss = self.loss.add_loss(output, target_token)
        error = self.loss.compute_gradient(output, target_token)
        self.component.backward(error)
        self.component.update()
        return loss

    def train_dataset(self, inputs, targets, rng=None, desc='Train'):
        """
        One epoch over (N, input_size) / (N, output_size) arrays in bunches.

        Returns:
            float: Mean bunch loss of the epoch
        """
        inputs = np.asarray(inputs, dtype=np.float32)
        targets = np.asarray(targets, dtype=np.float32)
        if rng is None:
            rng = np.random.default_rng(self.config.seed)
        indices = rng.permutation(len(inputs))
        bunch_size = self.config.bunch_size
        self.loss.reset()

        pbar = tqdm(range(0, len(inputs), bunch_size), desc=desc, leave=False)
        for i in pbar:
            idx = indices[i:i + bunch_size]
            bloss = self.train_step(self._token(inputs[idx]), self._token(targets[idx]))
            pbar.set_postfix({'loss': f'{bloss:.4f}'})
        return self.loss.get_accum_loss()

    def validate_dataset(self, inputs, targets):
        """Mean bunch loss without updating."""
        inputs = np.asarray(inputs, dtype=np.float32)
        targets = np.asarray(targets, dtype=np.float32)
        bunch_size = self.config.bunch_size
        self.loss.reset()
        for i in range(0, len(inputs), bunch_size):
            self.component.reset()
            output = self.component.forward(self._token(inputs[i:i + bunch_size]))
            self.loss.add_loss(output, self._token(targets[i:i + bunch_size]))
        return self.loss.get_accum_loss()

    def predict(self, inputs):
        """(N, output_size) host array of outputs."""
        inputs = np.asarray(inputs, dtype=np.float32)
        self.component.reset()
        output = self.component.forward(self._token(inputs))
        return output.to_array(self.component.output_size)

    def fit(self, inputs, targets, val_inputs=None, val_targets=None, epochs=None):
        """Train for several epochs, returns the list of epoch losses."""
        epochs = self.config.epochs if epochs is None else epochs
        log_every = max(1, epochs // 10)
        rng = np.random.default_rng(self.config.seed)
        history = []
        for epoch in range(epochs):
            train_loss = self.train_dataset(inputs, targets, rng, desc=f"Epoch {epoch+1}")
            msg = f"Epoch {epoch+1} done. Train Loss: {train_loss:.6f}"
            if val_inputs is not None:
                val_loss = self.validate_dataset(val_inputs, val_targets)
                msg += f", Val Loss: {val_loss:.6f}"
            if (epoch + 1) % log_every == 0 or epoch + 1 == epochs:
                logger.info(msg)
            history.append(train_loss)
        for conn in self.weights_dict.values():
            conn.prune_subnormal_and_check_normal()
        return history
