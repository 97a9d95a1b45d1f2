"""
bunchnet - Neural network execution runtime over bunches of vectors

Components run forward, backward and update passes over bunches stored in
float buffers mirrored between host (NumPy) and GPU (CuPy) memory. Weight
matrices are shared by name and updated behind a reference-counted barrier.

Requirements:
    pip install cupy-cuda12x  # optional, only for use_cuda=True

Usage:
    import numpy as np
    from bunchnet import all_all_stack, MSELossFunction, Trainer, TrainingConfig

    net = all_all_stack([2, 4, 1], ['tanh', 'logistic'])
    trainer = Trainer(net, MSELossFunction(1), TrainingConfig(learning_rate=0.5))
    trainer.build(2, 1)
    trainer.randomize_weights(np.random.default_rng(1234))
    loss = trainer.train_dataset(inputs, targets)
"""

from .errors import ANNError, UsageError, NumericIntegrityError, NotImplementedYetError
from .config import ANNConfiguration, TrainingConfig, load_config
from .memory import MirroredBuffer, CoherenceState
from .token import Token, TokenCode, TokenMemoryBlock, TokenBunchVector
from .connections import Connections
from .activations import (
    ActivationFunction, LinearActivationFunction, LogisticActivationFunction,
    TanhActivationFunction, SoftmaxActivationFunction, StochasticActivationFunction,
    BinarySamplingActivationFunction, get_activation_function_by_name,
)
from .base import ANNComponent
from .bias import BiasComponent
from .dense import DotProductComponent
from .activation_component import ActivationFunctionComponent
from .stack import StackComponent, all_all_stack
from .losses import LossFunction, MSELossFunction, MAELossFunction
from .trainer import Trainer


__all__ = [
    # Errors
    'ANNError', 'UsageError', 'NumericIntegrityError', 'NotImplementedYetError',
    # Config
    'ANNConfiguration', 'TrainingConfig', 'load_config',
    # Memory and tokens
    'MirroredBuffer', 'CoherenceState',
    'Token', 'TokenCode', 'TokenMemoryBlock', 'TokenBunchVector',
    # Weights
    'Connections',
    # Activations
    'ActivationFunction', 'LinearActivationFunction', 'LogisticActivationFunction',
    'TanhActivationFunction', 'SoftmaxActivationFunction',
    'StochasticActivationFunction', 'BinarySamplingActivationFunction',
    'get_activation_function_by_name',
    # Components
    'ANNComponent', 'BiasComponent', 'DotProductComponent',
    'ActivationFunctionComponent', 'StackComponent', 'all_all_stack',
    # Losses
    'LossFunction', 'MSELossFunction', 'MAELossFunction',
    # Driver
    'Trainer',
]
