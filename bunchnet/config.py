"""
Configuration objects.

ANNConfiguration describes the bunch being processed by activation
functions. TrainingConfig holds the hyperparameters used by the Trainer and
the example scripts; it can be overridden from a YAML file.
"""
import os
from dataclasses import dataclass, fields

import yaml

_FALSE_STRINGS = ('false', 'no', 'off', '0', '')


def _parse_bool(value):
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


@dataclass
class ANNConfiguration:
    """Physical and current bunch sizes of a units buffer."""
    max_bunch_size: int = 1
    cur_bunch_size: int = 1
    use_cuda: bool = False

    def __post_init__(self):
        if self.cur_bunch_size > self.max_bunch_size:
            self.max_bunch_size = self.cur_bunch_size


@dataclass
class TrainingConfig:
    learning_rate: float = 0.1
    momentum: float = 0.0
    weight_decay: float = 0.0
    bunch_size: int = 32
    epochs: int = 10
    use_cuda: bool = False
    seed: int = 1234
    weights_low: float = -1.0
    weights_high: float = 1.0

    def update(self, **overrides):
        """Override fields, ignoring None values (unset CLI flags)."""
        names = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if key in names and value is not None:
                kind = type(getattr(self, key))
                setattr(self, key, _parse_bool(value) if kind is bool else kind(value))
        return self


def load_config(config_path='conf/config.yaml'):
    """
    Load a TrainingConfig from the `training:` section of a YAML file.
    Missing files give the defaults.
    """
    config = TrainingConfig()
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        config.update(**(data.get('training') or {}))
    return config
