"""
Base class for all components in the network graph.
"""
import itertools
import logging

from .errors import UsageError

logger = logging.getLogger(__name__)

_name_counter = itertools.count(1)


def generate_name(prefix):
    return f"{prefix}{next(_name_counter)}"


class ANNComponent:
    """
    Base class for all components.

    A component is constructed unbuilt. `build()` fixes its sizes, registers it
    by name in the components dictionary and resolves its weights by name in
    the weights dictionary, which owns every Connections object of the graph.

    Args:
        name: Unique component name (generated when None)
        weights_name: Name of the weights in the weights dictionary
        input_size: 0 when it must be taken from build()
        output_size: 0 when it must be taken from build()
    """
    name_prefix = 'c'

    def __init__(self, name=None, weights_name=None, input_size=0, output_size=0):
        self.name = name if name is not None else generate_name(self.name_prefix)
        self.weights_name = weights_name
        self.input_size = input_size
        self.output_size = output_size
        self.bunch_size = 0
        self.use_cuda = False
        self.is_built = False

    def build(self, input_size=0, output_size=0, weights_dict=None, components_dict=None):
        """
        Fix the sizes and register the component.

        A size of 0 means "unknown"; two known sizes that differ are an error.
        """
        if weights_dict is None:
            weights_dict = {}
        if components_dict is None:
            components_dict = {}
        self.input_size = self._merge_size('input', self.input_size, input_size)
        self.output_size = self._merge_size('output', self.output_size, output_size)
        current = components_dict.get(self.name)
        if current is not None and current is not self:
            raise UsageError(102, f"Non unique component name found: {self.name}")
        components_dict[self.name] = self
        self.is_built = True
        return weights_dict, components_dict

    def _merge_size(self, what, own, given):
        if own != 0 and given != 0 and own != given:
            raise UsageError(140, f"Incorrect {what} size at {self.name}, "
                                  f"expected {own}, found {given}")
        return own or given

    def _check_built(self):
        if not self.is_built:
            raise UsageError(100, f"Component {self.name} not built")

    def _input_bunch_size(self, token):
        """Bunch size of an input token; its size must be a multiple of input_size."""
        if token.used_size == 0 or token.used_size % self.input_size != 0:
            raise UsageError(129, f"Incorrect input token size {token.used_size} at "
                                  f"{self.name}, expected a multiple of {self.input_size}")
        return token.used_size // self.input_size

    def _check_error_size(self, token):
        """An error token must match the bunch of the last forward."""
        expected = self.bunch_size * self.output_size
        if token.used_size != expected:
            raise UsageError(129, f"Incorrect error token size {token.used_size} at "
                                  f"{self.name}, expected {expected}")

    def forward(self, input_token, during_training=False):
        """Forward pass, returns the output token."""
        raise NotImplementedError

    def backward(self, error_token):
        """Backward pass, returns the error token for the previous component."""
        raise NotImplementedError

    def update(self):
        """Apply the gradient contribution of the last backward pass."""
        pass

    def reset(self):
        """Drop the tokens of the last step."""
        pass

    def clone(self):
        raise NotImplementedError

    def copy_weights(self, weights_dict):
        """Register the weights of this component into weights_dict."""
        pass

    def copy_components(self, components_dict):
        components_dict[self.name] = self

    def set_use_cuda(self, use_cuda):
        self.use_cuda = use_cuda

    # Options are exposed by string key; subclasses handle their own keys
    # and fall through here for the rest.

    def set_option(self, name, value):
        raise UsageError(140, f"The option '{name}' does not exist in {self.name}")

    def get_option(self, name):
        raise UsageError(140, f"The option '{name}' does not exist in {self.name}")

    def has_option(self, name):
        return False

    def get_input(self):
        return getattr(self, 'input', None)

    def get_output(self):
        return getattr(self, 'output', None)

    def get_error_input(self):
        return getattr(self, 'error', None)

    def get_error_output(self):
        return getattr(self, 'error_output', None)

    def __repr__(self):
        return (f"{type(self).__name__}(name={self.name!r}, "
                f"input_size={self.input_size}, output_size={self.output_size})")


class OptionsMixin:
    """Expose the attributes listed in `options` through set/get/has_option."""
    options = ()

    def set_option(self, name, value):
        if name in self.options:
            setattr(self, name, float(value))
        else:
            super().set_option(name, value)

    def get_option(self, name):
        if name in self.options:
            return getattr(self, name)
        return super().get_option(name)

    def has_option(self, name):
        return name in self.options or super().has_option(name)
