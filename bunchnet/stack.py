"""
Stack of components executed in sequence.

Forward runs left-to-right, backward right-to-left, then every component
updates its own weights.
"""
import logging

from .activation_component import ActivationFunctionComponent
from .base import ANNComponent
from .bias import BiasComponent
from .dense import DotProductComponent
from .errors import UsageError

logger = logging.getLogger(__name__)


class StackComponent(ANNComponent):
    name_prefix = 'stack'

    def __init__(self, name=None, components=None):
        super().__init__(name)
        self.components = []
        for component in components or []:
            self.push(component)

    def push(self, component):
        if self.is_built:
            raise UsageError(145, f"Impossible to push into built stack {self.name}")
        self.components.append(component)
        return self

    def __len__(self):
        return len(self.components)

    def __getitem__(self, idx):
        return self.components[idx]

    def build(self, input_size=0, output_size=0, weights_dict=None, components_dict=None):
        if not self.components:
            raise UsageError(146, f"Stack {self.name} is empty")
        weights_dict, components_dict = super().build(input_size, output_size,
                                                      weights_dict, components_dict)
        size = self.input_size
        last = len(self.components) - 1
        for i, component in enumerate(self.components):
            component.set_use_cuda(self.use_cuda)
            component.build(size, self.output_size if i == last else 0,
                            weights_dict, components_dict)
            size = component.output_size
        self.input_size = self.components[0].input_size
        self.output_size = self.components[-1].output_size
        logger.info("Built stack %s: %d components, %d -> %d, %d weight matrices",
                    self.name, len(self.components), self.input_size,
                    self.output_size, len(weights_dict))
        return weights_dict, components_dict

    def forward(self, input_token, during_training=False):
        self._check_built()
        token = input_token
        for component in self.components:
            token = component.forward(token, during_training)
        return token

    def backward(self, error_token):
        token = error_token
        for component in reversed(self.components):
            token = component.backward(token)
        return token

    def update(self):
        for component in self.components:
            component.update()

    def reset(self):
        for component in self.components:
            component.reset()

    def clone(self):
        stack = StackComponent(self.name, [c.clone() for c in self.components])
        stack.use_cuda = self.use_cuda
        return stack

    def copy_weights(self, weights_dict):
        for component in self.components:
            component.copy_weights(weights_dict)

    def copy_components(self, components_dict):
        super().copy_components(components_dict)
        for component in self.components:
            component.copy_components(components_dict)

    def set_use_cuda(self, use_cuda):
        super().set_use_cuda(use_cuda)
        for component in self.components:
            component.set_use_cuda(use_cuda)

    def set_option(self, name, value):
        if not self.has_option(name):
            super().set_option(name, value)
        for component in self.components:
            if component.has_option(name):
                component.set_option(name, value)

    def get_option(self, name):
        for component in self.components:
            if component.has_option(name):
                return component.get_option(name)
        return super().get_option(name)

    def has_option(self, name):
        return any(c.has_option(name) for c in self.components)

    def get_input(self):
        return self.components[0].get_input() if self.components else None

    def get_output(self):
        return self.components[-1].get_output() if self.components else None


def all_all_stack(sizes, activations, has_bias=True, name=None):
    """
    Dense -> bias -> activation for each consecutive pair of sizes.

    Args:
        sizes: Layer sizes, e.g. [2, 4, 1]
        activations: One activation name (or ActivationFunction) per layer
    """
    if len(activations) != len(sizes) - 1:
        raise UsageError(147, f"Expected {len(sizes) - 1} activations, found {len(activations)}")
    stack = StackComponent(name)
    for i, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
        stack.push(DotProductComponent(f"w{i}", input_size=n_in, output_size=n_out))
        if has_bias:
            stack.push(BiasComponent(f"b{i}"))
        stack.push(ActivationFunctionComponent(activations[i], name=f"actf{i}"))
    return stack
