"""
Activation Functions for Feed-Forward Networks

Each activation is a small strategy object with a forward function and its
derivative. The derivative is written in terms of the forward *output*
y = f(x), not the pre-activation input x, because the backward pass only
keeps the activations of each layer:

    delta = error * f'(y)

All methods accept a scalar or a NumPy array and work element-wise.

Classes:
    ActivationFunction: Abstract base
    Sigmoid: y = 1 / (1 + e^-x),       dy = y (1 - y)
    Tanh: y = tanh(x),                 dy = 1 - y^2
    ReLU: y = max(0, x),               dy = 1 if y > 0 else 0
    LeakyReLU: y = x or alpha x,       dy = 1 if y > 0 else alpha
    ELU: y = x or alpha (e^x - 1),     dy = 1 if y > 0 else y + alpha
    Linear: y = x,                     dy = 1
    CustomActivation: User supplied forward/derivative pair

Functions:
    create_activation: Build a registered activation from its name
    available_activations: Names accepted by create_activation
"""

from enum import Enum
from typing import Callable, Dict, List, Type, Union

import numpy as np

from backprop.errors import ConfigurationError, ProgrammingError


class ActivationFunction:
    """Base class for activation functions."""

    def forward(self, x):
        """Apply the activation to a pre-activation value (or array)."""
        raise ProgrammingError(f"{type(self).__name__} must implement forward")

    def derivative(self, y):
        """Derivative dy/dx expressed in terms of the output y = forward(x)."""
        raise ProgrammingError(f"{type(self).__name__} must implement derivative")

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Sigmoid(ActivationFunction):
    """
    Logistic sigmoid, squashing into (0, 1).

    Numerical Stability:
        1 / (1 + exp(-x)) overflows exp() for very negative x. We use the
        equivalent exp(-log(1 + exp(-x))), where logaddexp(0, -x) computes
        log(1 + exp(-x)) without overflow.
    """

    def forward(self, x):
        x = np.asarray(x, dtype=np.float64)
        return np.exp(-np.logaddexp(0.0, -x))

    def derivative(self, y):
        y = np.asarray(y, dtype=np.float64)
        return y * (1.0 - y)


class Tanh(ActivationFunction):
    """Hyperbolic tangent, squashing into (-1, 1)."""

    def forward(self, x):
        return np.tanh(np.asarray(x, dtype=np.float64))

    def derivative(self, y):
        y = np.asarray(y, dtype=np.float64)
        return 1.0 - np.square(y)


class ReLU(ActivationFunction):
    """
    Rectified Linear Unit.

    At y = 0 the derivative is undefined; 0 is used as the subgradient.
    Since ReLU preserves sign, testing y > 0 is the same as testing x > 0.
    """

    def forward(self, x):
        return np.maximum(0.0, np.asarray(x, dtype=np.float64))

    def derivative(self, y):
        return np.heaviside(np.asarray(y, dtype=np.float64), 0.0)


class LeakyReLU(ActivationFunction):
    """
    Leaky ReLU: passes a small slope alpha for negative inputs.

    Args:
        alpha: Slope on the negative side (default 0.01)
    """

    def __init__(self, alpha: float = 0.01):
        if alpha < 0:
            raise ConfigurationError(f"alpha must be non-negative, got {alpha}")
        self.alpha = float(alpha)

    def forward(self, x):
        x = np.asarray(x, dtype=np.float64)
        return np.maximum(x, 0.0) + self.alpha * np.minimum(x, 0.0)

    def derivative(self, y):
        positive = np.heaviside(np.asarray(y, dtype=np.float64), 0.0)
        return self.alpha + (1.0 - self.alpha) * positive

    def __repr__(self) -> str:
        return f"LeakyReLU(alpha={self.alpha})"


class ELU(ActivationFunction):
    """
    Exponential Linear Unit: smooth negative side saturating at -alpha.

    For x <= 0, y = alpha (e^x - 1), so dy/dx = alpha e^x = y + alpha.

    Args:
        alpha: Saturation value on the negative side (default 1.0)
    """

    def __init__(self, alpha: float = 1.0):
        if alpha <= 0:
            raise ConfigurationError(f"alpha must be positive, got {alpha}")
        self.alpha = float(alpha)

    def forward(self, x):
        x = np.asarray(x, dtype=np.float64)
        # expm1 on the clipped input keeps large positive x from overflowing
        return np.where(x > 0, x, self.alpha * np.expm1(np.minimum(x, 0.0)))

    def derivative(self, y):
        y = np.asarray(y, dtype=np.float64)
        return np.where(y > 0, 1.0, y + self.alpha)

    def __repr__(self) -> str:
        return f"ELU(alpha={self.alpha})"


class Linear(ActivationFunction):
    """Identity activation, used for regression outputs and tests."""

    def forward(self, x):
        return np.asarray(x, dtype=np.float64) * 1.0

    def derivative(self, y):
        return np.zeros_like(np.asarray(y, dtype=np.float64)) + 1.0


class CustomActivation(ActivationFunction):
    """
    Activation built from two user callables.

    The callables only need to handle scalars; they are vectorized here.

    Args:
        forward_fn: x -> y
        derivative_fn: y -> dy/dx
    """

    def __init__(
        self,
        forward_fn: Callable[[float], float],
        derivative_fn: Callable[[float], float],
    ):
        if not callable(forward_fn) or not callable(derivative_fn):
            raise ConfigurationError(
                "CustomActivation requires callable forward_fn and derivative_fn"
            )
        self.forward_fn = forward_fn
        self.derivative_fn = derivative_fn
        self._forward = np.vectorize(forward_fn, otypes=[np.float64])
        self._derivative = np.vectorize(derivative_fn, otypes=[np.float64])

    def forward(self, x):
        return self._forward(x)

    def derivative(self, y):
        return self._derivative(y)


class ActivationType(str, Enum):
    """Registered activation names."""

    SIGMOID = "sigmoid"
    TANH = "tanh"
    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    ELU = "elu"
    LINEAR = "linear"


ACTIVATION_REGISTRY: Dict[ActivationType, Type[ActivationFunction]] = {
    ActivationType.SIGMOID: Sigmoid,
    ActivationType.TANH: Tanh,
    ActivationType.RELU: ReLU,
    ActivationType.LEAKY_RELU: LeakyReLU,
    ActivationType.ELU: ELU,
    ActivationType.LINEAR: Linear,
}


def create_activation(
    name: Union[str, ActivationType], **options
) -> ActivationFunction:
    """
    Build a registered activation function.

    Args:
        name: Registered name, e.g. "sigmoid" or ActivationType.TANH
        **options: Constructor options (LeakyReLU and ELU take ``alpha``)

    Raises:
        ConfigurationError: If the name is not registered or an option is
            not accepted by the activation
    """
    try:
        activation_type = ActivationType(name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown activation function: {name!r}. "
            f"Available: {available_activations()}"
        ) from None
    try:
        return ACTIVATION_REGISTRY[activation_type](**options)
    except TypeError as error:
        raise ConfigurationError(
            f"Invalid options for activation {activation_type.value!r}: {error}"
        ) from error


def available_activations() -> List[str]:
    """Names accepted by create_activation."""
    return [member.value for member in ActivationType]
