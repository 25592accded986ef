"""
Weight Initialization Strategies

A weight initializer produces the starting weight matrix for one layer
transition. The network calls it once per transition when it is
(re)initialized:

    W = initializer.initialize_matrix(from_size, to_size, layer_index)

where ``from_size`` already includes the bias unit of the source layer and
W has shape (from_size, to_size).

Classes:
    WeightInitializer: Abstract base
    RandomInitializer: Uniform draw over a configurable range
    XavierInitializer: Glorot uniform, limit sqrt(6 / (fan_in + fan_out))
    HeInitializer: Normal(0, sqrt(2 / fan_in)) via the Box-Muller transform
    FixedInitializer: Constant value, for deterministic tests
    CustomInitializer: User function (layer_index, i, j) -> weight

Functions:
    create_initializer: Build a registered initializer from its name
    available_initializers: Names accepted by create_initializer

Reference:
    - "Understanding the difficulty of training deep feedforward neural
      networks" (Glorot & Bengio, 2010)
    - "Delving Deep into Rectifiers" (He et al., 2015)
"""

from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Type, Union

import numpy as np

from backprop.errors import ConfigurationError, ProgrammingError


class WeightInitializer:
    """Base class for weight initialization strategies."""

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        """
        Create a weight matrix for one layer transition.

        Args:
            from_size: Number of units in the source layer (bias included)
            to_size: Number of units in the destination layer
            layer_index: Index of the transition, for layer-aware strategies

        Returns:
            Array of shape (from_size, to_size)
        """
        raise ProgrammingError(
            f"{type(self).__name__} must implement initialize_matrix"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class RandomInitializer(WeightInitializer):
    """
    Uniform random weights in [low, high).

    Args:
        weight_range: (low, high) bounds, default (-1.0, 1.0)
        rng: numpy Generator, for reproducible draws
    """

    def __init__(
        self,
        weight_range: Tuple[float, float] = (-1.0, 1.0),
        rng: Optional[np.random.Generator] = None,
    ):
        low, high = weight_range
        if not low < high:
            raise ConfigurationError(
                f"weight_range must satisfy low < high, got {weight_range}"
            )
        self.weight_range = (float(low), float(high))
        self.rng = rng if rng is not None else np.random.default_rng()

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        low, high = self.weight_range
        return self.rng.uniform(low, high, size=(from_size, to_size))

    def __repr__(self) -> str:
        return f"RandomInitializer(weight_range={self.weight_range})"


class XavierInitializer(WeightInitializer):
    """
    Glorot / Xavier uniform initialization.

    W ~ U[-sqrt(6 / (fan_in + fan_out)), sqrt(6 / (fan_in + fan_out))]

    Keeps activation variance roughly constant across layers for sigmoid
    and tanh networks.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        limit = np.sqrt(6.0 / (from_size + to_size))
        return self.rng.uniform(-limit, limit, size=(from_size, to_size))


class HeInitializer(WeightInitializer):
    """
    He (Kaiming) normal initialization, for ReLU networks.

    W ~ N(0, sqrt(2 / fan_in))

    Normal samples come from the Box-Muller transform over two uniform draws:
        z = sqrt(-2 ln u1) * cos(2 pi u2)
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        std_dev = np.sqrt(2.0 / from_size)

        # 1 - U[0, 1) lies in (0, 1], so the log is always defined
        u1 = 1.0 - self.rng.random((from_size, to_size))
        u2 = self.rng.random((from_size, to_size))
        standard_normal = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)

        return standard_normal * std_dev


class FixedInitializer(WeightInitializer):
    """Every weight set to the same constant (default 0.5)."""

    def __init__(self, value: float = 0.5):
        self.value = float(value)

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        return np.full((from_size, to_size), self.value, dtype=np.float64)

    def __repr__(self) -> str:
        return f"FixedInitializer(value={self.value})"


class CustomInitializer(WeightInitializer):
    """
    Weights produced by a user function.

    Args:
        function: Callable (layer_index, i, j) -> float
    """

    def __init__(self, function: Callable[[int, int, int], float]):
        if not callable(function):
            raise ConfigurationError("CustomInitializer requires a callable")
        self.function = function

    def initialize_matrix(
        self, from_size: int, to_size: int, layer_index: int = 0
    ) -> np.ndarray:
        matrix = np.empty((from_size, to_size), dtype=np.float64)
        for i in range(from_size):
            for j in range(to_size):
                matrix[i, j] = self.function(layer_index, i, j)
        return matrix


class InitializerType(str, Enum):
    """Registered weight initializer names."""

    RANDOM = "random"
    XAVIER = "xavier"
    HE = "he"
    FIXED = "fixed"


INITIALIZER_REGISTRY: Dict[InitializerType, Type[WeightInitializer]] = {
    InitializerType.RANDOM: RandomInitializer,
    InitializerType.XAVIER: XavierInitializer,
    InitializerType.HE: HeInitializer,
    InitializerType.FIXED: FixedInitializer,
}


def create_initializer(
    name: Union[str, InitializerType], **options
) -> WeightInitializer:
    """
    Build a registered initializer.

    Args:
        name: Registered name ("random", "xavier", "he", "fixed")
        **options: Keyword arguments for the initializer's constructor

    Raises:
        ConfigurationError: If the name is not registered or an option is
            not accepted by the initializer
    """
    try:
        initializer_type = InitializerType(name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown weight initialization: {name!r}. "
            f"Available: {available_initializers()}"
        ) from None
    try:
        return INITIALIZER_REGISTRY[initializer_type](**options)
    except TypeError as error:
        raise ConfigurationError(
            f"Invalid options for weight initialization {initializer_type.value!r}: {error}"
        ) from error


def available_initializers() -> List[str]:
    """Names accepted by create_initializer."""
    return [member.value for member in InitializerType]
