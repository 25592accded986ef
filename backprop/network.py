r"""
Feed-Forward Backpropagation Network

This module implements a fully connected multilayer perceptron trained one
example at a time with the backpropagation algorithm. All strategies
(weight initialization, activation function, optional learning algorithm,
optional regularization) are injected at construction time.

Architecture Overview (structure = [2, 3, 1]):

    layer 0          layer 1            layer 2
    x0 ----\        /- h0 -\
    x1 -----+ W[0] +-- h1 --+ W[1] ---- y0
    bias ---/       \- h2 -/
                    bias --/

    - activation_nodes[l] holds the outputs of layer l, plus a constant-1
      bias unit at the end of every non-output layer (unless disabled)
    - weights[l] has shape (len(activation_nodes[l]), structure[l + 1])
    - last_changes[l] has the same shape and stores the previous update,
      used by the built-in momentum rule

Training Step:
    1. Forward:  a[l+1] = f(a[l] @ W[l])
    2. Output deltas: delta = (expected - actual) * f'(actual)
    3. Hidden deltas: delta[l] = (W[l+1] @ delta[l+1]) * f'(a[l+1])
    4. Update, either with the built-in rule
           change = lr * outer(a[l], delta[l]) + momentum * last_change
           W[l] += change
       or by handing gradient g = -outer(a[l], delta[l]) to the attached
       learning algorithm.

Classes:
    Network: The backpropagation network
    NetworkConfig: Dataclass with all construction options
    NetworkBuilder: Fluent builder for networks
    Presets: Ready-made configurations

Functions:
    build_network: Create a Network from a NetworkConfig or option mapping
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from backprop.activations import ActivationFunction, Sigmoid, create_activation
from backprop.errors import ConfigurationError, ValidationError
from backprop.initializers import (
    RandomInitializer,
    WeightInitializer,
    create_initializer,
)
from backprop.optimizer import LearningAlgorithm, create_learning_algorithm
from backprop.regularization import RegularizationStrategy
from backprop.utils import squared_error
from backprop.validator import NetworkValidator

logger = logging.getLogger(__name__)

InitializerLike = Union[str, WeightInitializer, None]
ActivationLike = Union[str, ActivationFunction, None]
LearningAlgorithmLike = Union[str, LearningAlgorithm, None]


class Network:
    """
    Backpropagation network with injectable strategies.

    The network is initialized lazily: weights are drawn on the first call
    to eval() or train(), or explicitly with init_network(), which also
    resets a trained network.

    Thread Safety:
        Not thread-safe. train() mutates weights, last changes and any
        attached optimizer state; use one instance per worker or serialize
        calls externally.

    Example usage:
        network = Network([2, 2, 1], learning_rate=0.5, momentum=0.9)
        for _ in range(2000):
            network.train([0, 1], [1])
        network.eval([0, 1])    # -> array([0.97...])

    Attributes:
        weights: Weight matrix per layer transition (None until initialized)
        activation_nodes: Output vector per layer, bias units included
        last_changes: Previous built-in update per weight matrix
        learning_rate: Step size of the built-in update rule
        momentum: Momentum factor of the built-in update rule
        disable_bias: Whether bias units are omitted
    """

    def __init__(
        self,
        structure: Sequence[int],
        weight_initializer: InitializerLike = None,
        activation_function: ActivationLike = None,
        learning_algorithm: LearningAlgorithmLike = None,
        validator: Optional[NetworkValidator] = None,
        learning_rate: float = 0.25,
        momentum: float = 0.1,
        disable_bias: bool = False,
        regularization: Optional[RegularizationStrategy] = None,
    ):
        """
        Create a network. Strategies given by name are resolved here, once.

        Args:
            structure: Layer sizes, input first, e.g. [4, 10, 3]
            weight_initializer: Strategy or registered name (default random)
            activation_function: Strategy or registered name (default sigmoid)
            learning_algorithm: Optional strategy or registered name replacing
                                the built-in momentum update
            validator: Validator for structure and vectors
            learning_rate: Built-in update step size
            momentum: Built-in update momentum factor
            disable_bias: Omit the bias units
            regularization: Optional strategy wrapping hidden layer signals

        Raises:
            ConfigurationError: On an invalid structure, unknown strategy
                                name or out-of-range hyperparameter
        """
        self._validator = validator if validator is not None else NetworkValidator()
        self._validator.validate_structure(structure)
        self._structure = tuple(int(size) for size in structure)

        if learning_rate <= 0:
            raise ConfigurationError(
                f"learning_rate must be positive, got {learning_rate}"
            )
        if momentum < 0:
            raise ConfigurationError(f"momentum must be non-negative, got {momentum}")

        self._weight_initializer = _resolve_initializer(weight_initializer)
        self._activation_function = _resolve_activation(activation_function)
        self._learning_algorithm = _resolve_learning_algorithm(learning_algorithm)
        self._regularization = regularization

        self.learning_rate = learning_rate
        self.momentum = momentum
        self.disable_bias = bool(disable_bias)

        # Network state, created by init_network()
        self.weights: Optional[List[np.ndarray]] = None
        self.activation_nodes: Optional[List[np.ndarray]] = None
        self.last_changes: Optional[List[np.ndarray]] = None

        # Activation outputs before hidden-layer regularization, used for f'(y)
        self._layer_outputs: List[np.ndarray] = []
        self._hidden_regularizers: List[RegularizationStrategy] = []

    # ==================== Read-only configuration ====================

    @property
    def structure(self) -> tuple:
        return self._structure

    @property
    def input_size(self) -> int:
        return self._structure[0]

    @property
    def output_size(self) -> int:
        return self._structure[-1]

    @property
    def weight_initializer(self) -> WeightInitializer:
        return self._weight_initializer

    @property
    def activation_function(self) -> ActivationFunction:
        return self._activation_function

    @property
    def learning_algorithm(self) -> Optional[LearningAlgorithm]:
        return self._learning_algorithm

    @property
    def regularization(self) -> Optional[RegularizationStrategy]:
        return self._regularization

    @property
    def hidden_regularization(self) -> List[RegularizationStrategy]:
        """Per-hidden-layer pipelines built from the regularization template."""
        return list(self._hidden_regularizers)

    @property
    def validator(self) -> NetworkValidator:
        return self._validator

    @property
    def network_initialized(self) -> bool:
        return self.weights is not None and self.activation_nodes is not None

    # ==================== Public operations ====================

    def init_network(self) -> "Network":
        """
        Create (or reset) activation nodes, weights and last changes.

        An attached learning algorithm is reset as well, and every hidden
        layer gets a fresh regularization pipeline sized to its width.

        Returns:
            self, for chaining
        """
        self.activation_nodes = self._init_activation_nodes()
        self.weights = self._init_weights()
        self.last_changes = [np.zeros_like(matrix) for matrix in self.weights]
        self._layer_outputs = [nodes.copy() for nodes in self.activation_nodes]
        if self._learning_algorithm is not None:
            self._learning_algorithm.reset()

        hidden_sizes = self._structure[1:-1]
        if self._regularization is not None:
            # Each hidden layer owns its state (dropout mask and rng, running stats)
            self._hidden_regularizers = [
                self._regularization.for_layer(size) for size in hidden_sizes
            ]
        else:
            self._hidden_regularizers = []

        logger.debug(
            "Initialized network %s (bias=%s, initializer=%r, activation=%r)",
            list(self._structure),
            not self.disable_bias,
            self._weight_initializer,
            self._activation_function,
        )
        return self

    def eval(self, input_values: Sequence[float]) -> np.ndarray:
        """
        Run the network on one input vector.

        Args:
            input_values: Vector of length structure[0]

        Returns:
            Copy of the output layer activations

        Raises:
            ValidationError: If the input has the wrong size or bad values
        """
        self._validator.validate_input(input_values, self.input_size)
        if not self.network_initialized:
            self.init_network()

        outputs = self._feedforward(input_values, training=False)
        return outputs.copy()

    def eval_result(self, input_values: Sequence[float]) -> int:
        """Index of the most active output unit."""
        return int(np.argmax(self.eval(input_values)))

    def train(
        self, input_values: Sequence[float], expected_outputs: Sequence[float]
    ) -> float:
        """
        Run one forward and backward pass and update the weights.

        Args:
            input_values: Vector of length structure[0]
            expected_outputs: Target vector of length structure[-1]

        Returns:
            Error before the update: 0.5 * sum((expected - actual)^2)

        Raises:
            ValidationError: If either vector is invalid
        """
        self._validator.validate_input(input_values, self.input_size)
        self._validator.validate_output(expected_outputs, self.output_size)
        if not self.network_initialized:
            self.init_network()

        expected = np.asarray(expected_outputs, dtype=np.float64)
        actual = self._feedforward(input_values, training=True).copy()
        self._backpropagate(expected)

        return squared_error(actual, expected)

    def network_state(self) -> Dict[str, Any]:
        """
        Snapshot of the network for inspection and visualization.

        Arrays are deep copies; mutating them does not affect the network.
        """
        return {
            "structure": list(self._structure),
            "weights": _copy_arrays(self.weights),
            "activation_nodes": _copy_arrays(self.activation_nodes),
            "learning_rate": self.learning_rate,
            "momentum": self.momentum,
            "disable_bias": self.disable_bias,
        }

    def load_weights(self, weights: Sequence[np.ndarray]) -> "Network":
        """
        Replace all weight matrices, e.g. with those of a network_state().

        Last changes and the state of an attached learning algorithm are
        reset. The network is initialized first if needed.

        Raises:
            ValidationError: If the number or shapes of matrices differ
        """
        expected_shapes = [
            (self._layer_width(layer), self._structure[layer + 1])
            for layer in range(len(self._structure) - 1)
        ]
        if weights is None or len(weights) != len(expected_shapes):
            raise ValidationError(
                f"Expected {len(expected_shapes)} weight matrices, "
                f"got {0 if weights is None else len(weights)}"
            )

        loaded = []
        for layer, (matrix, shape) in enumerate(zip(weights, expected_shapes)):
            matrix = np.array(matrix, dtype=np.float64)
            if matrix.shape != shape:
                raise ValidationError(
                    f"Weight matrix {layer} must have shape {shape}, got {matrix.shape}"
                )
            if not np.all(np.isfinite(matrix)):
                raise ValidationError(f"Weight matrix {layer} contains non-finite values")
            loaded.append(matrix)

        if not self.network_initialized:
            self.init_network()
        self.weights = loaded
        self.last_changes = [np.zeros_like(matrix) for matrix in loaded]
        if self._learning_algorithm is not None:
            self._learning_algorithm.reset()
        return self

    # ==================== Forward pass ====================

    def _feedforward(self, input_values: Sequence[float], training: bool) -> np.ndarray:
        input_size = self.input_size
        self.activation_nodes[0][:input_size] = np.asarray(
            input_values, dtype=np.float64
        )

        for layer in range(len(self.weights)):
            self._propagate_layer(layer, training)

        return self.activation_nodes[-1]

    def _propagate_layer(self, layer: int, training: bool) -> None:
        next_layer = layer + 1
        layer_size = self._structure[next_layer]

        weighted_sums = self.activation_nodes[layer] @ self.weights[layer]
        outputs = np.asarray(
            self._activation_function.forward(weighted_sums), dtype=np.float64
        )
        self._layer_outputs[next_layer][:layer_size] = outputs

        if self._hidden_regularizers and next_layer < len(self._structure) - 1:
            outputs = self._hidden_regularizers[layer].apply_forward(outputs, training)

        self.activation_nodes[next_layer][:layer_size] = outputs

    # ==================== Backward pass ====================

    def _backpropagate(self, expected_outputs: np.ndarray) -> None:
        deltas = self._calculate_deltas(expected_outputs)

        # Direction of steepest descent of the error, per weight matrix
        descent_directions = []
        for layer, layer_deltas in enumerate(deltas):
            direction = np.outer(self.activation_nodes[layer], layer_deltas)
            if self._regularization is not None:
                direction = direction - self._penalty_gradient(layer)
            descent_directions.append(direction)

        if self._learning_algorithm is not None:
            gradients = [-direction for direction in descent_directions]
            self.weights = self._learning_algorithm.update_all(self.weights, gradients)
            return

        for layer, direction in enumerate(descent_directions):
            change = (
                self.learning_rate * direction
                + self.momentum * self.last_changes[layer]
            )
            self.weights[layer] += change
            self.last_changes[layer] = change

    def _calculate_deltas(self, expected_outputs: np.ndarray) -> List[np.ndarray]:
        """
        Deltas for every non-input layer, indexed like the weight matrices:
        deltas[l] belongs to the units of layer l + 1.
        """
        num_transitions = len(self.weights)
        deltas: List[Optional[np.ndarray]] = [None] * num_transitions

        actual_outputs = self._layer_outputs[-1]
        deltas[-1] = (expected_outputs - actual_outputs) * np.asarray(
            self._activation_function.derivative(actual_outputs), dtype=np.float64
        )

        for layer in range(num_transitions - 2, -1, -1):
            hidden_layer = layer + 1
            layer_size = self._structure[hidden_layer]

            # Bias rows feed nothing backwards, so they are skipped
            outgoing_weights = self.weights[hidden_layer][:layer_size]
            error_sums = outgoing_weights @ deltas[layer + 1]

            hidden_outputs = self._layer_outputs[hidden_layer][:layer_size]
            layer_deltas = error_sums * np.asarray(
                self._activation_function.derivative(hidden_outputs), dtype=np.float64
            )
            if self._hidden_regularizers:
                layer_deltas = self._hidden_regularizers[layer].apply_backward(
                    layer_deltas
                )
            deltas[layer] = layer_deltas

        return deltas

    def _penalty_gradient(self, layer: int) -> np.ndarray:
        """Weight penalty gradient for one matrix; the bias row is not penalized."""
        gradient = self._regularization.penalty_gradient(self.weights[layer])
        if self._add_bias_node(layer):
            gradient[-1] = 0.0
        return gradient

    # ==================== Initialization helpers ====================

    def _add_bias_node(self, layer: int) -> bool:
        return not self.disable_bias and layer < len(self._structure) - 1

    def _layer_width(self, layer: int) -> int:
        return self._structure[layer] + (1 if self._add_bias_node(layer) else 0)

    def _init_activation_nodes(self) -> List[np.ndarray]:
        nodes = []
        for layer in range(len(self._structure)):
            layer_nodes = np.zeros(self._layer_width(layer))
            if self._add_bias_node(layer):
                layer_nodes[-1] = 1.0
            nodes.append(layer_nodes)
        return nodes

    def _init_weights(self) -> List[np.ndarray]:
        weights = []
        for layer in range(len(self._structure) - 1):
            from_size = self._layer_width(layer)
            to_size = self._structure[layer + 1]
            matrix = np.array(
                self._weight_initializer.initialize_matrix(from_size, to_size, layer),
                dtype=np.float64,
            )
            if matrix.shape != (from_size, to_size):
                raise ConfigurationError(
                    f"{self._weight_initializer!r} returned shape {matrix.shape} "
                    f"for layer {layer}, expected {(from_size, to_size)}"
                )
            weights.append(matrix)
        return weights

    def __repr__(self) -> str:
        return (
            f"Network(structure={list(self._structure)}, "
            f"activation={self._activation_function!r}, "
            f"learning_algorithm={self._learning_algorithm!r})"
        )


def _copy_arrays(arrays: Optional[List[np.ndarray]]) -> Optional[List[np.ndarray]]:
    if arrays is None:
        return None
    return [array.copy() for array in arrays]


def _resolve_initializer(strategy: InitializerLike, **options) -> WeightInitializer:
    if strategy is None:
        return RandomInitializer(**options)
    if isinstance(strategy, WeightInitializer):
        return strategy
    return create_initializer(strategy, **options)


def _resolve_activation(strategy: ActivationLike, **options) -> ActivationFunction:
    if strategy is None:
        return Sigmoid()
    if isinstance(strategy, ActivationFunction):
        return strategy
    return create_activation(strategy, **options)


def _resolve_learning_algorithm(
    strategy: LearningAlgorithmLike, **options
) -> Optional[LearningAlgorithm]:
    if strategy is None:
        return None
    if isinstance(strategy, LearningAlgorithm):
        return strategy
    return create_learning_algorithm(strategy, **options)


# ==================== Configuration ====================


@dataclass
class NetworkConfig:
    """
    Configuration for a Network.

    Strategy fields take either a registered name or a strategy instance;
    names are resolved once, when the network is built.

    Attributes:
        structure: Layer sizes, input first (required)
        weight_initializer: "random" (default), "xavier", "he", "fixed" or instance
        activation_function: "sigmoid" (default), "tanh", "relu",
                             "leaky_relu", "linear" or instance
        learning_algorithm: None (built-in momentum rule), "gradient_descent",
                            "momentum", "adagrad", "adam" or instance
        learning_rate: Built-in update step size
        momentum: Built-in update momentum factor
        disable_bias: Omit bias units
        regularization: Optional strategy wrapping hidden layers
    """

    structure: Sequence[int]
    weight_initializer: InitializerLike = "random"
    activation_function: ActivationLike = "sigmoid"
    learning_algorithm: LearningAlgorithmLike = None
    learning_rate: float = 0.25
    momentum: float = 0.1
    disable_bias: bool = False
    regularization: Optional[RegularizationStrategy] = None

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "NetworkConfig":
        """
        Build a config from a plain mapping.

        Raises:
            ConfigurationError: On unknown keys or a missing structure
        """
        known = {config_field.name for config_field in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown network option(s): {unknown}")
        if "structure" not in options:
            raise ConfigurationError("Network structure must be specified")
        return cls(**options)


def build_network(
    config: Union[NetworkConfig, Mapping[str, Any]],
    validator: Optional[NetworkValidator] = None,
) -> Network:
    """Create a Network from a NetworkConfig or an option mapping."""
    if not isinstance(config, NetworkConfig):
        config = NetworkConfig.from_dict(config)
    return Network(
        config.structure,
        weight_initializer=config.weight_initializer,
        activation_function=config.activation_function,
        learning_algorithm=config.learning_algorithm,
        validator=validator,
        learning_rate=config.learning_rate,
        momentum=config.momentum,
        disable_bias=config.disable_bias,
        regularization=config.regularization,
    )


class NetworkBuilder:
    """
    Fluent builder for networks.

    Example:
        network = (
            NetworkBuilder()
            .with_structure(4, 10, 3)
            .with_activation_function("tanh")
            .with_weight_initialization("xavier")
            .with_learning_algorithm("adam", learning_rate=0.01)
            .build()
        )
    """

    def __init__(self):
        self._structure: Optional[List[int]] = None
        self._weight_initializer: Optional[WeightInitializer] = None
        self._activation_function: Optional[ActivationFunction] = None
        self._learning_algorithm: Optional[LearningAlgorithm] = None
        self._validator: Optional[NetworkValidator] = None
        self._regularization: Optional[RegularizationStrategy] = None
        self._learning_rate = 0.25
        self._momentum = 0.1
        self._disable_bias = False

    def with_structure(self, *layers) -> "NetworkBuilder":
        """Set layer sizes, given as arguments or as one sequence."""
        if len(layers) == 1 and isinstance(layers[0], (list, tuple)):
            layers = layers[0]
        self._structure = list(layers)
        return self

    def with_weight_initialization(
        self, strategy: Union[str, WeightInitializer], **options
    ) -> "NetworkBuilder":
        self._weight_initializer = _resolve_initializer(strategy, **options)
        return self

    def with_activation_function(
        self, function: Union[str, ActivationFunction], **options
    ) -> "NetworkBuilder":
        self._activation_function = _resolve_activation(function, **options)
        return self

    def with_learning_algorithm(
        self, algorithm: Union[str, LearningAlgorithm], **options
    ) -> "NetworkBuilder":
        self._learning_algorithm = _resolve_learning_algorithm(algorithm, **options)
        return self

    def with_learning_rate(self, rate: float) -> "NetworkBuilder":
        self._learning_rate = rate
        return self

    def with_momentum(self, momentum: float) -> "NetworkBuilder":
        self._momentum = momentum
        return self

    def without_bias(self) -> "NetworkBuilder":
        self._disable_bias = True
        return self

    def with_bias(self) -> "NetworkBuilder":
        self._disable_bias = False
        return self

    def with_validator(self, validator: NetworkValidator) -> "NetworkBuilder":
        self._validator = validator
        return self

    def with_regularization(
        self, regularization: RegularizationStrategy
    ) -> "NetworkBuilder":
        self._regularization = regularization
        return self

    def build(self) -> Network:
        """
        Create the network.

        Raises:
            ConfigurationError: If no structure was given or it is invalid
        """
        if self._structure is None:
            raise ConfigurationError("Network structure must be specified")

        return Network(
            self._structure,
            weight_initializer=self._weight_initializer,
            activation_function=self._activation_function,
            learning_algorithm=self._learning_algorithm,
            validator=self._validator,
            learning_rate=self._learning_rate,
            momentum=self._momentum,
            disable_bias=self._disable_bias,
            regularization=self._regularization,
        )


class Presets:
    """Common network configurations."""

    @staticmethod
    def xor_network() -> Network:
        """2-2-1 sigmoid network for the XOR problem."""
        return (
            NetworkBuilder()
            .with_structure(2, 2, 1)
            .with_activation_function("sigmoid")
            .with_learning_algorithm("momentum", learning_rate=0.5, momentum_factor=0.9)
            .with_learning_rate(0.5)
            .build()
        )

    @staticmethod
    def iris_classifier() -> Network:
        """4-10-3 tanh classifier with Xavier weights and Adam."""
        return (
            NetworkBuilder()
            .with_structure(4, 10, 3)
            .with_activation_function("tanh")
            .with_weight_initialization("xavier")
            .with_learning_algorithm("adam")
            .build()
        )

    @staticmethod
    def mnist_classifier() -> Network:
        """784-128-64-10 ReLU classifier with He weights and Adam."""
        return (
            NetworkBuilder()
            .with_structure(784, 128, 64, 10)
            .with_activation_function("relu")
            .with_weight_initialization("he")
            .with_learning_algorithm("adam", learning_rate=0.001)
            .build()
        )

    @staticmethod
    def test_network(structure: Sequence[int]) -> Network:
        """Deterministic network: fixed 0.5 weights, linear, no bias."""
        return (
            NetworkBuilder()
            .with_structure(*structure)
            .with_weight_initialization("fixed", value=0.5)
            .with_activation_function("linear")
            .with_learning_algorithm("gradient_descent", learning_rate=0.1)
            .without_bias()
            .build()
        )
