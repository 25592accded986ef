"""
Learning Algorithms (Optimizers) for Backpropagation Networks

A learning algorithm turns the gradient of one weight matrix into the next
value of that matrix. It is an optional, pluggable replacement for the
network's built-in "learning rate + momentum" update rule.

Every algorithm keeps:
    - iteration_count: global step counter t
    - per-layer state keyed by the integer layer index (velocity,
      accumulated squared gradients, Adam moments)

Step Counting:
    The network performs one optimizer step per backward pass, updating all
    layers with the same t through update_all(). A direct call to
    update_weights() is a single-layer step and advances t by itself.

Reference:
    - "On the momentum term in gradient descent learning algorithms"
      (Qian, 1999)
    - "Adaptive Subgradient Methods for Online Learning" (Duchi et al., 2011)
    - "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
    - "Decoupled Weight Decay Regularization" (Loshchilov & Hutter, 2019)
    - "On the importance of initialization and momentum in deep learning"
      (Sutskever et al., 2013)
    - "Lecture 6.5 - rmsprop" (Tieleman & Hinton, 2012)

Classes:
    LearningAlgorithm: Abstract base with counter and state handling
    GradientDescent: w -= lr * g
    Momentum: v = beta v + lr g; w -= v
    AdaGrad: acc += g^2; w -= lr g / (sqrt(acc) + eps)
    Adam: bias-corrected first/second moments, optional decoupled decay
    RMSprop: avg = d avg + (1 - d) g^2; w -= lr g / (sqrt(avg) + eps)
    NAG: Nesterov momentum in tracked-lookahead form
    LearningRateScheduler: Per-epoch learning rate schedules

Functions:
    create_learning_algorithm: Build a registered algorithm from its name
    available_learning_algorithms: Names accepted by the factory
"""

import math
from enum import Enum
from typing import Dict, List, Optional, Sequence, Type, Union

import numpy as np

from backprop.errors import ConfigurationError, ProgrammingError


class LearningAlgorithm:
    """
    Base class for learning algorithms.

    Subclasses implement _update_layer(); the base class owns the step
    counter and the per-layer state dictionaries.

    Attributes:
        learning_rate: Step size
        iteration_count: Number of optimizer steps taken
    """

    def __init__(self, learning_rate: float = 0.01):
        if learning_rate <= 0:
            raise ConfigurationError(
                f"learning_rate must be positive, got {learning_rate}"
            )
        self.learning_rate = learning_rate
        self.iteration_count: int = 0

    def update_weights(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int = 0
    ) -> np.ndarray:
        """
        Perform one optimizer step on a single weight matrix.

        Args:
            weights: Current weights, shape (from_size, to_size)
            gradients: Gradient of the loss w.r.t. weights, same shape
            layer_index: Layer whose state should be used

        Returns:
            Updated weights (new array; inputs are not modified)
        """
        self.step()
        return self._update_layer(
            np.asarray(weights, dtype=np.float64),
            np.asarray(gradients, dtype=np.float64),
            layer_index,
        )

    def update_all(
        self, weights: Sequence[np.ndarray], gradients: Sequence[np.ndarray]
    ) -> List[np.ndarray]:
        """
        Perform one optimizer step over every layer of a network.

        The step counter advances once, and all layers are updated with the
        same t.

        Args:
            weights: One weight matrix per layer transition
            gradients: Matching gradient matrices

        Returns:
            List of updated weight matrices
        """
        if len(weights) != len(gradients):
            raise ConfigurationError(
                f"Got {len(weights)} weight matrices but {len(gradients)} gradients"
            )

        self.step()
        return [
            self._update_layer(
                np.asarray(layer_weights, dtype=np.float64),
                np.asarray(layer_gradients, dtype=np.float64),
                layer_index,
            )
            for layer_index, (layer_weights, layer_gradients) in enumerate(
                zip(weights, gradients)
            )
        ]

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        raise ProgrammingError(f"{type(self).__name__} must implement update_weights")

    def step(self) -> None:
        """Advance the global step counter."""
        self.iteration_count += 1

    def reset(self) -> None:
        """Clear the step counter and all per-layer state."""
        self.iteration_count = 0
        for layer_state in self._state_dicts().values():
            layer_state.clear()

    def current_state(self) -> dict:
        """Snapshot of the counter and per-layer state, for inspection."""
        return {
            "iteration": self.iteration_count,
            "internal_state": {
                name: {layer: array.copy() for layer, array in layer_state.items()}
                for name, layer_state in self._state_dicts().items()
            },
        }

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(learning_rate={self.learning_rate})"


class GradientDescent(LearningAlgorithm):
    """
    Plain gradient descent.

    Update rule:
        w = w - lr * g
    """

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        return weights - self.learning_rate * gradients


class Momentum(LearningAlgorithm):
    """
    Gradient descent with classical momentum.

    Update rule:
        v = beta * v + lr * g
        w = w - v

    Args:
        learning_rate: Step size
        momentum_factor: Fraction beta of the previous velocity kept
    """

    def __init__(self, learning_rate: float = 0.01, momentum_factor: float = 0.9):
        super().__init__(learning_rate)
        if not 0.0 <= momentum_factor < 1.0:
            raise ConfigurationError(
                f"momentum_factor must be in [0, 1), got {momentum_factor}"
            )
        self.momentum_factor = momentum_factor
        self.velocity: Dict[int, np.ndarray] = {}

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        if layer_index not in self.velocity:
            self.velocity[layer_index] = np.zeros_like(weights)

        self.velocity[layer_index] = (
            self.momentum_factor * self.velocity[layer_index]
            + self.learning_rate * gradients
        )
        return weights - self.velocity[layer_index]

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {"velocity": self.velocity}

    def __repr__(self) -> str:
        return (
            f"Momentum(learning_rate={self.learning_rate}, "
            f"momentum_factor={self.momentum_factor})"
        )


class AdaGrad(LearningAlgorithm):
    """
    Adaptive gradient: per-weight learning rates that shrink with use.

    Update rule:
        acc = acc + g^2
        w = w - lr * g / (sqrt(acc) + eps)
    """

    def __init__(self, learning_rate: float = 0.01, epsilon: float = 1e-8):
        super().__init__(learning_rate)
        self.epsilon = epsilon
        self.accumulated_squared_gradient: Dict[int, np.ndarray] = {}

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        if layer_index not in self.accumulated_squared_gradient:
            self.accumulated_squared_gradient[layer_index] = np.zeros_like(weights)

        self.accumulated_squared_gradient[layer_index] += np.square(gradients)
        adapted_rate = self.learning_rate / (
            np.sqrt(self.accumulated_squared_gradient[layer_index]) + self.epsilon
        )
        return weights - adapted_rate * gradients

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {"accumulated_squared_gradient": self.accumulated_squared_gradient}


class Adam(LearningAlgorithm):
    """
    Adam optimizer (Adaptive Moment Estimation).

    Algorithm (at step t):
        m = beta1 * m + (1 - beta1) * g          # First moment
        v = beta2 * v + (1 - beta2) * g^2        # Second moment
        m_hat = m / (1 - beta1^t)                # Bias correction
        v_hat = v / (1 - beta2^t)                # Bias correction
        w = w - lr * (m_hat / (sqrt(v_hat) + eps) + wd * w)

    With weight_decay=0 (the default) this is plain Adam; a positive
    weight_decay gives AdamW, where decay is applied to the weights directly
    instead of being folded into the gradient.

    Attributes:
        first_moment: Per-layer m
        second_moment: Per-layer v
    """

    def __init__(
        self,
        learning_rate: float = 0.001,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        weight_decay: float = 0.0,
    ):
        super().__init__(learning_rate)
        for name, beta in (("beta1", beta1), ("beta2", beta2)):
            if not 0.0 <= beta < 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1), got {beta}")
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.weight_decay = weight_decay

        self.first_moment: Dict[int, np.ndarray] = {}
        self.second_moment: Dict[int, np.ndarray] = {}

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        if layer_index not in self.first_moment:
            self.first_moment[layer_index] = np.zeros_like(weights)
            self.second_moment[layer_index] = np.zeros_like(weights)

        self.first_moment[layer_index] = (
            self.beta1 * self.first_moment[layer_index]
            + (1.0 - self.beta1) * gradients
        )
        self.second_moment[layer_index] = self.beta2 * self.second_moment[
            layer_index
        ] + (1.0 - self.beta2) * np.square(gradients)

        # Correct for the zero initialization of m and v
        bias_correction_1 = 1.0 - self.beta1**self.iteration_count
        bias_correction_2 = 1.0 - self.beta2**self.iteration_count
        first_corrected = self.first_moment[layer_index] / bias_correction_1
        second_corrected = self.second_moment[layer_index] / bias_correction_2

        update = first_corrected / (np.sqrt(second_corrected) + self.epsilon)
        return weights - self.learning_rate * (update + self.weight_decay * weights)

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {"first_moment": self.first_moment, "second_moment": self.second_moment}

    def __repr__(self) -> str:
        return (
            f"Adam(learning_rate={self.learning_rate}, beta1={self.beta1}, "
            f"beta2={self.beta2}, weight_decay={self.weight_decay})"
        )


class RMSprop(LearningAlgorithm):
    """
    RMSprop: AdaGrad with a leaky average so the step size stops shrinking.

    Update rule:
        avg = d * avg + (1 - d) * g^2
        w = w - lr * g / (sqrt(avg) + eps)

    Args:
        learning_rate: Step size
        decay_rate: Weight d of the old squared-gradient average
        epsilon: Small constant for numerical stability
    """

    def __init__(
        self, learning_rate: float = 0.001, decay_rate: float = 0.9, epsilon: float = 1e-8
    ):
        super().__init__(learning_rate)
        if not 0.0 <= decay_rate < 1.0:
            raise ConfigurationError(f"decay_rate must be in [0, 1), got {decay_rate}")
        self.decay_rate = decay_rate
        self.epsilon = epsilon
        self.squared_gradient_average: Dict[int, np.ndarray] = {}

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        if layer_index not in self.squared_gradient_average:
            self.squared_gradient_average[layer_index] = np.zeros_like(weights)

        self.squared_gradient_average[layer_index] = self.decay_rate * (
            self.squared_gradient_average[layer_index]
        ) + (1.0 - self.decay_rate) * np.square(gradients)
        return weights - self.learning_rate * gradients / (
            np.sqrt(self.squared_gradient_average[layer_index]) + self.epsilon
        )

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {"squared_gradient_average": self.squared_gradient_average}

    def __repr__(self) -> str:
        return (
            f"RMSprop(learning_rate={self.learning_rate}, "
            f"decay_rate={self.decay_rate})"
        )


class NAG(LearningAlgorithm):
    """
    Nesterov accelerated gradient.

    Textbook form, with the gradient taken at the lookahead point:
        w_ahead = w + m * v
        v = m * v - lr * grad(w_ahead)
        w = w + v

    The network only has gradients at the current weights, so the update is
    applied in the equivalent tracked-lookahead form (Bengio et al., 2013):
        v_prev = v
        v = m * v - lr * g
        w = w - m * v_prev + (1 + m) * v

    Args:
        learning_rate: Step size
        momentum: Fraction m of the previous velocity kept
    """

    def __init__(self, learning_rate: float = 0.01, momentum: float = 0.9):
        super().__init__(learning_rate)
        if not 0.0 <= momentum < 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1), got {momentum}")
        self.momentum = momentum
        self.velocity: Dict[int, np.ndarray] = {}

    def lookahead(self, weights: np.ndarray, layer_index: int = 0) -> np.ndarray:
        """Weights at the lookahead point w + m * v."""
        weights = np.asarray(weights, dtype=np.float64)
        velocity = self.velocity.get(layer_index)
        if velocity is None:
            return weights.copy()
        return weights + self.momentum * velocity

    def _update_layer(
        self, weights: np.ndarray, gradients: np.ndarray, layer_index: int
    ) -> np.ndarray:
        previous_velocity = self.velocity.get(layer_index)
        if previous_velocity is None:
            previous_velocity = np.zeros_like(weights)

        velocity = self.momentum * previous_velocity - self.learning_rate * gradients
        self.velocity[layer_index] = velocity
        return weights - self.momentum * previous_velocity + (1.0 + self.momentum) * velocity

    def _state_dicts(self) -> Dict[str, Dict[int, np.ndarray]]:
        return {"velocity": self.velocity}

    def __repr__(self) -> str:
        return f"NAG(learning_rate={self.learning_rate}, momentum={self.momentum})"


class LearningAlgorithmType(str, Enum):
    """Registered learning algorithm names."""

    GRADIENT_DESCENT = "gradient_descent"
    MOMENTUM = "momentum"
    ADAGRAD = "adagrad"
    ADAM = "adam"
    RMSPROP = "rmsprop"
    NAG = "nag"


LEARNING_ALGORITHM_REGISTRY: Dict[LearningAlgorithmType, Type[LearningAlgorithm]] = {
    LearningAlgorithmType.GRADIENT_DESCENT: GradientDescent,
    LearningAlgorithmType.MOMENTUM: Momentum,
    LearningAlgorithmType.ADAGRAD: AdaGrad,
    LearningAlgorithmType.ADAM: Adam,
    LearningAlgorithmType.RMSPROP: RMSprop,
    LearningAlgorithmType.NAG: NAG,
}


def create_learning_algorithm(
    name: Union[str, LearningAlgorithmType], **options
) -> LearningAlgorithm:
    """
    Build a registered learning algorithm.

    Args:
        name: Registered name, e.g. "adam"
        **options: Constructor options (learning_rate, beta1, ...)

    Raises:
        ConfigurationError: If the name is not registered or an option is
            not accepted by the algorithm
    """
    try:
        algorithm_type = LearningAlgorithmType(name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown learning algorithm: {name!r}. "
            f"Available: {available_learning_algorithms()}"
        ) from None
    try:
        return LEARNING_ALGORITHM_REGISTRY[algorithm_type](**options)
    except TypeError as error:
        raise ConfigurationError(
            f"Invalid options for learning algorithm {algorithm_type.value!r}: {error}"
        ) from error


def available_learning_algorithms() -> List[str]:
    """Names accepted by create_learning_algorithm."""
    return [member.value for member in LearningAlgorithmType]


class LearningRateScheduler:
    """
    Epoch-based learning rate schedule for any object with a learning_rate.

    Schedules (epoch counts from 1 after the first step()):
        step:              lr0 * drop_rate ^ (epoch // epochs_drop)
        exponential:       lr0 * decay_rate ^ epoch
        cosine:            lr0 * 0.5 * (1 + cos(pi * epoch / t_max))
        reduce_on_plateau: lr * factor once the metric has not improved
                           for `patience` consecutive steps

    Example:
        algorithm = Adam(learning_rate=0.01)
        scheduler = LearningRateScheduler(algorithm, "cosine")
        for epoch in range(epochs):
            ...
            scheduler.step(validation_loss)
    """

    SCHEDULES = ("step", "exponential", "cosine", "reduce_on_plateau")

    def __init__(
        self,
        optimizer,
        schedule: str = "step",
        drop_rate: float = 0.5,
        epochs_drop: int = 10,
        decay_rate: float = 0.95,
        t_max: int = 50,
        factor: float = 0.5,
        patience: int = 10,
    ):
        if schedule not in self.SCHEDULES:
            raise ConfigurationError(
                f"Unknown schedule: {schedule!r}. Available: {list(self.SCHEDULES)}"
            )
        if not hasattr(optimizer, "learning_rate"):
            raise ConfigurationError(
                f"{type(optimizer).__name__} has no learning_rate to schedule"
            )
        if epochs_drop <= 0 or t_max <= 0 or patience <= 0:
            raise ConfigurationError("epochs_drop, t_max and patience must be positive")

        self.optimizer = optimizer
        self.schedule = schedule
        self.drop_rate = drop_rate
        self.epochs_drop = epochs_drop
        self.decay_rate = decay_rate
        self.t_max = t_max
        self.factor = factor
        self.patience = patience

        self.initial_learning_rate = optimizer.learning_rate
        self.epoch = 0
        self.best_metric = math.inf
        self.wait = 0

    def step(self, metrics: Optional[float] = None) -> float:
        """Advance one epoch and write the new rate to the optimizer."""
        self.epoch += 1

        if self.schedule == "step":
            rate = self.initial_learning_rate * self.drop_rate ** (
                self.epoch // self.epochs_drop
            )
        elif self.schedule == "exponential":
            rate = self.initial_learning_rate * self.decay_rate**self.epoch
        elif self.schedule == "cosine":
            rate = (
                self.initial_learning_rate
                * 0.5
                * (1.0 + math.cos(math.pi * self.epoch / self.t_max))
            )
        else:
            rate = self._reduce_on_plateau(metrics)

        self.optimizer.learning_rate = rate
        return rate

    def _reduce_on_plateau(self, metrics: Optional[float]) -> float:
        rate = self.optimizer.learning_rate
        if metrics is None:
            return rate
        if metrics < self.best_metric:
            self.best_metric = metrics
            self.wait = 0
            return rate

        self.wait += 1
        if self.wait >= self.patience:
            self.wait = 0
            return rate * self.factor
        return rate

    def __repr__(self) -> str:
        return (
            f"LearningRateScheduler(schedule={self.schedule!r}, "
            f"epoch={self.epoch}, learning_rate={self.optimizer.learning_rate})"
        )
