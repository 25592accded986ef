"""
Regularization Techniques

Techniques that fight overfitting, all sharing one small interface so they
can be stacked:

    apply_forward(inputs, training) -> inputs'    # wrap the forward signal
    apply_backward(gradients) -> gradients'       # wrap the backward signal
    penalty(weights) -> float                     # extra loss term
    penalty_gradient(weights) -> array            # d(penalty)/d(weights)

Classes:
    RegularizationTechnique: No-op base class
    Dropout: Inverted dropout with a cached mask
    L1Regularization: lam * sum|w|
    L2Regularization: lam / 2 * sum w^2
    ElasticNet: Mix of L1 and L2
    BatchNormalization: Batch statistics in training, running ones at inference
    DataAugmentation: Noise / scale / shift transforms on raw training inputs
    EarlyStopping: Patience counter over a loss sequence
    RegularizationStrategy: Ordered composition of techniques

Reference:
    - "Dropout: A Simple Way to Prevent Neural Networks from Overfitting"
      (Srivastava et al., 2014)
    - "Batch Normalization: Accelerating Deep Network Training by Reducing
      Internal Covariate Shift" (Ioffe & Szegedy, 2015)
    - "Regularization and variable selection via the elastic net"
      (Zou & Hastie, 2005)
"""

import copy
import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from backprop.errors import ConfigurationError, ValidationError

WeightsLike = Union[np.ndarray, Sequence[np.ndarray]]


def _spawn_rng(rng: np.random.Generator) -> np.random.Generator:
    """Independent child generator; advances the parent stream."""
    return np.random.default_rng(rng.integers(np.iinfo(np.int64).max))


def _flatten_weights(weights: WeightsLike) -> np.ndarray:
    """Flatten one matrix or a list of differently-shaped matrices."""
    if isinstance(weights, np.ndarray):
        return weights.ravel()
    arrays = [np.ravel(np.asarray(matrix, dtype=np.float64)) for matrix in weights]
    if not arrays:
        return np.zeros(0)
    return np.concatenate(arrays)


class RegularizationTechnique:
    """
    Base technique: passes everything through and adds no penalty.

    Subclasses override only the hooks they need.
    """

    def apply_forward(self, inputs, training: bool = True) -> np.ndarray:
        return np.asarray(inputs, dtype=np.float64)

    def apply_backward(self, gradients) -> np.ndarray:
        return np.asarray(gradients, dtype=np.float64)

    def penalty(self, weights: WeightsLike) -> float:
        return 0.0

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        return np.zeros_like(np.asarray(weights, dtype=np.float64))

    def for_layer(self, num_features: int) -> "RegularizationTechnique":
        """
        Independent copy for one hidden layer of the given width.

        Techniques with per-layer state (random streams, statistics sized
        to the layer) override this.
        """
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Dropout(RegularizationTechnique):
    """
    Inverted dropout.

    During training each unit is kept with probability (1 - rate) and kept
    units are scaled by 1 / (1 - rate), so the expected activation is the
    same as at inference time, where inputs pass through unchanged.

    The mask drawn by apply_forward() is cached and reused by the matching
    apply_backward(): a dropped unit gets no gradient.

    Args:
        rate: Probability of dropping a unit, in [0, 1)
        rng: numpy Generator, for reproducible masks

    Attributes:
        mask: Mask of the last training forward pass (None before the first)
    """

    def __init__(self, rate: float = 0.5, rng: Optional[np.random.Generator] = None):
        if not 0.0 <= rate < 1.0:
            raise ConfigurationError(f"Dropout rate must be in [0, 1), got {rate}")
        self.rate = rate
        self.rng = rng if rng is not None else np.random.default_rng()
        self.mask: Optional[np.ndarray] = None
        self._training = True

    def apply_forward(self, inputs, training: bool = True) -> np.ndarray:
        inputs = np.asarray(inputs, dtype=np.float64)
        self._training = training

        if not training:
            return inputs

        keep = self.rng.random(inputs.shape) >= self.rate
        self.mask = keep.astype(np.float64) / (1.0 - self.rate)
        return inputs * self.mask

    def apply_backward(self, gradients) -> np.ndarray:
        gradients = np.asarray(gradients, dtype=np.float64)
        if self._training and self.mask is not None:
            return gradients * self.mask
        return gradients

    def for_layer(self, num_features: int) -> "Dropout":
        return Dropout(self.rate, rng=_spawn_rng(self.rng))

    def __repr__(self) -> str:
        return f"Dropout(rate={self.rate})"


class L1Regularization(RegularizationTechnique):
    """
    L1 (Lasso) penalty: lam * sum|w|.

    The subgradient lam * sign(w) pushes small weights to exactly zero,
    giving sparse models. At w = 0 the subgradient 0 is used.
    """

    def __init__(self, lam: float = 0.01):
        if lam < 0:
            raise ConfigurationError(f"lam must be non-negative, got {lam}")
        self.lam = lam

    def penalty(self, weights: WeightsLike) -> float:
        return float(self.lam * np.sum(np.abs(_flatten_weights(weights))))

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        return self.lam * np.sign(np.asarray(weights, dtype=np.float64))

    def gradient_adjustment(self, weight: float) -> float:
        """Penalty gradient for a single weight."""
        return float(self.lam * np.sign(weight))

    def __repr__(self) -> str:
        return f"L1Regularization(lam={self.lam})"


class L2Regularization(RegularizationTechnique):
    """
    L2 (Ridge / weight decay) penalty: lam / 2 * sum w^2.

    Gradient lam * w shrinks every weight in proportion to its size.
    """

    def __init__(self, lam: float = 0.01):
        if lam < 0:
            raise ConfigurationError(f"lam must be non-negative, got {lam}")
        self.lam = lam

    def penalty(self, weights: WeightsLike) -> float:
        return float(self.lam * 0.5 * np.sum(np.square(_flatten_weights(weights))))

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        return self.lam * np.asarray(weights, dtype=np.float64)

    def gradient_adjustment(self, weight: float) -> float:
        """Penalty gradient for a single weight."""
        return float(self.lam * weight)

    def __repr__(self) -> str:
        return f"L2Regularization(lam={self.lam})"


class ElasticNet(RegularizationTechnique):
    """
    Elastic net: lam * (ratio * sum|w| + (1 - ratio) / 2 * sum w^2).

    Args:
        lam: Overall strength
        l1_ratio: Share of the L1 term, in [0, 1] (0 = pure L2, 1 = pure L1)
    """

    def __init__(self, lam: float = 0.01, l1_ratio: float = 0.5):
        if lam < 0:
            raise ConfigurationError(f"lam must be non-negative, got {lam}")
        if not 0.0 <= l1_ratio <= 1.0:
            raise ConfigurationError(f"l1_ratio must be in [0, 1], got {l1_ratio}")
        self.lam = lam
        self.l1_ratio = l1_ratio
        self.l2_ratio = 1.0 - l1_ratio

    def penalty(self, weights: WeightsLike) -> float:
        flat = _flatten_weights(weights)
        l1_term = self.l1_ratio * np.sum(np.abs(flat))
        l2_term = self.l2_ratio * 0.5 * np.sum(np.square(flat))
        return float(self.lam * (l1_term + l2_term))

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        weights = np.asarray(weights, dtype=np.float64)
        return self.lam * (self.l1_ratio * np.sign(weights) + self.l2_ratio * weights)

    def gradient_adjustment(self, weight: float) -> float:
        """Penalty gradient for a single weight."""
        return float(
            self.lam * (self.l1_ratio * np.sign(weight) + self.l2_ratio * weight)
        )

    def __repr__(self) -> str:
        return f"ElasticNet(lam={self.lam}, l1_ratio={self.l1_ratio})"


class BatchNormalization(RegularizationTechnique):
    """
    Batch normalization over a batch of samples.

    Training:
        mean, var = batch statistics (per feature)
        running = momentum * running + (1 - momentum) * batch
        y = gamma * (x - mean) / sqrt(var + eps) + beta

    Inference:
        Same formula with running_mean / running_var in place of the batch
        statistics, so a single sample is normalized deterministically.

    Inputs are (num_samples, num_features); a 1-D vector is treated as a
    batch holding one sample and the result keeps the input's shape. When
    num_features is None the parameters are built from the width of the
    first batch seen.

    Args:
        num_features: Number of features per sample, or None to size lazily
        momentum: Weight of the old running statistics in the moving average
        epsilon: Small constant for numerical stability

    Attributes:
        gamma: Learnable scale, initialized to 1
        beta: Learnable shift, initialized to 0
        running_mean: Running mean, initialized to 0
        running_var: Running variance, initialized to 1
    """

    def __init__(
        self,
        num_features: Optional[int] = None,
        momentum: float = 0.9,
        epsilon: float = 1e-5,
    ):
        if num_features is not None and num_features <= 0:
            raise ConfigurationError(
                f"num_features must be positive, got {num_features}"
            )
        if not 0.0 <= momentum <= 1.0:
            raise ConfigurationError(f"momentum must be in [0, 1], got {momentum}")
        self.num_features = num_features
        self.momentum = momentum
        self.epsilon = epsilon

        self.gamma: Optional[np.ndarray] = None
        self.beta: Optional[np.ndarray] = None
        self.running_mean: Optional[np.ndarray] = None
        self.running_var: Optional[np.ndarray] = None
        if num_features is not None:
            self._build(num_features)

        # Cache for backward pass
        self._input_scale: Optional[np.ndarray] = None

    def _build(self, num_features: int) -> None:
        self.num_features = num_features
        self.gamma = np.ones(num_features)
        self.beta = np.zeros(num_features)
        self.running_mean = np.zeros(num_features)
        self.running_var = np.ones(num_features)

    def apply_forward(self, inputs, training: bool = True) -> np.ndarray:
        inputs = np.asarray(inputs, dtype=np.float64)
        batch = np.atleast_2d(inputs)
        if batch.ndim == 2 and self.num_features is None:
            self._build(batch.shape[1])
        if batch.ndim != 2 or batch.shape[1] != self.num_features:
            raise ValidationError(
                f"BatchNormalization expects {self.num_features} features, "
                f"got shape {inputs.shape}"
            )

        if training:
            mean = np.mean(batch, axis=0)
            var = np.var(batch, axis=0)
            self.running_mean = (
                self.momentum * self.running_mean + (1.0 - self.momentum) * mean
            )
            self.running_var = (
                self.momentum * self.running_var + (1.0 - self.momentum) * var
            )
        else:
            mean = self.running_mean
            var = self.running_var

        std = np.sqrt(var + self.epsilon)
        self._input_scale = self.gamma / std

        normalized = (batch - mean) / std
        output = self.gamma * normalized + self.beta
        return output.reshape(inputs.shape)

    def apply_backward(self, gradients) -> np.ndarray:
        # Only the direct path through the normalization is propagated;
        # gradients w.r.t. gamma, beta and the batch statistics are not.
        gradients = np.asarray(gradients, dtype=np.float64)
        if self._input_scale is None:
            return gradients
        return gradients * self._input_scale

    def for_layer(self, num_features: int) -> "BatchNormalization":
        return BatchNormalization(num_features, self.momentum, self.epsilon)

    def __repr__(self) -> str:
        return (
            f"BatchNormalization(num_features={self.num_features}, "
            f"momentum={self.momentum}, epsilon={self.epsilon})"
        )


class DataAugmentation(RegularizationTechnique):
    """
    Random transforms applied to raw training inputs.

    Supported transforms, applied in the configured order:
        noise: x' = x + N(0, noise_std^2), independently per element
        scale: x' = a * x, one a ~ U(scale_range) per vector
        shift: x' = x + b, one b ~ U(shift_range) per vector

    Augmentation happens only in training mode; apply_forward() with
    training=False returns the inputs unchanged.
    """

    TRANSFORMS = ("noise", "scale", "shift")

    def __init__(
        self,
        augmentation_types: Sequence[str] = ("noise",),
        noise_std: float = 0.01,
        scale_range: Tuple[float, float] = (0.9, 1.1),
        shift_range: Tuple[float, float] = (-0.1, 0.1),
        rng: Optional[np.random.Generator] = None,
    ):
        unknown = [name for name in augmentation_types if name not in self.TRANSFORMS]
        if unknown:
            raise ConfigurationError(
                f"Unknown augmentation type(s): {unknown}. Available: {list(self.TRANSFORMS)}"
            )
        if noise_std < 0:
            raise ConfigurationError(f"noise_std must be non-negative, got {noise_std}")
        self.augmentation_types = tuple(augmentation_types)
        self.noise_std = noise_std
        self.scale_range = scale_range
        self.shift_range = shift_range
        self.rng = rng if rng is not None else np.random.default_rng()

    def augment(self, data) -> np.ndarray:
        """Return a transformed copy of one input vector."""
        augmented = np.array(data, dtype=np.float64)

        for augmentation_type in self.augmentation_types:
            if augmentation_type == "noise":
                augmented = augmented + self.rng.normal(
                    0.0, self.noise_std, size=augmented.shape
                )
            elif augmentation_type == "scale":
                augmented = augmented * self.rng.uniform(*self.scale_range)
            elif augmentation_type == "shift":
                augmented = augmented + self.rng.uniform(*self.shift_range)

        return augmented

    def apply_forward(self, inputs, training: bool = True) -> np.ndarray:
        if not training:
            return np.asarray(inputs, dtype=np.float64)
        return self.augment(inputs)

    def for_layer(self, num_features: int) -> "DataAugmentation":
        return DataAugmentation(
            self.augmentation_types,
            noise_std=self.noise_std,
            scale_range=self.scale_range,
            shift_range=self.shift_range,
            rng=_spawn_rng(self.rng),
        )

    def __repr__(self) -> str:
        return f"DataAugmentation(augmentation_types={list(self.augmentation_types)})"


class EarlyStopping:
    """
    Stop training once a loss has not improved for `patience` checks.

    A loss counts as an improvement only if it beats the best loss so far by
    more than min_delta.

    Args:
        patience: Consecutive non-improving checks tolerated
        min_delta: Minimum decrease that counts as improvement

    Attributes:
        best_loss: Lowest loss seen (inf before the first check)
        best_epoch: Index of the check that produced best_loss
        counter: Current number of consecutive non-improving checks
    """

    def __init__(self, patience: int = 10, min_delta: float = 0.0001):
        if patience < 1:
            raise ConfigurationError(f"patience must be at least 1, got {patience}")
        if min_delta < 0:
            raise ConfigurationError(f"min_delta must be non-negative, got {min_delta}")
        self.patience = patience
        self.min_delta = min_delta
        self.reset()

    def check(self, loss: float) -> bool:
        """
        Record one loss value.

        Returns:
            True once training should stop
        """
        if loss < self.best_loss - self.min_delta:
            self.best_loss = loss
            self.best_epoch = self._checks
            self.counter = 0
        else:
            self.counter += 1

        self._checks += 1
        if self.counter >= self.patience:
            self._stopped = True
        return self._stopped

    @property
    def stopped(self) -> bool:
        return self._stopped

    def reset(self) -> None:
        self.best_loss = math.inf
        self.best_epoch: Optional[int] = None
        self.counter = 0
        self._checks = 0
        self._stopped = False

    def __repr__(self) -> str:
        return f"EarlyStopping(patience={self.patience}, min_delta={self.min_delta})"


class RegularizationStrategy:
    """
    Ordered pipeline of regularization techniques.

    Forward signals go through techniques in registration order, backward
    signals in reverse order, and penalties are summed.

    Example:
        strategy = (
            RegularizationStrategy()
            .add_technique(Dropout(0.2))
            .add_technique(L2Regularization(1e-4))
        )
    """

    def __init__(self, techniques: Optional[Sequence[RegularizationTechnique]] = None):
        self.techniques: List[RegularizationTechnique] = []
        for technique in techniques or ():
            self.add_technique(technique)

    def add_technique(self, technique: RegularizationTechnique) -> "RegularizationStrategy":
        if not isinstance(technique, RegularizationTechnique):
            raise ConfigurationError(
                f"Expected a RegularizationTechnique, got {type(technique).__name__}"
            )
        self.techniques.append(technique)
        return self

    def apply_forward(self, inputs, training: bool = True) -> np.ndarray:
        result = np.asarray(inputs, dtype=np.float64)
        for technique in self.techniques:
            result = technique.apply_forward(result, training)
        return result

    def apply_backward(self, gradients) -> np.ndarray:
        result = np.asarray(gradients, dtype=np.float64)
        for technique in reversed(self.techniques):
            result = technique.apply_backward(result)
        return result

    def penalty(self, weights: WeightsLike) -> float:
        return float(sum(technique.penalty(weights) for technique in self.techniques))

    def total_penalty(self, weights: WeightsLike) -> float:
        return self.penalty(weights)

    def penalty_gradient(self, weights: np.ndarray) -> np.ndarray:
        gradient = np.zeros_like(np.asarray(weights, dtype=np.float64))
        for technique in self.techniques:
            gradient = gradient + technique.penalty_gradient(weights)
        return gradient

    def for_layer(self, num_features: int) -> "RegularizationStrategy":
        """Fresh pipeline for one hidden layer; the techniques here are left untouched."""
        return RegularizationStrategy(
            [technique.for_layer(num_features) for technique in self.techniques]
        )

    def __len__(self) -> int:
        return len(self.techniques)

    def __repr__(self) -> str:
        return f"RegularizationStrategy({self.techniques})"
