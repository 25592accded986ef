"""
Backpropagation Training Engine

This package provides a modular feed-forward neural network trained with
backpropagation, built on NumPy. Every moving part is a small strategy
object that can be swapped or mocked in tests.

Modules:
    errors: ConfigurationError, ValidationError, ProgrammingError
    validator: Structure, vector and training record checks
    initializers: Weight initialization (random, Xavier, He, fixed, custom)
    activations: Activation functions with output-based derivatives
    optimizer: Learning algorithms (gradient descent, momentum, AdaGrad, Adam,
               RMSprop, NAG) and learning rate schedules
    network: The backpropagation network, its config, builder and presets
    regularization: Dropout, L1/L2/elastic net, batch norm, augmentation,
                    early stopping and their composition
    trainer: Epoch loop with validation split, shuffling and early stopping
    utils: Batching, splitting, metrics and logger setup

Reference:
    "Learning representations by back-propagating errors"
    (Rumelhart, Hinton & Williams, 1986)
"""

from backprop.activations import (
    ActivationFunction,
    ActivationType,
    CustomActivation,
    ELU,
    LeakyReLU,
    Linear,
    ReLU,
    Sigmoid,
    Tanh,
    create_activation,
)
from backprop.errors import (
    ConfigurationError,
    NetworkError,
    ProgrammingError,
    ValidationError,
)
from backprop.initializers import (
    CustomInitializer,
    FixedInitializer,
    HeInitializer,
    InitializerType,
    RandomInitializer,
    WeightInitializer,
    XavierInitializer,
    create_initializer,
)
from backprop.network import (
    Network,
    NetworkBuilder,
    NetworkConfig,
    Presets,
    build_network,
)
from backprop.optimizer import (
    AdaGrad,
    Adam,
    GradientDescent,
    LearningAlgorithm,
    LearningAlgorithmType,
    LearningRateScheduler,
    Momentum,
    NAG,
    RMSprop,
    create_learning_algorithm,
)
from backprop.regularization import (
    BatchNormalization,
    DataAugmentation,
    Dropout,
    EarlyStopping,
    ElasticNet,
    L1Regularization,
    L2Regularization,
    RegularizationStrategy,
    RegularizationTechnique,
)
from backprop.trainer import Trainer, TrainerConfig
from backprop.validator import NetworkValidator

__version__ = "1.0.0"
