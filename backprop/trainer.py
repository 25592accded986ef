"""
Training Loop Coordinator

The Trainer drives a Network over a dataset for a number of epochs. It
owns the loop concerns (validation split, shuffling, batching, early
stopping, callbacks, metrics) so the network itself only knows how to
train on a single example.

Examples are always processed one at a time: batching only groups them,
every example still updates the weights on its own.

Classes:
    TrainerConfig: Dataclass with all training options
    Trainer: Epoch loop and evaluation
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from backprop.errors import ConfigurationError
from backprop.network import Network
from backprop.optimizer import LearningRateScheduler
from backprop.regularization import DataAugmentation, EarlyStopping
from backprop.utils import create_batches, is_one_hot, split_records, squared_error
from backprop.validator import NetworkValidator

logger = logging.getLogger(__name__)

Record = Dict[str, Sequence[float]]
EpochCallback = Callable[[int, Dict[str, Any]], None]


@dataclass
class TrainerConfig:
    """
    Configuration for a training run.

    Attributes:
        epochs: Maximum number of passes over the training data
        batch_size: Group examples into batches of this size (None = no grouping)
        validation_split: Fraction of the data held out for validation, in [0, 1)
        shuffle: Reshuffle the training data every epoch
        early_stopping_patience: Stop after this many epochs without
                                 improvement (None = never stop early)
        early_stopping_min_delta: Minimum decrease that counts as improvement
        on_epoch_end: Callback (epoch_index, epoch_result) after every epoch
        seed: Seed for shuffling and splitting (None = nondeterministic)
        augmentation: Optional DataAugmentation applied to training inputs
        lr_scheduler: Optional LearningRateScheduler stepped after every
                      epoch with the monitored error
    """

    epochs: int = 100
    batch_size: Optional[int] = None
    validation_split: float = 0.0
    shuffle: bool = True
    early_stopping_patience: Optional[int] = None
    early_stopping_min_delta: float = 0.001
    on_epoch_end: Optional[EpochCallback] = None
    seed: Optional[int] = None
    augmentation: Optional[DataAugmentation] = None
    lr_scheduler: Optional[LearningRateScheduler] = None

    def validate(self) -> None:
        """Raise ConfigurationError if any option is out of range."""
        if self.epochs < 1:
            raise ConfigurationError(f"epochs must be at least 1, got {self.epochs}")
        if self.batch_size is not None and self.batch_size < 1:
            raise ConfigurationError(
                f"batch_size must be at least 1, got {self.batch_size}"
            )
        if not 0.0 <= self.validation_split < 1.0:
            raise ConfigurationError(
                f"validation_split must be in [0, 1), got {self.validation_split}"
            )
        if self.early_stopping_patience is not None and self.early_stopping_patience < 1:
            raise ConfigurationError(
                "early_stopping_patience must be at least 1, "
                f"got {self.early_stopping_patience}"
            )
        if self.early_stopping_min_delta < 0:
            raise ConfigurationError(
                "early_stopping_min_delta must be non-negative, "
                f"got {self.early_stopping_min_delta}"
            )
        if self.on_epoch_end is not None and not callable(self.on_epoch_end):
            raise ConfigurationError("on_epoch_end must be callable")
        if self.lr_scheduler is not None and not isinstance(
            self.lr_scheduler, LearningRateScheduler
        ):
            raise ConfigurationError("lr_scheduler must be a LearningRateScheduler")

    def with_options(self, **options) -> "TrainerConfig":
        """
        Return a copy with some options overridden.

        Raises:
            ConfigurationError: On unknown option names or invalid values
        """
        known = {config_field.name for config_field in dataclasses.fields(self)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown training option(s): {unknown}")

        config = dataclasses.replace(self, **options)
        config.validate()
        return config


class Trainer:
    """
    Epoch-based trainer for a Network.

    The trainer holds non-owning references to the network and validator;
    training mutates the network in place.

    Example usage:
        trainer = Trainer(network)
        result = trainer.train(
            records,
            epochs=500,
            validation_split=0.2,
            early_stopping_patience=20,
            on_epoch_end=lambda epoch, info: print(epoch, info["error"]),
        )
        metrics = trainer.evaluate(test_records)

    Attributes:
        network: Network being trained
        validator: Validator for training records
        config: Default options for train()
    """

    def __init__(
        self,
        network: Network,
        validator: Optional[NetworkValidator] = None,
        config: Optional[TrainerConfig] = None,
    ):
        self.network = network
        self.validator = validator if validator is not None else network.validator
        self.config = config if config is not None else TrainerConfig()
        self.config.validate()
        self._training_history: List[Dict[str, Any]] = []

    @property
    def training_history(self) -> List[Dict[str, Any]]:
        """Copy of the per-epoch results of the last train() call."""
        return list(self._training_history)

    def train(self, training_data: Sequence[Record], **options) -> Dict[str, Any]:
        """
        Train the network.

        Args:
            training_data: Records with "input" and "output" vectors
            **options: Overrides for TrainerConfig fields

        Returns:
            Dictionary with:
                history: Per-epoch results
                final_error: Training error of the last epoch
                epochs_trained: Number of completed epochs
                stopped_early: Whether early stopping ended the run

        Raises:
            ValidationError: If any record is invalid (no training happens)
            ConfigurationError: On invalid options
        """
        config = self.config.with_options(**options)
        self.validator.validate_training_data(
            training_data, self.network.input_size, self.network.output_size
        )

        rng = np.random.default_rng(config.seed)
        train_data, validation_data = split_records(
            training_data, config.validation_split, rng
        )
        if not train_data:
            raise ConfigurationError(
                f"validation_split={config.validation_split} leaves no training data"
            )

        if not self.network.network_initialized:
            self.network.init_network()

        early_stopping = None
        if config.early_stopping_patience is not None:
            early_stopping = EarlyStopping(
                patience=config.early_stopping_patience,
                min_delta=config.early_stopping_min_delta,
            )

        self._training_history = []
        stopped_early = False

        for epoch in range(config.epochs):
            epoch_result = self._train_epoch(train_data, epoch, config, rng)

            if validation_data:
                epoch_result["validation"] = self.evaluate(validation_data)

            self._training_history.append(epoch_result)
            self._log_epoch(epoch_result)

            if config.on_epoch_end is not None:
                config.on_epoch_end(epoch, epoch_result)

            if "validation" in epoch_result:
                monitored_error = epoch_result["validation"]["mean_error"]
            else:
                monitored_error = epoch_result["error"]

            if config.lr_scheduler is not None:
                learning_rate = config.lr_scheduler.step(monitored_error)
                logger.debug("Learning rate for next epoch: %.6g", learning_rate)

            if early_stopping is not None:
                if early_stopping.check(monitored_error):
                    logger.info(
                        "Early stopping after epoch %d (best error %.6f at epoch %s)",
                        epoch,
                        early_stopping.best_loss,
                        early_stopping.best_epoch,
                    )
                    stopped_early = True
                    break

        return {
            "history": self.training_history,
            "final_error": self._training_history[-1]["error"],
            "epochs_trained": len(self._training_history),
            "stopped_early": stopped_early,
        }

    def train_batch(
        self, training_data: Sequence[Record], batch_size: int, **options
    ) -> Dict[str, Any]:
        """Shortcut for train(training_data, batch_size=batch_size, ...)."""
        return self.train(training_data, batch_size=batch_size, **options)

    def evaluate(self, data: Sequence[Record]) -> Dict[str, Any]:
        """
        Measure the network on a dataset without training.

        Accuracy counts records whose one-hot target matches the argmax of
        the network output; records that are not one-hot never count as
        correct.

        Returns:
            Dictionary with mean_error, accuracy and total_examples
        """
        self.validator.validate_training_data(
            data, self.network.input_size, self.network.output_size
        )

        total_error = 0.0
        correct_predictions = 0

        for record in data:
            output = self.network.eval(record["input"])
            total_error += squared_error(output, record["output"])

            if is_one_hot(record["output"]):
                predicted = int(np.argmax(output))
                expected = int(np.argmax(record["output"]))
                if predicted == expected:
                    correct_predictions += 1

        return {
            "mean_error": total_error / len(data),
            "accuracy": correct_predictions / len(data),
            "total_examples": len(data),
        }

    def _train_epoch(
        self,
        data: List[Record],
        epoch: int,
        config: TrainerConfig,
        rng: np.random.Generator,
    ) -> Dict[str, Any]:
        if config.shuffle:
            data = [data[index] for index in rng.permutation(len(data))]

        batch_size = config.batch_size or len(data)
        batches = create_batches(data, batch_size)

        total_error = 0.0
        examples_trained = 0
        for batch in batches:
            for record in batch:
                inputs = record["input"]
                if config.augmentation is not None:
                    inputs = config.augmentation.augment(inputs)
                total_error += self.network.train(inputs, record["output"])
                examples_trained += 1

        result = {
            "epoch": epoch,
            "error": total_error / examples_trained,
            "examples_trained": examples_trained,
        }
        if config.batch_size is not None:
            result["batches"] = len(batches)
        return result

    def _log_epoch(self, epoch_result: Dict[str, Any]) -> None:
        if "validation" in epoch_result:
            validation = epoch_result["validation"]
            logger.info(
                "Epoch %d: error=%.6f val_error=%.6f val_accuracy=%.2f%%",
                epoch_result["epoch"],
                epoch_result["error"],
                validation["mean_error"],
                validation["accuracy"] * 100,
            )
        else:
            logger.info(
                "Epoch %d: error=%.6f", epoch_result["epoch"], epoch_result["error"]
            )
