"""
Input and Structure Validation

The validator is the gate in front of the numerical code: every vector that
reaches the forward or backward pass has already been checked here, so the
math never has to cope with wrong sizes, strings or NaNs.

Classes:
    NetworkValidator: Stateless checks for structures, vectors and records
"""

import math
import numbers
from typing import Any, Mapping, Sequence

import numpy as np

from backprop.errors import ConfigurationError, ValidationError


class NetworkValidator:
    """
    Stateless validator for network structures and data.

    All methods either return None or raise. Nothing is repaired silently:
    callers are expected to clean their data before training.
    """

    def validate_structure(self, structure: Any) -> None:
        """
        Check a network structure.

        Args:
            structure: Sequence of layer sizes, e.g. [2, 3, 1]

        Raises:
            ConfigurationError: If fewer than 2 layers are given or any layer
                                size is not a positive integer.
        """
        if structure is None:
            raise ConfigurationError("Network structure cannot be None")
        if isinstance(structure, (str, bytes)) or not isinstance(
            structure, (Sequence, np.ndarray)
        ):
            raise ConfigurationError(
                f"Network structure must be a sequence of integers, got {type(structure).__name__}"
            )
        if len(structure) < 2:
            raise ConfigurationError(
                f"Network must have at least 2 layers, got {len(structure)}"
            )

        for index, layer_size in enumerate(structure):
            if not _is_integer(layer_size) or layer_size <= 0:
                raise ConfigurationError(
                    f"Layer {index} size must be a positive integer, got {layer_size!r}"
                )

    def validate_input(self, inputs: Any, expected_size: int) -> None:
        """Check an input vector against the size of the first layer."""
        self._validate_vector(inputs, expected_size, "Input")

    def validate_output(self, outputs: Any, expected_size: int) -> None:
        """Check an expected-output vector against the size of the last layer."""
        self._validate_vector(outputs, expected_size, "Output")

    def validate_training_data(
        self, training_data: Any, input_size: int, output_size: int
    ) -> None:
        """
        Check every record of a training set.

        Args:
            training_data: Sequence of mappings with "input" and "output" keys
            input_size: Expected input vector length
            output_size: Expected output vector length

        Raises:
            ValidationError: On the first invalid record. The message and the
                             ``record_index`` attribute name the record.
        """
        if training_data is None:
            raise ValidationError("Training data cannot be None")
        if isinstance(training_data, (str, bytes, Mapping)) or not isinstance(
            training_data, Sequence
        ):
            raise ValidationError("Training data must be a sequence of records")
        if len(training_data) == 0:
            raise ValidationError("Training data cannot be empty")

        for index, record in enumerate(training_data):
            if (
                not isinstance(record, Mapping)
                or record.get("input") is None
                or record.get("output") is None
            ):
                raise ValidationError(
                    f"Training example {index} must have 'input' and 'output' keys",
                    record_index=index,
                )

            try:
                self.validate_input(record["input"], input_size)
                self.validate_output(record["output"], output_size)
            except ValidationError as error:
                raise ValidationError(
                    f"Training example {index}: {error}", record_index=index
                ) from error

    def _validate_vector(self, values: Any, expected_size: int, name: str) -> None:
        if values is None:
            raise ValidationError(f"{name} cannot be None")

        if isinstance(values, np.ndarray):
            if values.ndim != 1:
                raise ValidationError(
                    f"{name} must be one-dimensional, got shape {values.shape}"
                )
        elif isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise ValidationError(
                f"{name} must be a sequence of numbers, got {type(values).__name__}"
            )

        if len(values) != expected_size:
            raise ValidationError(
                f"{name} size mismatch. Expected {expected_size}, got {len(values)}"
            )

        for index, value in enumerate(values):
            if isinstance(value, (bool, np.bool_)) or not isinstance(
                value, numbers.Real
            ):
                raise ValidationError(
                    f"{name}[{index}] must be numeric, got {type(value).__name__}"
                )
            if not math.isfinite(value):
                raise ValidationError(f"{name}[{index}] must be finite, got {value}")


def _is_integer(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(
        value, (bool, np.bool_)
    )
