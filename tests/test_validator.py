"""
Tests for the validator module.

Tests cover:
- Structure validation (length, positive integers)
- Input/output vector validation (size, numeric, finite)
- Training record validation, including the offending record index
"""

import math

import numpy as np
import pytest

from backprop.errors import ConfigurationError, NetworkError, ValidationError
from backprop.validator import NetworkValidator


@pytest.fixture
def validator():
    return NetworkValidator()


class TestValidateStructure:
    """Structures need at least two layers of positive integer sizes."""

    @pytest.mark.parametrize(
        "structure", [[1, 1], [2, 3, 1], (4, 10, 3), [784, 128, 64, 10], np.array([2, 2])]
    )
    def test_valid_structures(self, validator, structure):
        validator.validate_structure(structure)

    @pytest.mark.parametrize(
        "structure",
        [None, [], [3], [2, 0], [2, -1, 1], [2, 1.5], [2, True], ["2", 1], "21", 5],
    )
    def test_invalid_structures(self, validator, structure):
        with pytest.raises(ConfigurationError):
            validator.validate_structure(structure)

    def test_error_names_the_layer(self, validator):
        with pytest.raises(ConfigurationError, match="Layer 1"):
            validator.validate_structure([2, 0, 1])


class TestValidateVectors:
    """Input and output vectors must match the layer size and be finite."""

    def test_accepts_lists_tuples_and_arrays(self, validator):
        validator.validate_input([1, 2.5], 2)
        validator.validate_input((0.0, -1.0), 2)
        validator.validate_output(np.array([0.1, 0.2, 0.3]), 3)

    def test_accepts_numpy_scalars(self, validator):
        validator.validate_input([np.float32(0.5), np.int64(2)], 2)

    def test_size_mismatch(self, validator):
        with pytest.raises(ValidationError, match="Expected 3, got 2"):
            validator.validate_input([1.0, 2.0], 3)

    def test_output_size_mismatch(self, validator):
        with pytest.raises(ValidationError, match="Output size mismatch"):
            validator.validate_output([1.0], 2)

    @pytest.mark.parametrize("bad_value", [math.nan, math.inf, -math.inf])
    def test_non_finite_values(self, validator, bad_value):
        with pytest.raises(ValidationError, match="finite"):
            validator.validate_input([0.0, bad_value], 2)

    @pytest.mark.parametrize("bad_value", ["1.0", None, True, [1.0]])
    def test_non_numeric_values(self, validator, bad_value):
        with pytest.raises(ValidationError, match="numeric"):
            validator.validate_input([0.0, bad_value], 2)

    def test_none_and_non_sequences(self, validator):
        with pytest.raises(ValidationError):
            validator.validate_input(None, 1)
        with pytest.raises(ValidationError):
            validator.validate_input("ab", 2)
        with pytest.raises(ValidationError):
            validator.validate_input(3.0, 1)

    def test_two_dimensional_array_rejected(self, validator):
        with pytest.raises(ValidationError, match="one-dimensional"):
            validator.validate_input(np.zeros((2, 2)), 2)


class TestValidateTrainingData:
    """Training records are mappings with valid input and output vectors."""

    def test_valid_records(self, validator):
        records = [
            {"input": [0, 0], "output": [0]},
            {"input": [1, 1], "output": [1]},
        ]
        validator.validate_training_data(records, 2, 1)

    def test_empty_and_none(self, validator):
        with pytest.raises(ValidationError, match="empty"):
            validator.validate_training_data([], 2, 1)
        with pytest.raises(ValidationError):
            validator.validate_training_data(None, 2, 1)

    def test_missing_key_reports_index(self, validator):
        records = [
            {"input": [0, 0], "output": [0]},
            {"input": [0, 1]},
        ]
        with pytest.raises(ValidationError, match="Training example 1") as error_info:
            validator.validate_training_data(records, 2, 1)
        assert error_info.value.record_index == 1

    def test_non_mapping_record(self, validator):
        with pytest.raises(ValidationError) as error_info:
            validator.validate_training_data([[0, 0]], 2, 1)
        assert error_info.value.record_index == 0

    def test_bad_vector_reports_index(self, validator):
        records = [
            {"input": [0, 0], "output": [0]},
            {"input": [0, 1], "output": [1]},
            {"input": [1, math.nan], "output": [1]},
        ]
        with pytest.raises(ValidationError, match=r"Training example 2: Input\[1\]") as error_info:
            validator.validate_training_data(records, 2, 1)
        assert error_info.value.record_index == 2

    def test_errors_share_a_base_class(self, validator):
        with pytest.raises(NetworkError):
            validator.validate_training_data([{"input": [1], "output": [1, 2]}], 1, 1)
        with pytest.raises(ValueError):
            validator.validate_structure([1])
