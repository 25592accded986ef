"""
Tests for weight initializers.

Tests cover:
- Matrix shapes for every strategy
- Distribution bounds (random, Xavier) and spread (He)
- Fixed and custom initializers
- Name registry
"""

import numpy as np
import pytest

from backprop.errors import ConfigurationError, ProgrammingError
from backprop.initializers import (
    CustomInitializer,
    FixedInitializer,
    HeInitializer,
    RandomInitializer,
    WeightInitializer,
    XavierInitializer,
    available_initializers,
    create_initializer,
)


class TestInitializerShapes:
    """Every initializer returns a (from_size, to_size) matrix."""

    @pytest.mark.parametrize(
        "initializer",
        [
            RandomInitializer(),
            XavierInitializer(),
            HeInitializer(),
            FixedInitializer(),
            CustomInitializer(lambda layer, i, j: 0.0),
        ],
    )
    def test_shape(self, initializer):
        matrix = initializer.initialize_matrix(3, 5, 0)

        assert matrix.shape == (3, 5)
        assert matrix.dtype == np.float64

    def test_base_class_is_abstract(self):
        with pytest.raises(ProgrammingError):
            WeightInitializer().initialize_matrix(2, 2)


class TestRandomInitializer:
    def test_default_range(self):
        initializer = RandomInitializer(rng=np.random.default_rng(0))
        matrix = initializer.initialize_matrix(50, 40)

        assert np.all(matrix >= -1.0)
        assert np.all(matrix < 1.0)

    def test_custom_range(self):
        initializer = RandomInitializer(weight_range=(0.2, 0.3), rng=np.random.default_rng(0))
        matrix = initializer.initialize_matrix(10, 10)

        assert np.all(matrix >= 0.2)
        assert np.all(matrix < 0.3)

    def test_seeded_draws_are_reproducible(self):
        first = RandomInitializer(rng=np.random.default_rng(42)).initialize_matrix(4, 4)
        second = RandomInitializer(rng=np.random.default_rng(42)).initialize_matrix(4, 4)

        np.testing.assert_array_equal(first, second)

    def test_empty_range_rejected(self):
        with pytest.raises(ConfigurationError):
            RandomInitializer(weight_range=(1.0, 1.0))


class TestXavierInitializer:
    def test_within_glorot_limit(self):
        from_size, to_size = 30, 20
        limit = np.sqrt(6.0 / (from_size + to_size))

        matrix = XavierInitializer(rng=np.random.default_rng(1)).initialize_matrix(
            from_size, to_size
        )

        assert np.all(np.abs(matrix) <= limit)
        # With 600 draws the extremes should come close to the limit
        assert np.max(np.abs(matrix)) > 0.9 * limit


class TestHeInitializer:
    def test_mean_and_standard_deviation(self):
        from_size, to_size = 500, 200
        expected_std = np.sqrt(2.0 / from_size)

        matrix = HeInitializer(rng=np.random.default_rng(3)).initialize_matrix(
            from_size, to_size
        )

        assert abs(np.mean(matrix)) < 0.1 * expected_std
        assert np.std(matrix) == pytest.approx(expected_std, rel=0.05)

    def test_values_are_finite(self):
        matrix = HeInitializer(rng=np.random.default_rng(0)).initialize_matrix(100, 100)
        assert np.all(np.isfinite(matrix))


class TestFixedAndCustom:
    def test_fixed_value(self):
        matrix = FixedInitializer(value=0.25).initialize_matrix(2, 3)
        np.testing.assert_array_equal(matrix, np.full((2, 3), 0.25))

    def test_custom_receives_layer_and_indices(self):
        initializer = CustomInitializer(lambda layer, i, j: layer * 100 + i * 10 + j)
        matrix = initializer.initialize_matrix(2, 3, layer_index=1)

        np.testing.assert_array_equal(
            matrix, np.array([[100, 101, 102], [110, 111, 112]], dtype=np.float64)
        )

    def test_custom_requires_callable(self):
        with pytest.raises(ConfigurationError):
            CustomInitializer(0.5)


class TestInitializerRegistry:
    @pytest.mark.parametrize(
        "name, expected_class",
        [
            ("random", RandomInitializer),
            ("xavier", XavierInitializer),
            ("he", HeInitializer),
            ("fixed", FixedInitializer),
        ],
    )
    def test_create_by_name(self, name, expected_class):
        assert isinstance(create_initializer(name), expected_class)

    def test_options_are_forwarded(self):
        initializer = create_initializer("fixed", value=0.75)
        assert initializer.value == 0.75

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError, match="Unknown weight initialization"):
            create_initializer("orthogonal")

    def test_available_names(self):
        assert available_initializers() == ["random", "xavier", "he", "fixed"]

    def test_unknown_option_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid options") as excinfo:
            create_initializer("xavier", value=0.5)
        assert isinstance(excinfo.value.__cause__, TypeError)
