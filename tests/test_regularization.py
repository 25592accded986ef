"""
Tests for regularization module.

Tests cover:
- Dropout: inverted scaling, mask reuse in the backward pass, inference
- L1 / L2 / elastic net penalties and their gradients
- Batch normalization: batch statistics in training, running ones at inference
- Data augmentation transforms
- Early stopping patience logic
- Composition in a RegularizationStrategy
- Per-layer copies with independent random streams

Reference: "Dropout: A Simple Way to Prevent Neural Networks from
Overfitting" (Srivastava et al., 2014)
"""

import math

import numpy as np
import pytest

from backprop.errors import ConfigurationError, ValidationError
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


class TestDropout:
    """
    Inverted dropout keeps each unit with probability (1 - rate) and scales
    kept units by 1 / (1 - rate).
    """

    def test_kept_units_are_scaled(self):
        dropout = Dropout(rate=0.5, rng=np.random.default_rng(0))
        outputs = dropout.apply_forward(np.ones(100), training=True)

        assert set(np.unique(outputs)) <= {0.0, 2.0}, "Kept units must be scaled by 2"
        assert 0 < np.count_nonzero(outputs) < 100

    def test_backward_reuses_forward_mask(self):
        """A dropped unit gets no gradient, a kept unit gets the same scale."""
        dropout = Dropout(rate=0.3, rng=np.random.default_rng(1))

        outputs = dropout.apply_forward(np.ones(20), training=True)
        gradients = dropout.apply_backward(np.ones(20))

        np.testing.assert_array_equal(gradients, outputs)
        np.testing.assert_array_equal(gradients, dropout.mask)

    def test_inference_passes_through(self):
        dropout = Dropout(rate=0.5)
        inputs = np.array([0.5, -1.0, 2.0])

        np.testing.assert_array_equal(dropout.apply_forward(inputs, training=False), inputs)
        np.testing.assert_array_equal(dropout.apply_backward(inputs), inputs)

    def test_expected_activation_is_preserved(self):
        dropout = Dropout(rate=0.2, rng=np.random.default_rng(2))
        outputs = dropout.apply_forward(np.ones(20000), training=True)

        assert np.mean(outputs) == pytest.approx(1.0, abs=0.03)

    def test_zero_rate_keeps_everything(self):
        dropout = Dropout(rate=0.0)
        np.testing.assert_array_equal(dropout.apply_forward(np.ones(5)), np.ones(5))

    @pytest.mark.parametrize("rate", [-0.1, 1.0, 1.5])
    def test_rejects_invalid_rate(self, rate):
        with pytest.raises(ConfigurationError):
            Dropout(rate=rate)


class TestWeightPenalties:
    @pytest.fixture
    def weights(self):
        return np.array([[1.0, -2.0], [0.0, 3.0]])

    def test_l1_penalty_and_gradient(self, weights):
        l1 = L1Regularization(lam=0.1)

        assert l1.penalty(weights) == pytest.approx(0.6)
        np.testing.assert_allclose(l1.penalty_gradient(weights), [[0.1, -0.1], [0.0, 0.1]])
        assert l1.gradient_adjustment(-4.0) == pytest.approx(-0.1)

    def test_l2_penalty_and_gradient(self, weights):
        l2 = L2Regularization(lam=0.1)

        # 0.1 * 0.5 * (1 + 4 + 0 + 9)
        assert l2.penalty(weights) == pytest.approx(0.7)
        np.testing.assert_allclose(l2.penalty_gradient(weights), 0.1 * weights)
        assert l2.gradient_adjustment(3.0) == pytest.approx(0.3)

    def test_penalty_over_several_matrices(self):
        l1 = L1Regularization(lam=1.0)
        assert l1.penalty([np.ones((2, 2)), np.ones((3, 1))]) == pytest.approx(7.0)

    def test_elastic_net_mixes_both(self, weights):
        elastic = ElasticNet(lam=0.1, l1_ratio=0.25)
        l1_penalty = L1Regularization(lam=0.1).penalty(weights)
        l2_penalty = L2Regularization(lam=0.1).penalty(weights)

        assert elastic.penalty(weights) == pytest.approx(0.25 * l1_penalty + 0.75 * l2_penalty)
        np.testing.assert_allclose(
            elastic.penalty_gradient(weights),
            0.1 * (0.25 * np.sign(weights) + 0.75 * weights),
        )

    def test_elastic_net_extremes(self, weights):
        pure_l1 = ElasticNet(lam=0.1, l1_ratio=1.0)
        assert pure_l1.penalty(weights) == pytest.approx(L1Regularization(0.1).penalty(weights))

    def test_invalid_parameters(self):
        with pytest.raises(ConfigurationError):
            L2Regularization(lam=-1.0)
        with pytest.raises(ConfigurationError):
            ElasticNet(l1_ratio=1.5)


class TestBatchNormalization:
    """
    Batch normalization uses batch statistics while training and the
    running statistics at inference time.
    """

    @pytest.fixture
    def batch(self):
        return np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])

    def test_initial_state(self):
        bn = BatchNormalization(3)

        np.testing.assert_array_equal(bn.gamma, np.ones(3))
        np.testing.assert_array_equal(bn.beta, np.zeros(3))
        np.testing.assert_array_equal(bn.running_mean, np.zeros(3))
        np.testing.assert_array_equal(bn.running_var, np.ones(3))

    def test_training_output_is_normalized(self, batch):
        bn = BatchNormalization(2)
        outputs = bn.apply_forward(batch, training=True)

        np.testing.assert_allclose(np.mean(outputs, axis=0), [0.0, 0.0], atol=1e-10)
        np.testing.assert_allclose(np.var(outputs, axis=0), [1.0, 1.0], atol=1e-4)

    def test_training_updates_running_statistics(self, batch):
        bn = BatchNormalization(2, momentum=0.9)
        bn.apply_forward(batch, training=True)

        np.testing.assert_allclose(bn.running_mean, [0.3, 0.4])
        np.testing.assert_allclose(bn.running_var, 0.9 + 0.1 * np.full(2, 8.0 / 3.0))

    def test_inference_uses_running_statistics(self, batch):
        bn = BatchNormalization(2, momentum=0.9)
        bn.apply_forward(batch, training=True)
        running_mean = bn.running_mean.copy()

        sample = np.array([3.0, 4.0])
        outputs = bn.apply_forward(sample, training=False)

        expected = (sample - bn.running_mean) / np.sqrt(bn.running_var + bn.epsilon)
        np.testing.assert_allclose(outputs, expected)
        np.testing.assert_array_equal(bn.running_mean, running_mean)
        assert outputs.shape == (2,), "A 1-D input keeps its shape"

    def test_inference_differs_from_training(self, batch):
        """The same sample normalizes differently in the two modes."""
        bn = BatchNormalization(2)
        training_outputs = bn.apply_forward(batch, training=True)
        inference_outputs = bn.apply_forward(batch, training=False)

        assert not np.allclose(training_outputs, inference_outputs)

    def test_backward_scales_by_gamma_over_std(self, batch):
        bn = BatchNormalization(2)
        bn.apply_forward(batch, training=True)

        gradients = bn.apply_backward(np.ones(2))
        expected = 1.0 / np.sqrt(np.var(batch, axis=0) + bn.epsilon)

        np.testing.assert_allclose(gradients, expected)

    def test_lazy_size_from_first_batch(self, batch):
        bn = BatchNormalization()
        assert bn.gamma is None

        bn.apply_forward(batch, training=True)

        assert bn.num_features == 2
        np.testing.assert_array_equal(bn.gamma, np.ones(2))
        np.testing.assert_allclose(bn.running_mean, [0.3, 0.4])

    def test_for_layer_resizes(self):
        template = BatchNormalization(3, momentum=0.8, epsilon=1e-3)
        clone = template.for_layer(5)

        assert clone.num_features == 5
        assert (clone.momentum, clone.epsilon) == (0.8, 1e-3)
        np.testing.assert_array_equal(clone.running_var, np.ones(5))
        assert template.num_features == 3

    def test_wrong_feature_count(self):
        with pytest.raises(ValidationError):
            BatchNormalization(3).apply_forward(np.ones((2, 2)))


class TestDataAugmentation:
    def test_noise_changes_values_slightly(self):
        augmentation = DataAugmentation(("noise",), noise_std=0.01, rng=np.random.default_rng(0))
        data = np.array([1.0, 2.0, 3.0])

        augmented = augmentation.augment(data)

        assert not np.array_equal(augmented, data)
        np.testing.assert_allclose(augmented, data, atol=0.1)
        np.testing.assert_array_equal(data, [1.0, 2.0, 3.0])

    def test_scale_uses_one_factor_per_vector(self):
        augmentation = DataAugmentation(
            ("scale",), scale_range=(2.0, 3.0), rng=np.random.default_rng(0)
        )
        augmented = augmentation.augment([1.0, 2.0])

        factor = augmented[0]
        assert 2.0 <= factor < 3.0
        assert augmented[1] == pytest.approx(2.0 * factor)

    def test_shift_uses_one_offset_per_vector(self):
        augmentation = DataAugmentation(
            ("shift",), shift_range=(0.5, 0.6), rng=np.random.default_rng(0)
        )
        augmented = augmentation.augment([1.0, 2.0])

        offset = augmented[0] - 1.0
        assert 0.5 <= offset < 0.6
        assert augmented[1] == pytest.approx(2.0 + offset)

    def test_inference_passthrough(self):
        augmentation = DataAugmentation(("noise", "scale", "shift"))
        data = np.array([1.0, 2.0])

        np.testing.assert_array_equal(augmentation.apply_forward(data, training=False), data)

    def test_unknown_transform(self):
        with pytest.raises(ConfigurationError, match="rotate"):
            DataAugmentation(("rotate",))


class TestEarlyStopping:
    def test_strictly_improving_never_stops(self):
        early_stopping = EarlyStopping(patience=3, min_delta=0.001)
        losses = [1.0 - 0.01 * epoch for epoch in range(50)]

        assert not any(early_stopping.check(loss) for loss in losses)
        assert early_stopping.best_loss == pytest.approx(losses[-1])
        assert early_stopping.best_epoch == 49

    def test_plateau_stops_after_patience(self):
        early_stopping = EarlyStopping(patience=3, min_delta=0.001)

        assert early_stopping.check(1.0) is False
        assert early_stopping.check(1.0) is False
        assert early_stopping.check(1.0) is False
        assert early_stopping.check(1.0) is True
        assert early_stopping.stopped
        assert early_stopping.counter == 3
        assert early_stopping.best_epoch == 0

    def test_improvement_smaller_than_min_delta_does_not_count(self):
        early_stopping = EarlyStopping(patience=2, min_delta=0.1)
        early_stopping.check(1.0)
        early_stopping.check(0.95)

        assert early_stopping.counter == 1
        assert early_stopping.best_loss == 1.0

    def test_improvement_resets_counter(self):
        early_stopping = EarlyStopping(patience=2, min_delta=0.0)
        early_stopping.check(1.0)
        early_stopping.check(1.0)
        early_stopping.check(0.5)

        assert early_stopping.counter == 0
        assert not early_stopping.stopped

    def test_reset(self):
        early_stopping = EarlyStopping(patience=1)
        early_stopping.check(1.0)
        early_stopping.check(1.0)
        early_stopping.reset()

        assert not early_stopping.stopped
        assert early_stopping.best_loss == math.inf
        assert early_stopping.counter == 0

    def test_invalid_patience(self):
        with pytest.raises(ConfigurationError):
            EarlyStopping(patience=0)


class _Recorder(RegularizationTechnique):
    def __init__(self, name, calls):
        self.name = name
        self.calls = calls

    def apply_forward(self, inputs, training=True):
        self.calls.append(("forward", self.name))
        return np.asarray(inputs) + 1.0

    def apply_backward(self, gradients):
        self.calls.append(("backward", self.name))
        return np.asarray(gradients) * 2.0


class TestRegularizationStrategy:
    def test_forward_in_order_backward_in_reverse(self):
        calls = []
        strategy = RegularizationStrategy([_Recorder("a", calls), _Recorder("b", calls)])

        strategy.apply_forward(np.zeros(2))
        strategy.apply_backward(np.ones(2))

        assert calls == [
            ("forward", "a"),
            ("forward", "b"),
            ("backward", "b"),
            ("backward", "a"),
        ]

    def test_penalties_are_summed(self):
        weights = np.array([[1.0, -1.0]])
        strategy = (
            RegularizationStrategy()
            .add_technique(L1Regularization(0.1))
            .add_technique(L2Regularization(0.2))
            .add_technique(Dropout(0.5))
        )

        assert len(strategy) == 3
        assert strategy.total_penalty(weights) == pytest.approx(0.2 + 0.2)
        np.testing.assert_allclose(
            strategy.penalty_gradient(weights), [[0.1 + 0.2, -0.1 - 0.2]]
        )

    def test_empty_strategy_is_identity(self):
        strategy = RegularizationStrategy()
        inputs = np.array([1.0, 2.0])

        np.testing.assert_array_equal(strategy.apply_forward(inputs), inputs)
        assert strategy.penalty(np.ones((2, 2))) == 0.0

    def test_rejects_non_techniques(self):
        with pytest.raises(ConfigurationError):
            RegularizationStrategy().add_technique("dropout")


class TestForLayer:
    def test_dropout_copies_draw_independent_masks(self):
        template = Dropout(rate=0.5, rng=np.random.default_rng(0))
        first = template.for_layer(16)
        second = template.for_layer(16)

        first.apply_forward(np.ones(16))
        second.apply_forward(np.ones(16))

        assert first.rate == second.rate == 0.5
        assert not np.array_equal(first.mask, second.mask)
        assert template.mask is None

    def test_augmentation_copies_keep_settings(self):
        template = DataAugmentation(("scale", "shift"), rng=np.random.default_rng(0))
        clone = template.for_layer(3)

        assert clone.augmentation_types == ("scale", "shift")
        assert clone.rng is not template.rng

    def test_penalties_are_copied(self):
        template = L2Regularization(lam=0.3)
        clone = template.for_layer(4)

        assert clone is not template
        assert clone.lam == 0.3

    def test_strategy_builds_new_pipeline(self):
        strategy = RegularizationStrategy(
            [Dropout(rate=0.2, rng=np.random.default_rng(0)), BatchNormalization()]
        )

        pipeline = strategy.for_layer(6)

        assert len(pipeline) == 2
        assert all(
            clone is not original
            for clone, original in zip(pipeline.techniques, strategy.techniques)
        )
        assert pipeline.techniques[1].num_features == 6
        assert strategy.techniques[1].num_features is None
