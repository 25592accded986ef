#!/usr/bin/env python3
"""
Backpropagation Demo Script

This script trains small networks end to end and prints what happens:
1. XOR with the built-in learning rate + momentum rule
2. XOR with the ready-made preset
3. XOR with a pluggable learning algorithm (Adam)
4. A noisy two-class problem with dropout, L2, a validation split and
   early stopping

Usage:
    python run_demo.py [mode]

    Modes:
        xor     - Only the XOR demos
        full    - All demos (default)

Example:
    python run_demo.py xor
"""

import argparse
import os
import sys

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from backprop.network import NetworkBuilder, Presets
from backprop.regularization import (
    Dropout,
    L2Regularization,
    RegularizationStrategy,
)
from backprop.trainer import Trainer
from backprop.utils import setup_logger

XOR_DATA = [
    {"input": [0.0, 0.0], "output": [0.0]},
    {"input": [0.0, 1.0], "output": [1.0]},
    {"input": [1.0, 0.0], "output": [1.0]},
    {"input": [1.0, 1.0], "output": [0.0]},
]


def print_header(text: str):
    """Print a formatted header."""
    print()
    print("=" * 60)
    print(text)
    print("=" * 60)
    print()


def print_xor_table(network):
    """Print network outputs for the four XOR inputs."""
    for record in XOR_DATA:
        output = network.eval(record["input"])[0]
        print(f"  {record['input']} -> {output:.4f} (target {record['output'][0]:.0f})")


def demo_xor_momentum(seed: int = 7):
    """XOR with the network's own learning rate + momentum update."""
    print_header("XOR: built-in momentum rule")

    network = (
        NetworkBuilder()
        .with_structure(2, 2, 1)
        .with_weight_initialization("random", rng=np.random.default_rng(seed))
        .with_activation_function("sigmoid")
        .with_learning_rate(0.5)
        .with_momentum(0.9)
        .build()
    )

    def report(epoch, result):
        if (epoch + 1) % 500 == 0:
            print(f"Epoch {epoch + 1:5d} | Error: {result['error']:.6f}")

    result = Trainer(network).train(
        XOR_DATA, epochs=3000, seed=seed, on_epoch_end=report
    )
    print(f"Final error: {result['final_error']:.6f}")
    print_xor_table(network)


def demo_xor_preset(seed: int = 7):
    """XOR with the ready-made preset (momentum learning algorithm)."""
    print_header("XOR: preset network")

    network = Presets.xor_network()
    result = Trainer(network).train(
        XOR_DATA, epochs=3000, seed=seed, early_stopping_patience=200
    )
    print(f"Epochs trained: {result['epochs_trained']}")
    print(f"Final error: {result['final_error']:.6f}")
    print_xor_table(network)


def demo_xor_adam(seed: int = 7):
    """XOR with Adam as the learning algorithm."""
    print_header("XOR: Adam learning algorithm")

    network = (
        NetworkBuilder()
        .with_structure(2, 4, 1)
        .with_weight_initialization("xavier", rng=np.random.default_rng(seed))
        .with_activation_function("tanh")
        .with_learning_algorithm("adam", learning_rate=0.05)
        .build()
    )

    result = Trainer(network).train(XOR_DATA, epochs=1000, seed=seed)
    print(f"Epochs trained: {result['epochs_trained']}")
    print(f"Final error: {result['final_error']:.6f}")
    print(f"Optimizer steps: {network.learning_algorithm.iteration_count}")
    print_xor_table(network)


def make_blobs(num_per_class: int, rng: np.random.Generator):
    """Two Gaussian blobs with one-hot labels."""
    records = []
    for label, center in enumerate(([-1.0, -1.0], [1.0, 1.0])):
        points = rng.normal(center, 0.6, size=(num_per_class, 2))
        target = [0.0, 0.0]
        target[label] = 1.0
        for point in points:
            records.append({"input": point.tolist(), "output": list(target)})
    return records


def demo_regularized_classifier(seed: int = 7):
    """Two-class problem with dropout, L2 and early stopping."""
    print_header("Blobs: dropout + L2 + early stopping")

    rng = np.random.default_rng(seed)
    data = make_blobs(60, rng)

    regularization = (
        RegularizationStrategy()
        .add_technique(Dropout(0.2, rng=np.random.default_rng(seed)))
        .add_technique(L2Regularization(1e-4))
    )
    network = (
        NetworkBuilder()
        .with_structure(2, 8, 2)
        .with_weight_initialization("xavier", rng=np.random.default_rng(seed))
        .with_activation_function("sigmoid")
        .with_learning_rate(0.2)
        .with_regularization(regularization)
        .build()
    )

    trainer = Trainer(network)
    result = trainer.train(
        data,
        epochs=300,
        validation_split=0.25,
        early_stopping_patience=15,
        seed=seed,
    )

    last = result["history"][-1]
    print(f"Epochs trained: {result['epochs_trained']}")
    print(f"Stopped early: {result['stopped_early']}")
    print(f"Train error: {last['error']:.6f}")
    print(f"Validation error: {last['validation']['mean_error']:.6f}")
    print(f"Validation accuracy: {last['validation']['accuracy'] * 100:.1f}%")

    metrics = trainer.evaluate(data)
    print(f"Accuracy on all data: {metrics['accuracy'] * 100:.1f}%")


def main():
    parser = argparse.ArgumentParser(description="Backpropagation demos")
    parser.add_argument("mode", nargs="?", default="full", choices=["xor", "full"])
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--verbose", action="store_true", help="Log every epoch")
    args = parser.parse_args()

    if args.verbose:
        setup_logger()

    demo_xor_momentum(args.seed)
    demo_xor_preset(args.seed)
    demo_xor_adam(args.seed)
    if args.mode == "full":
        demo_regularized_classifier(args.seed)


if __name__ == "__main__":
    main()
