"""
Utility Functions for Training and Evaluation

This module provides helpers shared by the network and the trainer:
- Splitting and batching training records
- Error and one-hot checks used for metrics
- Console logger setup for scripts

Functions:
    split_records: Shuffle once and split off a validation set
    create_batches: Split records into consecutive batches
    squared_error: 0.5 * sum of squared differences
    is_one_hot: Whether a target vector looks like a one-hot class label
    setup_logger: Attach a console handler to the package logger
"""

import logging
import sys
from typing import List, Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def split_records(
    records: Sequence[T],
    validation_split: float,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[List[T], List[T]]:
    """
    Split records into training and validation sets.

    The records are shuffled once, then the first
    int(len(records) * validation_split) go to validation. The same rng
    state always gives the same split.

    Args:
        records: Training records
        validation_split: Fraction in [0, 1) used for validation
        rng: numpy Generator used for the shuffle

    Returns:
        Tuple of (training records, validation records)
    """
    if validation_split <= 0:
        return list(records), []

    if rng is None:
        rng = np.random.default_rng()

    order = rng.permutation(len(records))
    shuffled = [records[index] for index in order]
    validation_size = int(len(records) * validation_split)

    return shuffled[validation_size:], shuffled[:validation_size]


def create_batches(records: Sequence[T], batch_size: int) -> List[List[T]]:
    """
    Split records into batches of batch_size (the last may be smaller).

    Args:
        records: Records to split
        batch_size: Size of each batch

    Returns:
        List of batches
    """
    batches = []
    for start in range(0, len(records), batch_size):
        end = min(start + batch_size, len(records))
        batches.append(list(records[start:end]))
    return batches


def squared_error(actual: Sequence[float], expected: Sequence[float]) -> float:
    """Half the sum of squared differences: 0.5 * sum((expected - actual)^2)."""
    difference = np.asarray(expected, dtype=np.float64) - np.asarray(
        actual, dtype=np.float64
    )
    return float(0.5 * np.sum(np.square(difference)))


def is_one_hot(values: Sequence[float]) -> bool:
    """True if every value is exactly 0 or 1 and they sum to 1."""
    values = np.asarray(values, dtype=np.float64)
    return bool(np.all((values == 0.0) | (values == 1.0)) and np.sum(values) == 1.0)


def setup_logger(
    name: str = "backprop", level: int = logging.INFO
) -> logging.Logger:
    """
    Configure a console logger for scripts.

    Library modules only create loggers; handlers are attached here, once.

    Args:
        name: Logger name (the package logger by default)
        level: Logging level

    Returns:
        The configured logger
    """
    configured_logger = logging.getLogger(name)
    configured_logger.setLevel(level)

    if not configured_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        configured_logger.addHandler(handler)

    return configured_logger
