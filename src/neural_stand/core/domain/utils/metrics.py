from __future__ import annotations

import math
from collections.abc import Sequence


def cross_entropy(outputs: Sequence[float], target: Sequence[float], *, epsilon: float = 1e-6) -> float:
    """Binary cross-entropy summed over the output units.

    Outputs are clamped into [epsilon, 1 - epsilon] so log(0) never happens.
    """

    total = 0.0
    for o, t in zip(outputs, target):
        o = min(max(o, epsilon), 1.0 - epsilon)
        total += t * math.log(o) + (1.0 - t) * math.log(1.0 - o)
    return -total


def argmax(values: Sequence[float]) -> int:
    """Index of the largest value; ties go to the lowest index.

    The running maximum starts at 0, so an all-non-positive vector maps to 0.
    """

    best_index = 0
    best_value = 0.0
    for i, v in enumerate(values):
        if v > best_value:
            best_value = v
            best_index = i
    return best_index


def accuracy(y_true: Sequence[int], y_pred: Sequence[int]) -> float:
    """Fraction of matching labels; 0.0 for empty input."""

    if not y_true:
        return 0.0
    hits = sum(1 for t, p in zip(y_true, y_pred) if t == p)
    return hits / len(y_true)


def confusion_matrix(y_true: Sequence[int], y_pred: Sequence[int], *, num_classes: int) -> list[list[int]]:
    """Rows are true classes, columns predicted classes."""

    matrix = [[0] * num_classes for _ in range(num_classes)]
    for t, p in zip(y_true, y_pred):
        matrix[t][p] += 1
    return matrix
