"""Elementary vector reductions used by the fitting and filtering routines.

This module provides the small set of helpers shared by the parabola fits:
- vector_sum / mean: reductions with a defined value for empty input
- scalar_product / elementwise_product: truncate to the shorter operand
- vector_norm: Euclidean length
"""
import math
from typing import Sequence

import numpy as np


def _as_float(x: Sequence[float]) -> np.ndarray:
    return np.asarray(x, dtype=np.float64).ravel()


def vector_sum(x: Sequence[float]) -> float:
    arr = _as_float(x)
    if arr.size == 0:
        return 0.0
    return float(np.sum(arr))


def mean(x: Sequence[float]) -> float:
    arr = _as_float(x)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def scalar_product(x: Sequence[float], y: Sequence[float]) -> float:
    """Dot product over the first ``min(len(x), len(y))`` elements."""
    a = _as_float(x)
    b = _as_float(y)
    n = min(a.size, b.size)
    return float(np.dot(a[:n], b[:n]))


def elementwise_product(x: Sequence[float], y: Sequence[float]) -> np.ndarray:
    a = _as_float(x)
    b = _as_float(y)
    n = min(a.size, b.size)
    return a[:n] * b[:n]


def vector_norm(x: Sequence[float]) -> float:
    return math.sqrt(scalar_product(x, x))


__all__ = ["elementwise_product", "mean", "scalar_product", "vector_norm", "vector_sum"]
