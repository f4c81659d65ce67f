from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, copy=True, order="C", dtype=dtype)
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


class PeakAnalysisError(Exception):
    """Base class for errors raised by the stack-level analysis."""


class InsufficientReferencePeaks(PeakAnalysisError):
    """The reference z-profile does not hold enough peaks to define a period."""

    def __init__(self, x: int, y: int, n_peaks: int) -> None:
        super().__init__(
            f"reference pixel ({x}, {y}) has {n_peaks} peak(s); at least 2 are needed"
        )
        self.x = x
        self.y = y
        self.n_peaks = n_peaks


# ----------------------------
# Configuration metadata
# ----------------------------

_TRUE_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_TOKENS = frozenset({"0", "false", "no", "off", ""})


@dataclass
class DetectorParameter:
    name: str
    default: float | int | bool
    min: float | None = None
    max: float | None = None
    help: str = ""

    def clamp(self, value):
        """Coerce `value` into range; NaN and unbounded infinities fall back to the default."""
        if isinstance(self.default, bool):
            if isinstance(value, str):
                token = value.strip().lower()
                if token in _TRUE_TOKENS:
                    return True
                if token in _FALSE_TOKENS:
                    return False
                return self.default
            return bool(value)
        value = float(value)
        if math.isnan(value):
            return float(self.default)
        if self.min is not None and value < self.min:
            value = float(self.min)
        if self.max is not None and value > self.max:
            value = float(self.max)
        if not math.isfinite(value):
            return float(self.default)
        return value


# ----------------------------
# Fitting
# ----------------------------

@dataclass(frozen=True)
class ParabolaCoefficients:
    """Coefficients of ``a + b*x + c*x**2`` in a fitting window's own coordinates."""

    a: float
    b: float
    c: float

    def __iter__(self) -> Iterator[float]:
        return iter((self.a, self.b, self.c))

    @property
    def is_concave(self) -> bool:
        return self.c < 0

    def apex(self) -> float:
        """x-position of the extremum; NaN for a straight line."""
        if self.c == 0:
            return math.nan
        return -self.b / (2.0 * self.c)

    def value_at(self, x: float) -> float:
        return self.a + self.b * x + self.c * x * x


# ----------------------------
# Detection / phase results
# ----------------------------

@dataclass(frozen=True)
class CorrelationInfo:
    """Accumulated unit phase vectors of a series against a reference series."""

    cos_sum: float
    sin_sum: float
    n: int

    def __iter__(self) -> Iterator[float]:
        return iter((self.cos_sum, self.sin_sum, self.n))


@dataclass(frozen=True)
class PeakResult:
    """Accepted peak positions of one trace plus the threshold used to find them."""

    indices: np.ndarray = field(repr=False)
    threshold: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "indices", _freeze_array(self.indices, ndim=1, dtype=np.int64))

    def __len__(self) -> int:
        return int(self.indices.size)


__all__ = [
    "CorrelationInfo",
    "DetectorParameter",
    "InsufficientReferencePeaks",
    "ParabolaCoefficients",
    "PeakAnalysisError",
    "PeakResult",
]
