"""Timing comparison between a peak series and a reference peak series.

Each event of the series is assigned a phase angle relative to the
reference. The angle is the offset to the nearest reference event, measured
as a fraction of the local reference period:

    phi = 2*pi * (nearest_reference - event) / period

The circular mean of the unit vectors ``(cos phi, sin phi)`` gives two
numbers. Its length, `coherence`, says how consistently the series follows
the reference. Its angle, `mean_phase`, is the typical phase offset.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import numpy as np

from shared.models import CorrelationInfo

logger = logging.getLogger(__name__)


def _as_indices(indices: Sequence[int]) -> np.ndarray:
    return np.asarray(indices, dtype=np.int64).ravel()


def _max_below(ref: np.ndarray, position: int) -> Optional[int]:
    below = ref[ref < position]
    return int(below.max()) if below.size else None


def _min_at_or_above(ref: np.ndarray, position: int) -> Optional[int]:
    above = ref[ref >= position]
    return int(above.min()) if above.size else None


def period(reference: Sequence[int], position: int) -> float:
    """Local reference period around `position`.

    This is the gap between the closest reference index below `position` and
    the closest one at or above it. Beyond either end of the reference, the
    gap between the two outermost indices on that side is used instead.
    Fewer than two distinct reference indices give 0.
    """
    ref = np.unique(_as_indices(reference))
    if ref.size <= 1:
        return 0.0

    upper = _min_at_or_above(ref, position)
    lower = _max_below(ref, position)

    if lower is not None and upper is not None:
        return float(upper - lower)
    if lower is not None:
        # past the last reference event
        return float(lower - _max_below(ref, lower))
    return float(_min_at_or_above(ref, upper + 1) - upper)


def nearest(reference: Sequence[int], target: int) -> Optional[int]:
    """Reference index closest to `target`; ties go to the smaller index. None if empty."""
    ref = _as_indices(reference)
    if ref.size == 0:
        return None
    dist = np.abs(ref - target)
    best = dist.min()
    return int(ref[dist == best].min())


def correlate(series: Sequence[int], reference: Sequence[int]) -> CorrelationInfo:
    """Sum of the unit phase vectors of every event of `series` against `reference`.

    A reference with fewer than two events has no period. Every phase, and
    hence both sums, is then NaN.
    """
    events = _as_indices(series)
    cos_sum = 0.0
    sin_sum = 0.0
    degenerate = False
    for s in events:
        s = int(s)
        near = nearest(reference, s)
        per = period(reference, s)
        if near is None or per == 0:
            degenerate = True
            phi = math.nan
        else:
            phi = 2.0 * math.pi * (near - s) / per
        cos_sum += math.cos(phi)
        sin_sum += math.sin(phi)
    if degenerate:
        logger.debug("Reference series has no period; phases of %d event(s) undefined", events.size)
    return CorrelationInfo(cos_sum, sin_sum, int(events.size))


def coherence(series: Sequence[int], reference: Sequence[int]) -> float:
    """Resultant length of the phase vectors, in [0, 1]; 0 for an empty series."""
    cos_sum, sin_sum, n = correlate(series, reference)
    if n == 0:
        return 0.0
    return math.sqrt(cos_sum * cos_sum + sin_sum * sin_sum) / n


def mean_phase(series: Sequence[int], reference: Sequence[int]) -> float:
    """Circular mean phase in radians; NaN for an empty series."""
    cos_sum, sin_sum, n = correlate(series, reference)
    if n == 0:
        return math.nan
    return math.atan2(sin_sum / n, cos_sum / n)


def mean_period(indices: Sequence[int]) -> float:
    """Mean gap between consecutive sorted indices; 0 for fewer than two."""
    idx = np.sort(_as_indices(indices))
    if idx.size < 2:
        return 0.0
    return float(np.mean(np.diff(idx)))


def positive_indices(section: Sequence[float]) -> np.ndarray:
    """Positions of the strictly positive samples of a peak-image z-profile."""
    return np.flatnonzero(np.asarray(section).ravel() > 0).astype(np.int64)


def has_enough_peaks(section: Sequence[float]) -> bool:
    """True when a z-profile marks at least two peaks, the minimum for a period."""
    return positive_indices(section).size >= 2


__all__ = [
    "coherence",
    "correlate",
    "has_enough_peaks",
    "mean_period",
    "mean_phase",
    "nearest",
    "period",
    "positive_indices",
]
