"""Histogram and quantile estimation over 8-bit intensity traces.

The histogram covers the integer domain 0..255 and is normalised to unit
mass. Quantiles are read off the piecewise-linear cumulative distribution
whose knots sit at the bin boundaries 0..256, so a quantile of ``q`` means a
fraction ``p`` of the mass lies below ``q``.
"""
from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

N_BINS = 256


def histogram(values: Sequence[int]) -> np.ndarray:
    """Relative frequency of each integer value 0..255 in `values`.

    Values outside the 8-bit range are clamped onto its edges and non-finite
    values are ignored. An empty input yields 256 zero bins rather than NaN.
    """
    arr = np.asarray(values, dtype=np.float64).ravel()
    arr = arr[np.isfinite(arr)]
    hist = np.zeros(N_BINS, dtype=np.float64)
    if arr.size == 0:
        return hist
    bins = np.clip(arr, 0, N_BINS - 1).astype(np.int64)
    counts = np.bincount(bins, minlength=N_BINS)
    hist[:] = counts / float(arr.size)
    return hist


def quantile_from_histogram(hist: Sequence[float], p: float) -> float:
    """Invert the cumulative histogram at probability `p`.

    Returns ``-1`` for ``p <= 0`` and ``len(hist)`` for ``p >= 1``. Otherwise
    the result interpolates linearly between the two bin boundaries that
    bracket the cumulative mass ``p``. Runs of empty bins are resolved by
    walking back to the last boundary with strictly lower mass; if none
    exists, the midpoint of the two boundaries is returned.

    A histogram without mass has no quantile inside the domain: NaN.
    """
    h = np.asarray(hist, dtype=np.float64).ravel()
    n = h.size
    if math.isnan(p):
        return math.nan
    if p <= 0:
        return -1.0
    if p >= 1:
        return float(n)

    total = float(np.sum(h))
    if n == 0 or not np.isfinite(total) or total <= 0:
        logger.debug("Quantile requested from a histogram without mass (bins=%d)", n)
        return math.nan

    # cumsum[k] is the mass below boundary k; cumsum[0] == 0, cumsum[n] == 1
    cumsum = np.zeros(n + 1, dtype=np.float64)
    np.cumsum(h / total, out=cumsum[1:])
    cumsum[n] = 1.0

    upper = int(np.searchsorted(cumsum, p, side="left"))
    p_upper = cumsum[upper]
    p_lower = cumsum[upper - 1]
    q_upper = float(upper)
    q_lower = float(upper - 1)

    if p_upper == p_lower:
        lower = upper - 1
        while lower > 0 and p_lower == p_upper:
            lower -= 1
            p_lower = cumsum[lower]
            q_lower = float(lower)

    if p_upper == p_lower:
        return (q_lower + q_upper) / 2.0

    return q_lower + (q_upper - q_lower) / (p_upper - p_lower) * (p - p_lower)


def quantile_from_values(values: Sequence[float], p: float) -> float:
    """Interpolated order statistic at fractional rank ``p*(n+1) - 1``.

    The input is not modified. Ranks outside the sample clamp to its minimum
    or maximum. Empty input and NaN `p` give NaN.
    """
    ordered = np.sort(np.asarray(values, dtype=np.float64).ravel())
    n = ordered.size
    if n == 0 or math.isnan(p):
        return math.nan

    rank = p * (n + 1) - 1
    if rank < 0:
        return float(ordered[0])
    if rank >= n - 1:
        return float(ordered[-1])

    lo = int(math.floor(rank))
    frac = rank - lo
    return float(ordered[lo] + (ordered[lo + 1] - ordered[lo]) * frac)


__all__ = ["N_BINS", "histogram", "quantile_from_histogram", "quantile_from_values"]
