"""Temporal peak detection on one-dimensional intensity traces.

Detection runs in two stages:

1. `select_candidates` keeps every sample at or above the threshold. It then
   greedily suppresses candidates that lie closer than `min_distance` to a
   taller one.
2. `filter_candidates` fits a parabola around each surviving candidate. It
   rejects candidates whose fit is not concave, is too low, has a half-width
   outside the allowed range, or has an apex too far from the candidate.

`find_peaks` composes both stages. `TemporalPeakDetector` wraps them with an
adaptive, histogram-derived threshold for 8-bit pixel traces.
"""
from __future__ import annotations

import logging
import math
from collections import deque
from typing import Mapping, Sequence

import numpy as np

from analysis.fitting import fit_parabola, fit_parabola_fixed_apex
from analysis.quantile import histogram, quantile_from_histogram
from analysis.settings import PEAK_PARAMETERS, PeakSettings
from shared.models import PeakResult

from .base import DetectorParameter, register_detector

logger = logging.getLogger(__name__)


def _as_trace(trace: Sequence[float]) -> np.ndarray:
    return np.asarray(trace, dtype=np.float64).ravel()


def indices_at_or_above(trace: Sequence[float], threshold: float) -> np.ndarray:
    vals = _as_trace(trace)
    return np.flatnonzero(vals >= threshold)


def select_candidates(trace: Sequence[float], threshold: float, min_distance: float) -> np.ndarray:
    """Threshold the trace and keep only locally dominant candidates.

    Candidates are visited from the tallest down. Each visited candidate is
    kept and removes every not-yet-visited candidate closer than
    `min_distance` (exclusive). Kept candidates are therefore never closer
    than `min_distance` to each other.

    Returns the kept indices in visiting order: descending trace value, with
    ties in ascending index order.
    """
    vals = _as_trace(trace)
    idx = indices_at_or_above(vals, threshold)
    if idx.size == 0:
        return np.empty(0, dtype=np.int64)

    order = idx[np.argsort(-vals[idx], kind="stable")]
    visited = np.zeros(order.size, dtype=bool)
    worklist = deque(range(order.size))
    kept = []

    while worklist:
        node = worklist.popleft()
        if visited[node]:
            continue
        visited[node] = True
        kept.append(int(order[node]))
        close = ~visited & (np.abs(order - order[node]) < min_distance)
        visited |= close

    return np.asarray(kept, dtype=np.int64)


def _fit_window(vals: np.ndarray, center: int, min_distance: float, fit_floor: float) -> tuple[int, int]:
    half = min_distance / 2.0
    if math.isnan(half):
        half = 0.0
    # bound before rounding; an infinite distance spans the whole trace
    lower = int(math.floor(max(center - half, 0.0)))
    upper = int(math.ceil(min(center + half, float(vals.size - 1))))
    while lower < center - 1 and vals[lower] < fit_floor:
        lower += 1
    while upper > center + 1 and vals[upper] < fit_floor:
        upper -= 1
    return lower, upper


def _accept(
    vals: np.ndarray,
    center: int,
    min_distance: float,
    min_width: float,
    max_width: float,
    min_height: float,
    fit_floor: float,
) -> bool:
    lower, upper = _fit_window(vals, center, min_distance, fit_floor)
    local = vals[lower : upper + 1]
    is_maximum = not np.any(local > vals[center])

    if is_maximum:
        xm = float(center - lower)
        pp = fit_parabola_fixed_apex(local, int(round(xm)))
    else:
        pp = fit_parabola(local)

    # no curvature or opening upwards: not a maximum
    if not pp.is_concave:
        return False

    if not is_maximum:
        xm = pp.apex()
    height = pp.value_at(xm)
    if not height >= min_height:
        return False

    width = math.sqrt(-(height - min_height) / pp.c)
    if width < min_width or width > max_width:
        return False

    return abs(center - xm - lower) <= min_distance / 2.0


def filter_candidates(
    candidates: Sequence[int],
    trace: Sequence[float],
    min_distance: float,
    min_width: float,
    max_width: float,
    min_height: float,
    fit_floor: float = 0.0,
) -> np.ndarray:
    """Keep candidates whose local parabola fit looks like a genuine peak.

    The fit window spans ``candidate +/- min_distance/2``, clipped to the
    trace. It is then shrunk from both ends while the edge samples lie below
    `fit_floor`, but never to fewer than the candidate and its two
    neighbours. When the candidate is the window maximum, the parabola is
    anchored on it. Otherwise a free least-squares fit is used.

    Surviving candidates keep their input order.
    """
    vals = _as_trace(trace)
    kept = [
        int(i)
        for i in np.asarray(candidates, dtype=np.int64).ravel()
        if 0 <= i < vals.size
        and _accept(vals, int(i), float(min_distance), float(min_width), float(max_width), float(min_height), float(fit_floor))
    ]
    return np.asarray(kept, dtype=np.int64)


def find_peaks(
    trace: Sequence[float],
    threshold: float,
    min_distance: float,
    do_filtering: bool,
    min_width: float,
    max_width: float,
    min_height: float,
) -> np.ndarray:
    """Candidate selection followed, when `do_filtering` is set, by quality filtering.

    Returns the accepted peak indices in ascending order.
    """
    idx = select_candidates(trace, threshold, min_distance)
    if do_filtering:
        idx = filter_candidates(idx, trace, min_distance, min_width, max_width, min_height, 0.0)
    return np.sort(idx)


def trace_threshold(trace: Sequence[float], peak_fraction: float) -> float:
    """Intensity exceeded for roughly `peak_fraction` of an 8-bit trace."""
    return quantile_from_histogram(histogram(trace), 1.0 - peak_fraction)


@register_detector
class TemporalPeakDetector:
    name = "temporal_peaks"
    display_name = "Temporal Peaks (FindPeaks)"

    def __init__(self, settings: PeakSettings | None = None) -> None:
        self._settings = (settings or PeakSettings()).normalized()

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        return dict(PEAK_PARAMETERS)

    @property
    def settings(self) -> PeakSettings:
        return self._settings

    def configure(self, **params) -> None:
        unknown = set(params) - set(PEAK_PARAMETERS)
        if unknown:
            raise ValueError(f"Unknown detector parameter(s): {sorted(unknown)}")
        self._settings = self._settings.update(**params)

    def detect(self, trace: Sequence[float]) -> PeakResult:
        """Peaks of an 8-bit trace, measured above its adaptive threshold."""
        vals = _as_trace(trace)
        s = self._settings
        threshold = trace_threshold(vals, s.peak_fraction)
        if vals.size == 0 or math.isnan(threshold):
            return PeakResult(np.empty(0, dtype=np.int64), threshold)
        idx = find_peaks(
            vals - threshold,
            0.0,
            s.min_distance,
            s.do_filtering,
            s.min_width,
            s.max_width,
            s.min_height,
        )
        return PeakResult(idx, threshold)


__all__ = [
    "TemporalPeakDetector",
    "filter_candidates",
    "find_peaks",
    "indices_at_or_above",
    "select_candidates",
    "trace_threshold",
]
