"""Core detection utilities."""

from .detection import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    PeakDetector,
    TemporalPeakDetector,
    filter_candidates,
    find_peaks,
    select_candidates,
    trace_threshold,
)
from shared.models import ParabolaCoefficients, PeakResult

__all__ = [
    "DETECTOR_REGISTRY",
    "DetectorParameter",
    "PeakDetector",
    "TemporalPeakDetector",
    "ParabolaCoefficients",
    "PeakResult",
    "filter_candidates",
    "find_peaks",
    "select_candidates",
    "trace_threshold",
]
