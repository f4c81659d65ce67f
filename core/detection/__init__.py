from .base import (
    DETECTOR_REGISTRY,
    DetectorParameter,
    PeakDetector,
    create_detector,
    register_detector,
)
from .peaks import (
    TemporalPeakDetector,
    filter_candidates,
    find_peaks,
    select_candidates,
    trace_threshold,
)

__all__ = [
    "PeakDetector",
    "DetectorParameter",
    "DETECTOR_REGISTRY",
    "create_detector",
    "register_detector",
    "TemporalPeakDetector",
    "filter_candidates",
    "find_peaks",
    "select_candidates",
    "trace_threshold",
]
