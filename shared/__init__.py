"""
Shared data structures available to both the detection core and the analysis layer.
"""

from .models import (
    CorrelationInfo,
    DetectorParameter,
    InsufficientReferencePeaks,
    ParabolaCoefficients,
    PeakAnalysisError,
    PeakResult,
)

__all__ = [
    "CorrelationInfo",
    "DetectorParameter",
    "InsufficientReferencePeaks",
    "ParabolaCoefficients",
    "PeakAnalysisError",
    "PeakResult",
]
