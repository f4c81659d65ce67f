from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Dict, Mapping, Tuple

from shared.models import DetectorParameter


PEAK_PARAMETERS: Mapping[str, DetectorParameter] = {
    "peak_fraction": DetectorParameter(
        name="peak_fraction",
        default=0.5,
        min=0.0,
        max=1.0,
        help="Target fraction of the trace duration above threshold",
    ),
    "min_distance": DetectorParameter(
        name="min_distance",
        default=20.0,
        min=2.0,
        help="Minimal distance between peaks (samples)",
    ),
    "do_filtering": DetectorParameter(
        name="do_filtering",
        default=True,
        help="Reject candidates failing the parabola quality checks",
    ),
    "min_width": DetectorParameter(
        name="min_width",
        default=1.0,
        min=1.0,
        help="Minimal fitted half-width of a peak (samples)",
    ),
    "max_width": DetectorParameter(
        name="max_width",
        default=100.0,
        min=1.0,
        help="Maximal fitted half-width of a peak (samples)",
    ),
    "min_height": DetectorParameter(
        name="min_height",
        default=5.5,
        min=0.0,
        help="Minimal fitted peak height above the threshold",
    ),
}


FRAME_RATE = DetectorParameter(
    name="frame_rate",
    default=24.0,
    min=0.0,
    help="Acquisition rate of the stack (frames/s)",
)


@dataclass(frozen=True)
class PeakSettings:
    peak_fraction: float = 0.5
    min_distance: float = 20.0
    do_filtering: bool = True
    min_width: float = 1.0
    max_width: float = 100.0
    min_height: float = 5.5

    def normalized(self) -> "PeakSettings":
        """Clamp every field into its valid range; ``max_width`` never drops below ``min_width``."""
        values = {f.name: PEAK_PARAMETERS[f.name].clamp(getattr(self, f.name)) for f in fields(self)}
        values["max_width"] = max(values["max_width"], values["min_width"])
        return PeakSettings(**values)

    def update(self, **kwargs) -> "PeakSettings":
        return replace(self, **kwargs).normalized()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class PhaseSettings:
    reference_x: int = 0
    reference_y: int = 0
    degrees: bool = True

    def normalized(self, width: int, height: int) -> "PhaseSettings":
        """Clamp the reference into a ``width`` x ``height`` image."""
        x = int(min(max(int(round(self.reference_x)), 0), max(width - 1, 0)))
        y = int(min(max(int(round(self.reference_y)), 0), max(height - 1, 0)))
        return replace(self, reference_x=x, reference_y=y)

    @classmethod
    def centred(cls, width: int, height: int, **kwargs) -> "PhaseSettings":
        x, y = default_reference((height, width))
        return cls(reference_x=x, reference_y=y, **kwargs)


def default_reference(shape: Tuple[int, ...]) -> Tuple[int, int]:
    """Rounded image centre ``(x, y)`` for an image or stack whose last two axes are ``(y, x)``."""
    if len(shape) < 2:
        raise ValueError(f"expected an image or stack with at least 2 axes, got shape {tuple(shape)}")
    height, width = int(shape[-2]), int(shape[-1])
    return int(math.floor(width / 2.0 + 0.5)), int(math.floor(height / 2.0 + 0.5))


__all__ = ["FRAME_RATE", "PEAK_PARAMETERS", "PeakSettings", "PhaseSettings", "default_reference"]
