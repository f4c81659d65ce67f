from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Mapping, Optional, Protocol, Sequence, Type

from shared.models import DetectorParameter, PeakResult

if TYPE_CHECKING:
    from analysis.settings import PeakSettings


class PeakDetector(Protocol):
    """Finds peaks in one intensity trace; instances are cheap and hold only settings."""

    name: str
    display_name: str

    def __init__(self, settings: Optional["PeakSettings"] = None) -> None:
        ...

    @property
    def parameters(self) -> Mapping[str, DetectorParameter]:
        ...

    @property
    def settings(self) -> "PeakSettings":
        ...

    def configure(self, **params) -> None:
        """Update settings; values are clamped, unknown names raise ValueError."""
        ...

    def detect(self, trace: Sequence[float]) -> PeakResult:
        """Accepted peaks of one trace, in ascending order."""
        ...


DETECTOR_REGISTRY: Dict[str, Type[PeakDetector]] = {}


def register_detector(cls: Type[PeakDetector]) -> Type[PeakDetector]:
    if not hasattr(cls, "name"):
        raise ValueError(f"Detector {cls} must have a 'name' attribute")
    DETECTOR_REGISTRY[cls.name] = cls
    return cls


def create_detector(name: str, settings: Optional["PeakSettings"] = None) -> PeakDetector:
    try:
        detector_cls = DETECTOR_REGISTRY[name]
    except KeyError:
        known = ", ".join(sorted(DETECTOR_REGISTRY)) or "none"
        raise ValueError(f"Unknown detector {name!r} (registered: {known})") from None
    return detector_cls(settings)
