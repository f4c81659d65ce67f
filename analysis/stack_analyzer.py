# analysis/stack_analyzer.py
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from core.detection import TemporalPeakDetector, create_detector
from shared.models import InsufficientReferencePeaks, PeakResult

from .phase import coherence, mean_phase, positive_indices
from .settings import FRAME_RATE, PeakSettings, PhaseSettings

logger = logging.getLogger(__name__)

PEAK_VALUE = 255


def _as_stack(stack: np.ndarray) -> np.ndarray:
    arr = np.asarray(stack)
    if arr.ndim != 3:
        raise ValueError(f"stack must be 3D (z, y, x), got {arr.ndim}D")
    return arr


def _as_mask(mask: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if mask is None:
        return None
    arr = np.asarray(mask)
    if arr.ndim == 3:
        arr = arr[0]
    if arr.ndim != 2:
        raise ValueError(f"mask must be a 2D image, got {arr.ndim}D")
    return arr


class StackAnalyzer:
    """
    Runs temporal peak detection independently on every (y, x) z-profile of a
    stack shaped (z, y, x) and renders the result as a 0/255 peak stack.

    Rows are dispatched to a thread pool when `workers > 1`. A pixel whose
    detection fails is logged and left without peaks; the rest of the stack
    is still processed.
    """

    def __init__(
        self,
        settings: Optional[PeakSettings] = None,
        *,
        detector: str = TemporalPeakDetector.name,
        workers: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.detector = create_detector(detector, (settings or PeakSettings()).normalized())
        self.workers = max(1, int(workers))

    @property
    def settings(self) -> PeakSettings:
        return self.detector.settings

    def configure(self, **params) -> None:
        self.detector.configure(**params)

    # ---------------- Public API ----------------

    def find_peaks_in_trace(self, trace: Sequence[float]) -> PeakResult:
        return self.detector.detect(trace)

    def find_peaks_at(self, stack: np.ndarray, x: int, y: int) -> PeakResult:
        arr = _as_stack(stack)
        return self.find_peaks_in_trace(arr[:, y, x])

    def peak_stack(self, stack: np.ndarray) -> np.ndarray:
        """uint8 stack of the input's shape; 255 at detected peaks, 0 elsewhere."""
        arr = _as_stack(stack)
        n_z, height, width = arr.shape
        out = np.zeros(arr.shape, dtype=np.uint8)
        self.logger.info("Finding peaks in stack of shape %s (workers=%d)", arr.shape, self.workers)

        if self.workers > 1 and height > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                rows = list(pool.map(lambda y: self._process_row(arr, y), range(height)))
        else:
            rows = [self._process_row(arr, y) for y in range(height)]

        n_active = 0
        for y, row in enumerate(rows):
            for x, idx in row:
                if idx.size:
                    out[idx, y, x] = PEAK_VALUE
                    n_active += 1
        self.logger.info("Peaks found in %d of %d pixels", n_active, height * width)
        return out

    # --------------- Internals ------------------

    def _process_row(self, stack: np.ndarray, y: int) -> List[Tuple[int, np.ndarray]]:
        row = []
        for x in range(stack.shape[2]):
            try:
                idx = self.find_peaks_in_trace(stack[:, y, x]).indices
            except Exception as exc:
                self.logger.warning("Peak detection failed at pixel (%d, %d): %s", x, y, exc)
                idx = np.empty(0, dtype=np.int64)
            row.append((x, idx))
        return row


def reference_indices(peak_stack: np.ndarray, settings: PhaseSettings) -> Tuple[np.ndarray, PhaseSettings]:
    """Peak positions of the reference z-profile, after clamping the reference into the image."""
    arr = _as_stack(peak_stack)
    settings = settings.normalized(arr.shape[2], arr.shape[1])
    idx_ref = positive_indices(arr[:, settings.reference_y, settings.reference_x])
    if idx_ref.size < 2:
        raise InsufficientReferencePeaks(settings.reference_x, settings.reference_y, int(idx_ref.size))
    logger.info(
        "Reference section (%d, %d): %d peaks detected",
        settings.reference_x,
        settings.reference_y,
        idx_ref.size,
    )
    return idx_ref, settings


def _map_pixels(
    peak_stack: np.ndarray,
    idx_ref: np.ndarray,
    measure: Callable[[np.ndarray, np.ndarray], float],
    mask: Optional[np.ndarray],
) -> np.ndarray:
    arr = _as_stack(peak_stack)
    mask_arr = _as_mask(mask)
    _, height, width = arr.shape
    out = np.full((height, width), np.nan, dtype=np.float32)
    for y in range(height):
        for x in range(width):
            if mask_arr is not None:
                if y >= mask_arr.shape[0] or x >= mask_arr.shape[1] or not mask_arr[y, x] > 0:
                    continue
            out[y, x] = measure(positive_indices(arr[:, y, x]), idx_ref)
    return out


def phase_map(
    peak_stack: np.ndarray,
    settings: Optional[PhaseSettings] = None,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Mean phase of every pixel against the reference pixel, as a float32 (y, x) image.

    Degrees unless `settings.degrees` is false. When a mask is given, pixels
    outside it or with a mask value <= 0 are left NaN. Without settings the
    reference is the image centre.
    """
    arr = _as_stack(peak_stack)
    settings = settings or PhaseSettings.centred(arr.shape[2], arr.shape[1])
    idx_ref, settings = reference_indices(arr, settings)
    out = _map_pixels(arr, idx_ref, mean_phase, mask)
    if settings.degrees:
        out = out / np.float32(math.pi) * np.float32(180.0)
    return out


def coherence_map(
    peak_stack: np.ndarray,
    settings: Optional[PhaseSettings] = None,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Phase coherence of every pixel against the reference pixel, in [0, 1]."""
    arr = _as_stack(peak_stack)
    settings = settings or PhaseSettings.centred(arr.shape[2], arr.shape[1])
    idx_ref, settings = reference_indices(arr, settings)
    return _map_pixels(arr, idx_ref, coherence, mask)


def frequency_map(peak_stack: np.ndarray, frame_rate: float) -> np.ndarray:
    """Beats per minute of every pixel of a 0/255 peak stack recorded at `frame_rate` frames/s.

    The rate is clamped like a detector setting: negative values become 0 and
    NaN or infinity falls back to the default rate.
    """
    arr = _as_stack(peak_stack)
    rate = FRAME_RATE.clamp(frame_rate)
    n_frames = arr.shape[0]
    if n_frames == 0:
        return np.full(arr.shape[1:], np.nan, dtype=np.float32)
    beats = arr.sum(axis=0, dtype=np.float64) / PEAK_VALUE
    return (beats / n_frames * rate * 60.0).astype(np.float32)


__all__ = [
    "PEAK_VALUE",
    "StackAnalyzer",
    "coherence_map",
    "frequency_map",
    "phase_map",
    "reference_indices",
]
