import logging
import math

import numpy as np
import pytest

from analysis.settings import PeakSettings, PhaseSettings
from analysis.stack_analyzer import (
    PEAK_VALUE,
    StackAnalyzer,
    coherence_map,
    frequency_map,
    phase_map,
    reference_indices,
)
from shared.models import InsufficientReferencePeaks, PeakAnalysisError, PeakResult
from test.fixtures.trace_generators import make_stack


N_FRAMES = 80
CENTERS = [10, 30, 50, 70]


@pytest.fixture
def intensity_stack() -> np.ndarray:
    # column 0 beats at 10, 30, ...; column 1 lags by a quarter period; column 2 is flat
    offsets = np.array([[10, 15, -1], [10, 15, -1]])
    return make_stack(N_FRAMES, offsets)


@pytest.fixture
def peak_stack(intensity_stack) -> np.ndarray:
    return StackAnalyzer().peak_stack(intensity_stack)


def test_peak_stack_marks_bump_centres(intensity_stack):
    out = StackAnalyzer().peak_stack(intensity_stack)

    assert out.shape == intensity_stack.shape
    assert out.dtype == np.uint8
    assert set(np.unique(out)) <= {0, PEAK_VALUE}
    for y in range(2):
        assert np.flatnonzero(out[:, y, 0]).tolist() == CENTERS
        assert np.flatnonzero(out[:, y, 1]).tolist() == [c + 5 for c in CENTERS]
        assert not out[:, y, 2].any()


def test_peak_stack_threaded_matches_serial(intensity_stack):
    serial = StackAnalyzer(workers=1).peak_stack(intensity_stack)
    threaded = StackAnalyzer(workers=3).peak_stack(intensity_stack)
    np.testing.assert_array_equal(serial, threaded)


def test_find_peaks_at(intensity_stack):
    result = StackAnalyzer().find_peaks_at(intensity_stack, x=1, y=0)
    assert result.indices.tolist() == [15, 35, 55, 75]


def test_peak_stack_rejects_non_stack():
    with pytest.raises(ValueError):
        StackAnalyzer().peak_stack(np.zeros((4, 4)))


def test_unknown_detector():
    with pytest.raises(ValueError):
        StackAnalyzer(detector="nope")


def test_settings_are_normalized():
    analyzer = StackAnalyzer(PeakSettings(min_distance=-3.0))
    assert analyzer.settings.min_distance == 2.0
    analyzer.configure(min_height=-1.0)
    assert analyzer.settings.min_height == 0.0


def test_failing_pixel_is_logged_and_skipped(intensity_stack, caplog):
    analyzer = StackAnalyzer()
    detect = analyzer.detector.detect
    calls = {"n": 0}

    def flaky(trace):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        return detect(trace)

    analyzer.detector.detect = flaky
    with caplog.at_level(logging.WARNING):
        out = analyzer.peak_stack(intensity_stack)

    assert "boom" in caplog.text
    assert not out[:, 0, 0].any()
    assert np.flatnonzero(out[:, 1, 0]).tolist() == CENTERS


# ---------------------------------------------------------------------------
# Phase, coherence and frequency maps
# ---------------------------------------------------------------------------

def test_reference_indices(peak_stack):
    idx_ref, settings = reference_indices(peak_stack, PhaseSettings(reference_x=0, reference_y=0))
    assert idx_ref.tolist() == CENTERS
    assert (settings.reference_x, settings.reference_y) == (0, 0)


def test_reference_clamped_into_image(peak_stack):
    _, settings = reference_indices(peak_stack, PhaseSettings(reference_x=-4, reference_y=99))
    assert (settings.reference_x, settings.reference_y) == (0, 1)


def test_reference_without_peaks_raises(peak_stack):
    with pytest.raises(InsufficientReferencePeaks) as info:
        phase_map(peak_stack, PhaseSettings(reference_x=2, reference_y=0))
    assert isinstance(info.value, PeakAnalysisError)
    assert info.value.n_peaks == 0


def test_phase_map_degrees(peak_stack):
    out = phase_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0))

    assert out.shape == (2, 3)
    assert out.dtype == np.float32
    np.testing.assert_allclose(out[:, 0], 0.0, atol=1e-4)
    np.testing.assert_allclose(out[:, 1], -90.0, atol=1e-3)
    # flat pixels have no events
    assert np.all(np.isnan(out[:, 2]))


def test_phase_map_radians(peak_stack):
    out = phase_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0, degrees=False))
    np.testing.assert_allclose(out[:, 1], -math.pi / 2, atol=1e-5)


def test_phase_map_default_reference(peak_stack):
    # centre of a 3 x 2 image is (2, 1), a flat pixel
    with pytest.raises(InsufficientReferencePeaks):
        phase_map(peak_stack)


def test_phase_map_mask(peak_stack):
    mask = np.array([[1, 0, 1], [1, 1, 1]])
    out = phase_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0), mask)

    assert np.isnan(out[0, 1])
    assert out[1, 1] == pytest.approx(-90.0, abs=1e-3)


def test_phase_map_small_mask(peak_stack):
    mask = np.ones((1, 1))
    out = phase_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0), mask)
    assert out[0, 0] == pytest.approx(0.0, abs=1e-4)
    assert np.isnan(out[1, 0])
    assert np.isnan(out[0, 1])


def test_mask_from_stack_uses_first_slice(peak_stack):
    mask = np.zeros((2, 2, 3))
    mask[0, 0, 1] = 1
    out = phase_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0), mask)
    assert np.count_nonzero(~np.isnan(out)) == 1


def test_bad_mask_rejected(peak_stack):
    with pytest.raises(ValueError):
        phase_map(peak_stack, PhaseSettings(), np.ones(6))


def test_coherence_map(peak_stack):
    out = coherence_map(peak_stack, PhaseSettings(reference_x=0, reference_y=0))
    np.testing.assert_allclose(out[:, :2], 1.0, atol=1e-6)
    # no events means zero resultant
    np.testing.assert_allclose(out[:, 2], 0.0)


def test_frequency_map(peak_stack):
    out = frequency_map(peak_stack, frame_rate=8.0)

    assert out.shape == (2, 3)
    assert out.dtype == np.float32
    # 4 beats in 80 frames at 8 frames/s = 24 beats per minute
    np.testing.assert_allclose(out[:, :2], 24.0, rtol=1e-6)
    np.testing.assert_allclose(out[:, 2], 0.0)


def test_frequency_map_negative_rate_clamped(peak_stack):
    out = frequency_map(peak_stack, frame_rate=-5.0)
    assert np.all(out == 0.0)


def test_frequency_map_empty_stack():
    out = frequency_map(np.zeros((0, 2, 2), dtype=np.uint8), 10.0)
    assert np.all(np.isnan(out))


def test_peak_result_is_read_only():
    result = PeakResult(np.array([1, 4]), 3.0)
    with pytest.raises(ValueError):
        result.indices[0] = 9


def test_frequency_map_nan_rate_uses_default(peak_stack):
    out = frequency_map(peak_stack, frame_rate=float("nan"))
    # 4 beats in 80 frames at the default 24 frames/s
    np.testing.assert_allclose(out[:, :2], 72.0, rtol=1e-6)
