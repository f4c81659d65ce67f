"""
Property-based tests for the numeric building blocks.

1. Quantile sentinels hold for every non-empty histogram
2. Quantiles lie inside the histogram domain and grow with p
3. Closed-form short-window fits hold for arbitrary sample values
4. Any peak series correlates perfectly with itself
"""
from __future__ import annotations

import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from analysis.fitting import fit_parabola, fit_parabola_fixed_apex
from analysis.phase import coherence, mean_phase, nearest
from analysis.quantile import N_BINS, histogram, quantile_from_histogram, quantile_from_values
from test.fixtures.reference_models import reference_nearest


samples_8bit = st.lists(st.integers(min_value=0, max_value=255), min_size=1, max_size=200)
finite = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)
probabilities = st.floats(min_value=1e-6, max_value=1.0 - 1e-6)


class TestQuantileProperties:

    @given(values=samples_8bit)
    @settings(max_examples=100, deadline=None)
    def test_sentinels(self, values):
        hist = histogram(values)
        assert quantile_from_histogram(hist, 0.0) == -1.0
        assert quantile_from_histogram(hist, 1.0) == float(N_BINS)

    @given(values=samples_8bit, p=probabilities)
    @settings(max_examples=200, deadline=None)
    def test_quantile_within_domain(self, values, p):
        q = quantile_from_histogram(histogram(values), p)
        assert min(values) <= q <= max(values) + 1

    @given(values=samples_8bit, p=probabilities, dp=probabilities)
    @settings(max_examples=200, deadline=None)
    def test_quantile_monotone(self, values, p, dp):
        p2 = min(p + dp, 1.0 - 1e-6)
        hist = histogram(values)
        assert quantile_from_histogram(hist, p2) >= quantile_from_histogram(hist, p) - 1e-9

    @given(values=st.lists(finite, min_size=1, max_size=50), p=st.floats(min_value=0.0, max_value=1.0))
    @settings(max_examples=200, deadline=None)
    def test_value_quantile_bounded(self, values, p):
        q = quantile_from_values(values, p)
        assert min(values) - 1e-6 <= q <= max(values) + 1e-6


class TestShortWindowFits:

    @given(v=finite)
    def test_single_sample(self, v):
        assert tuple(fit_parabola([v])) == (v, 0.0, -1.0)
        assert tuple(fit_parabola_fixed_apex([v], 0)) == (v, 0.0, -1.0)

    @given(v0=finite, v1=finite)
    def test_two_samples(self, v0, v1):
        pp = fit_parabola([v0, v1])
        assert pp.a == v0
        assert pp.value_at(1.0) == pytest.approx(v1, rel=1e-9, abs=1e-6)
        assert pp.b + 2.0 * pp.c == pytest.approx(0.0, abs=1e-6)

    @given(
        a=st.floats(min_value=-100, max_value=100),
        b=st.floats(min_value=-10, max_value=10),
        c=st.floats(min_value=-5, max_value=-0.1),
        n=st.integers(min_value=3, max_value=15),
    )
    @settings(max_examples=100, deadline=None)
    def test_free_fit_exact_on_parabola(self, a, b, c, n):
        x = np.arange(n, dtype=np.float64)
        pp = fit_parabola(a + b * x + c * x * x)
        assert pp.c == pytest.approx(c, rel=1e-6, abs=1e-6)
        assert pp.b == pytest.approx(b, rel=1e-6, abs=1e-5)
        assert pp.a == pytest.approx(a, rel=1e-6, abs=1e-4)

    @given(window=st.lists(st.floats(min_value=-1e3, max_value=1e3), min_size=3, max_size=15), data=st.data())
    @settings(max_examples=100, deadline=None)
    def test_fixed_apex_passes_through_anchor(self, window, data):
        apex = data.draw(st.integers(min_value=0, max_value=len(window) - 1))
        pp = fit_parabola_fixed_apex(window, apex)
        assert pp.value_at(float(apex)) == pytest.approx(window[apex], rel=1e-9, abs=1e-6)


class TestPhaseProperties:

    @given(ref=st.lists(st.integers(min_value=0, max_value=1000), min_size=2, max_size=30, unique=True))
    @settings(max_examples=100, deadline=None)
    def test_self_correlation(self, ref):
        assert coherence(ref, ref) == pytest.approx(1.0)
        assert mean_phase(ref, ref) == pytest.approx(0.0, abs=1e-12)

    @given(
        ref=st.lists(st.integers(min_value=0, max_value=1000), min_size=2, max_size=30, unique=True),
        series=st.lists(st.integers(min_value=-50, max_value=1050), min_size=1, max_size=30),
    )
    @settings(max_examples=100, deadline=None)
    def test_coherence_bounded(self, ref, series):
        value = coherence(series, ref)
        assert 0.0 <= value <= 1.0 + 1e-12
        assert -math.pi - 1e-12 <= mean_phase(series, ref) <= math.pi + 1e-12

    @given(ref=st.lists(st.integers(min_value=-100, max_value=100), max_size=20), target=st.integers(-150, 150))
    def test_nearest_matches_reference(self, ref, target):
        assert nearest(ref, target) == reference_nearest(ref, target)
