"""
Unit tests for the HRV metrics calculator.
Run with:  pytest tests/test_hrv_metrics.py
"""

from __future__ import annotations

import numpy as np
import pytest

from hrv_monitor.datatypes import HRVMetrics
from hrv_monitor.hrv_metrics import compute_hrv_metrics, histogram_mode, remove_outliers


class TestSentinel:

    def test_short_series_returns_zeros(self):
        m = compute_hrv_metrics([800.0] * 19)
        assert m == HRVMetrics.empty()
        assert not m.is_valid

    @pytest.mark.parametrize("rr", [[], [1.0], [300.0, 5000.0] * 9 + [42.0]])
    def test_content_does_not_matter_below_minimum(self, rr):
        m = compute_hrv_metrics(rr)
        assert (m.sdnn, m.rmssd, m.pnn50, m.mxdmn, m.amo50) == (0.0, 0.0, 0.0, 0.0, 0.0)

    def test_custom_minimum(self):
        assert compute_hrv_metrics([800.0] * 12, min_intervals=10).is_valid


class TestTimeDomain:

    def test_constant_series(self):
        m = compute_hrv_metrics([800.0] * 25)
        assert m.sdnn == 0.0
        assert m.rmssd == 0.0
        assert m.pnn50 == 0.0
        assert m.mxdmn == 0.0
        assert m.amo50 == 100.0
        assert m.mode_rr == 800.0
        assert m.stress_index == 0.0
        assert m.n_intervals == 25
        assert m.mean_bpm == pytest.approx(75.0)

    def test_alternating_series(self):
        m = compute_hrv_metrics([800.0, 850.0] * 10)
        assert m.sdnn == pytest.approx(25.0)
        assert m.rmssd == pytest.approx(50.0)
        assert m.pnn50 == 0.0          # exactly 50 ms is not > 50
        assert m.mxdmn == pytest.approx(50.0)
        assert m.amo50 == pytest.approx(50.0)

    def test_pnn50_counts_large_differences(self):
        m = compute_hrv_metrics([800.0, 860.0] * 10)
        assert m.pnn50 == pytest.approx(100.0)
        assert m.rmssd == pytest.approx(60.0)

    def test_successive_differences_use_temporal_order(self):
        alternating = compute_hrv_metrics([800.0, 860.0] * 10)
        blocked = compute_hrv_metrics([800.0] * 10 + [860.0] * 10)
        assert blocked.sdnn == pytest.approx(alternating.sdnn)
        assert blocked.rmssd == pytest.approx(np.sqrt(3600.0 / 19))
        assert blocked.pnn50 == pytest.approx(100.0 / 19)

    def test_input_not_modified(self):
        rr = [900.0, 800.0, 850.0] * 8
        before = list(rr)
        compute_hrv_metrics(rr)
        assert rr == before

    def test_deterministic(self):
        rng = np.random.default_rng(7)
        rr = list(800 + 40 * rng.standard_normal(60))
        assert compute_hrv_metrics(rr) == compute_hrv_metrics(rr)


class TestOutliers:

    def _tight(self):
        return [780.0, 800.0, 820.0, 800.0] * 10

    def test_single_extreme_outlier_removed(self):
        base = self._tight()
        spiked = base[:20] + [5000.0] + base[20:]
        clean = compute_hrv_metrics(base)
        dirty = compute_hrv_metrics(spiked)
        assert dirty.n_intervals == 40
        assert dirty.sdnn == pytest.approx(clean.sdnn)
        assert dirty.rmssd == pytest.approx(clean.rmssd)
        assert dirty.mxdmn == pytest.approx(40.0)

    def test_fallback_when_too_few_survive(self):
        rr = [800.0] * 7 + [400.0, 1200.0, 300.0, 1300.0, 200.0]
        m = compute_hrv_metrics(rr, min_intervals=12)
        # IQR is 0, only the seven 800s survive: the raw series is used.
        assert m.n_intervals == 12
        assert m.mxdmn == pytest.approx(1100.0)

    def test_remove_outliers_preserves_order(self):
        rr = np.array([810.0, 790.0, 3000.0, 805.0, 795.0] * 4)
        cleaned = remove_outliers(rr)
        assert list(cleaned[:4]) == [810.0, 790.0, 805.0, 795.0]
        assert 3000.0 not in cleaned


class TestBaevsky:

    def test_histogram_rounds_half_up(self):
        assert histogram_mode(np.array([825.0, 825.0, 800.0])) == (850.0, 2)

    def test_histogram_tie_goes_to_shortest_bin(self):
        assert histogram_mode(np.array([800.0, 850.0])) == (800.0, 1)

    def test_stress_index(self):
        m = compute_hrv_metrics([800.0, 850.0] * 10)
        # AMo50 50 % / (2 · 0.8 s · 0.05 s)
        assert m.mode_rr == 800.0
        assert m.stress_index == pytest.approx(625.0)
