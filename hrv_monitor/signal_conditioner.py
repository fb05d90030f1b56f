"""
PPG signal conditioner.

Algorithm
---------
1. Append each raw ROI mean to a rolling buffer (256 samples).
2. Once 5 raw samples exist, smooth with a 5-sample moving average
   (suppresses sensor noise above the cardiac band).
3. Subtract a baseline: the mean of the last 30 raw samples (≈ 1 s).  This
   acts as a simple high-pass filter removing respiration- and
   pressure-driven wander.  Before 30 samples exist the baseline is the
   smoothed value itself, giving a flat zero output.
4. Append the difference to the filtered buffer consumed by the peak
   detector.

A signal-quality score (peak-to-peak amplitude of the last 60 filtered
samples, scaled to 0 – 1) is kept for display.  It never feeds back into
peak detection.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

import numpy as np

from hrv_monitor.datatypes import ConditionedSample, FrameSample

logger = logging.getLogger(__name__)


class SignalConditioner:
    """
    Streaming smoother and detrender.

    Parameters
    ----------
    buffer_size:
        Capacity of the raw and filtered ring buffers.  Default: 256.
    smoothing_window:
        Moving-average length, and the number of raw samples required
        before the first filtered output.  Default: 5.
    baseline_window:
        Number of trailing raw samples averaged for the baseline.
        Default: 30.
    quality_window:
        Number of trailing filtered samples used for the quality score.
        Default: 60.
    quality_scale:
        Peak-to-peak amplitude (intensity units) that maps to quality 1.0.
        Default: 5.0.
    """

    def __init__(
        self,
        buffer_size: int = 256,
        smoothing_window: int = 5,
        baseline_window: int = 30,
        quality_window: int = 60,
        quality_scale: float = 5.0,
    ) -> None:
        self.smoothing_window = smoothing_window
        self.baseline_window = baseline_window
        self.quality_window = quality_window
        self.quality_scale = quality_scale

        self._raw: Deque[float] = deque(maxlen=buffer_size)
        self._smoothing: Deque[float] = deque(maxlen=smoothing_window)
        self._filtered: Deque[float] = deque(maxlen=buffer_size)
        self._quality: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def push(self, sample: FrameSample) -> Optional[ConditionedSample]:
        """
        Feed one raw sample; return the filtered sample, or *None* while
        there is not yet enough history.
        """
        raw = sample.mean_intensity
        self._raw.append(raw)
        if len(self._raw) < self.smoothing_window:
            return None

        self._smoothing.append(raw)
        smoothed = float(np.mean(self._smoothing))

        if len(self._raw) >= self.baseline_window:
            recent = list(self._raw)[-self.baseline_window:]
            baseline = float(np.mean(recent))
        else:
            baseline = smoothed

        filtered = smoothed - baseline
        self._filtered.append(filtered)
        self._update_quality()
        return ConditionedSample(timestamp=sample.timestamp, filtered_value=filtered)

    @property
    def filtered(self) -> Deque[float]:
        """The filtered ring buffer, oldest first.  Read-only by convention."""
        return self._filtered

    @property
    def quality(self) -> float:
        """Signal quality index (0 – 1)."""
        return self._quality

    @property
    def raw_count(self) -> int:
        return len(self._raw)

    @property
    def buffer_fill_ratio(self) -> float:
        """How full the raw buffer is (0 – 1)."""
        return len(self._raw) / self._raw.maxlen

    def reset(self) -> None:
        """Clear the raw, smoothing and filtered buffers."""
        self._raw.clear()
        self._smoothing.clear()
        self._filtered.clear()
        self._quality = 0.0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _update_quality(self) -> None:
        if len(self._filtered) < self.quality_window:
            return
        recent = np.fromiter(self._filtered, dtype=np.float64)[-self.quality_window:]
        span = float(recent.max() - recent.min())
        self._quality = min(1.0, max(0.0, span / self.quality_scale))
