"""
Streaming pulse-peak detector with sub-frame timing.

A sample is a peak when it is a strict local maximum, lies above an
adaptive threshold, and the refractory period since the previous peak has
elapsed:

* The threshold is the midpoint of the range of the last 60 filtered
  samples, so it follows slow amplitude drift (finger pressure, lighting)
  without calibration.
* The refractory period (12 frames ≈ 400 ms at 30 fps) stops ripple near
  the true maximum from triggering a second peak.

A peak is only recognised one frame late (its right neighbour must be
known), and the frame grid quantises it to ±16 ms at 30 fps, far coarser
than the beat-to-beat differences HRV is made of.  A parabola through the
three samples around the maximum recovers the vertex offset::

    delta = (prev - next) / (2 * (prev - 2 * curr + next))

in units of one frame period, nominally within [-0.5, 0.5].
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from hrv_monitor.datatypes import PeakEvent

logger = logging.getLogger(__name__)


def parabolic_offset(prev: float, curr: float, next_: float) -> float:
    """
    Vertex offset of the parabola through ``(-1, prev), (0, curr), (1, next_)``.

    Returns 0.0 for a flat triple (zero curvature).
    """
    denom = 2.0 * (prev - 2.0 * curr + next_)
    if denom == 0:
        return 0.0
    return (prev - next_) / denom


class PeakDetector:
    """
    Adaptive-threshold local-maximum detector.

    Parameters
    ----------
    refractory_frames:
        A new peak requires strictly more than this many evaluated frames
        since the last one.  Default: 12.
    frame_duration_ms:
        Nominal frame period used to scale the interpolated offset.
        Default: 33.33 (30 fps).
    threshold_window:
        Number of trailing filtered samples the threshold is computed over.
        Default: 60.
    threshold_fraction:
        Position of the threshold within the window's [min, max] range.
        Default: 0.5.
    interpolate:
        Apply parabolic refinement.  When *False* the peak time is the
        frame time of the maximum.  Default: True.
    """

    def __init__(
        self,
        refractory_frames: int = 12,
        frame_duration_ms: float = 33.33,
        threshold_window: int = 60,
        threshold_fraction: float = 0.5,
        interpolate: bool = True,
    ) -> None:
        self.refractory_frames = refractory_frames
        self.frame_duration_ms = frame_duration_ms
        self.threshold_window = threshold_window
        self.threshold_fraction = threshold_fraction
        self.interpolate = interpolate

        self._frames_since_last_peak = 0
        self._last_peak_timestamp: Optional[float] = None
        self._last_threshold: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update(self, filtered: Sequence[float], clock_ms: float) -> Optional[PeakEvent]:
        """
        Evaluate the middle of the last three *filtered* samples.

        Parameters
        ----------
        filtered:
            Filtered signal, oldest first.  Only its tail is read.
        clock_ms:
            Monotonic time of the newest sample, in milliseconds.

        Returns
        -------
        PeakEvent or None
        """
        n = len(filtered)
        if n < 3:
            return None

        window = np.fromiter(filtered, dtype=np.float64, count=n)
        prev, curr, next_ = window[-3], window[-2], window[-1]
        recent = window[-self.threshold_window:]
        lo, hi = float(recent.min()), float(recent.max())
        threshold = lo + (hi - lo) * self.threshold_fraction
        self._last_threshold = threshold

        self._frames_since_last_peak += 1

        is_peak = (
            curr > prev
            and curr > next_
            and curr > threshold
            and self._frames_since_last_peak > self.refractory_frames
        )
        if not is_peak:
            return None

        delta = parabolic_offset(prev, curr, next_) if self.interpolate else 0.0
        # The candidate is one frame behind the newest sample.
        exact = clock_ms - self.frame_duration_ms + delta * self.frame_duration_ms

        if self._last_peak_timestamp is not None and exact <= self._last_peak_timestamp:
            logger.debug(
                "Dropping non-monotonic peak at %.2f ms (last %.2f ms).",
                exact, self._last_peak_timestamp,
            )
            return None

        self._frames_since_last_peak = 0
        self._last_peak_timestamp = exact
        logger.debug("Peak at %.2f ms (delta=%+.3f, threshold=%.3f).", exact, delta, threshold)
        return PeakEvent(timestamp_ms=exact)

    @property
    def frames_since_last_peak(self) -> int:
        return self._frames_since_last_peak

    @property
    def last_peak_timestamp(self) -> Optional[float]:
        return self._last_peak_timestamp

    @property
    def last_threshold(self) -> float:
        return self._last_threshold

    def reset_refractory(self) -> None:
        """Restart the refractory count (signal buffers were cleared)."""
        self._frames_since_last_peak = 0

    def reset(self) -> None:
        """Forget all peak history (the clock was restarted)."""
        self._frames_since_last_peak = 0
        self._last_peak_timestamp = None
        self._last_threshold = 0.0
