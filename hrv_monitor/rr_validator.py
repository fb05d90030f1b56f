"""
RR interval validator.

Turns successive peak times into RR intervals and decides which of them
are heartbeats:

* The first peak only sets the anchor.
* Intervals outside the physiological band are rejected and the anchor
  stays where it was, so a spurious extra peak does not shorten the next
  interval.
* An interval whose instantaneous BPM strays too far from the running BPM
  average is rejected as a motion/contact artifact.
* A very long interval (finger lifted and replaced) is a signal-loss gap:
  the BPM history is cleared and the anchor moves to the new peak, but no
  interval is produced.

Accepted intervals also feed a short BPM buffer used only for a smoothed
live readout.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

import numpy as np

from hrv_monitor.datatypes import PeakEvent, RRDecision, RRStatus

logger = logging.getLogger(__name__)


class RRValidator:
    """
    Physiological and statistical gate for RR intervals.

    Parameters
    ----------
    rr_min_ms, rr_max_ms:
        Accepted RR band.  Default 375 – 1500 ms (40 – 160 BPM).
    gap_threshold_ms:
        Intervals longer than this are treated as signal loss.
        Default: 2000.
    artifact_rule:
        ``"fixed"``: reject when ``|bpm - avg| > artifact_bpm_threshold``.
        ``"adaptive"``: the limit is
        ``max(artifact_bpm_threshold, artifact_sigma * std(buffer))``.
    artifact_bpm_threshold:
        Fixed BPM deviation limit, and the floor of the adaptive one.
        Default: 20.
    artifact_sigma:
        Multiple of the buffer standard deviation for the adaptive rule.
        Default: 2.5.
    bpm_buffer_size:
        Capacity of the display BPM buffer.  Default: 5.
    """

    def __init__(
        self,
        rr_min_ms: float = 375.0,
        rr_max_ms: float = 1500.0,
        gap_threshold_ms: float = 2000.0,
        artifact_rule: str = "fixed",
        artifact_bpm_threshold: float = 20.0,
        artifact_sigma: float = 2.5,
        bpm_buffer_size: int = 5,
    ) -> None:
        self.rr_min_ms = rr_min_ms
        self.rr_max_ms = rr_max_ms
        self.gap_threshold_ms = gap_threshold_ms
        self.artifact_rule = artifact_rule
        self.artifact_bpm_threshold = artifact_bpm_threshold
        self.artifact_sigma = artifact_sigma

        self._bpm_buffer: Deque[float] = deque(maxlen=bpm_buffer_size)
        self._anchor: Optional[float] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, peak: PeakEvent) -> RRDecision:
        """Classify the interval ending at *peak* and update the state."""
        if self._anchor is None:
            self._anchor = peak.timestamp_ms
            logger.debug("First peak at %.2f ms: anchor set.", peak.timestamp_ms)
            return RRDecision(RRStatus.ANCHORED)

        rr = peak.timestamp_ms - self._anchor

        if self.rr_min_ms <= rr <= self.rr_max_ms:
            bpm = 60000.0 / rr
            if self._bpm_buffer:
                avg = float(np.mean(self._bpm_buffer))
                limit = self.deviation_limit()
                if abs(bpm - avg) > limit:
                    logger.debug(
                        "Artifact: RR=%.1f ms (%.1f BPM) vs avg %.1f BPM (limit %.1f).",
                        rr, bpm, avg, limit,
                    )
                    return RRDecision(RRStatus.ARTIFACT, rr, bpm)
            self._bpm_buffer.append(bpm)
            self._anchor = peak.timestamp_ms
            return RRDecision(RRStatus.ACCEPTED, rr, bpm)

        if rr > self.gap_threshold_ms:
            logger.info("Signal lost for %.0f ms; re-anchoring.", rr)
            self._bpm_buffer.clear()
            self._anchor = peak.timestamp_ms
            return RRDecision(RRStatus.SIGNAL_LOSS, rr)

        logger.debug("RR=%.1f ms outside [%.0f, %.0f] ms.", rr, self.rr_min_ms, self.rr_max_ms)
        return RRDecision(RRStatus.OUT_OF_RANGE, rr)

    def deviation_limit(self) -> float:
        """Current BPM deviation limit under the configured rule."""
        if self.artifact_rule == "adaptive" and len(self._bpm_buffer) > 1:
            sigma = float(np.std(self._bpm_buffer))
            return max(self.artifact_bpm_threshold, self.artifact_sigma * sigma)
        return self.artifact_bpm_threshold

    @property
    def display_bpm(self) -> int:
        """Rounded mean of the BPM buffer, or 0 when it is empty."""
        if not self._bpm_buffer:
            return 0
        return int(round(float(np.mean(self._bpm_buffer))))

    @property
    def bpm_buffer(self) -> tuple:
        return tuple(self._bpm_buffer)

    @property
    def anchor(self) -> Optional[float]:
        return self._anchor

    def clear_bpm(self) -> None:
        """Drop the BPM history but keep the anchor."""
        self._bpm_buffer.clear()

    def reset(self) -> None:
        """Drop the BPM history and the anchor."""
        self._bpm_buffer.clear()
        self._anchor = None
