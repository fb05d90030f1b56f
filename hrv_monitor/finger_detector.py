"""
Finger-on-lens detector.

When a fingertip covers the camera with the torch on, the sampled box
becomes:
  - Reasonably bright (light transmitted through tissue), but not black.
  - Low in spatial variance (uniform colour, no edges).

A scene viewed through an uncovered lens fails the uniformity test; a
dark room or a lens cap fails the brightness test.  The detector gates
the signal conditioner so that no baseline is built from a scene that is
not tissue.
"""

from __future__ import annotations

import logging
from typing import Callable, List

from hrv_monitor.datatypes import FingerPresenceState, FrameSample

logger = logging.getLogger(__name__)


class FingerDetector:
    """
    Debounced presence classifier over ROI statistics.

    Parameters
    ----------
    brightness_min:
        Mean ROI brightness must exceed this value (0 – 255).  Default: 30.
    brightness_max:
        Mean ROI brightness must be below this value.  A saturated box is
        rejected.  Default: 255.
    uniformity_threshold:
        Maximum ROI standard deviation.  A covered lens yields a nearly
        uniform field.  Default: 30.
    debounce_frames:
        Number of consecutive frames the raw decision must disagree with the
        current state before the state flips.  Default: 1 (immediate).
    """

    def __init__(
        self,
        brightness_min: float = 30.0,
        brightness_max: float = 255.0,
        uniformity_threshold: float = 30.0,
        debounce_frames: int = 1,
    ) -> None:
        self.brightness_min = brightness_min
        self.brightness_max = brightness_max
        self.uniformity_threshold = uniformity_threshold
        self.debounce_frames = debounce_frames

        self._present = False
        self._changed = False
        self._disagree_streak = 0
        self._listeners: List[Callable[[bool], None]] = []

    def on_change(self, callback: Callable[[bool], None]) -> None:
        """Register *callback(present)*, invoked only when the state flips."""
        self._listeners.append(callback)

    def is_finger(self, sample: FrameSample) -> bool:
        """Raw, un-debounced decision for a single sample."""
        bright_enough = self.brightness_min < sample.mean_intensity < self.brightness_max
        uniform_enough = sample.std_dev < self.uniformity_threshold
        return bright_enough and uniform_enough

    def classify(self, sample: FrameSample) -> bool:
        """
        Update the debounced state with *sample* and return it.

        ``state.changed`` is *True* only for the call on which the state
        flipped.
        """
        raw = self.is_finger(sample)
        self._changed = False

        if raw == self._present:
            self._disagree_streak = 0
            return self._present

        self._disagree_streak += 1
        if self._disagree_streak >= self.debounce_frames:
            self._present = raw
            self._changed = True
            self._disagree_streak = 0
            logger.info(
                "Finger %s (mean=%.1f std=%.1f).",
                "placed" if raw else "removed",
                sample.mean_intensity,
                sample.std_dev,
            )
            for callback in self._listeners:
                callback(raw)
        return self._present

    @property
    def state(self) -> FingerPresenceState:
        return FingerPresenceState(present=self._present, changed=self._changed)

    @property
    def present(self) -> bool:
        return self._present

    def reset(self) -> None:
        """Forget the current state (back to "not present", no flip pending)."""
        self._present = False
        self._changed = False
        self._disagree_streak = 0
