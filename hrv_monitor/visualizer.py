"""
Real-time overlay visualiser.

Consumes pipeline events and draws onto each video frame:
  • The sampling box in the frame centre, coloured by finger presence.
  • BPM readout and signal-quality bar.
  • Session progress bar with seconds remaining.
  • A scrolling waveform strip of the filtered PPG signal.
  • The HRV results panel once a measurement has finished.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional, Tuple

import cv2
import numpy as np

from hrv_monitor.datatypes import HRVMetrics
from hrv_monitor.events import (
    BpmUpdated,
    ChartSample,
    ElapsedUpdated,
    Event,
    PresenceChanged,
    QualityUpdated,
    SessionFinished,
)

# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CYAN   = (220, 200,  0)
_DARK   = (30, 30, 30)


class Visualizer:
    """
    Draws the monitoring UI onto OpenCV frames in-place.

    Parameters
    ----------
    resolution:
        (width, height) of the video frame.
    roi_half_range:
        Half side of the sampling box, to outline it on screen.
    waveform_height:
        Pixel height of the waveform panel at the bottom of the frame.
    chart_size:
        Number of filtered samples shown in the waveform.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (320, 240),
        roi_half_range: int = 40,
        waveform_height: int = 60,
        chart_size: int = 150,
    ) -> None:
        self.w, self.h = resolution
        self.waveform_height = waveform_height
        cx, cy = self.w // 2, self.h // 2
        self.roi = (cx - roi_half_range, cy - roi_half_range,
                    2 * roi_half_range, 2 * roi_half_range)  # x, y, w, h

        self.finger_present = False
        self.bpm = 0
        self.quality = 0.0
        self.elapsed = 0
        self.duration = 0
        self.finished_beats: Optional[int] = None
        self._wave: Deque[float] = deque(maxlen=chart_size)

    # ------------------------------------------------------------------
    # Event consumption
    # ------------------------------------------------------------------

    def consume(self, events: Iterable[Event]) -> None:
        """Fold drained pipeline events into the display state."""
        for event in events:
            if isinstance(event, ChartSample):
                self._wave.append(event.value)
            elif isinstance(event, QualityUpdated):
                self.quality = event.score
            elif isinstance(event, BpmUpdated):
                self.bpm = event.bpm
            elif isinstance(event, PresenceChanged):
                self.finger_present = event.present
                if not event.present:
                    self._wave.clear()
            elif isinstance(event, ElapsedUpdated):
                self.elapsed, self.duration = event.seconds, event.duration
                if event.seconds == 0:
                    self.finished_beats = None
            elif isinstance(event, SessionFinished):
                self.finished_beats = event.beats

    def clear(self) -> None:
        self.bpm = 0
        self.quality = 0.0
        self.elapsed = 0
        self.duration = 0
        self.finished_beats = None
        self._wave.clear()

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw(self, frame: np.ndarray, metrics: Optional[HRVMetrics] = None) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame from the camera.
        metrics:
            Results to show once the session has finished.
        """
        x, y, rw, rh = self.roi
        color = _GREEN if self.finger_present else _YELLOW
        cv2.rectangle(frame, (x, y), (x + rw, y + rh), color, 2)
        cv2.putText(
            frame, "Scanning..." if self.finger_present else "Place finger here",
            (x, max(12, y - 8)), cv2.FONT_HERSHEY_SIMPLEX, 0.45, color, 1, cv2.LINE_AA,
        )

        self._draw_bpm(frame)
        if self.duration > 0:
            self._draw_progress(frame)
        if len(self._wave) > 1:
            self._draw_waveform(frame, np.fromiter(self._wave, dtype=np.float64))
        if metrics is not None and self.finished_beats is not None:
            self._draw_results(frame, metrics)
        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_bpm(self, frame: np.ndarray) -> None:
        if self.bpm > 0 and self.finger_present:
            text = f"{self.bpm:d} BPM"
            cv2.putText(frame, text, (10, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.2, _BLACK, 5, cv2.LINE_AA)
            cv2.putText(frame, text, (10, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.2, _RED, 2, cv2.LINE_AA)
        else:
            status = "Warming up..." if self.finger_present else "No signal"
            cv2.putText(frame, status, (10, 36), cv2.FONT_HERSHEY_SIMPLEX, 0.6, _YELLOW, 2, cv2.LINE_AA)

        if self.finger_present:
            if self.quality >= 0.5:
                col = _GREEN
            elif self.quality >= 0.3:
                col = _YELLOW
            else:
                col = _RED
            bar_w = int(100 * self.quality)
            cv2.rectangle(frame, (10, 48), (110, 58), _DARK, -1)
            cv2.rectangle(frame, (10, 48), (10 + bar_w, 58), col, -1)
            cv2.putText(
                frame, f"signal {self.quality * 100:.0f}%",
                (10, 72), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
            )

    def _draw_progress(self, frame: np.ndarray) -> None:
        fill = min(1.0, self.elapsed / self.duration)
        bar_w = int((self.w - 20) * fill)
        y0, y1 = self.h - self.waveform_height - 12, self.h - self.waveform_height - 4
        cv2.rectangle(frame, (10, y0), (self.w - 10, y1), _DARK, -1)
        cv2.rectangle(frame, (10, y0), (10 + bar_w, y1), _CYAN, -1)
        remaining = max(0, self.duration - self.elapsed)
        cv2.putText(
            frame, f"{remaining:d}s remaining",
            (10, y0 - 3), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _CYAN, 1, cv2.LINE_AA,
        )

    def _draw_waveform(self, frame: np.ndarray, signal: np.ndarray) -> None:
        """Draw the filtered signal in a dark strip at the bottom of the frame."""
        panel_top = self.h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (self.w, self.h), _DARK, -1)

        mn, mx = signal.min(), signal.max()
        rng = mx - mn if mx != mn else 1.0
        norm = (signal - mn) / rng

        margin = 4
        plot_h = self.waveform_height - 2 * margin
        xs = np.linspace(0, self.w - 1, len(norm)).astype(np.int32)
        ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(np.int32)
        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)
        cv2.putText(
            frame, "PPG", (4, panel_top + 12), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_results(self, frame: np.ndarray, metrics: HRVMetrics) -> None:
        rows = [
            f"SDNN  {metrics.sdnn:6.1f} ms",
            f"RMSSD {metrics.rmssd:6.1f} ms",
            f"pNN50 {metrics.pnn50:6.1f} %",
            f"MxDMn {metrics.mxdmn:6.0f} ms",
            f"AMo50 {metrics.amo50:6.1f} %",
            f"beats {self.finished_beats:d}",
        ]
        if not metrics.is_valid:
            rows.append("not enough beats")
        x0, y0 = self.w - 150, 10
        cv2.rectangle(frame, (x0 - 6, y0), (self.w - 4, y0 + 16 * len(rows) + 8), _DARK, -1)
        for i, text in enumerate(rows):
            cv2.putText(
                frame, text, (x0, y0 + 18 + 16 * i),
                cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
            )
