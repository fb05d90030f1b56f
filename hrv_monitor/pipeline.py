"""
Frame-driven pulse pipeline.

One call to :meth:`Pipeline.process_frame` runs every stage for one camera
frame, to completion:

    ROI sampler → finger detector → signal conditioner → peak detector
    → RR validator → measurement session

Results are published to an :class:`~hrv_monitor.events.EventChannel`
and never block the frame path.  A frame that arrives while the previous
one is still being processed is dropped; stale optical frames have no
value for a live pulse signal.

All timing comes from one monotonic clock (``time.perf_counter`` by
default), restarted when a measurement starts.  Only the interpolation
step uses the nominal frame period.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from hrv_monitor.config import PipelineConfig
from hrv_monitor.datatypes import FrameSample, HRVMetrics, RRDecision, RRStatus
from hrv_monitor.events import (
    BpmUpdated,
    ChartSample,
    ElapsedUpdated,
    EventChannel,
    PresenceChanged,
    QualityUpdated,
    SessionFinished,
)
from hrv_monitor.finger_detector import FingerDetector
from hrv_monitor.hrv_metrics import compute_hrv_metrics
from hrv_monitor.peak_detector import PeakDetector
from hrv_monitor.roi_sampler import RoiSampler
from hrv_monitor.rr_validator import RRValidator
from hrv_monitor.session import MeasurementSession, SessionState
from hrv_monitor.signal_conditioner import SignalConditioner

logger = logging.getLogger(__name__)


class Pipeline:
    """
    Owner of all per-session signal state.

    Parameters
    ----------
    config:
        Thresholds for every stage.  Default: :class:`PipelineConfig()`.
    clock:
        Monotonic clock returning seconds.  Default: ``time.perf_counter``.
    events:
        Channel to publish to.  A new one is created when omitted.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        clock: Callable[[], float] = time.perf_counter,
        events: Optional[EventChannel] = None,
    ) -> None:
        self.config = cfg = config or PipelineConfig()
        self._clock = clock
        self._clock_origin = clock()
        self.events = events or EventChannel(maxsize=cfg.event_queue_size)

        self.sampler = RoiSampler(half_range=cfg.roi_half_range)
        self.detector = FingerDetector(
            brightness_min=cfg.brightness_min,
            brightness_max=cfg.brightness_max,
            uniformity_threshold=cfg.uniformity_threshold,
            debounce_frames=cfg.presence_debounce_frames,
        )
        self.conditioner = SignalConditioner(
            buffer_size=cfg.raw_buffer_size,
            smoothing_window=cfg.smoothing_window,
            baseline_window=cfg.baseline_window,
            quality_window=cfg.quality_window,
            quality_scale=cfg.quality_scale,
        )
        self.peaks = PeakDetector(
            refractory_frames=cfg.refractory_frames,
            frame_duration_ms=cfg.frame_duration_ms,
            threshold_window=cfg.threshold_window,
            threshold_fraction=cfg.threshold_fraction,
            interpolate=cfg.interpolate,
        )
        self.validator = RRValidator(
            rr_min_ms=cfg.rr_min_ms,
            rr_max_ms=cfg.rr_max_ms,
            gap_threshold_ms=cfg.gap_threshold_ms,
            artifact_rule=cfg.artifact_rule,
            artifact_bpm_threshold=cfg.artifact_bpm_threshold,
            artifact_sigma=cfg.artifact_sigma,
            bpm_buffer_size=cfg.bpm_buffer_size,
        )
        self.session = MeasurementSession(duration_s=cfg.measurement_duration_s)

        self._chart: Deque[float] = deque(maxlen=cfg.chart_buffer_size)
        self._lock = threading.Lock()
        self._processed_frames = 0
        self._dropped_frames = 0
        self._display_bpm = 0

    # ------------------------------------------------------------------
    # Frame path
    # ------------------------------------------------------------------

    def process_frame(
        self,
        plane,
        width: Optional[int] = None,
        height: Optional[int] = None,
        stride: Optional[int] = None,
    ) -> bool:
        """
        Run the pipeline for one intensity plane.

        Returns *False* if the frame was dropped because a previous frame
        is still being processed.
        """
        return self._run(lambda now_ms: self.sampler.sample(plane, now_ms, width, height, stride))

    def process_bgr(self, frame) -> bool:
        """:meth:`process_frame` for a BGR camera frame."""
        return self._run(lambda now_ms: self.sampler.sample_bgr(frame, now_ms))

    def _run(self, take_sample: Callable[[float], Optional[FrameSample]]) -> bool:
        if not self._lock.acquire(blocking=False):
            self._dropped_frames += 1
            return False
        try:
            now_ms = self.clock_ms()
            sample = take_sample(now_ms)
            if sample is not None:
                self._process_sample(sample, now_ms)
            self._processed_frames += 1
        finally:
            self._lock.release()
        return True

    def _process_sample(self, sample: FrameSample, now_ms: float) -> None:
        present = self.detector.classify(sample)
        if self.detector.state.changed:
            self.events.publish(PresenceChanged(present))
        if not present:
            self._reset_signal()
            return

        conditioned = self.conditioner.push(sample)
        if conditioned is None:
            return
        self._chart.append(conditioned.filtered_value)
        self.events.publish(ChartSample(conditioned.filtered_value))
        self.events.publish(QualityUpdated(self.conditioner.quality))

        peak = self.peaks.update(self.conditioner.filtered, now_ms)
        if peak is None:
            return
        self._handle_decision(self.validator.validate(peak))

    def _handle_decision(self, decision: RRDecision) -> None:
        if decision.status is RRStatus.SIGNAL_LOSS:
            self._set_display_bpm(0)
            return
        if not decision.accepted:
            return
        self.session.record(decision.rr_ms)
        self._set_display_bpm(self.validator.display_bpm)

    def _set_display_bpm(self, bpm: int) -> None:
        if bpm != self._display_bpm:
            self._display_bpm = bpm
            self.events.publish(BpmUpdated(bpm))

    def _reset_signal(self) -> None:
        self.conditioner.reset()
        self.validator.clear_bpm()
        self.peaks.reset_refractory()

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin a measurement: clear the RR series and restart the clock."""
        with self._lock:
            self._clock_origin = self._clock()
            self.peaks.reset()
            self.validator.reset()
            self._set_display_bpm(0)
            self.session.start()
            self.events.publish(ElapsedUpdated(0, self.session.duration_s))

    def stop(self) -> Tuple[float, ...]:
        """Freeze and return the RR series."""
        with self._lock:
            return self.session.stop()

    def reset(self) -> Tuple[float, ...]:
        """
        Abandon the session and clear all signal state.

        Returns the RR series as it stood, frozen.
        """
        with self._lock:
            frozen = self.session.stop()
            self.session.reset()
            self._reset_signal()
            self.peaks.reset()
            self.validator.reset()
            self.detector.reset()
            self._chart.clear()
            self._set_display_bpm(0)
            logger.info("Pipeline reset.")
            return frozen

    def tick(self) -> bool:
        """
        Advance the session clock by one second (call at ≈ 1 Hz).

        Returns *True* when this tick finished the measurement.
        """
        with self._lock:
            if not self.session.is_measuring:
                return False
            finished = self.session.tick(self.detector.present)
            self.events.publish(
                ElapsedUpdated(self.session.elapsed_s, self.session.duration_s)
            )
            if finished:
                self.events.publish(SessionFinished(len(self.session.snapshot())))
            return finished

    def compute_metrics(self) -> HRVMetrics:
        """HRV metrics over a snapshot of the session RR series."""
        with self._lock:
            rr = self.session.snapshot()
        return compute_hrv_metrics(rr, min_intervals=self.config.min_intervals)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def clock_ms(self) -> float:
        return (self._clock() - self._clock_origin) * 1000.0

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def finger_present(self) -> bool:
        return self.detector.present

    @property
    def display_bpm(self) -> int:
        return self._display_bpm

    @property
    def signal_quality(self) -> float:
        return self.conditioner.quality

    @property
    def rr_intervals(self) -> Tuple[float, ...]:
        return self.session.snapshot()

    @property
    def chart_samples(self) -> Tuple[float, ...]:
        return tuple(self._chart)

    @property
    def processed_frames(self) -> int:
        return self._processed_frames

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames
