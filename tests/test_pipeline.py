"""
Integration tests for Pipeline, MeasurementSession, EventChannel,
PipelineConfig, the text report and the visualiser.
Run with:  pytest tests/test_pipeline.py
"""

from __future__ import annotations

import datetime

import numpy as np
import pytest

from hrv_monitor.config import PipelineConfig
from hrv_monitor.datatypes import HRVMetrics
from hrv_monitor.events import (
    BpmUpdated,
    ChartSample,
    ElapsedUpdated,
    EventChannel,
    PresenceChanged,
    QualityUpdated,
    SessionFinished,
)
from hrv_monitor.hrv_metrics import compute_hrv_metrics
from hrv_monitor.pipeline import Pipeline
from hrv_monitor.report import format_report
from hrv_monitor.session import MeasurementSession, SessionState
from hrv_monitor.visualizer import Visualizer

FPS = 30.0


class FakeClock:
    """Monotonic clock driven by the test (seconds)."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _plane(value: float) -> np.ndarray:
    return np.full((100, 100), value, dtype=np.float64)


def _pulse(i: int, bpm: float = 60.0) -> float:
    """Fingertip brightness at frame *i*: 120 ± 5 with maxima at 260 ms + k·period."""
    t_ms = i * 1000.0 / FPS
    return 120.0 + 5.0 * np.cos(2 * np.pi * (t_ms - 260.0) * bpm / 60000.0)


def _drive(pipeline: Pipeline, clock: FakeClock, frames: range, value=_pulse) -> None:
    for i in frames:
        clock.now = i / FPS
        pipeline.process_frame(_plane(value(i)))


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestPipeline:

    def test_clean_pulse_end_to_end(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=600), clock=clock)
        p.start()
        _drive(p, clock, range(int(40 * FPS)))

        rr = np.array(p.rr_intervals)
        assert len(rr) >= 35
        assert np.all(rr > 0)
        assert np.all(np.abs(rr - 1000.0) < 5.0)
        assert p.display_bpm == 60
        assert p.finger_present

        m = p.compute_metrics()
        assert m.is_valid
        assert m.sdnn < 1.0
        assert m.amo50 == 100.0

    def test_idle_pipeline_tracks_bpm_without_recording(self, clock):
        p = Pipeline(clock=clock)
        _drive(p, clock, range(int(10 * FPS)))
        assert p.state is SessionState.IDLE
        assert p.display_bpm == 60
        assert p.rr_intervals == ()

    def test_events_published(self, clock):
        p = Pipeline(clock=clock)
        _drive(p, clock, range(int(10 * FPS)))
        events = p.events.drain_all()
        kinds = {type(e) for e in events}
        assert {PresenceChanged, ChartSample, QualityUpdated, BpmUpdated} <= kinds
        assert events[0] == PresenceChanged(True)
        assert BpmUpdated(60) in events
        assert len(p.chart_samples) == p.config.chart_buffer_size

    def test_finger_removal_resets_signal(self, clock):
        p = Pipeline(clock=clock)
        _drive(p, clock, range(int(6 * FPS)))
        assert p.conditioner.raw_count > 0
        assert p.validator.bpm_buffer

        p.events.drain_all()
        clock.now += 1 / FPS
        p.process_frame(_plane(5.0))     # lens uncovered / dark

        assert not p.finger_present
        assert p.conditioner.raw_count == 0
        assert len(p.conditioner.filtered) == 0
        assert p.validator.bpm_buffer == ()
        assert p.peaks.frames_since_last_peak == 0
        assert PresenceChanged(False) in p.events.drain_all()

    def test_textured_scene_is_not_a_finger(self, clock):
        p = Pipeline(clock=clock)
        rng = np.random.default_rng(0)
        for i in range(60):
            clock.now = i / FPS
            p.process_frame(rng.integers(0, 255, (100, 100)).astype(np.uint8))
        assert not p.finger_present
        assert p.conditioner.raw_count == 0

    def test_signal_loss_gap_records_no_interval(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=600), clock=clock)
        p.start()
        _drive(p, clock, range(0, int(15 * FPS)))
        before = len(p.rr_intervals)
        # 3 s without a finger, then the pulse resumes.
        _drive(p, clock, range(int(15 * FPS), int(18 * FPS)), value=lambda i: 5.0)
        _drive(p, clock, range(int(18 * FPS), int(35 * FPS)))

        rr = np.array(p.rr_intervals)
        assert len(rr) > before
        assert np.all(rr <= p.config.rr_max_ms)
        assert np.all(np.abs(rr - 1000.0) < 5.0)

    def test_degenerate_frame_is_skipped(self, clock):
        p = Pipeline(clock=clock)
        assert p.process_frame(np.zeros((0, 0), dtype=np.uint8)) is True
        assert p.processed_frames == 1
        assert not p.finger_present

    def test_reentrant_frame_is_dropped(self):
        holder = {}
        inner_results = []

        def clock():
            p = holder.get("p")
            if p is not None and not inner_results:
                inner_results.append(p.process_frame(_plane(120.0)))
            return 0.0

        p = Pipeline(clock=clock)
        holder["p"] = p
        assert p.process_frame(_plane(120.0)) is True
        assert inner_results == [False]
        assert p.dropped_frames == 1
        assert p.processed_frames == 1

    def test_stop_freezes_series(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=600), clock=clock)
        p.start()
        _drive(p, clock, range(int(15 * FPS)))
        frozen = p.stop()
        assert p.state is SessionState.FINISHED
        assert len(frozen) > 5

        _drive(p, clock, range(int(15 * FPS), int(25 * FPS)))
        assert p.rr_intervals == frozen
        assert p.compute_metrics() == compute_hrv_metrics(frozen)

    def test_start_clears_previous_session(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=600), clock=clock)
        p.start()
        _drive(p, clock, range(int(10 * FPS)))
        p.stop()
        p.start()
        assert p.rr_intervals == ()
        assert p.clock_ms() == 0.0
        assert p.validator.anchor is None

    def test_reset_returns_frozen_series_and_clears(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=600), clock=clock)
        p.start()
        _drive(p, clock, range(int(10 * FPS)))
        recorded = p.rr_intervals
        assert p.reset() == recorded
        assert p.state is SessionState.IDLE
        assert p.rr_intervals == ()
        assert p.chart_samples == ()
        assert p.display_bpm == 0

    def test_tick_finishes_session(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=3), clock=clock)
        p.start()
        p.process_frame(_plane(120.0))
        assert [p.tick() for _ in range(3)] == [False, False, True]
        assert p.state is SessionState.FINISHED
        events = p.events.drain_all()
        assert ElapsedUpdated(3, 3) in events
        assert SessionFinished(0) in events
        assert p.tick() is False

    def test_tick_pauses_without_finger(self, clock):
        p = Pipeline(PipelineConfig(measurement_duration_s=3), clock=clock)
        p.start()
        p.process_frame(_plane(5.0))
        for _ in range(5):
            p.tick()
        assert p.session.elapsed_s == 0
        assert p.state is SessionState.MEASURING

    def test_metrics_sentinel_for_short_session(self, clock):
        p = Pipeline(clock=clock)
        p.start()
        _drive(p, clock, range(int(5 * FPS)))
        assert p.compute_metrics() == HRVMetrics.empty()


# ---------------------------------------------------------------------------
# MeasurementSession
# ---------------------------------------------------------------------------

class TestMeasurementSession:

    def test_records_only_while_measuring(self):
        s = MeasurementSession(duration_s=60)
        assert s.record(800.0) is False
        s.start()
        assert s.record(800.0) is True
        assert s.stop() == (800.0,)
        assert s.record(810.0) is False
        assert s.snapshot() == (800.0,)

    def test_stop_is_idempotent(self):
        s = MeasurementSession()
        s.start()
        s.record(900.0)
        assert s.stop() == s.stop() == (900.0,)

    def test_progress(self):
        s = MeasurementSession(duration_s=4)
        s.start()
        s.tick(True)
        assert s.progress == 0.25
        assert s.remaining_s == 3


# ---------------------------------------------------------------------------
# EventChannel
# ---------------------------------------------------------------------------

class TestEventChannel:

    def test_full_queue_drops_instead_of_blocking(self):
        ch = EventChannel(maxsize=2)
        assert ch.publish(BpmUpdated(60)) is True
        assert ch.publish(BpmUpdated(61)) is True
        assert ch.publish(BpmUpdated(62)) is False
        assert ch.dropped == 1
        assert ch.drain_all() == [BpmUpdated(60), BpmUpdated(61)]
        assert len(ch) == 0


# ---------------------------------------------------------------------------
# PipelineConfig
# ---------------------------------------------------------------------------

class TestPipelineConfig:

    def test_defaults(self):
        cfg = PipelineConfig()
        assert (cfg.rr_min_ms, cfg.rr_max_ms) == (375.0, 1500.0)
        assert cfg.artifact_rule == "fixed"
        assert cfg.fps == pytest.approx(30.0, abs=0.01)

    def test_permissive_preset(self):
        cfg = PipelineConfig.permissive(refractory_frames=10)
        assert cfg.rr_min_ms == 300.0
        assert cfg.artifact_rule == "adaptive"
        assert cfg.refractory_frames == 10

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"rr_min_ms": 1600.0},
            {"artifact_rule": "median"},
            {"bpm_buffer_size": 10},
            {"brightness_min": 300.0},
            {"gap_threshold_ms": 1000.0},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        with pytest.raises(ValueError):
            PipelineConfig(**kwargs)


# ---------------------------------------------------------------------------
# Report & visualiser
# ---------------------------------------------------------------------------

class TestReport:

    def test_report_lines(self):
        m = compute_hrv_metrics([800.0] * 25)
        text = format_report(m, avg_bpm=75, beats=25,
                             timestamp=datetime.datetime(2024, 1, 2, 3, 4, 5))
        lines = text.splitlines()
        assert "Date: 2024-01-02 03:04:05" in lines
        assert "Avg BPM: 75" in lines
        assert "Total Beats: 25" in lines
        assert "SDNN: 0.0 ms" in lines
        assert "RMSSD: 0.0 ms" in lines
        assert "pNN50: 0.0 %" in lines
        assert "MxDMn: 0 ms" in lines
        assert "AMo50: 100.0 %" in lines

    def test_report_flags_sentinel(self):
        text = format_report(HRVMetrics.empty(), avg_bpm=0, beats=3)
        assert "not enough beats" in text


class TestVisualizer:

    def test_consume_and_draw(self):
        vis = Visualizer(resolution=(320, 240))
        vis.consume([
            PresenceChanged(True),
            BpmUpdated(72),
            ChartSample(0.1),
            ChartSample(0.5),
            ChartSample(-0.2),
            QualityUpdated(0.8),
            ElapsedUpdated(10, 60),
            SessionFinished(25),
        ])
        assert vis.bpm == 72
        assert vis.quality == 0.8
        assert vis.finished_beats == 25

        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        out = vis.draw(frame, compute_hrv_metrics([800.0] * 25))
        assert out.shape == (240, 320, 3)
        assert out.any()


class TestFingertipCamera:

    def test_read_before_open_raises(self):
        from hrv_monitor.camera import FingertipCamera

        with pytest.raises(RuntimeError):
            FingertipCamera().read_frame()

    def test_frames_on_closed_camera_is_empty(self):
        from hrv_monitor.camera import FingertipCamera

        cam = FingertipCamera()
        assert not cam.is_open
        assert list(cam.frames()) == []
