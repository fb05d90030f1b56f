"""
Pipeline configuration.

Every threshold used between the camera and the HRV report is named here,
so the different tunings of the pulse pipeline are expressed as parameter
sets rather than separate code paths.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

ARTIFACT_RULES = ("fixed", "adaptive")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Named parameters of the pulse pipeline.

    Parameters
    ----------
    roi_half_range:
        Half side length (pixels) of the centred sampling box.  Default: 40
        (an 80 × 80 box, sampled every other pixel).
    brightness_min, brightness_max:
        Open interval the ROI mean must lie in for a finger to be present.
    uniformity_threshold:
        Maximum ROI standard deviation.  A lens covered by tissue is nearly
        uniform; an open scene is not.
    presence_debounce_frames:
        Consecutive frames that must disagree with the current presence
        state before it flips.  1 means immediately.
    raw_buffer_size:
        Capacity of the raw and filtered ring buffers.
    smoothing_window:
        Moving-average length; also the number of raw samples required
        before any filtered output is produced.
    baseline_window:
        Number of trailing raw samples averaged for baseline removal.
    quality_window, quality_scale:
        Signal quality is ``(max - min) / quality_scale`` over the last
        ``quality_window`` filtered samples, clamped to [0, 1].
    threshold_window, threshold_fraction:
        The peak threshold is ``min + threshold_fraction * (max - min)`` over
        the last ``threshold_window`` filtered samples.
    refractory_frames:
        Frames that must elapse after a peak before the next may be declared.
        12 frames ≈ 400 ms at 30 fps.
    frame_duration_ms:
        Nominal inter-frame period used to convert the interpolated offset
        into milliseconds.
    interpolate:
        Refine peak times with 3-point parabolic interpolation.
    rr_min_ms, rr_max_ms:
        Physiological band for accepted RR intervals.
    gap_threshold_ms:
        RR intervals longer than this are treated as signal loss.
    artifact_rule:
        ``"fixed"`` rejects beats deviating more than
        ``artifact_bpm_threshold`` from the running BPM average;
        ``"adaptive"`` uses ``max(artifact_bpm_threshold,
        artifact_sigma * std)``.
    bpm_buffer_size:
        Capacity of the display-smoothing BPM buffer (5 – 8).
    chart_buffer_size:
        Number of filtered samples kept for the live chart.
    min_intervals:
        RR count below which HRV metrics are the zeroed sentinel.
    measurement_duration_s:
        Length of a measurement session in finger-present seconds.
    event_queue_size:
        Capacity of the observer event queue.
    """

    # ROI sampler
    roi_half_range: int = 40

    # Finger presence
    brightness_min: float = 30.0
    brightness_max: float = 255.0
    uniformity_threshold: float = 30.0
    presence_debounce_frames: int = 1

    # Conditioner
    raw_buffer_size: int = 256
    smoothing_window: int = 5
    baseline_window: int = 30
    quality_window: int = 60
    quality_scale: float = 5.0

    # Peak detector
    threshold_window: int = 60
    threshold_fraction: float = 0.5
    refractory_frames: int = 12
    frame_duration_ms: float = 33.33
    interpolate: bool = True

    # RR validator
    rr_min_ms: float = 375.0
    rr_max_ms: float = 1500.0
    gap_threshold_ms: float = 2000.0
    artifact_rule: str = "fixed"
    artifact_bpm_threshold: float = 20.0
    artifact_sigma: float = 2.5
    bpm_buffer_size: int = 5

    # Session / output
    chart_buffer_size: int = 150
    min_intervals: int = 20
    measurement_duration_s: int = 60
    event_queue_size: int = 1024

    def __post_init__(self) -> None:
        if self.roi_half_range <= 0:
            raise ValueError("roi_half_range must be positive")
        if self.brightness_min >= self.brightness_max:
            raise ValueError("brightness_min must be below brightness_max")
        if self.presence_debounce_frames < 1:
            raise ValueError("presence_debounce_frames must be >= 1")
        if self.smoothing_window < 1 or self.baseline_window < 1:
            raise ValueError("smoothing/baseline windows must be >= 1")
        if self.raw_buffer_size < self.baseline_window:
            raise ValueError("raw_buffer_size must hold the baseline window")
        if not 0.0 <= self.threshold_fraction <= 1.0:
            raise ValueError("threshold_fraction must lie in [0, 1]")
        if self.refractory_frames < 0:
            raise ValueError("refractory_frames must be >= 0")
        if self.frame_duration_ms <= 0:
            raise ValueError("frame_duration_ms must be positive")
        if not 0 < self.rr_min_ms < self.rr_max_ms:
            raise ValueError("RR bounds must satisfy 0 < rr_min_ms < rr_max_ms")
        if self.gap_threshold_ms < self.rr_max_ms:
            raise ValueError("gap_threshold_ms must not be below rr_max_ms")
        if self.artifact_rule not in ARTIFACT_RULES:
            raise ValueError(
                f"artifact_rule must be one of {ARTIFACT_RULES}, got {self.artifact_rule!r}"
            )
        if not 5 <= self.bpm_buffer_size <= 8:
            raise ValueError("bpm_buffer_size must lie in [5, 8]")
        if self.min_intervals < 2:
            raise ValueError("min_intervals must be >= 2")
        if self.measurement_duration_s <= 0:
            raise ValueError("measurement_duration_s must be positive")

    @classmethod
    def permissive(cls, **overrides) -> "PipelineConfig":
        """
        Wider RR band (300 – 1500 ms, up to 200 BPM) with the adaptive
        ``max(20, 2.5σ)`` artifact rule.
        """
        base = cls(rr_min_ms=300.0, artifact_rule="adaptive")
        return replace(base, **overrides)

    @property
    def fps(self) -> float:
        """Nominal frame rate implied by ``frame_duration_ms``."""
        return 1000.0 / self.frame_duration_ms
