"""Value types passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional


class FrameSample(NamedTuple):
    """ROI luminance statistics of one frame."""

    timestamp: float      # ms on the pipeline's monotonic clock
    mean_intensity: float
    std_dev: float


class FingerPresenceState(NamedTuple):
    """Debounced presence flag plus whether it flipped on this frame."""

    present: bool
    changed: bool


class ConditionedSample(NamedTuple):
    """One zero-centred output sample of the signal conditioner."""

    timestamp: float
    filtered_value: float


class PeakEvent(NamedTuple):
    """A detected pulse peak with sub-frame timing."""

    timestamp_ms: float


class RRStatus(str, Enum):
    ANCHORED = "anchored"
    ACCEPTED = "accepted"
    OUT_OF_RANGE = "out_of_range"
    ARTIFACT = "artifact"
    SIGNAL_LOSS = "signal_loss"


class RRDecision(NamedTuple):
    """Outcome of validating one peak against the previous anchor."""

    status: RRStatus
    rr_ms: Optional[float] = None
    bpm: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return self.status is RRStatus.ACCEPTED


@dataclass(frozen=True)
class HRVMetrics:
    """
    Time-domain and Baevsky HRV statistics.

    All fields are always present.  A result computed from too few RR
    intervals has every field zeroed (see :meth:`empty`).
    """

    sdnn: float = 0.0
    rmssd: float = 0.0
    pnn50: float = 0.0
    mxdmn: float = 0.0
    amo50: float = 0.0
    mean_rr: float = 0.0
    mode_rr: float = 0.0
    stress_index: float = 0.0
    n_intervals: int = 0

    @classmethod
    def empty(cls) -> "HRVMetrics":
        return cls()

    @property
    def is_valid(self) -> bool:
        return self.n_intervals > 0

    @property
    def mean_bpm(self) -> float:
        return 60000.0 / self.mean_rr if self.mean_rr > 0 else 0.0
