"""
Measurement session: idle → measuring → finished.

The session owns the RR series HRV is computed from.  Intervals are only
recorded while measuring; stopping freezes the series, and the frozen
snapshot is what the metrics calculator sees.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Tuple

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    MEASURING = "measuring"
    FINISHED = "finished"


class MeasurementSession:
    """
    RR series plus elapsed-time bookkeeping for one measurement.

    Parameters
    ----------
    duration_s:
        Finger-present seconds after which :meth:`tick` finishes the
        session.  Default: 60.
    """

    def __init__(self, duration_s: int = 60) -> None:
        self.duration_s = duration_s
        self._state = SessionState.IDLE
        self._rr: List[float] = []
        self._frozen: Tuple[float, ...] = ()
        self._elapsed_s = 0

    def start(self) -> None:
        self._rr = []
        self._frozen = ()
        self._elapsed_s = 0
        self._state = SessionState.MEASURING
        logger.info("Measurement started (%d s).", self.duration_s)

    def record(self, rr_ms: float) -> bool:
        """Append *rr_ms* if measuring; return whether it was recorded."""
        if self._state is not SessionState.MEASURING:
            return False
        self._rr.append(rr_ms)
        return True

    def tick(self, finger_present: bool) -> bool:
        """
        Advance the elapsed counter by one second if a finger is present.

        Returns *True* when this tick completed the session.
        """
        if self._state is not SessionState.MEASURING or not finger_present:
            return False
        self._elapsed_s += 1
        if self._elapsed_s >= self.duration_s:
            self.stop()
            return True
        return False

    def stop(self) -> Tuple[float, ...]:
        """Freeze the RR series and return it.  Idempotent."""
        if self._state is SessionState.MEASURING:
            self._frozen = tuple(self._rr)
            self._state = SessionState.FINISHED
            logger.info(
                "Measurement finished: %d RR intervals in %d s.",
                len(self._frozen), self._elapsed_s,
            )
        return self._frozen

    def reset(self) -> None:
        self._state = SessionState.IDLE
        self._rr = []
        self._frozen = ()
        self._elapsed_s = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_measuring(self) -> bool:
        return self._state is SessionState.MEASURING

    @property
    def elapsed_s(self) -> int:
        return self._elapsed_s

    @property
    def remaining_s(self) -> int:
        return max(0, self.duration_s - self._elapsed_s)

    @property
    def progress(self) -> float:
        return min(1.0, self._elapsed_s / self.duration_s)

    def snapshot(self) -> Tuple[float, ...]:
        """Immutable copy of the RR series (frozen once finished)."""
        if self._state is SessionState.FINISHED:
            return self._frozen
        return tuple(self._rr)

    def __len__(self) -> int:
        return len(self.snapshot())
