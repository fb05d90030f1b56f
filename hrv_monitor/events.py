"""
Observer channel between the pipeline and whatever displays its output.

The pipeline publishes small immutable events; a consumer (the OpenCV
overlay, a headless logger, a test) drains them whenever it gets around
to it.  Publishing never blocks: when the queue is full the event is
dropped.
"""

from __future__ import annotations

import logging
import queue
from typing import Iterator, List, NamedTuple, Union

logger = logging.getLogger(__name__)


class PresenceChanged(NamedTuple):
    present: bool


class BpmUpdated(NamedTuple):
    bpm: int


class ChartSample(NamedTuple):
    value: float


class QualityUpdated(NamedTuple):
    score: float


class ElapsedUpdated(NamedTuple):
    seconds: int
    duration: int


class SessionFinished(NamedTuple):
    beats: int


Event = Union[
    PresenceChanged, BpmUpdated, ChartSample, QualityUpdated, ElapsedUpdated, SessionFinished
]


class EventChannel:
    """
    Bounded, non-blocking event queue.

    Parameters
    ----------
    maxsize:
        Maximum number of undrained events.  Default: 1024.
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self._queue: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        self._dropped = 0

    def publish(self, event: Event) -> bool:
        """Enqueue *event*; return *False* if it was dropped."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._dropped += 1
            logger.debug("Event queue full; dropped %s.", type(event).__name__)
            return False
        return True

    def drain(self) -> Iterator[Event]:
        """Yield every event queued so far, oldest first."""
        while True:
            try:
                yield self._queue.get_nowait()
            except queue.Empty:
                return

    def drain_all(self) -> List[Event]:
        return list(self.drain())

    @property
    def dropped(self) -> int:
        return self._dropped

    def __len__(self) -> int:
        return self._queue.qsize()
