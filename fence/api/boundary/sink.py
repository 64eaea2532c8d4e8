"""
Where built boundary events go.

Production writes one compact JSON line per event to stdout (`StreamSink`).
Tests and the gate's stand-in keep events in memory (`RecordingSink`) so they
can be inspected instead of printed.
"""

from __future__ import annotations

import abc
from typing import IO, List

from fence.api.boundary.schema import BoundaryEvent


class EventSink(abc.ABC):
    @abc.abstractmethod
    def emit(self, event: BoundaryEvent) -> None:
        """Accept one finished event."""


class StreamSink(EventSink):
    def __init__(self, stream: IO[str]):
        self._stream = stream

    def emit(self, event: BoundaryEvent) -> None:
        self._stream.write(event.to_json() + "\n")
        self._stream.flush()


class RecordingSink(EventSink):
    def __init__(self) -> None:
        self.events: List[BoundaryEvent] = []

    def emit(self, event: BoundaryEvent) -> None:
        self.events.append(event)

    @property
    def count(self) -> int:
        return len(self.events)
