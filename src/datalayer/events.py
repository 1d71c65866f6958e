"""BroadcastLog - append-only history of broadcast events.

Every broadcast lands here, whether or not any plugin is ready to receive
it. A plugin that becomes ready later gets the whole history replayed in
original call order, so it never misses events that fired while it was
still loading.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterator, Protocol


@dataclass(frozen=True)
class EventRecord:
    """One broadcast event."""

    name: str
    payload: Any
    timestamp: float


class EventSink(Protocol):
    def deliver(self, name: str, payload: Any, timestamp: float) -> None: ...


class BroadcastLog:
    """Ordered, append-only sequence of EventRecords."""

    def __init__(self) -> None:
        self._records: list[EventRecord] = []

    def append(self, name: str, payload: Any = None, timestamp: float | None = None) -> EventRecord:
        """Record an event, stamped now unless ``timestamp`` is given."""
        if timestamp is None:
            timestamp = time.time()
        record = EventRecord(name=name, payload=payload, timestamp=timestamp)
        self._records.append(record)
        return record

    def replay(self, sink: EventSink) -> int:
        """Deliver every record, in order, to ``sink.deliver``.

        Records appended while the replay is running are not part of it;
        the caller delivers those as live events afterwards.

        Returns:
            Number of records delivered.
        """
        snapshot = tuple(self._records)
        for record in snapshot:
            sink.deliver(record.name, record.payload, record.timestamp)
        return len(snapshot)

    def all(self) -> tuple[EventRecord, ...]:
        return tuple(self._records)

    def names(self) -> list[str]:
        return [r.name for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EventRecord]:
        return iter(tuple(self._records))
