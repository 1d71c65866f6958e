"""Unit tests for BroadcastLog - append-only history and replay."""
from __future__ import annotations

import dataclasses

import pytest

from datalayer.events import BroadcastLog, EventRecord


class ListSink:
    def __init__(self):
        self.received = []

    def deliver(self, name, payload, timestamp):
        self.received.append((name, payload))


@pytest.mark.unit
class TestBroadcastLog:

    def test_append_returns_record(self):
        """append() returns a stamped EventRecord."""
        log = BroadcastLog()
        record = log.append("pageload", {"a": 1})
        assert isinstance(record, EventRecord)
        assert record.name == "pageload"
        assert record.payload == {"a": 1}
        assert record.timestamp > 0

    def test_append_keeps_given_timestamp(self):
        """An explicit timestamp is stored as-is."""
        record = BroadcastLog().append("click", None, 123.5)
        assert record.timestamp == 123.5

    def test_records_are_immutable(self):
        """EventRecords are frozen."""
        record = BroadcastLog().append("x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.name = "y"

    def test_all_preserves_insertion_order(self):
        """The log keeps call order, duplicates included."""
        log = BroadcastLog()
        for name in ("a", "b", "a", "c"):
            log.append(name)
        assert [r.name for r in log.all()] == ["a", "b", "a", "c"]
        assert log.names() == ["a", "b", "a", "c"]
        assert len(log) == 4

    def test_all_is_read_only_view(self):
        """all() returns a snapshot tuple."""
        log = BroadcastLog()
        log.append("a")
        view = log.all()
        assert isinstance(view, tuple)
        log.append("b")
        assert len(view) == 1

    def test_replay_delivers_in_order_without_dedup(self):
        """replay() delivers every record in order."""
        log = BroadcastLog()
        log.append("e1", 1)
        log.append("e2", 2)
        log.append("e1", 1)
        sink = ListSink()
        assert log.replay(sink) == 3
        assert sink.received == [("e1", 1), ("e2", 2), ("e1", 1)]

    def test_replay_empty_log(self):
        """Replaying an empty log delivers nothing."""
        sink = ListSink()
        assert BroadcastLog().replay(sink) == 0
        assert sink.received == []

    def test_replay_ignores_records_appended_during_replay(self):
        """Records added during a replay are left for live delivery."""
        log = BroadcastLog()
        log.append("first")

        class AppendingSink(ListSink):
            def deliver(self, name, payload, timestamp):
                super().deliver(name, payload, timestamp)
                log.append("late")

        sink = AppendingSink()
        log.replay(sink)
        assert sink.received == [("first", None)]
        assert log.names() == ["first", "late"]
