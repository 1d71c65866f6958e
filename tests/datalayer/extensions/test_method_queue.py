"""Tests for MethodQueue - calls pushed before the API exists."""
from __future__ import annotations

import asyncio

import pytest

from datalayer.errors import MethodQueueError
from datalayer.extensions.method_queue import MethodQueue


class FakeApi:
    """Minimal API surface recording the calls it receives."""

    def __init__(self):
        self.calls = []

    def broadcast(self, name, payload=None):
        self.calls.append(("broadcast", name, payload))
        return name

    def explode(self):
        raise RuntimeError("boom")

    async def fetch(self, value):
        self.calls.append(("fetch", value))
        return value

    async def lookup(self, plugin_id):
        await asyncio.sleep(0)
        raise LookupError(f"no plugin {plugin_id}")

    def _private(self):
        self.calls.append(("_private",))


@pytest.mark.unit
class TestQueueing:

    def test_push_before_drain_queues(self):
        """Calls pushed before drain() are held."""
        q = MethodQueue(maxsize=10)
        assert q.push(["broadcast", "a"]) is None
        assert len(q) == 1
        assert not q.attached

    def test_drain_runs_fifo(self):
        """drain() executes held calls oldest first."""
        q = MethodQueue(maxsize=10)
        api = FakeApi()
        q.push(["broadcast", "a", {"n": 1}])
        q.push(("broadcast", "b"))
        assert q.drain(api) == 2
        assert api.calls == [("broadcast", "a", {"n": 1}), ("broadcast", "b", None)]
        assert len(q) == 0
        assert q.attached

    def test_full_queue_drops_oldest(self):
        """A full queue drops its oldest call."""
        q = MethodQueue(maxsize=2)
        api = FakeApi()
        for name in ("a", "b", "c"):
            q.push(["broadcast", name])
        assert len(q) == 2
        q.drain(api)
        assert [c[1] for c in api.calls] == ["b", "c"]

    def test_default_size_from_settings(self):
        """Queue size defaults to the configured method_queue_size."""
        from datalayer.config import settings
        assert MethodQueue().maxsize == settings.method_queue_size


@pytest.mark.unit
class TestAfterDrain:

    def test_push_executes_immediately(self):
        """After drain(), push() runs the call right away."""
        q = MethodQueue(maxsize=10)
        api = FakeApi()
        q.drain(api)
        assert q.push(["broadcast", "now"]) == "now"
        assert api.calls == [("broadcast", "now", None)]
        assert len(q) == 0

    def test_unknown_method_raises(self):
        """Unknown method names raise MethodQueueError."""
        q = MethodQueue(maxsize=10)
        q.drain(FakeApi())
        with pytest.raises(MethodQueueError, match='method "nope" not found in FakeApi'):
            q.push(["nope"])

    def test_private_method_rejected(self):
        """Underscore names are never dispatched."""
        q = MethodQueue(maxsize=10)
        api = FakeApi()
        q.drain(api)
        with pytest.raises(MethodQueueError):
            q.push(["_private"])
        assert api.calls == []

    def test_empty_call_rejected(self):
        """An empty call is rejected."""
        q = MethodQueue(maxsize=10)
        q.drain(FakeApi())
        with pytest.raises(MethodQueueError, match="empty"):
            q.push([])


@pytest.mark.unit
class TestDrainErrors:

    def test_failing_calls_are_skipped(self):
        """A failing call does not stop the rest of the drain."""
        q = MethodQueue(maxsize=10)
        api = FakeApi()
        q.push(["broadcast", "a"])
        q.push(["nope"])
        q.push(["explode"])
        q.push(["broadcast", "b"])
        assert q.drain(api) == 2
        assert [c[1] for c in api.calls] == ["a", "b"]

    def test_coroutine_method_without_loop_is_skipped(self):
        """Coroutine methods need a running loop; without one they are skipped."""
        q = MethodQueue(maxsize=10)
        api = FakeApi()
        q.push(["fetch", 1])
        assert q.drain(api) == 0
        assert api.calls == []

    def test_coroutine_method_scheduled_inside_loop(self):
        """Inside a loop coroutine methods are scheduled as tasks."""
        async def _test():
            q = MethodQueue(maxsize=10)
            api = FakeApi()
            q.drain(api)
            task = q.push(["fetch", 7])
            assert isinstance(task, asyncio.Task)
            return await task, api.calls

        result, calls = asyncio.run(_test())
        assert result == 7
        assert calls == [("fetch", 7)]

    def test_failed_coroutine_call_is_tracked_and_logged(self, caplog):
        """Tasks for queued coroutine calls are kept until done and their failures logged."""
        async def _test():
            q = MethodQueue(maxsize=10)
            q.push(["lookup", "test/missing"])
            assert q.drain(FakeApi()) == 1
            assert len(q._tasks) == 1
            for _ in range(5):
                await asyncio.sleep(0)
            return q

        q = asyncio.run(_test())
        assert len(q._tasks) == 0
        assert 'Method queue call "lookup" failed: no plugin test/missing' in caplog.text
