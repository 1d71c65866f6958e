"""Method queue - call the layer's API before it exists.

Host code that runs ahead of ``initialize()`` pushes calls of the form
``[method_name, *args]``. Once the layer is initialized it drains the queue
against its public API, in FIFO order; after that, pushes execute
immediately.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Sequence

from datalayer.config import settings
from datalayer.errors import MethodQueueError

logger = logging.getLogger(__name__)


class MethodQueue:
    """Bounded FIFO of API calls with an explicit drain()."""

    def __init__(self, maxsize: int | None = None) -> None:
        self.maxsize = maxsize or settings.method_queue_size
        self._pending: deque[tuple] = deque()
        self._api: Any = None
        self._tasks: set[asyncio.Future] = set()

    @property
    def attached(self) -> bool:
        return self._api is not None

    def __len__(self) -> int:
        return len(self._pending)

    def push(self, call: Sequence[Any]) -> Any:
        """Queue ``call``, or execute it right away once drained.

        Returns:
            The method's return value when executed immediately
            (an asyncio.Task for coroutine methods), else None.

        Raises:
            MethodQueueError: When executing immediately and the method
                does not exist.
        """
        call = tuple(call)
        if self._api is not None:
            return self._execute(self._api, call)

        if len(self._pending) >= self.maxsize:
            # Drop oldest so the most recent calls survive
            dropped = self._pending.popleft()
            logger.warning(f"Method queue full ({self.maxsize}), dropped call {dropped[:1]}")
        self._pending.append(call)
        return None

    def drain(self, api: Any) -> int:
        """Attach ``api`` and execute all pending calls in FIFO order.

        A failing call is logged and skipped; the rest still run.

        Returns:
            Number of calls that executed without error.
        """
        self._api = api
        executed = 0
        while self._pending:
            call = self._pending.popleft()
            try:
                self._execute(api, call)
                executed += 1
            except MethodQueueError as e:
                logger.error(f"Method queue: {e}")
            except Exception as e:
                logger.error(f"Method queue call {call[:1]} failed: {e}")
        return executed

    def _execute(self, api: Any, call: tuple) -> Any:
        if not call:
            raise MethodQueueError("empty method queue call")
        name, args = call[0], call[1:]
        method = None
        if isinstance(name, str) and not name.startswith("_"):
            method = getattr(api, name, None)
        if not callable(method):
            raise MethodQueueError(f'method "{name}" not found in {type(api).__name__}')

        result = method(*args)
        if inspect.isawaitable(result):
            try:
                asyncio.get_running_loop()
            except RuntimeError as e:
                if inspect.iscoroutine(result):
                    result.close()
                raise MethodQueueError(f'method "{name}" needs a running event loop') from e
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_task_done(name, t))
            return task
        return result

    def _on_task_done(self, name: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f'Method queue call "{name}" failed: {error}')
