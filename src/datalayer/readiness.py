"""ReadinessFuture - a one-shot completion signal.

Unlike a bare ``asyncio.Future`` it can be created outside a running event
loop (the layer is usually constructed at import time) and awaited from
whichever loop is running later. Each waiter gets its own loop-bound
future, settled when the signal resolves or rejects.
"""

from __future__ import annotations

import asyncio
from typing import Any


class ReadinessFuture:
    """Resolvable/rejectable signal that any number of coroutines can await."""

    def __init__(self) -> None:
        self._done = False
        self._value: Any = None
        self._error: BaseException | None = None
        self._waiters: list[asyncio.Future] = []

    def done(self) -> bool:
        return self._done

    def resolve(self, value: Any = None) -> None:
        """Settle successfully. Later calls are ignored."""
        if self._done:
            return
        self._done = True
        self._value = value
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(value)
        self._waiters.clear()

    def reject(self, error: BaseException) -> None:
        """Settle with ``error``. Later calls are ignored."""
        if self._done:
            return
        self._done = True
        self._error = error
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_exception(error)
        self._waiters.clear()

    def result(self) -> Any:
        """Return the value (or raise the error) of a settled signal."""
        if not self._done:
            raise asyncio.InvalidStateError("ReadinessFuture is not settled yet")
        if self._error is not None:
            raise self._error
        return self._value

    async def wait(self) -> Any:
        if self._done:
            return self.result()
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter
