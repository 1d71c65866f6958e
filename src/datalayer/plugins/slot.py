"""PluginSlot - per-plugin lifecycle record owned by the layer.

State machine:

    QUEUED -> LOADING -> READY
                      -> FAILED

READY and FAILED are terminal. A slot is loaded at most once; everyone
waiting on it shares the same ReadinessFuture.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from datalayer.errors import LifecycleError, PluginLoadError
from datalayer.plugins.base import PluginDescriptor
from datalayer.readiness import ReadinessFuture

logger = logging.getLogger(__name__)


class PluginStatus(str, Enum):
    QUEUED = "queued"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS: dict[PluginStatus, set[PluginStatus]] = {
    PluginStatus.QUEUED: {PluginStatus.LOADING, PluginStatus.FAILED},
    PluginStatus.LOADING: {PluginStatus.READY, PluginStatus.FAILED},
    PluginStatus.READY: set(),
    PluginStatus.FAILED: set(),
}


class PluginSlot:
    """Wraps one PluginDescriptor plus its lifecycle status and instance."""

    def __init__(self, descriptor: PluginDescriptor) -> None:
        self.descriptor = descriptor
        self.status = PluginStatus.QUEUED
        self.instance: Any = None
        self.error: PluginLoadError | None = None
        self._loaded = ReadinessFuture()

    @property
    def plugin_id(self) -> str:
        return self.descriptor.plugin_id

    @property
    def is_terminal(self) -> bool:
        return self.status in (PluginStatus.READY, PluginStatus.FAILED)

    def _transition(self, new: PluginStatus) -> None:
        if new not in _TRANSITIONS[self.status]:
            raise LifecycleError(
                f"Plugin '{self.plugin_id}' cannot go from "
                f"{self.status.value} to {new.value}"
            )
        logger.debug(f"Plugin {self.plugin_id}: {self.status.value} -> {new.value}")
        self.status = new

    def mark_loading(self) -> None:
        self._transition(PluginStatus.LOADING)

    def mark_ready(self, instance: Any) -> None:
        self._transition(PluginStatus.READY)
        self.instance = instance
        self._loaded.resolve(instance)

    def mark_failed(self, error: PluginLoadError | str) -> None:
        """Move to FAILED and reject everyone waiting on this slot.

        Also usable by callers that impose their own load timeout.
        """
        if isinstance(error, str):
            error = PluginLoadError(self.plugin_id, error)
        self._transition(PluginStatus.FAILED)
        self.error = error
        self._loaded.reject(error)

    async def wait(self) -> Any:
        """Wait for a terminal state; return the instance or raise PluginLoadError."""
        return await self._loaded.wait()

    @property
    def accepts_events(self) -> bool:
        return self.status is PluginStatus.READY and callable(
            getattr(self.instance, "handle_event", None)
        )

    def deliver(self, name: str, payload: Any, timestamp: float) -> None:
        """Hand one event to the plugin instance, honouring its opt-out."""
        should_receive = getattr(self.instance, "should_receive_event", None)
        if callable(should_receive) and should_receive(name, payload) is False:
            return
        self.instance.handle_event(name, payload, timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.plugin_id,
            "status": self.status.value,
            "test": self.descriptor.test,
            "error": str(self.error) if self.error else None,
        }

    def __repr__(self) -> str:
        return f"<PluginSlot {self.plugin_id} {self.status.value}>"
