"""Exception hierarchy for the datalayer.

Only DataValidationError and InitializationError escape ``initialize()``.
Everything else is local to one plugin or one queued call: it is raised at
the point of failure, caught by the loop iterating plugins/calls, logged,
and recorded on the affected slot.
"""

from __future__ import annotations


class DatalayerError(Exception):
    """Base class for all datalayer errors."""


class DataValidationError(DatalayerError):
    """Required global data is missing or invalid."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class InitializationError(DatalayerError):
    """An extension's before-initialize hook failed."""


class RuleEvaluationError(DatalayerError):
    """An activation rule predicate raised."""

    def __init__(self, plugin_id: str | None, cause: BaseException) -> None:
        super().__init__(f"Rule for plugin '{plugin_id}' raised: {cause!r}")
        self.plugin_id = plugin_id
        self.__cause__ = cause


class PluginLoadError(DatalayerError):
    """A plugin could not be resolved or constructed."""

    def __init__(self, plugin_id: str, reason: str) -> None:
        super().__init__(f"Plugin '{plugin_id}' failed to load: {reason}")
        self.plugin_id = plugin_id
        self.reason = reason


class EventHandlingError(DatalayerError):
    """A plugin's event handler raised during delivery."""

    def __init__(self, plugin_id: str, event_name: str, cause: BaseException) -> None:
        super().__init__(
            f"Plugin '{plugin_id}' failed handling event '{event_name}': {cause!r}"
        )
        self.plugin_id = plugin_id
        self.event_name = event_name
        self.__cause__ = cause


class MethodQueueError(DatalayerError):
    """A queued call named a method the API does not expose."""


class LifecycleError(DatalayerError):
    """Illegal plugin slot state transition."""
