"""Plugin loader - resolve string identifiers to constructible plugin types.

Descriptors may name their plugin by string instead of passing the class.
Identifiers are resolved, in order, from:
1. Explicit registration via register()
2. Entry points (pip packages declaring the 'datalayer.plugins' group)
3. Import paths: 'package.module:Attr' or 'package.module.Attr'
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from importlib.metadata import entry_points
from typing import Any, Callable

from datalayer.config import settings
from datalayer.errors import PluginLoadError

logger = logging.getLogger(__name__)


class PluginLoader:
    """Resolves plugin identifiers; results are cached per identifier."""

    def __init__(self, entry_point_group: str | None = None) -> None:
        self.entry_point_group = entry_point_group or settings.plugin_entry_point_group
        self._registry: dict[str, Callable[..., Any]] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def register(self, identifier: str, plugin_type: Callable[..., Any]) -> None:
        """Register a plugin type under ``identifier``.

        Raises ValueError if the identifier is already registered.
        """
        if identifier in self._registry:
            raise ValueError(f"Plugin identifier '{identifier}' already registered")
        self._registry[identifier] = plugin_type
        logger.info(f"Plugin type registered: {identifier}")

    async def load(self, identifier: str) -> Callable[..., Any]:
        """Resolve ``identifier`` to a plugin type.

        Concurrent loads of the same identifier share one resolution.

        Raises:
            PluginLoadError: If the identifier cannot be resolved.
        """
        if identifier in self._registry:
            return self._registry[identifier]

        task = self._inflight.get(identifier)
        if task is None:
            task = asyncio.ensure_future(self._resolve(identifier))
            self._inflight[identifier] = task
        try:
            plugin_type = await asyncio.shield(task)
        finally:
            if task.done():
                self._inflight.pop(identifier, None)

        self._registry.setdefault(identifier, plugin_type)
        return plugin_type

    async def _resolve(self, identifier: str) -> Callable[..., Any]:
        plugin_type = self._from_entry_points(identifier)
        if plugin_type is None:
            plugin_type = self._from_import_path(identifier)
        if not callable(plugin_type):
            raise PluginLoadError(identifier, f"resolved object {plugin_type!r} is not callable")
        return plugin_type

    def _from_entry_points(self, identifier: str) -> Callable[..., Any] | None:
        """Look ``identifier`` up as an entry point name."""
        for ep in entry_points(group=self.entry_point_group):
            if ep.name != identifier:
                continue
            try:
                plugin_type = ep.load()
            except Exception as e:
                raise PluginLoadError(identifier, f"entry point failed to load: {e}") from e
            logger.info(f"Resolved entry point plugin: {identifier}")
            return plugin_type
        return None

    def _from_import_path(self, identifier: str) -> Callable[..., Any]:
        if ":" in identifier:
            module_name, _, attr = identifier.partition(":")
        else:
            module_name, _, attr = identifier.rpartition(".")
        if not module_name or not attr:
            raise PluginLoadError(identifier, "not a registered name, entry point, or import path")

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise PluginLoadError(identifier, f"cannot import {module_name}: {e}") from e

        obj: Any = module
        for part in attr.split("."):
            try:
                obj = getattr(obj, part)
            except AttributeError as e:
                raise PluginLoadError(identifier, f"{module_name} has no attribute {attr}") from e
        logger.debug(f"Resolved plugin import path: {identifier}")
        return obj
