"""Datalayer plugin system.

Plugins are selected by activation rule, loaded asynchronously through a
per-plugin slot, and receive broadcast events once ready (after a replay
of everything they missed while loading).
"""

from datalayer.plugins.base import Plugin, PluginDescriptor, derive_plugin_id
from datalayer.plugins.loader import PluginLoader
from datalayer.plugins.slot import PluginSlot, PluginStatus

__all__ = [
    "Plugin",
    "PluginDescriptor",
    "PluginLoader",
    "PluginSlot",
    "PluginStatus",
    "derive_plugin_id",
]
