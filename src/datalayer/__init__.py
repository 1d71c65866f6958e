"""datalayer - in-process event broadcast and plugin lifecycle orchestrator.

A single Datalayer collects page-level data, decides through declarative
rules which plugins become active, loads them asynchronously, and fans out
named events to them with ordering and replay guarantees.
"""

from datalayer.errors import (
    DataValidationError,
    DatalayerError,
    EventHandlingError,
    InitializationError,
    LifecycleError,
    MethodQueueError,
    PluginLoadError,
    RuleEvaluationError,
)
from datalayer.events import BroadcastLog, EventRecord
from datalayer.extensions import Extension, MethodQueue, RenderTimeData
from datalayer.layer import Datalayer, LayerState
from datalayer.models import GlobalDataModel
from datalayer.plugins import Plugin, PluginDescriptor, PluginLoader, PluginSlot, PluginStatus
from datalayer.readiness import ReadinessFuture
from datalayer.rules import RuleEvaluator, TestRule, evaluate_rule
from datalayer.storage import JsonFileStore, KeyValueStore, MemoryStore
from datalayer.utils import deep_extend

__version__ = "0.1.0"

__all__ = [
    "BroadcastLog",
    "DataValidationError",
    "Datalayer",
    "DatalayerError",
    "EventHandlingError",
    "EventRecord",
    "Extension",
    "GlobalDataModel",
    "InitializationError",
    "JsonFileStore",
    "KeyValueStore",
    "LayerState",
    "LifecycleError",
    "MemoryStore",
    "MethodQueue",
    "MethodQueueError",
    "Plugin",
    "PluginDescriptor",
    "PluginLoadError",
    "PluginLoader",
    "PluginSlot",
    "PluginStatus",
    "ReadinessFuture",
    "RenderTimeData",
    "RuleEvaluationError",
    "RuleEvaluator",
    "TestRule",
    "deep_extend",
    "evaluate_rule",
]
