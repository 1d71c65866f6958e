"""Datalayer - collects page data, activates plugins, and broadcasts events.

Lifecycle:
  use() -> initialize() -> [plugins loading] -> when_ready()

initialize() runs, in order:
1. store configuration
2. extension before_initialize hooks, deep-extended into global data
3. validation of the required namespaces (page, site, user)
4. state INITIALIZED + synthetic 'initialize' broadcast
5. activation-rule evaluation -> one PluginSlot per selected plugin
6. concurrent loading; the readiness signal resolves once every slot of
   this initial batch is READY or FAILED
7. extension after_initialize hooks
8. before_parse_dom_node on the optional initial document
9. draining of the method queue against the now-initialized API

Broadcasts are recorded in a BroadcastLog regardless of readiness; each
plugin gets the full log replayed the moment it becomes ready, before any
later live event reaches it.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from loguru import logger
from pydantic import BaseModel

from datalayer.config import DatalayerSettings
from datalayer.config import settings as default_settings
from datalayer.errors import (
    DataValidationError,
    DatalayerError,
    EventHandlingError,
    InitializationError,
    PluginLoadError,
    RuleEvaluationError,
)
from datalayer.events import BroadcastLog
from datalayer.extensions.base import HOOKS, Extension
from datalayer.extensions.method_queue import MethodQueue
from datalayer.models import validate_global_data
from datalayer.plugins.base import PluginDescriptor
from datalayer.plugins.loader import PluginLoader
from datalayer.plugins.slot import PluginSlot, PluginStatus
from datalayer.readiness import ReadinessFuture
from datalayer.rules import RuleEvaluator
from datalayer.storage import JsonFileStore, KeyValueStore, MemoryStore
from datalayer.testmode import resolve_test_mode
from datalayer.utils import deep_extend


class LayerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    READY = "ready"


class _SlotSink:
    """Replay target for a single slot."""

    def __init__(self, layer: "Datalayer", slot: PluginSlot) -> None:
        self._layer = layer
        self._slot = slot

    def deliver(self, name: str, payload: Any, timestamp: float) -> None:
        self._layer._deliver(self._slot, name, payload, timestamp)


class Datalayer:
    """Orchestrates global data, plugin slots, extensions and broadcasts."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        query: str = "",
        settings: Optional[DatalayerSettings] = None,
        loader: Optional[PluginLoader] = None,
        method_queue: Optional[MethodQueue] = None,
    ) -> None:
        """Create an uninitialized layer.

        Args:
            store: Persists the test-mode marker. Defaults to a JsonFileStore
                when ``settings.state_file`` is set, else a MemoryStore.
            query: Current navigation query string; may force test mode on
                (``__dtlrtest__=1``) or off (``__dtlrtest__=0``).
            settings: Overrides the module-level settings.
            loader: Resolves string plugin identifiers.
            method_queue: Queue that host code may already be pushing to.
        """
        self.settings = settings or default_settings
        if store is None:
            store = JsonFileStore(self.settings.state_file) if self.settings.state_file else MemoryStore()
        self.store = store
        self.test_mode_active = resolve_test_mode(
            store,
            query,
            key=self.settings.test_mode_key,
            max_age=self.settings.test_mode_max_age,
        )
        self.rules = RuleEvaluator(self.test_mode_active)
        self.loader = loader or PluginLoader(self.settings.plugin_entry_point_group)
        if method_queue is None:
            method_queue = MethodQueue(self.settings.method_queue_size)
        self.queue = method_queue
        self.log = BroadcastLog()
        self.config: dict[str, Any] = {}
        self.state = LayerState.UNINITIALIZED
        self.event_errors: deque[EventHandlingError] = deque(maxlen=100)

        self._data: dict[str, Any] = {}
        self._extensions: list[Extension] = []
        self._slots: list[PluginSlot] = []
        self._initial_batch: list[PluginSlot] = []
        self._deferred: list[PluginDescriptor] = []
        self._tasks: set[asyncio.Task] = set()
        self._pending_events: deque[tuple[str, Any, float]] = deque()
        self._dispatching = False
        self._ready = ReadinessFuture()

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    def use(self, extension_factory: Callable[["Datalayer"], Extension]) -> "Datalayer":
        """Construct an extension with this layer and register it.

        Returns:
            The layer itself, for chaining.

        Raises:
            TypeError: If the factory does not produce an Extension.
        """
        extension = extension_factory(self)
        if not isinstance(extension, Extension):
            raise TypeError(f"{extension_factory!r} did not produce an Extension")
        if self.state is not LayerState.UNINITIALIZED:
            logger.warning(f"Extension {extension.get_id()} registered after initialize; "
                           "its before_initialize hook will not run")
        self._extensions.append(extension)
        logger.info(f"Extension registered: {extension.get_id()}")
        return self

    def trigger_extension_hook(self, name: str, *args: Any) -> list[Any]:
        """Call hook ``name`` on every extension in registration order.

        Returns:
            The raw return values, one per extension.
        """
        if name not in HOOKS:
            raise ValueError(f"Unknown extension hook: {name}")
        logger.debug(f"Triggering extension hook '{name}'")
        return [getattr(ext, name)(*args) for ext in self._extensions]

    def parse_dom_node(self, node: Any) -> None:
        """Let extensions scan ``node`` (scanning itself lives in extensions)."""
        self.trigger_extension_hook("before_parse_dom_node", node)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(
        self,
        data: Optional[dict[str, Any]] = None,
        plugins: Optional[Iterable[Any]] = None,
        config: Optional[dict[str, Any]] = None,
        model: Optional[type[BaseModel]] = None,
        broadcast_pageload: Optional[bool] = None,
        document: Any = None,
    ) -> bool:
        """Initialize the layer and start loading matching plugins.

        Args:
            data: Initial global data.
            plugins: Plugin descriptors (PluginDescriptor, mapping, class,
                or identifier string).
            config: Free-form configuration, exposed as ``self.config``.
            model: Pydantic model validating the merged global data.
                Defaults to GlobalDataModel.
            broadcast_pageload: Broadcast a 'pageload' event once plugins
                are scheduled. Defaults to ``settings.broadcast_pageload``.
            document: Root node handed to ``parse_dom_node()`` after the
                after_initialize hooks. Skipped when None.

        Returns:
            True on success, False if the layer was already initialized.

        Raises:
            InitializationError: An extension's before_initialize failed.
            DataValidationError: Required global data is missing.
        """
        if self.state is not LayerState.UNINITIALIZED:
            logger.warning("Datalayer already initialized, ignoring initialize()")
            return False

        descriptors = [PluginDescriptor.coerce(p) for p in (plugins or [])]
        self.state = LayerState.INITIALIZING
        self.config = dict(config or {})

        merged = deep_extend({}, data or {})
        try:
            for ext in self._extensions:
                result = ext.before_initialize()
                if inspect.isawaitable(result):
                    result = await result
                if result is None:
                    continue
                if not isinstance(result, dict):
                    raise TypeError(f"expected dict, got {type(result).__name__}")
                merged = deep_extend(merged, result)
        except Exception as e:
            self.state = LayerState.UNINITIALIZED
            raise InitializationError(f"before_initialize hook failed: {e}") from e

        try:
            validate_global_data(merged, model)
        except DataValidationError as e:
            self.state = LayerState.UNINITIALIZED
            logger.error(f"Initialization aborted: {e}")
            raise

        self._data = merged
        self.state = LayerState.INITIALIZED
        logger.info(f"Datalayer initialized (test mode: {self.test_mode_active})")
        self.broadcast("initialize", self.get_data())

        descriptors.extend(self._deferred)
        self._deferred.clear()
        snapshot = self.get_data()
        for descriptor in descriptors:
            slot = self._select(descriptor, snapshot)
            if slot is not None:
                self._initial_batch.append(slot)

        for slot in self._initial_batch:
            self._schedule_load(slot)
        logger.info(f"Selected {len(self._initial_batch)} of {len(descriptors)} plugins")
        if not self._initial_batch:
            self._mark_ready()

        if broadcast_pageload is None:
            broadcast_pageload = self.settings.broadcast_pageload
        if broadcast_pageload:
            self.broadcast("pageload", self.get_data())

        for ext in self._extensions:
            try:
                result = ext.after_initialize()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Extension {ext.get_id()} after_initialize failed: {e}")

        if document is not None:
            try:
                self.parse_dom_node(document)
            except Exception as e:
                logger.error(f"Parsing initial document failed: {e}")

        drained = self.queue.drain(self)
        if drained:
            logger.info(f"Method queue drained: {drained} calls")
        return True

    async def when_ready(self) -> "Datalayer":
        """Wait until every initially selected plugin is READY or FAILED."""
        return await self._ready.wait()

    def _mark_ready(self) -> None:
        self.state = LayerState.READY
        self._ready.resolve(self)
        ready = sum(1 for s in self._initial_batch if s.status is PluginStatus.READY)
        logger.info(f"Datalayer ready: {ready}/{len(self._initial_batch)} plugins loaded")

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def add_plugin(self, plugin: Any) -> Optional[PluginSlot]:
        """Add a plugin outside the initial activation pass.

        Before initialize() the descriptor joins the initial pass. After it,
        the activation rule is still honoured and the plugin is loaded in
        its own task; it receives the full event history once ready.

        Returns:
            The new slot, or None if deferred or not selected.

        Raises:
            DatalayerError: Called after initialize() outside a running
                event loop; no slot is created.
        """
        descriptor = PluginDescriptor.coerce(plugin)
        if self.state in (LayerState.UNINITIALIZED, LayerState.INITIALIZING):
            self._deferred.append(descriptor)
            logger.debug(f"Plugin {descriptor.plugin_id} deferred until initialize()")
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise DatalayerError(
                f"add_plugin({descriptor.plugin_id}) after initialize needs a running event loop"
            ) from e

        slot = self._select(descriptor, self.get_data())
        if slot is not None:
            self._schedule_load(slot, loop)
        return slot

    def _select(self, descriptor: PluginDescriptor, data: dict[str, Any]) -> Optional[PluginSlot]:
        """Evaluate the activation rule and create a slot if it matches."""
        pid = descriptor.plugin_id
        try:
            selected = self.rules.evaluate(descriptor.activation_rule, data, pid)
        except RuleEvaluationError as e:
            logger.error(f"{e} -- plugin excluded")
            return None
        if not selected:
            logger.debug(f"Plugin {pid} not selected by its rule")
            return None
        slot = PluginSlot(descriptor)
        self._slots.append(slot)
        return slot

    def _schedule_load(self, slot: PluginSlot, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        loop = loop or asyncio.get_running_loop()
        task = loop.create_task(self._load(slot))
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_load_done(slot, t))

    def _on_load_done(self, slot: PluginSlot, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # A task cancelled before its first step never enters _load
        if task.cancelled() and not slot.is_terminal:
            slot.mark_failed("load cancelled")
            logger.warning(f"Plugin {slot.plugin_id} failed: load cancelled")
            self._check_initial_batch(slot)

    async def _load(self, slot: PluginSlot) -> None:
        if slot.is_terminal:
            return  # expired before the task got to run
        slot.mark_loading()
        logger.info(f"Loading plugin {slot.plugin_id}")
        try:
            instance = await self._construct(slot)
        except asyncio.CancelledError:
            if not slot.is_terminal:
                slot.mark_failed("load cancelled")
            logger.warning(f"Plugin {slot.plugin_id} failed: load cancelled")
            raise
        except Exception as e:
            error = e if isinstance(e, PluginLoadError) else PluginLoadError(slot.plugin_id, repr(e))
            if not slot.is_terminal:
                slot.mark_failed(error)
            logger.error(str(error))
        else:
            if slot.is_terminal:
                logger.warning(f"Plugin {slot.plugin_id} finished loading after it was "
                               f"marked {slot.status.value}; instance discarded")
            else:
                self._activate(slot, instance)
        finally:
            self._check_initial_batch(slot)

    async def _construct(self, slot: PluginSlot) -> Any:
        descriptor = slot.descriptor
        factory = descriptor.type
        if isinstance(factory, str):
            factory = await self.loader.load(factory)
        if not callable(factory):
            raise PluginLoadError(slot.plugin_id, f"{factory!r} is not a plugin type")

        config = deep_extend(getattr(factory, "default_config", None) or {}, descriptor.config)
        instance = factory(self, self.get_data(), config)
        if inspect.isawaitable(instance):
            instance = await instance
        if instance is None:
            raise PluginLoadError(slot.plugin_id, "factory returned None")
        return instance

    def _activate(self, slot: PluginSlot, instance: Any) -> None:
        """Mark READY and replay history before any later live event."""
        outer = self._dispatching
        self._dispatching = True
        try:
            slot.mark_ready(instance)
            replayed = self.log.replay(_SlotSink(self, slot)) if slot.accepts_events else 0
            logger.info(f"Plugin ready: {slot.plugin_id} ({replayed} events replayed)")
        finally:
            self._dispatching = outer
        if not outer:
            self._flush()

    def _check_initial_batch(self, slot: PluginSlot) -> None:
        if self._ready.done() or slot not in self._initial_batch:
            return
        if all(s.is_terminal for s in self._initial_batch):
            self._mark_ready()

    def expire_pending_loads(self, reason: str = "load expired") -> int:
        """Mark every QUEUED/LOADING slot FAILED.

        For callers that bound plugin loading with their own timeout.

        Returns:
            Number of slots failed.
        """
        expired = [s for s in self._slots if not s.is_terminal]
        for slot in expired:
            slot.mark_failed(reason)
            logger.warning(f"Plugin {slot.plugin_id} failed: {reason}")
        if expired and not self._ready.done() and all(s.is_terminal for s in self._initial_batch):
            self._mark_ready()
        return len(expired)

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def broadcast(self, name: str, payload: Any = None) -> None:
        """Record an event and deliver it to every ready plugin.

        A broadcast issued while another delivery (or a replay) is running,
        e.g. from inside a plugin's handler, is delivered after it. Every event
        keeps the time of its broadcast() call.
        """
        self._pending_events.append((name, payload, time.time()))
        if self._dispatching:
            logger.debug(f"Broadcast '{name}' queued behind current delivery")
            return
        self._flush()

    def _flush(self) -> None:
        self._dispatching = True
        try:
            while self._pending_events:
                name, payload, timestamp = self._pending_events.popleft()
                record = self.log.append(name, payload, timestamp)
                logger.debug(f"Broadcasting '{name}'")
                for slot in list(self._slots):
                    if slot.accepts_events:
                        self._deliver(slot, record.name, record.payload, record.timestamp)
        finally:
            self._dispatching = False

    def _deliver(self, slot: PluginSlot, name: str, payload: Any, timestamp: float) -> None:
        try:
            slot.deliver(name, payload, timestamp)
        except Exception as e:
            error = EventHandlingError(slot.plugin_id, name, e)
            self.event_errors.append(error)
            logger.error(str(error))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _require_initialized(self, what: str) -> None:
        if self.state in (LayerState.UNINITIALIZED, LayerState.INITIALIZING):
            raise DatalayerError(f".{what} called before initialize (wrap in when_ready())")

    def get_data(self) -> dict[str, Any]:
        """Return a copy of the global data."""
        self._require_initialized("get_data")
        return copy.deepcopy(self._data)

    def get_slot(self, plugin_id: str) -> Optional[PluginSlot]:
        """First slot registered under ``plugin_id``, or None."""
        for slot in self._slots:
            if slot.plugin_id == plugin_id:
                return slot
        return None

    async def get_plugin_by_id(self, plugin_id: str) -> Any:
        """Return the plugin instance, waiting while it is still loading.

        Returns:
            The instance, or None if no selected plugin has this ID.

        Raises:
            DatalayerError: Called before initialize().
            PluginLoadError: The plugin failed to load.
        """
        self._require_initialized("get_plugin_by_id")
        slot = self.get_slot(plugin_id)
        if slot is None:
            return None
        return await slot.wait()

    def list_plugins(self) -> list[dict[str, Any]]:
        """List all plugin slots with status info."""
        return [slot.to_dict() for slot in self._slots]

    @property
    def extensions(self) -> list[Extension]:
        return list(self._extensions)

    @property
    def readiness(self) -> ReadinessFuture:
        return self._ready

    def is_ready(self) -> bool:
        return self.state is LayerState.READY

    def in_test_mode(self) -> bool:
        return self.test_mode_active is True
