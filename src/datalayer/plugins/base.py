"""Plugin interface and descriptor for datalayer consumers.

Every plugin extends Plugin and implements at minimum:
- plugin_id (class attribute) - unique identifier
- handle_event(name, payload, timestamp)

Plugins are constructed by the layer with ``(layer, data, config)``:
a reference to the owning Datalayer, a snapshot of the global data at
load time, and the per-plugin configuration (the class's
``default_config`` deep-extended with the descriptor's ``config``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from datalayer.layer import Datalayer


class Plugin(ABC):
    """Base class for datalayer plugins.

    Subclasses must define:
    - plugin_id: str  - unique identifier, shared by all instances

    And implement:
    - handle_event()  - receive one broadcast event

    Optionally override:
    - should_receive_event()  - per-event opt-out, consulted in addition
      to the declarative activation rule
    - default_config          - merged under the descriptor config
    """

    plugin_id: ClassVar[str] = ""
    default_config: ClassVar[dict[str, Any]] = {}

    def __init__(self, layer: "Datalayer", data: dict[str, Any], config: dict[str, Any]) -> None:
        self.layer = layer
        self.data = data
        self.config = config

    @classmethod
    def get_id(cls) -> str:
        """Return this plugin type's ID (the same for all instances)."""
        return cls.plugin_id or f"{cls.__module__}.{cls.__qualname__}"

    def should_receive_event(self, name: str, payload: Any) -> bool:
        """Decide whether this instance wants the given event. Default: yes."""
        return True

    @abstractmethod
    def handle_event(self, name: str, payload: Any, timestamp: float) -> None:
        """Main event handling callback."""


def derive_plugin_id(plugin_type: Any) -> str:
    """Best-effort ID for a plugin class, factory, or loader identifier."""
    if isinstance(plugin_type, str):
        return plugin_type
    get_id = getattr(plugin_type, "get_id", None)
    if callable(get_id):
        try:
            return str(get_id())
        except TypeError:
            pass  # instance method on a non-Plugin class
    pid = getattr(plugin_type, "plugin_id", None)
    if isinstance(pid, str) and pid:
        return pid
    return getattr(plugin_type, "__qualname__", None) or repr(plugin_type)


@dataclass(frozen=True)
class PluginDescriptor:
    """Caller-supplied description of one plugin to activate.

    Attributes:
        type: Plugin class, factory callable ``(layer, data, config)``, or a
            string identifier resolved by the PluginLoader.
        id: Explicit ID. Derived from ``type`` when omitted; only useful to
            tell apart two descriptors of the same plugin type.
        rule: Activation rule (see datalayer.rules).
        test: Only activate while test mode is active.
        config: Opaque per-plugin configuration.
    """

    type: Any
    id: str | None = None
    rule: Any = True
    test: bool = False
    config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def plugin_id(self) -> str:
        return self.id or derive_plugin_id(self.type)

    @property
    def activation_rule(self) -> Any:
        """The rule as evaluated, wrapped in a test gate if ``test`` is set."""
        if self.test:
            return {"test": True, "rule": self.rule}
        return self.rule

    @classmethod
    def coerce(cls, value: Any) -> "PluginDescriptor":
        """Build a descriptor from a descriptor, mapping, class, or identifier.

        Raises:
            TypeError: If ``value`` cannot describe a plugin.
        """
        if isinstance(value, PluginDescriptor):
            return value
        if isinstance(value, Mapping):
            if "type" not in value:
                raise TypeError(f"Plugin descriptor mapping needs a 'type' entry: {value!r}")
            return cls(
                type=value["type"],
                id=value.get("id"),
                rule=value.get("rule", True),
                test=bool(value.get("test", False)),
                config=dict(value.get("config") or {}),
            )
        if isinstance(value, str) or callable(value):
            return cls(type=value)
        raise TypeError(f"Cannot build a plugin descriptor from {value!r}")
