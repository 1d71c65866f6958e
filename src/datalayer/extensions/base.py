"""Extension interface.

Extensions are cross-cutting collaborators hooked into the layer's
initialization and DOM-parse points. Unlike plugins they are not gated by
activation rules: every extension registered with ``Datalayer.use()``
receives every hook, in registration order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, ClassVar, Optional, Union

if TYPE_CHECKING:
    from datalayer.layer import Datalayer

HookResult = Union[None, dict, Awaitable[Optional[dict]]]

HOOKS = ("before_initialize", "after_initialize", "before_parse_dom_node")


class Extension:
    """Base class for datalayer extensions.

    Override any of:
    - before_initialize()       - return partial global data to deep-extend
      into the layer's data (sync or async)
    - after_initialize()        - observe the initialized layer (sync or async)
    - before_parse_dom_node()   - react to ``Datalayer.parse_dom_node(node)``
    """

    extension_id: ClassVar[str] = ""

    def __init__(self, layer: "Datalayer") -> None:
        self.layer = layer

    @classmethod
    def get_id(cls) -> str:
        return cls.extension_id or cls.__name__

    def before_initialize(self) -> HookResult:
        return None

    def after_initialize(self) -> Any:
        return None

    def before_parse_dom_node(self, node: Any) -> Any:
        return None


class RenderTimeData(Extension):
    """Contributes data known when the page was rendered.

    Usage: ``layer.use(lambda dl: RenderTimeData(dl, {"page": {...}}))``
    """

    extension_id = "RenderTimeData"

    def __init__(self, layer: "Datalayer", data: dict[str, Any] | None = None) -> None:
        super().__init__(layer)
        self.data = dict(data or {})

    def before_initialize(self) -> dict:
        return self.data
