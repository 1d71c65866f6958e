"""Small pure helpers shared across the datalayer."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any


def deep_extend(target: Mapping[str, Any], source: Mapping[str, Any] | None) -> dict[str, Any]:
    """Deep-merge ``source`` into a copy of ``target`` and return the result.

    Nested mappings merge key-wise. Scalars, lists and any other values
    overwrite. Neither argument is mutated.

    Args:
        target: Base mapping.
        source: Mapping whose keys win on conflict. None is treated as {}.

    Returns:
        A new dict holding the merged data.
    """
    result: dict[str, Any] = {k: copy.deepcopy(v) for k, v in target.items()}
    if not source:
        return result

    for key, value in source.items():
        existing = result.get(key)
        if isinstance(value, Mapping):
            base = existing if isinstance(existing, Mapping) else {}
            result[key] = deep_extend(base, value)
        else:
            result[key] = copy.deepcopy(value)
    return result
