"""Test mode - a persisted, query-overridable activation flag.

Rules marked ``test`` only select their plugin while test mode is active.
The flag is switched on by visiting any URL whose query contains
``<key>=1`` and stays on (persisted marker) until a visit with ``<key>=0``.
"""

from __future__ import annotations

import logging
import re

from datalayer.config import settings
from datalayer.storage import KeyValueStore

logger = logging.getLogger(__name__)


def _query_sets(query: str, key: str, value: str) -> bool:
    return re.search(rf"{re.escape(key)}={value}(?![0-9])", query or "", re.IGNORECASE) is not None


def resolve_test_mode(
    store: KeyValueStore,
    query: str = "",
    key: str | None = None,
    max_age: int | None = None,
) -> bool:
    """Compute the test-mode flag and persist any override.

    Args:
        store: Where the marker lives between instances.
        query: Current navigation query string (e.g. ``"?__dtlrtest__=1"``).
        key: Marker/query key, defaults to ``settings.test_mode_key``.
        max_age: Marker lifetime in seconds, defaults to
            ``settings.test_mode_max_age``.

    Returns:
        True if test mode is active for this instance.
    """
    key = key or settings.test_mode_key
    max_age = settings.test_mode_max_age if max_age is None else max_age

    if store.get(key):
        if _query_sets(query, key, "0"):
            logger.info("Test mode disabled by query override, removing marker")
            store.remove(key)
            return False
        return True

    if _query_sets(query, key, "1"):
        logger.info("Test mode enabled by query override, persisting marker")
        store.set(key, "1", max_age=max_age)
        return True

    return False
