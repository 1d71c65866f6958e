"""Shared fixtures for datalayer tests."""

from __future__ import annotations

import pytest

from datalayer.config import DatalayerSettings
from datalayer.layer import Datalayer
from datalayer.storage import MemoryStore


@pytest.fixture
def test_settings() -> DatalayerSettings:
    """Settings without the automatic 'pageload' broadcast."""
    return DatalayerSettings(broadcast_pageload=False, state_file=None)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_layer(test_settings, store):
    """Factory for layers sharing one in-memory store."""

    def _make(query: str = "", **kwargs) -> Datalayer:
        kwargs.setdefault("settings", test_settings)
        kwargs.setdefault("store", store)
        return Datalayer(query=query, **kwargs)

    return _make


@pytest.fixture
def layer(make_layer) -> Datalayer:
    return make_layer()
