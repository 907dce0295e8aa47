"""Shared fixtures for servicemirror tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from servicemirror.core.actor import ActorCell
from servicemirror.messages import SyncMsg
from servicemirror.registry import ServiceRegistry
from servicemirror.store.memory import InMemoryStore
from tests.utils import payload, publish, spawn_sync


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def registry() -> ServiceRegistry:
    return ServiceRegistry()


@pytest.fixture
def checkout_store(store: InMemoryStore) -> InMemoryStore:
    """Store holding the checkout service with two weighted instances."""
    publish(store, "checkout", "host1", payload("10.0.0.1", 8080, weight=2))
    publish(store, "checkout", "host2", payload("10.0.0.2", 8080, weight=1))
    return store


@pytest.fixture
async def sync_cell(
    checkout_store: InMemoryStore, registry: ServiceRegistry,
) -> AsyncIterator[ActorCell[SyncMsg]]:
    cell = await spawn_sync(checkout_store, registry)
    yield cell
    await cell.stop()
