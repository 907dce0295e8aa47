"""Test utilities for servicemirror tests."""

from __future__ import annotations

import json
import random
from typing import Any

from servicemirror.core.actor import ActorCell, ask
from servicemirror.messages import GetStatus, SyncMsg, SyncStatus
from servicemirror.paths import instance_path
from servicemirror.registry import ServiceRegistry
from servicemirror.store.memory import InMemoryStore
from servicemirror.sync import sync_actor

ROOT = "/services"


def payload(host: str, port: int | str, **extra: Any) -> bytes:
    return json.dumps({"host": host, "port": port, **extra}).encode()


def publish(
    store: InMemoryStore,
    service: str,
    node: str,
    data: bytes,
    *,
    root: str = ROOT,
) -> str:
    """Create an instance znode (and its parents); return its path."""
    path = instance_path(root, service, node)
    store.create(path, data)
    return path


async def spawn_sync(
    store: InMemoryStore,
    registry: ServiceRegistry,
    **kwargs: Any,
) -> ActorCell[SyncMsg]:
    cell: ActorCell[SyncMsg] = ActorCell(
        sync_actor(store, registry, root=kwargs.pop("root", ROOT), **kwargs),
        id="sync",
    )
    await cell.start()
    return cell


async def settle(cell: ActorCell[SyncMsg], *, timeout: float = 2.0) -> SyncStatus:
    """Wait until every message already in the mailbox has been handled.

    The mailbox is FIFO, so the reply to a status query arrives only after
    all earlier events were processed.
    """
    return await ask(cell.ref, lambda r: GetStatus(reply_to=r), timeout=timeout)


class FixedDraw(random.Random):
    """Random source whose ``randrange`` always returns the same draw."""

    def __init__(self, r: int) -> None:
        super().__init__(0)
        self.r = r
        self.bounds: list[int] = []

    def randrange(self, start: int, stop: int | None = None, step: int = 1) -> int:  # type: ignore[override]
        self.bounds.append(start if stop is None else stop)
        return self.r
