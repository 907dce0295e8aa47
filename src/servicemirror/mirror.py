"""Public entry point: a live, read-only mirror of published services.

``ServiceMirror`` wires a coordination store, the registry and the sync
actor together and exposes the read side to the host process. Lookups are
plain synchronous calls that can be made from any thread; only lifecycle
and status queries need the event loop.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from types import MappingProxyType

from servicemirror.config import MirrorConfig, load_config
from servicemirror.core.actor import ActorCell, ask
from servicemirror.instance import InstanceConfig
from servicemirror.messages import AwaitConnected, ConnectionState, GetStatus, SyncMsg, SyncStatus
from servicemirror.registry import Instances, ServiceRegistry, Snapshot
from servicemirror.selector import select
from servicemirror.store.base import CoordinationStore
from servicemirror.store.zookeeper import ZooKeeperStore
from servicemirror.sync import sync_actor

__all__ = ["ServiceMirror"]

_NO_INSTANCES: Instances = MappingProxyType({})


class ServiceMirror:
    """Mirror of the services published under one store root.

    Use as an async context manager for automatic shutdown.

    Parameters
    ----------
    store : CoordinationStore | None
        Store backend. Defaults to a ``ZooKeeperStore`` built from
        *config*.
    config : MirrorConfig | None
        Store location and sync options. Defaults to ``MirrorConfig()``.
    name : str
        Id of the sync actor, used in its logger name.

    Examples
    --------
    >>> async with ServiceMirror(config=load_config()) as mirror:
    ...     await mirror.wait_connected(timeout=10.0)
    ...     mirror.select_one("checkout")
    InstanceConfig(host='10.0.0.1', port=8080, name='', weight=2)
    """

    def __init__(
        self,
        store: CoordinationStore | None = None,
        *,
        config: MirrorConfig | None = None,
        name: str = "sync",
    ) -> None:
        self._config = config or MirrorConfig()
        self._store: CoordinationStore = store or ZooKeeperStore(
            self._config.store.servers,
            timeout=self._config.store.session_timeout,
        )
        self._name = name
        self._registry = ServiceRegistry()
        self._cell: ActorCell[SyncMsg] | None = None
        self._logger = logging.getLogger(f"servicemirror.mirror.{name}")

    @classmethod
    def from_config(cls, path: Path | None = None) -> ServiceMirror:
        """Build a ZooKeeper-backed mirror from ``servicemirror.toml``."""
        return cls(config=load_config(path))

    @property
    def config(self) -> MirrorConfig:
        return self._config

    @property
    def store(self) -> CoordinationStore:
        return self._store

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def running(self) -> bool:
        return self._cell is not None and not self._cell.is_stopped

    async def __aenter__(self) -> ServiceMirror:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    async def start(self) -> None:
        """Spawn the sync actor; it starts the store session itself."""
        if self._cell is not None:
            msg = "Mirror already started"
            raise RuntimeError(msg)
        cell: ActorCell[SyncMsg] = ActorCell(
            sync_actor(
                self._store,
                self._registry,
                root=self._config.store.root,
                payload_format=self._config.sync.payload_format,
                purge_on_resync=self._config.sync.purge_on_resync,
            ),
            id=self._name,
        )
        await cell.start()
        self._cell = cell
        self._logger.info("Started")

    async def stop(self) -> None:
        """Stop the actor, abandon the session and discard the registry."""
        cell, self._cell = self._cell, None
        if cell is None:
            return
        await cell.stop()
        await self._store.close()
        self._registry.clear()
        self._logger.info("Stopped")

    # Read side

    def lookup(self, service: str) -> Instances:
        """Instances of *service*, empty when it is unknown."""
        instances = self._registry.get(service)
        return instances if instances is not None else _NO_INSTANCES

    def select_one(self, service: str, rng: random.Random | None = None) -> InstanceConfig | None:
        """One instance of *service* chosen by weight, ``None`` if there is none."""
        picked = select(self.lookup(service), rng)
        return None if picked is None else picked[1]

    def list_all(self) -> Snapshot:
        return self._registry.get_all()

    # Actor queries

    async def status(self, *, timeout: float = 5.0) -> SyncStatus:
        """Current sync status, ``disconnected`` once the actor has stopped."""
        cell = self._cell
        if cell is None or cell.is_stopped:
            return SyncStatus(state=ConnectionState.disconnected, session_id=None)
        return await ask(cell.ref, lambda r: GetStatus(reply_to=r), timeout=timeout)

    async def wait_connected(self, *, timeout: float) -> SyncStatus:
        """Wait until the first (or next) resync has completed.

        Raises
        ------
        RuntimeError
            When the mirror has not been started or its actor has stopped.
        TimeoutError
            When no session is established within *timeout* seconds.
        """
        if self._cell is None:
            msg = "Mirror not started"
            raise RuntimeError(msg)
        if self._cell.is_stopped:
            msg = "Sync actor stopped"
            raise RuntimeError(msg)
        return await ask(self._cell.ref, lambda r: AwaitConnected(reply_to=r), timeout=timeout)
