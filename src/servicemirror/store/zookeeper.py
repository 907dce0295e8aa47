"""ZooKeeper backend built on kazoo.

Kazoo runs its connection loop and invokes listeners and watchers on its
own threads. Every callback is turned into a ``StoreEvent`` tagged with a
session id and handed to the event loop with ``call_soon_threadsafe``;
blocking reads go through ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from kazoo.client import KazooClient
from kazoo.exceptions import (
    ConnectionClosedError,
    ConnectionLoss,
    KazooException,
    NoNodeError,
    OperationTimeoutError,
    SessionExpiredError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, KazooState, WatchedEvent

from servicemirror.messages import (
    ChildrenChanged,
    Connected,
    DataChanged,
    Expired,
    NodeCreated,
    NodeDeleted,
    Reconnecting,
    StoreEvent,
)
from servicemirror.store.base import ResultCode, StoreListener

logger = logging.getLogger("servicemirror.store.zookeeper")

# Most specific first: ConnectionClosedError subclasses SessionExpiredError.
_ERROR_CODES: tuple[tuple[type[Exception], ResultCode], ...] = (
    (NoNodeError, ResultCode.no_node),
    (ConnectionClosedError, ResultCode.closed),
    (SessionExpiredError, ResultCode.session_expired),
    (ConnectionLoss, ResultCode.connection_loss),
    (OperationTimeoutError, ResultCode.timeout),
    (KazooTimeoutError, ResultCode.timeout),
)

_WATCH_EVENTS = {
    EventType.CHILD: ChildrenChanged,
    EventType.CREATED: NodeCreated,
    EventType.DELETED: NodeDeleted,
    EventType.CHANGED: DataChanged,
}


def result_code(exc: Exception) -> ResultCode:
    for exc_type, code in _ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    return ResultCode.error


class ZooKeeperStore:
    """``CoordinationStore`` backed by a ``KazooClient``.

    Parameters
    ----------
    servers : str
        Comma-separated ``host:port`` list of the ensemble.
    timeout : float
        Requested session timeout in seconds.
    client_factory : Callable[[], KazooClient] | None
        Builds a fresh client for every session. Defaults to
        ``KazooClient(hosts=servers, timeout=timeout)``.

    Examples
    --------
    >>> store = ZooKeeperStore("zk1:2181,zk2:2181", timeout=30.0)
    >>> await store.start(ref.tell)
    """

    def __init__(
        self,
        servers: str = "notexists:2181",
        *,
        timeout: float = 60.0,
        client_factory: Callable[[], KazooClient] | None = None,
    ) -> None:
        self._servers = servers
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client
        self._client: KazooClient | None = None
        self._session_id: int | None = None
        self._listener: StoreListener | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watch_session: int | None = None
        self._watch_fn: Callable[[WatchedEvent], None] | None = None

    def _default_client(self) -> KazooClient:
        return KazooClient(hosts=self._servers, timeout=self._timeout)

    @property
    def session_id(self) -> int | None:
        return self._session_id

    def _dispatch(self, event: StoreEvent) -> None:
        loop, listener = self._loop, self._listener
        if loop is None or listener is None:
            return
        try:
            loop.call_soon_threadsafe(listener, event)
        except RuntimeError:
            logger.debug("Event loop closed, dropping %s", event)

    def _state_listener(self, client: KazooClient) -> Callable[[str], None]:
        seen: int | None = None

        def on_state(state: str) -> None:
            nonlocal seen
            if state == KazooState.CONNECTED:
                client_id = client.client_id
                if client_id is None:
                    return
                seen = client_id[0]
                if client is self._client:
                    self._session_id = seen
                logger.info("Session 0x%x connected to %s", seen, self._servers)
                self._dispatch(Connected(session_id=seen))
            elif seen is None:
                return
            elif state == KazooState.SUSPENDED:
                logger.warning("Session 0x%x suspended", seen)
                self._dispatch(Reconnecting(session_id=seen))
            elif state == KazooState.LOST:
                logger.warning("Session 0x%x lost", seen)
                self._dispatch(Expired(session_id=seen))

        return on_state

    def _watcher(self) -> Callable[[WatchedEvent], None] | None:
        # one callback per session; kazoo dedupes watchers by identity
        session_id = self._session_id
        if session_id is None:
            return None
        if self._watch_session == session_id and self._watch_fn is not None:
            return self._watch_fn

        def on_event(event: WatchedEvent) -> None:
            make = _WATCH_EVENTS.get(event.type)
            if make is None or event.path is None:
                return
            self._dispatch(make(session_id=session_id, path=event.path))

        self._watch_session, self._watch_fn = session_id, on_event
        return on_event

    async def _open(self) -> None:
        client = self._client_factory()
        client.add_listener(self._state_listener(client))
        self._client = client
        client.start_async()
        logger.info("Connecting to %s (timeout %.1fs)", self._servers, self._timeout)

    @staticmethod
    def _shutdown(client: KazooClient) -> None:
        try:
            client.stop()
            client.close()
        except KazooException:
            logger.exception("Error closing ZooKeeper client")

    async def start(self, listener: StoreListener) -> None:
        self._loop = asyncio.get_running_loop()
        self._listener = listener
        await self._open()

    async def reconnect(self) -> None:
        old, self._client = self._client, None
        self._session_id = None
        if old is not None:
            await asyncio.to_thread(self._shutdown, old)
        await self._open()

    async def _call(self, op: str, path: str, watch: bool) -> tuple[Any, ResultCode]:
        if self._client is None:
            return None, ResultCode.closed
        fn = getattr(self._client, op)
        watcher = self._watcher() if watch else None
        try:
            result = await asyncio.to_thread(fn, path, watch=watcher)
        except (KazooException, KazooTimeoutError) as exc:
            code = result_code(exc)
            logger.debug("%s(%s) failed: %s", op, path, code.value)
            return None, code
        return result, ResultCode.ok

    async def get(self, path: str, watch: bool = False) -> tuple[bytes | None, ResultCode]:
        result, code = await self._call("get", path, watch)
        if not code.is_ok:
            return None, code
        data, _stat = result
        return data, code

    async def get_children(self, path: str, watch: bool = False) -> tuple[list[str], ResultCode]:
        result, code = await self._call("get_children", path, watch)
        if not code.is_ok:
            return [], code
        return list(result), code

    async def close(self) -> None:
        client, self._client = self._client, None
        self._session_id = None
        self._listener = None
        if client is not None:
            await asyncio.to_thread(self._shutdown, client)
