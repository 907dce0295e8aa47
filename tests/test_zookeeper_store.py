from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kazoo.exceptions import (
    ConnectionClosedError,
    ConnectionLoss,
    KazooException,
    NoNodeError,
    OperationTimeoutError,
    SessionExpiredError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import EventType, KazooState, KeeperState, WatchedEvent

from servicemirror.messages import (
    ChildrenChanged,
    Connected,
    DataChanged,
    Expired,
    NodeCreated,
    NodeDeleted,
    Reconnecting,
)
from servicemirror.store.base import ResultCode
from servicemirror.store.zookeeper import ZooKeeperStore, result_code


class FakeKazooClient:
    """Just enough of ``KazooClient`` for the store adapter."""

    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        self.client_id: tuple[int, bytes] | None = None
        self.listeners: list[Callable[[str], None]] = []
        self.watches: list[tuple[str, Callable[[WatchedEvent], None]]] = []
        self.nodes: dict[str, bytes] = {}
        self.errors: dict[str, Exception] = {}
        self.started = False
        self.stopped = False
        self.closed = False

    def add_listener(self, listener: Callable[[str], None]) -> None:
        self.listeners.append(listener)

    def start_async(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True

    def connect(self) -> None:
        self.client_id = (self.session_id, b"password")
        self.fire(KazooState.CONNECTED)

    def fire(self, state: str) -> None:
        for listener in list(self.listeners):
            listener(state)

    def trigger(self, event_type: str, path: str) -> None:
        watches, self.watches = self.watches, [w for w in self.watches if w[0] != path]
        for watched, fn in watches:
            if watched == path:
                fn(WatchedEvent(event_type, KeeperState.CONNECTED, path))

    def _read(self, path: str, watch: Callable[[WatchedEvent], None] | None) -> None:
        if path in self.errors:
            raise self.errors[path]
        if path not in self.nodes:
            raise NoNodeError()
        if watch is not None:
            self.watches.append((path, watch))

    def get(self, path: str, watch: Any = None) -> tuple[bytes, object]:
        self._read(path, watch)
        return self.nodes[path], object()

    def get_children(self, path: str, watch: Any = None) -> list[str]:
        self._read(path, watch)
        prefix = path.rstrip("/") + "/"
        return sorted(
            p[len(prefix):] for p in self.nodes if p.startswith(prefix) and "/" not in p[len(prefix):]
        )


class Harness:
    def __init__(self) -> None:
        self.clients: list[FakeKazooClient] = []
        self.events: list[Any] = []
        self.store = ZooKeeperStore("zk1:2181", timeout=5.0, client_factory=self._factory)

    def _factory(self) -> FakeKazooClient:
        client = FakeKazooClient(session_id=0x2000 + len(self.clients))
        client.nodes = {
            "/services": b"",
            "/services/checkout": b"",
            "/services/checkout/services": b"",
            "/services/checkout/services/host1": b'{"host": "h", "port": 1}',
        }
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeKazooClient:
        return self.clients[-1]

    async def start(self) -> None:
        await self.store.start(self.events.append)


async def flush() -> None:
    await asyncio.sleep(0.01)


@pytest.fixture
async def harness() -> Harness:
    h = Harness()
    await h.start()
    return h


# ---------------------------------------------------------------------------
# Session events
# ---------------------------------------------------------------------------


async def test_start_opens_client(harness: Harness) -> None:
    assert harness.client.started
    assert len(harness.client.listeners) == 1
    assert harness.store.session_id is None
    await flush()
    assert harness.events == []


async def test_connected_sets_session(harness: Harness) -> None:
    harness.client.connect()
    await flush()
    assert harness.store.session_id == 0x2000
    assert harness.events == [Connected(0x2000)]


async def test_suspended_and_lost(harness: Harness) -> None:
    harness.client.fire(KazooState.SUSPENDED)
    await flush()
    assert harness.events == []

    harness.client.connect()
    harness.client.fire(KazooState.SUSPENDED)
    harness.client.fire(KazooState.CONNECTED)
    harness.client.fire(KazooState.LOST)
    await flush()
    assert harness.events == [
        Connected(0x2000),
        Reconnecting(0x2000),
        Connected(0x2000),
        Expired(0x2000),
    ]


async def test_reconnect_replaces_client(harness: Harness) -> None:
    old = harness.client
    old.connect()
    await flush()

    await harness.store.reconnect()
    assert old.stopped and old.closed
    assert harness.store.session_id is None
    assert harness.client is not old
    assert harness.client.started

    harness.client.connect()
    await flush()
    assert harness.store.session_id == 0x2001
    assert harness.events[-1] == Connected(0x2001)


async def test_old_client_events_keep_old_session_id(harness: Harness) -> None:
    old = harness.client
    old.connect()
    await flush()
    await harness.store.get_children("/services", watch=True)

    await harness.store.reconnect()
    harness.client.connect()
    old.fire(KazooState.LOST)
    old.trigger(EventType.CHILD, "/services")
    await flush()

    assert harness.store.session_id == 0x2001
    assert harness.events[-2:] == [Expired(0x2000), ChildrenChanged(0x2000, "/services")]


# ---------------------------------------------------------------------------
# Reads and watches
# ---------------------------------------------------------------------------


async def test_reads(harness: Harness) -> None:
    harness.client.connect()
    store = harness.store
    assert await store.get_children("/services") == (["checkout"], ResultCode.ok)
    assert await store.get("/services/checkout/services/host1") == (
        b'{"host": "h", "port": 1}',
        ResultCode.ok,
    )
    assert harness.client.watches == []


async def test_missing_node(harness: Harness) -> None:
    assert await harness.store.get("/nope") == (None, ResultCode.no_node)
    assert await harness.store.get_children("/nope") == ([], ResultCode.no_node)


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (ConnectionLoss(), ResultCode.connection_loss),
        (SessionExpiredError(), ResultCode.session_expired),
        (ConnectionClosedError(), ResultCode.closed),
        (OperationTimeoutError(), ResultCode.timeout),
        (KazooTimeoutError(), ResultCode.timeout),
        (KazooException(), ResultCode.error),
    ],
)
async def test_errors_become_result_codes(
    harness: Harness, exc: Exception, code: ResultCode,
) -> None:
    harness.client.errors["/services"] = exc
    assert await harness.store.get_children("/services") == ([], code)
    assert result_code(exc) is code


@pytest.mark.parametrize(
    ("event_type", "event"),
    [
        (EventType.CHILD, ChildrenChanged),
        (EventType.CREATED, NodeCreated),
        (EventType.DELETED, NodeDeleted),
        (EventType.CHANGED, DataChanged),
    ],
)
async def test_watch_events_are_tagged(
    harness: Harness, event_type: str, event: type,
) -> None:
    harness.client.connect()
    await harness.store.get("/services/checkout/services/host1", watch=True)
    harness.client.trigger(event_type, "/services/checkout/services/host1")
    await flush()
    assert harness.events[-1] == event(0x2000, "/services/checkout/services/host1")


async def test_watch_callback_is_reused_within_session(harness: Harness) -> None:
    harness.client.connect()
    await harness.store.get_children("/services", watch=True)
    await harness.store.get("/services/checkout", watch=True)

    (_, first), (_, second) = harness.client.watches
    assert first is second


async def test_no_watch_without_session(harness: Harness) -> None:
    await harness.store.get_children("/services", watch=True)
    assert harness.client.watches == []


async def test_close(harness: Harness) -> None:
    client = harness.client
    client.connect()
    await harness.store.close()
    assert client.stopped and client.closed
    assert harness.store.session_id is None
    assert await harness.store.get("/services") == (None, ResultCode.closed)


# ---------------------------------------------------------------------------
# Client construction and shutdown
# ---------------------------------------------------------------------------


async def test_default_client_uses_servers_and_timeout() -> None:
    with patch("servicemirror.store.zookeeper.KazooClient") as client_cls:
        store = ZooKeeperStore("zk1:2181,zk2:2181", timeout=12.5)
        await store.start(lambda event: None)

    client_cls.assert_called_once_with(hosts="zk1:2181,zk2:2181", timeout=12.5)
    client = client_cls.return_value
    client.add_listener.assert_called_once()
    client.start_async.assert_called_once_with()


async def test_shutdown_errors_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    client = MagicMock()
    client.stop.side_effect = KazooException("already stopped")
    store = ZooKeeperStore(client_factory=lambda: client)
    await store.start(lambda event: None)

    await store.close()
    assert "Error closing ZooKeeper client" in caplog.text
