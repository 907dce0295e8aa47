"""In-process coordination store for tests and local development.

Keeps a tree of znodes in a dict and implements ZooKeeper's one-shot watch
semantics. Session behaviour (connection, suspension, expiry) is driven
explicitly through ``establish``, ``suspend``, ``resume`` and ``expire``.
"""

from __future__ import annotations

import itertools
import logging

from servicemirror.messages import (
    ChildrenChanged,
    Connected,
    DataChanged,
    Expired,
    NodeDeleted,
    Reconnecting,
    StoreEvent,
)
from servicemirror.store.base import ResultCode, StoreListener

logger = logging.getLogger("servicemirror.store.memory")

_ROOT = "/"


def _parent(path: str) -> str:
    head = path.rsplit("/", 1)[0]
    return head or _ROOT


class InMemoryStore:
    """Dictionary-backed ``CoordinationStore``.

    Parameters
    ----------
    auto_connect : bool
        Establish a session as soon as ``start`` or ``reconnect`` is
        called. Disable to control exactly when ``Connected`` fires.
    first_session_id : int
        Id handed to the first session; later sessions count up from it.

    Examples
    --------
    >>> store = InMemoryStore()
    >>> store.create("/services/checkout/services/host1", b'{"host": "h", "port": 1}')
    >>> await store.get_children("/services/checkout/services")
    (['host1'], <ResultCode.ok: 'ok'>)
    """

    def __init__(self, *, auto_connect: bool = True, first_session_id: int = 0x1000) -> None:
        self._auto_connect = auto_connect
        self._session_ids = itertools.count(first_session_id)
        self._nodes: dict[str, bytes] = {_ROOT: b""}
        self._data_watches: dict[str, set[int]] = {}
        self._child_watches: dict[str, set[int]] = {}
        self._failures: dict[str, ResultCode] = {}
        self._listener: StoreListener | None = None
        self._session_id: int | None = None
        self._connected = False
        self._closed = False

    @property
    def session_id(self) -> int | None:
        return self._session_id

    @property
    def connected(self) -> bool:
        return self._connected

    def _emit(self, event: StoreEvent) -> None:
        if self._listener is not None:
            self._listener(event)

    def _new_session(self) -> None:
        self._session_id = next(self._session_ids)
        self._connected = False
        self._data_watches.clear()
        self._child_watches.clear()
        if self._auto_connect:
            self.establish()

    # CoordinationStore

    async def start(self, listener: StoreListener) -> None:
        self._listener = listener
        self._closed = False
        self._new_session()

    async def reconnect(self) -> None:
        logger.info("Replacing session %s", self._session_id)
        self._new_session()

    def _check(self, path: str) -> ResultCode:
        if self._closed:
            return ResultCode.closed
        if not self._connected:
            return ResultCode.connection_loss
        failure = self._failures.get(path)
        if failure is not None:
            return failure
        if path not in self._nodes:
            return ResultCode.no_node
        return ResultCode.ok

    async def get(self, path: str, watch: bool = False) -> tuple[bytes | None, ResultCode]:
        code = self._check(path)
        if not code.is_ok:
            return None, code
        if watch and self._session_id is not None:
            self._data_watches.setdefault(path, set()).add(self._session_id)
        return self._nodes[path], code

    async def get_children(self, path: str, watch: bool = False) -> tuple[list[str], ResultCode]:
        code = self._check(path)
        if not code.is_ok:
            return [], code
        if watch and self._session_id is not None:
            self._child_watches.setdefault(path, set()).add(self._session_id)
        return self.children(path), code

    async def close(self) -> None:
        self._closed = True
        self._connected = False
        self._session_id = None
        self._listener = None

    # Tree manipulation

    def children(self, path: str) -> list[str]:
        prefix = path.rstrip("/") + "/"
        return sorted(
            p[len(prefix):]
            for p in self._nodes
            if p != _ROOT and p.startswith(prefix) and "/" not in p[len(prefix):]
        )

    def exists(self, path: str) -> bool:
        return path in self._nodes

    def data(self, path: str) -> bytes | None:
        return self._nodes.get(path)

    def create(self, path: str, data: bytes = b"") -> None:
        """Create *path* and any missing ancestors, firing watches."""
        if path in self._nodes:
            msg = f"Node already exists: {path}"
            raise ValueError(msg)
        parent = _parent(path)
        if parent not in self._nodes:
            self.create(parent)
        self._nodes[path] = data
        self._fire(self._child_watches, parent, ChildrenChanged)

    def set(self, path: str, data: bytes) -> None:
        if path not in self._nodes:
            msg = f"No such node: {path}"
            raise KeyError(msg)
        self._nodes[path] = data
        self._fire(self._data_watches, path, DataChanged)

    def delete(self, path: str, *, recursive: bool = False) -> None:
        if path not in self._nodes or path == _ROOT:
            msg = f"No such node: {path}"
            raise KeyError(msg)
        children = self.children(path)
        if children and not recursive:
            msg = f"Node not empty: {path}"
            raise ValueError(msg)
        for child in children:
            self.delete(f"{path.rstrip('/')}/{child}", recursive=True)
        del self._nodes[path]
        sessions = self._data_watches.pop(path, set()) | self._child_watches.pop(path, set())
        for session_id in sorted(sessions):
            self._emit(NodeDeleted(session_id=session_id, path=path))
        self._fire(self._child_watches, _parent(path), ChildrenChanged)

    def _fire(
        self,
        watches: dict[str, set[int]],
        path: str,
        event: type[ChildrenChanged] | type[DataChanged],
    ) -> None:
        for session_id in sorted(watches.pop(path, set())):
            self._emit(event(session_id=session_id, path=path))

    # Failure and session simulation

    def fail(self, path: str, code: ResultCode = ResultCode.connection_loss) -> None:
        """Make every read of *path* return *code* until ``heal`` is called."""
        self._failures[path] = code

    def heal(self, path: str) -> None:
        self._failures.pop(path, None)

    def establish(self) -> None:
        if self._session_id is None:
            msg = "No session to establish; call start() first"
            raise RuntimeError(msg)
        self._connected = True
        self._emit(Connected(session_id=self._session_id))

    def suspend(self) -> None:
        if self._session_id is None:
            return
        self._connected = False
        self._emit(Reconnecting(session_id=self._session_id))

    def resume(self) -> None:
        self.establish()

    def expire(self) -> None:
        if self._session_id is None:
            return
        self._connected = False
        self._data_watches.clear()
        self._child_watches.clear()
        self._emit(Expired(session_id=self._session_id))
