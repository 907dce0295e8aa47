"""Interface to the coordination store.

The mirror is read-only relative to the store: it lists children, reads
node data and arms one-shot watches. Failures are reported as a
``ResultCode`` rather than raised, and every code other than ``ok`` is
handled the same way by the sync actor (log and carry on).
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from servicemirror.messages import StoreEvent

type StoreListener = Callable[[StoreEvent], None]


class ResultCode(Enum):
    """Outcome of a store read.

    Examples
    --------
    >>> ResultCode.no_node.is_ok
    False
    """

    ok = "ok"
    no_node = "no_node"
    connection_loss = "connection_loss"
    session_expired = "session_expired"
    closed = "closed"
    timeout = "timeout"
    error = "error"

    @property
    def is_ok(self) -> bool:
        return self is ResultCode.ok


class CoordinationStore(Protocol):
    """Protocol for coordination-store backends.

    Events (session changes and fired watches) are pushed to the listener
    given to ``start``, each tagged with the id of the session it belongs
    to. Watch events carry the session that armed the watch, so events
    from a superseded session can be recognized and dropped.

    Examples
    --------
    >>> store: CoordinationStore = InMemoryStore()
    >>> await store.start(listener)
    >>> children, code = await store.get_children("/services", watch=True)
    """

    @property
    def session_id(self) -> int | None:
        """Id of the current session, ``None`` while none is established."""
        ...

    async def start(self, listener: StoreListener) -> None:
        """Begin connecting; returns without waiting for the session."""
        ...

    async def reconnect(self) -> None:
        """Discard the current client and session and open new ones."""
        ...

    async def get(self, path: str, watch: bool = False) -> tuple[bytes | None, ResultCode]:
        """Read node data, optionally arming a data watch on *path*."""
        ...

    async def get_children(self, path: str, watch: bool = False) -> tuple[list[str], ResultCode]:
        """List child names, optionally arming a children watch on *path*."""
        ...

    async def close(self) -> None:
        ...
