"""Messages understood by the sync actor.

Session and watch events come from the store adapter, each tagged with the
id of the session it belongs to. ``GetStatus`` and ``AwaitConnected`` are
request-reply queries used by the ``ServiceMirror`` facade.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from servicemirror.core.ref import ActorRef


class ConnectionState(Enum):
    disconnected = auto()
    connecting = auto()
    connected = auto()


# Session events


@dataclass(frozen=True)
class Connected:
    session_id: int


@dataclass(frozen=True)
class Reconnecting:
    session_id: int


@dataclass(frozen=True)
class Expired:
    session_id: int


# Watch events


@dataclass(frozen=True)
class ChildrenChanged:
    session_id: int
    path: str


@dataclass(frozen=True)
class NodeCreated:
    session_id: int
    path: str


@dataclass(frozen=True)
class NodeDeleted:
    session_id: int
    path: str


@dataclass(frozen=True)
class DataChanged:
    session_id: int
    path: str


type SessionEvent = Connected | Reconnecting | Expired
type WatchEvent = ChildrenChanged | NodeCreated | NodeDeleted | DataChanged
type StoreEvent = SessionEvent | WatchEvent


# Queries


@dataclass(frozen=True)
class SyncStatus:
    """Point-in-time view of the sync actor.

    Parameters
    ----------
    state : ConnectionState
        Current connection state.
    session_id : int | None
        Session the actor accepts events from, ``None`` before one exists.
    resyncs : int
        Completed full resynchronizations.
    stale_events : int
        Events discarded because they carried a superseded session id.
    unexpected_events : int
        Messages of a kind the actor does not handle.
    """

    state: ConnectionState
    session_id: int | None
    resyncs: int = 0
    stale_events: int = 0
    unexpected_events: int = 0


@dataclass(frozen=True)
class GetStatus:
    reply_to: ActorRef[SyncStatus]


@dataclass(frozen=True)
class AwaitConnected:
    """Reply with the status once the actor reaches ``connected``."""

    reply_to: ActorRef[SyncStatus]


type SyncMsg = StoreEvent | GetStatus | AwaitConnected
