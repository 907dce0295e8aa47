"""Typed, fire-and-forget handles to actors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

type ActorId = str


class ActorRef[M](Protocol):
    """Typed handle to an actor mailbox."""

    @property
    def id(self) -> ActorId: ...

    def tell(self, msg: M) -> None: ...


@dataclass(frozen=True)
class LocalActorRef[M]:
    """In-process reference delivering through a callback.

    ``tell`` must be called from the thread running the event loop that
    owns the target; other threads go through
    ``loop.call_soon_threadsafe(ref.tell, msg)``.
    """

    id: ActorId
    _deliver: Callable[[Any], None]

    def tell(self, msg: M) -> None:
        self._deliver(msg)
