"""Behavior primitive driving every actor in the mirror.

A behavior either receives a message, runs a one-off setup step, or
carries a signal telling the cell what to do next. ``Behaviors`` is the
factory callers use; state lives in closures and each handler returns the
behavior for the next message.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from servicemirror.core.actor import ActorContext


class Signal(Enum):
    same = auto()


@dataclass(frozen=True, kw_only=True)
class Behavior[M]:
    """What an actor does with its next message.

    Exactly one of ``on_receive``, ``on_setup`` or ``signal`` is set.
    """

    on_receive: Callable[[ActorContext[M], M], Awaitable[Behavior[M]]] | None = None
    on_setup: Callable[[ActorContext[M]], Awaitable[Behavior[M]]] | None = None
    signal: Signal | None = None


class Behaviors:
    """Factory for the behavior shapes understood by ``ActorCell``."""

    @staticmethod
    def receive[M](
        handler: Callable[[ActorContext[M], M], Awaitable[Behavior[M]]],
    ) -> Behavior[M]:
        return Behavior(on_receive=handler)

    @staticmethod
    def setup[M](
        factory: Callable[[ActorContext[M]], Awaitable[Behavior[M]]],
    ) -> Behavior[M]:
        return Behavior(on_setup=factory)

    @staticmethod
    def same() -> Behavior[Any]:
        return Behavior(signal=Signal.same)
