"""Single-actor runtime: the cell that owns a mailbox and runs handlers.

An ``ActorCell`` pulls one message at a time from its mailbox and awaits
the current handler before taking the next, so handlers of the same actor
never run concurrently. ``ask`` implements request-reply on top of
``tell`` with a temporary reference bound to a future.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from servicemirror.core.behavior import Behavior, Signal
from servicemirror.core.mailbox import Mailbox
from servicemirror.core.ref import ActorId, ActorRef, LocalActorRef


class ActorContext[M](Protocol):
    """What a behavior handler can see of its own actor."""

    @property
    def self(self) -> ActorRef[M]: ...

    @property
    def log(self) -> logging.Logger: ...


class CellContext[M]:
    """``ActorContext`` backed by an ``ActorCell``."""

    def __init__(self, cell: ActorCell[M]) -> None:
        self._cell = cell

    @property
    def self(self) -> ActorRef[M]:
        return self._cell.ref

    @property
    def log(self) -> logging.Logger:
        return self._cell.logger


class ActorCell[M]:
    """Runtime engine for one actor.

    Parameters
    ----------
    behavior : Behavior[M]
        Initial behavior; ``setup`` behaviors are resolved in ``start``.
    id : ActorId
        Identifier, also used for the ``servicemirror.actor.<id>`` logger.

    Examples
    --------
    >>> cell = ActorCell(Behaviors.receive(handler), id="sync")
    >>> await cell.start()
    >>> cell.ref.tell(Connected(session_id=1))
    >>> await cell.stop()
    """

    def __init__(self, behavior: Behavior[M], id: ActorId) -> None:
        self._initial_behavior = behavior
        self._id = id
        self._mailbox: Mailbox[M] = Mailbox()
        self._logger = logging.getLogger(f"servicemirror.actor.{id}")
        self._ctx: CellContext[M] = CellContext(self)
        self._ref: ActorRef[M] = LocalActorRef(id=id, _deliver=self._deliver)
        self._handler: Callable[[ActorContext[M], M], Awaitable[Behavior[M]]] | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def id(self) -> ActorId:
        return self._id

    @property
    def ref(self) -> ActorRef[M]:
        return self._ref

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def _deliver(self, msg: M) -> None:
        if self._stopped:
            self._logger.debug("Dropping %s, actor is stopped", type(msg).__name__)
            return
        self._mailbox.put(msg)

    async def start(self) -> None:
        await self._initialize(self._initial_behavior)
        self._loop_task = asyncio.get_running_loop().create_task(self._run_loop())
        self._logger.info("Started")

    async def _initialize(self, behavior: Behavior[M]) -> None:
        match (behavior.on_setup, behavior.on_receive, behavior.signal):
            case (factory, None, None) if factory is not None:
                await self._initialize(await factory(self._ctx))
            case (None, handler, None) if handler is not None:
                self._handler = handler
            case _:
                msg = f"Cannot initialize with behavior: {behavior}"
                raise TypeError(msg)

    async def _run_loop(self) -> None:
        while not self._stopped:
            try:
                msg = await self._mailbox.get()
                if self._stopped or self._handler is None:
                    break
                try:
                    next_behavior = await self._handler(self._ctx, msg)
                except Exception:
                    self._logger.exception("Actor %s failed", self._id)
                    self._stopped = True
                    break
                await self._apply(next_behavior)
            except asyncio.CancelledError:
                break

    async def _apply(self, behavior: Behavior[M]) -> None:
        match behavior.signal:
            case Signal.same:
                pass
            case None:
                if behavior.on_receive is not None:
                    self._handler = behavior.on_receive
                elif behavior.on_setup is not None:
                    await self._initialize(behavior)

    async def stop(self) -> None:
        if self._stopped and self._loop_task is None:
            return
        self._stopped = True
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._logger.info("Stopped")


async def ask[M, R](
    ref: ActorRef[M],
    msg_factory: Callable[[ActorRef[R]], M],
    *,
    timeout: float,
) -> R:
    """Send a message carrying a reply reference and await the reply.

    Raises
    ------
    TimeoutError
        When no reply arrives within *timeout* seconds.
    """
    future: asyncio.Future[R] = asyncio.get_running_loop().create_future()

    def on_reply(msg: Any) -> None:
        if not future.done():
            future.set_result(msg)

    reply_to: ActorRef[R] = LocalActorRef(id=f"_ask/{id(future)}", _deliver=on_reply)
    ref.tell(msg_factory(reply_to))
    return await asyncio.wait_for(future, timeout=timeout)
