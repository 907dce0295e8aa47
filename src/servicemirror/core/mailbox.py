"""Unbounded FIFO mailbox backing an actor cell."""

from __future__ import annotations

import asyncio


class Mailbox[M]:
    """Async FIFO queue of pending messages.

    Store events must never be dropped, so the mailbox has no capacity
    limit and no overflow policy.

    Examples
    --------
    >>> mb = Mailbox[str]()
    >>> mb.put("connected")
    >>> await mb.get()
    'connected'
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[M] = asyncio.Queue()

    def put(self, msg: M) -> None:
        self._queue.put_nowait(msg)

    async def get(self) -> M:
        return await self._queue.get()
