"""Serializes command exchanges over the single physical link."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, Optional

from ..protocol.commands import Command
from ..protocol.parser import Response

logger = logging.getLogger(__name__)

Exchange = Callable[[Command, FrozenSet[int]], Awaitable[Response]]


@dataclass
class PendingSend:
    """Bookkeeping for one submitted command until its result settles."""

    submission_id: int
    command: Command
    allowed_status_codes: FrozenSet[int]
    result: Optional[asyncio.Task] = field(default=None, repr=False)


class SendSerializer:
    """Runs exchanges one at a time, in submission order.

    :meth:`submit` returns immediately; the returned task starts its exchange
    only once every exchange submitted before it has settled.
    """

    def __init__(self, exchange: Exchange) -> None:
        self._exchange = exchange
        self._pending: dict[int, PendingSend] = {}
        self._ids = itertools.count(1)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def submit(
        self,
        command: Command,
        allowed_status_codes: FrozenSet[int],
    ) -> asyncio.Task:
        """Queue a command and return the task that resolves to its response.

        Must be called from a running event loop.
        """
        earlier = [entry.result for entry in self._pending.values() if entry.result is not None]
        entry = PendingSend(
            submission_id=next(self._ids),
            command=command,
            allowed_status_codes=allowed_status_codes,
        )
        self._pending[entry.submission_id] = entry
        entry.result = asyncio.get_running_loop().create_task(self._run(entry, earlier))
        logger.debug(
            "Queued send #%d %r behind %d in-flight", entry.submission_id, command, len(earlier)
        )
        return entry.result

    async def _run(self, entry: PendingSend, earlier: list[asyncio.Task]) -> Response:
        try:
            if earlier:
                await asyncio.wait(earlier)
            return await self._exchange(entry.command, entry.allowed_status_codes)
        finally:
            self._pending.pop(entry.submission_id, None)

    def cancel_all(self) -> None:
        """Cancel every queued or running exchange."""
        for entry in list(self._pending.values()):
            if entry.result is not None:
                entry.result.cancel()
