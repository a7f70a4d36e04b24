"""Interfaces between the transport and the packet device underneath it."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal, Protocol


class PacketDevice(Protocol):
    """A bidirectional channel of fixed-size frames.

    Inbound frames are pushed onto the queue given to :meth:`attach` until
    :meth:`detach` is called.
    """

    path: bytes

    @property
    def is_open(self) -> bool: ...

    async def open(self) -> None: ...

    def close(self) -> None: ...

    async def write_frame(self, frame: bytes) -> None:
        """Send one frame, returning once the write has completed."""
        ...

    def attach(self, queue: asyncio.Queue[bytes]) -> None: ...

    def detach(self) -> None: ...


@dataclass(frozen=True)
class HotplugEvent:
    """A device appeared on or vanished from the bus."""

    kind: Literal["connect", "disconnect"]
    device: PacketDevice
