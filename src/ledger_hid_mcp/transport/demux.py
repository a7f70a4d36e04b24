"""Routes inbound frames to the reader waiting on their channel."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class _ChannelQueue:
    """Frames nobody has asked for yet, or the one reader waiting for more.

    Never holds buffered frames and a live waiter at the same time.
    """

    frames: deque[bytes] = field(default_factory=deque)
    waiter: asyncio.Future[bytes] | None = None

    @property
    def idle(self) -> bool:
        return not self.frames and self.waiter is None


class ChannelDemultiplexer:
    """Per-channel FIFO buffers with at most one pending reader per channel.

    Usage::

        demux = ChannelDemultiplexer()
        demux.on_frame(frame)            # from the inbound frame loop
        frame = await demux.read(0x1234)
    """

    def __init__(self) -> None:
        self._channels: dict[int, _ChannelQueue] = {}

    def on_frame(self, frame: bytes) -> None:
        """Hand a frame to its channel's reader, or buffer it."""
        if len(frame) < 2:
            logger.warning("Dropping %d-byte frame without a channel id", len(frame))
            return

        channel = int.from_bytes(frame[0:2], "big")
        logger.debug("[RECV] < (channel %d): %d bytes", channel, len(frame))

        queue = self._channels.setdefault(channel, _ChannelQueue())
        waiter = queue.waiter
        if waiter is not None and not waiter.done():
            queue.waiter = None
            waiter.set_result(frame)
        else:
            queue.waiter = None
            queue.frames.append(frame)

    async def read(self, channel: int) -> bytes:
        """Return the next frame for ``channel``, waiting if none is buffered.

        Raises:
            RuntimeError: If another reader is already waiting on the channel.
        """
        queue = self._channels.setdefault(channel, _ChannelQueue())
        if queue.frames:
            frame = queue.frames.popleft()
            self._prune(channel)
            return frame

        if queue.waiter is not None and not queue.waiter.done():
            raise RuntimeError(f"Channel 0x{channel:04x} already has a pending reader")

        waiter: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()
        queue.waiter = waiter
        try:
            return await waiter
        finally:
            if queue.waiter is waiter:
                queue.waiter = None
            self._prune(channel)

    def pending(self, channel: int) -> int:
        """Number of frames buffered for ``channel``."""
        queue = self._channels.get(channel)
        return len(queue.frames) if queue is not None else 0

    def waiting(self, channel: int) -> bool:
        queue = self._channels.get(channel)
        return queue is not None and queue.waiter is not None and not queue.waiter.done()

    def discard(self, channel: int) -> int:
        """Forget a finished channel and return how many frames were dropped."""
        queue = self._channels.pop(channel, None)
        if queue is None:
            return 0
        if queue.waiter is not None and not queue.waiter.done():
            queue.waiter.cancel()
        if queue.frames:
            logger.debug(
                "Discarding %d unread frame(s) on channel %d", len(queue.frames), channel
            )
        return len(queue.frames)

    def clear(self) -> None:
        """Cancel every reader and drop every buffered frame."""
        for channel in list(self._channels):
            self.discard(channel)

    def _prune(self, channel: int) -> None:
        queue = self._channels.get(channel)
        if queue is not None and queue.idle:
            del self._channels[channel]
