"""Fixed-size HID frame encoding and response reassembly.

Frame layout::

    +------------+-----+----------+------------------------------------+
    | Channel ID | Tag | Sequence |              Payload               |
    |  2 bytes   | 1 B | 2 bytes  |        packet_size - 5 bytes       |
    +------------+-----+----------+------------------------------------+

- Channel ID: big-endian, random per command, echoed by the device
- Tag: always 0x05 for APDU traffic
- Sequence: big-endian, 0 for the first frame of a message
- Payload: the first frame of a message starts with a big-endian 2-byte
  total message length; the last frame is zero padded
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..errors import FramingError
from .commands import Command

logger = logging.getLogger(__name__)

TAG = 0x05
HID_PACKET_SIZE = 64
HEADER_SIZE = 5  # channel(2) + tag(1) + sequence(2)
LENGTH_SIZE = 2


@dataclass(frozen=True)
class FrameHeader:
    """The 5-byte header at the start of every frame."""

    channel: int
    tag: int
    sequence: int

    @classmethod
    def from_frame(cls, frame: bytes) -> FrameHeader:
        if len(frame) < HEADER_SIZE:
            raise FramingError(f"Frame too short for a header: {len(frame)} bytes")
        return cls(
            channel=int.from_bytes(frame[0:2], "big"),
            tag=frame[2],
            sequence=int.from_bytes(frame[3:5], "big"),
        )

    def to_bytes(self) -> bytes:
        return (
            self.channel.to_bytes(2, "big")
            + bytes([self.tag])
            + self.sequence.to_bytes(2, "big")
        )


def new_channel() -> int:
    """Draw a random channel id.

    Collisions with a stale channel are not detected; the send queue keeps
    at most one response in flight, so only late frames could collide.
    """
    return random.getrandbits(16)


def frame_message(
    message: bytes,
    channel: int,
    packet_size: int = HID_PACKET_SIZE,
) -> list[bytes]:
    """Split a length-prefixed message into zero-padded frames."""
    if packet_size <= HEADER_SIZE + LENGTH_SIZE:
        raise ValueError(
            f"Packet size must exceed {HEADER_SIZE + LENGTH_SIZE}, got {packet_size}"
        )

    block_size = packet_size - HEADER_SIZE
    frame_count = math.ceil(len(message) / block_size)
    padded = message + b"\x00" * (frame_count * block_size - len(message))

    frames: list[bytes] = []
    for sequence in range(frame_count):
        header = FrameHeader(channel=channel, tag=TAG, sequence=sequence)
        chunk = padded[sequence * block_size : (sequence + 1) * block_size]
        frames.append(header.to_bytes() + chunk)
    return frames


def encode_command(
    command: Command,
    packet_size: int = HID_PACKET_SIZE,
    channel: int | None = None,
) -> tuple[int, list[bytes]]:
    """Encode a command into the frames that carry it to the device.

    Args:
        command: The APDU to send.
        packet_size: Size of every frame in bytes.
        channel: Channel id to use; a random one is drawn when omitted.

    Returns:
        The channel id and the ordered list of frames.
    """
    apdu = command.to_apdu()
    message = len(apdu).to_bytes(LENGTH_SIZE, "big") + apdu
    if channel is None:
        channel = new_channel()
    return channel, frame_message(message, channel, packet_size)


class ResponseAssembler:
    """Accumulates the frames of one response on a single channel."""

    def __init__(self, channel: int) -> None:
        self.channel = channel
        self.expected_length: int | None = None
        self.frame_count = 0
        self._buffer = bytearray()

    @property
    def complete(self) -> bool:
        return self.expected_length is not None and len(self._buffer) >= self.expected_length

    def feed(self, frame: bytes) -> bool:
        """Add the next frame and return whether the response is complete."""
        header = FrameHeader.from_frame(frame)
        if header.channel != self.channel:
            raise FramingError(
                f"Frame for channel 0x{header.channel:04x} on channel 0x{self.channel:04x}"
            )
        if header.tag != TAG:
            raise FramingError(f"Unexpected frame tag 0x{header.tag:02x}")
        if header.sequence != self.frame_count:
            raise FramingError(
                f"Expected sequence {self.frame_count}, got {header.sequence}"
            )

        payload = frame[HEADER_SIZE:]
        if self.expected_length is None:
            if len(payload) < LENGTH_SIZE:
                raise FramingError("First frame is missing the response length")
            self.expected_length = int.from_bytes(payload[:LENGTH_SIZE], "big")
            payload = payload[LENGTH_SIZE:]
        self._buffer += payload
        self.frame_count += 1
        return self.complete

    def result(self) -> bytes:
        """Return the response bytes with the last frame's padding removed."""
        if not self.complete:
            raise FramingError("Response is not complete yet")
        return bytes(self._buffer[: self.expected_length])


async def read_response(
    read: Callable[[int], Awaitable[bytes]],
    channel: int,
) -> bytes:
    """Read frames from ``read(channel)`` until a full response is assembled."""
    assembler = ResponseAssembler(channel)
    while True:
        frame = await read(channel)
        done = assembler.feed(frame)
        logger.debug(
            "response frame channel=0x%04x seq=%d expected=%s bytes=%s",
            channel,
            assembler.frame_count - 1,
            assembler.expected_length,
            frame.hex(" "),
        )
        if done:
            return assembler.result()
