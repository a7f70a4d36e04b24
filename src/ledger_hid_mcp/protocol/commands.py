"""APDU command model and a few well-known command builders.

A command is the 4-byte header ``CLA INS P1 P2`` followed by a single
length byte and the payload::

    +-----+-----+----+----+-----+------------------+
    | CLA | INS | P1 | P2 | Lc  |     Payload      |
    | 1 B | 1 B | 1B | 1B | 1 B |  0..255 bytes    |
    +-----+-----+----+----+-----+------------------+
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import PayloadTooLargeError

MAX_PAYLOAD = 0xFF


@dataclass(frozen=True)
class Command:
    """A short APDU, immutable once built."""

    cla: int
    ins: int
    p1: int = 0
    p2: int = 0
    data: bytes = b""

    def __post_init__(self) -> None:
        for name in ("cla", "ins", "p1", "p2"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} must be 0-255, got {value}")
        if not isinstance(self.data, (bytes, bytearray, memoryview)):
            raise TypeError(
                f"data must be bytes-like, got {type(self.data).__name__}"
            )
        object.__setattr__(self, "data", bytes(self.data))
        if len(self.data) > MAX_PAYLOAD:
            raise PayloadTooLargeError(len(self.data), MAX_PAYLOAD)

    def to_apdu(self) -> bytes:
        """Serialize to ``CLA INS P1 P2 Lc payload``."""
        header = bytes([self.cla, self.ins, self.p1, self.p2, len(self.data)])
        return header + self.data

    def __repr__(self) -> str:
        return (
            f"Command(cla=0x{self.cla:02X}, ins=0x{self.ins:02X}, "
            f"p1=0x{self.p1:02X}, p2=0x{self.p2:02X}, "
            f"data={self.data.hex(' ') if self.data else '(empty)'})"
        )


def build_get_app_and_version() -> Command:
    """Ask the dashboard or the running app for its name and version."""
    return Command(0xB0, 0x01, 0x00, 0x00)


def build_quit_app() -> Command:
    """Return to the dashboard from the running app."""
    return Command(0xB0, 0xA7, 0x00, 0x00)


def build_open_app(name: str) -> Command:
    """Launch an installed app by name from the dashboard."""
    return Command(0xE0, 0xD8, 0x00, 0x00, name.encode("ascii"))
