"""Response parsing for reassembled device messages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import FramingError, StatusError
from .status import StatusCodes, describe_status, status_label

STATUS_SIZE = 2


@dataclass(frozen=True)
class Response:
    """A decoded APDU response."""

    status_code: int
    data: bytes

    @property
    def ok(self) -> bool:
        return self.status_code == StatusCodes.OK

    def __repr__(self) -> str:
        return (
            f"Response(status_code=0x{self.status_code:04X}, "
            f"data={self.data.hex(' ') if self.data else '(empty)'})"
        )


def parse_response(
    raw: bytes,
    allowed_status_codes: Iterable[int] = (StatusCodes.OK,),
) -> Response:
    """Split a reassembled response into data and trailing status word.

    Raises:
        FramingError: If the response cannot hold a status word.
        StatusError: If the status word is not in ``allowed_status_codes``.
    """
    if len(raw) < STATUS_SIZE:
        raise FramingError(f"Response of {len(raw)} bytes has no status word")

    code = int.from_bytes(raw[-STATUS_SIZE:], "big")
    if code not in set(allowed_status_codes):
        raise StatusError(describe_status(code), code=code, label=status_label(code))
    return Response(status_code=code, data=bytes(raw[:-STATUS_SIZE]))


@dataclass
class AppAndVersion:
    """Parsed answer to the ``B0 01`` get-app-and-version command."""

    name: str
    version: str
    flags: bytes = b""


def parse_app_and_version(response: Response) -> AppAndVersion:
    """Parse ``format | name_len | name | version_len | version | flags_len | flags``."""
    data = response.data
    try:
        if data[0] != 0x01:
            raise FramingError(f"Unknown app-and-version format 0x{data[0]:02x}")
        offset = 1
        name_len = data[offset]
        name = data[offset + 1 : offset + 1 + name_len].decode("ascii")
        offset += 1 + name_len
        version_len = data[offset]
        version = data[offset + 1 : offset + 1 + version_len].decode("ascii")
        offset += 1 + version_len
        flags = b""
        if offset < len(data):
            flags_len = data[offset]
            flags = bytes(data[offset + 1 : offset + 1 + flags_len])
    except (IndexError, UnicodeDecodeError) as e:
        raise FramingError(f"Malformed app-and-version response: {e}") from e
    return AppAndVersion(name=name, version=version, flags=flags)
