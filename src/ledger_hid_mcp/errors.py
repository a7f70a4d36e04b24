"""Exceptions raised by the Ledger transport."""

from __future__ import annotations


class LedgerTransportError(Exception):
    """Base class for every transport-level failure."""


class PayloadTooLargeError(LedgerTransportError, ValueError):
    """The command payload does not fit in the single APDU length byte."""

    def __init__(self, length: int, limit: int = 0xFF) -> None:
        super().__init__(f"APDU payload is {length} bytes, at most {limit} allowed")
        self.length = length
        self.limit = limit


class FramingError(LedgerTransportError):
    """A received frame does not belong to the response being assembled."""


class StatusError(LedgerTransportError):
    """The device answered with a status word the caller did not allow.

    Attributes:
        code: Raw 16-bit status word.
        label: Symbolic name of the status word, or its hex form.
    """

    def __init__(self, message: str, code: int, label: str) -> None:
        super().__init__(message)
        self.code = code
        self.label = label


class StalledResponseError(LedgerTransportError, TimeoutError):
    """The response frames for a channel stopped arriving."""

    def __init__(self, channel: int, timeout: float) -> None:
        super().__init__(
            f"No complete response on channel 0x{channel:04x} after {timeout:g}s"
        )
        self.channel = channel
        self.timeout = timeout
