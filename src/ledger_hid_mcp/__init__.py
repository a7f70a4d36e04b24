"""Asynchronous APDU transport for Ledger devices over USB HID."""

from .errors import (
    FramingError,
    LedgerTransportError,
    PayloadTooLargeError,
    StalledResponseError,
    StatusError,
)
from .protocol.commands import Command
from .protocol.parser import Response
from .protocol.status import StatusCodes
from .transport.ledger import LedgerTransport

__version__ = "0.1.0"
