"""Protocol layer: APDU commands, HID framing, and response parsing."""

from .commands import Command
from .framing import encode_command, read_response
from .parser import Response, parse_response
from .status import StatusCodes, status_label
