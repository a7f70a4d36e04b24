"""MCP server entry point for Ledger hardware wallets.

Exposes APDU exchange tools and resources via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import LedgerTransportError
from .protocol.commands import (
    Command,
    build_get_app_and_version,
    build_open_app,
    build_quit_app,
)
from .protocol.parser import parse_app_and_version
from .protocol.status import StatusCodes
from .transport.hid_device import enumerate_devices
from .transport.ledger import RESPONSE_TIMEOUT, LedgerTransport

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "ledger-hid",
    instructions="MCP server for exchanging APDUs with a Ledger device over USB HID",
)

# Global connection state
_transport: LedgerTransport | None = None


def _response_timeout() -> float | None:
    """Read the response timeout from ``LEDGER_HID_RESPONSE_TIMEOUT``.

    ``none`` disables the timeout; other values must be positive seconds.
    """
    value = os.environ.get("LEDGER_HID_RESPONSE_TIMEOUT")
    if value is None:
        return RESPONSE_TIMEOUT
    if value.strip().lower() in ("", "none"):
        return None
    timeout = float(value)
    if timeout <= 0:
        raise ValueError(
            f"LEDGER_HID_RESPONSE_TIMEOUT must be positive or 'none', got {value!r}"
        )
    return timeout


def _get_transport() -> LedgerTransport:
    """Get the active transport, raising if not connected."""
    if _transport is None or _transport.closed:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _transport


def _parse_hex(data_hex: str) -> bytes:
    return bytes.fromhex(data_hex.replace(" ", "").replace(":", ""))


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_devices() -> dict[str, Any]:
    """List connected Ledger devices (vendor ID 0x2C97)."""
    try:
        devices = enumerate_devices()
    except (ImportError, OSError) as e:
        return {"error": f"Device enumeration failed: {e}"}
    return {"devices": [info.to_dict() for info in devices]}


@mcp.tool()
async def connect() -> dict[str, Any]:
    """Open the first connected Ledger device.

    Sends a get-app-and-version command (B0 01) to confirm the device
    responds and to report which app is running.
    """
    global _transport
    if _transport is not None and not _transport.closed:
        return {"connected": True, "message": "Already connected"}

    try:
        _transport = await LedgerTransport.open_first(response_timeout=_response_timeout())
    except (ConnectionError, ValueError) as e:
        return {"connected": False, "error": str(e)}

    result: dict[str, Any] = {"connected": True}
    info = getattr(_transport.device, "device_info", None)
    if info is not None:
        result["product"] = info.product
        result["manufacturer"] = info.manufacturer

    try:
        app = await _get_app_and_version(_transport)
    except LedgerTransportError as e:
        logger.warning("get-app-and-version failed after connect: %s", e)
    else:
        result["app"] = app.name
        result["version"] = app.version
    return result


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the connection to the device."""
    global _transport
    if _transport is None:
        return {"disconnected": True}
    await _transport.close()
    _transport = None
    return {"disconnected": True}


# ─── APDU TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
async def send_apdu(
    cla: int,
    ins: int,
    p1: int = 0,
    p2: int = 0,
    data_hex: str = "",
    allowed_status_codes: list[int] | None = None,
) -> dict[str, Any]:
    """Send one APDU and return the response.

    Args:
        cla: Instruction class byte (0-255).
        ins: Instruction byte (0-255).
        p1: First parameter byte (0-255).
        p2: Second parameter byte (0-255).
        data_hex: Payload as hex, at most 255 bytes.
        allowed_status_codes: Status words accepted as success (default [0x9000]).
    """
    transport = _get_transport()
    try:
        data = _parse_hex(data_hex)
    except ValueError as e:
        return {"error": f"Invalid data_hex: {e}"}

    allowed = allowed_status_codes or [StatusCodes.OK]
    try:
        response = await transport.send(cla, ins, p1, p2, data, allowed)
    except LedgerTransportError as e:
        error: dict[str, Any] = {"error": str(e)}
        code = getattr(e, "code", None)
        if code is not None:
            error["status_code"] = f"0x{code:04x}"
        return error
    except ValueError as e:
        return {"error": str(e)}

    return {
        "status_code": f"0x{response.status_code:04x}",
        "data_hex": response.data.hex(),
    }


def _send_command(transport: LedgerTransport, command: Command):
    return transport.send(command.cla, command.ins, command.p1, command.p2, command.data)


async def _get_app_and_version(transport: LedgerTransport):
    response = await _send_command(transport, build_get_app_and_version())
    return parse_app_and_version(response)


@mcp.tool()
async def get_app_and_version() -> dict[str, Any]:
    """Report the name and version of the app running on the device."""
    transport = _get_transport()
    try:
        app = await _get_app_and_version(transport)
    except LedgerTransportError as e:
        return {"error": str(e)}
    return {"name": app.name, "version": app.version, "flags_hex": app.flags.hex()}


@mcp.tool()
async def open_app(name: str) -> dict[str, Any]:
    """Launch an installed app by name from the dashboard.

    The device asks the user to confirm; the call returns once they do.

    Args:
        name: App name as shown on the device (e.g. "Bitcoin").
    """
    transport = _get_transport()
    try:
        command = build_open_app(name)
    except (UnicodeEncodeError, ValueError) as e:
        return {"error": f"Invalid app name: {e}"}
    try:
        await _send_command(transport, command)
    except LedgerTransportError as e:
        return {"error": str(e), "opened": False}
    return {"opened": True, "name": name}


@mcp.tool()
async def quit_app() -> dict[str, Any]:
    """Close the running app and return to the dashboard."""
    transport = _get_transport()
    try:
        await _send_command(transport, build_quit_app())
    except LedgerTransportError as e:
        return {"error": str(e), "quit": False}
    return {"quit": True}


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("ledger://status-codes")
def status_codes() -> dict[str, str]:
    """Known status words and their names."""
    return {f"0x{code.value:04x}": code.name for code in StatusCodes}


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    level = os.environ.get("LEDGER_HID_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
