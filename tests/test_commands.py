"""Tests for the APDU command model and builders."""

import pytest

from ledger_hid_mcp.errors import PayloadTooLargeError
from ledger_hid_mcp.protocol.commands import (
    MAX_PAYLOAD,
    Command,
    build_get_app_and_version,
    build_open_app,
    build_quit_app,
)


def test_to_apdu_layout():
    """APDU bytes are CLA INS P1 P2 Lc followed by the payload."""
    command = Command(0xE0, 0x02, 0x01, 0x00, b"\x01\x02\x03")
    assert command.to_apdu() == b"\xE0\x02\x01\x00\x03\x01\x02\x03"


def test_empty_payload():
    """Commands without payload carry Lc = 0."""
    assert Command(0xB0, 0x01).to_apdu() == b"\xB0\x01\x00\x00\x00"


def test_max_payload_accepted():
    """Exactly 255 payload bytes still fit the length byte."""
    command = Command(0xE0, 0x04, 0, 0, bytes(MAX_PAYLOAD))
    assert command.to_apdu()[4] == 0xFF


def test_payload_too_large():
    """A 256-byte payload raises with the offending length."""
    with pytest.raises(PayloadTooLargeError) as excinfo:
        Command(0xE0, 0x04, 0, 0, bytes(256))
    assert excinfo.value.length == 256
    assert isinstance(excinfo.value, ValueError)


@pytest.mark.parametrize("field", ["cla", "ins", "p1", "p2"])
def test_header_field_bounds(field):
    """Header bytes outside 0-255 are rejected."""
    kwargs = {"cla": 0xE0, "ins": 0x02, "p1": 0, "p2": 0}
    kwargs[field] = 256
    with pytest.raises(ValueError):
        Command(**kwargs)


def test_payload_is_copied_to_bytes():
    """Mutable payloads are frozen into bytes."""
    payload = bytearray(b"\x01")
    command = Command(0xE0, 0x02, 0, 0, payload)
    payload[0] = 0xFF
    assert command.data == b"\x01"


@pytest.mark.parametrize("data", [5, "01", [1, 2]])
def test_payload_must_be_bytes_like(data):
    """An int, str or list payload is rejected instead of coerced."""
    with pytest.raises(TypeError):
        Command(0xE0, 0x02, 0, 0, data)


def test_payload_accepts_memoryview():
    """memoryview payloads are copied like bytearray."""
    assert Command(0xE0, 0x02, 0, 0, memoryview(b"\x01\x02")).data == b"\x01\x02"


def test_builders():
    """Dashboard command builders use the documented CLA/INS."""
    assert build_get_app_and_version().to_apdu() == b"\xB0\x01\x00\x00\x00"
    assert build_quit_app().to_apdu() == b"\xB0\xA7\x00\x00\x00"
    assert build_open_app("Bitcoin").to_apdu() == b"\xE0\xD8\x00\x00\x07Bitcoin"


def test_command_repr():
    """Command repr should be readable."""
    r = repr(Command(0xE0, 0x02))
    assert "0xE0" in r
    assert "(empty)" in r
