"""Tests for response parsing and status gating."""

import pytest

from ledger_hid_mcp.errors import FramingError, StatusError
from ledger_hid_mcp.protocol.parser import Response, parse_app_and_version, parse_response
from ledger_hid_mcp.protocol.status import StatusCodes, describe_status, status_label


def test_ok_response():
    """Data excludes the trailing status word."""
    response = parse_response(b"\x01\x02\x90\x00")
    assert response == Response(status_code=0x9000, data=b"\x01\x02")
    assert response.ok


def test_status_only_response():
    """A two-byte response decodes to empty data, not an error."""
    response = parse_response(b"\x90\x00")
    assert response.data == b""
    assert response.status_code == StatusCodes.OK


def test_disallowed_status_raises():
    """0x6985 is rejected when only 0x9000 is allowed."""
    with pytest.raises(StatusError) as excinfo:
        parse_response(b"\xAA\x69\x85", {0x9000})
    assert excinfo.value.code == 0x6985
    assert excinfo.value.label == "CONDITIONS_OF_USE_NOT_SATISFIED"


def test_allowed_non_ok_status():
    """The same response succeeds once 0x6985 is allowed."""
    response = parse_response(b"\xAA\x69\x85", {0x9000, 0x6985})
    assert response.status_code == 0x6985
    assert response.data == b"\xAA"
    assert not response.ok


def test_too_short_for_status():
    """A response without room for a status word is a framing error."""
    with pytest.raises(FramingError):
        parse_response(b"\x90")


def test_status_label_known_and_unknown():
    """Unknown codes fall back to hex."""
    assert status_label(0x6D00) == "INS_NOT_SUPPORTED"
    assert status_label(0x1234) == "0x1234"


def test_describe_status():
    """Messages include name, decimal and hex forms."""
    assert describe_status(0x6985) == (
        "Error status code: CONDITIONS_OF_USE_NOT_SATISFIED / 27013 / 0x6985"
    )
    assert describe_status(0x1234) == "Error status code: 4660 / 0x1234"


def test_parse_app_and_version():
    """Dashboard answer: format, name, version, flags."""
    data = b"\x01\x07Bitcoin\x052.1.0\x01\x02"
    app = parse_app_and_version(Response(0x9000, data))
    assert app.name == "Bitcoin"
    assert app.version == "2.1.0"
    assert app.flags == b"\x02"


def test_parse_app_and_version_malformed():
    """Truncated answers raise a framing error."""
    with pytest.raises(FramingError):
        parse_app_and_version(Response(0x9000, b"\x01\x07Bit"))
    with pytest.raises(FramingError):
        parse_app_and_version(Response(0x9000, b""))
