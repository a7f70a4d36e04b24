"""Tests for the HID device with the hid and usb modules mocked."""

import asyncio
import sys
import time
from unittest.mock import MagicMock, patch

import pytest

from ledger_hid_mcp.transport.hid_device import (
    LEDGER_USAGE_PAGE,
    LEDGER_VENDOR_ID,
    DeviceInfo,
    HIDDevice,
    enumerate_devices,
)


def _mock_hid(read_frames=()):
    """Build a fake ``hid`` module whose device returns ``read_frames`` once each."""
    pending = [list(f) for f in read_frames]

    def read(size, timeout):
        if pending:
            return pending.pop(0)
        time.sleep(0.001)
        return []

    handle = MagicMock()
    handle.read.side_effect = read
    handle.get_manufacturer_string.return_value = "Ledger"
    handle.get_product_string.return_value = "Nano S Plus"
    handle.get_serial_number_string.return_value = "0001"

    hid_module = MagicMock()
    hid_module.device.return_value = handle
    return hid_module, handle


def test_open_by_path_and_write_prefixes_report_id():
    """Writes go out with a leading 0x00 report id."""
    hid_module, handle = _mock_hid()

    async def run():
        device = HIDDevice(path=b"/dev/hidraw3")
        await device.open()
        assert device.is_open
        await device.write_frame(bytes(range(64)))
        info = device.device_info
        device.close()
        return device, info

    with patch.dict(sys.modules, {"hid": hid_module}):
        device, info = asyncio.run(run())

    handle.open_path.assert_called_once_with(b"/dev/hidraw3")
    handle.write.assert_called_once_with(b"\x00" + bytes(range(64)))
    handle.close.assert_called_once()
    assert info.product == "Nano S Plus"
    assert not device.is_open


def test_write_rejects_wrong_size():
    """Frames must match the packet size."""
    hid_module, _ = _mock_hid()

    async def run():
        device = HIDDevice(path=b"p")
        await device.open()
        try:
            with pytest.raises(ValueError):
                await device.write_frame(bytes(10))
        finally:
            device.close()

    with patch.dict(sys.modules, {"hid": hid_module}):
        asyncio.run(run())


def test_write_when_closed():
    """Writing before open raises ConnectionError."""
    with pytest.raises(ConnectionError):
        asyncio.run(HIDDevice(path=b"p").write_frame(bytes(64)))


def test_attached_queue_receives_frames():
    """Inbound reports are pushed onto the attached queue."""
    frame = bytes([0x12, 0x34, 0x05, 0, 0]) + bytes(59)
    hid_module, _ = _mock_hid([frame])

    async def run():
        device = HIDDevice(path=b"p")
        await device.open()
        queue = asyncio.Queue()
        device.attach(queue)
        received = await asyncio.wait_for(queue.get(), timeout=2)
        device.close()
        return received

    with patch.dict(sys.modules, {"hid": hid_module}):
        assert asyncio.run(run()) == frame


def test_close_waits_for_pending_read():
    """The handle is closed only after the reader thread leaves ``read``."""
    hid_module, handle = _mock_hid()
    events = []

    def slow_read(size, timeout):
        events.append("read-start")
        time.sleep(0.05)
        events.append("read-end")
        return []

    handle.read.side_effect = slow_read
    handle.close.side_effect = lambda: events.append("close")

    async def run():
        device = HIDDevice(path=b"p")
        await device.open()
        device.attach(asyncio.Queue())
        await asyncio.sleep(0.01)
        device.close()
        return device

    with patch.dict(sys.modules, {"hid": hid_module}):
        device = asyncio.run(run())

    assert "read-start" in events
    assert events[-1] == "close"
    assert events.count("read-start") == events.count("read-end")
    assert not device.is_open


def test_open_falls_back_and_fails():
    """When both backends fail, open raises ConnectionError."""
    hid_module, handle = _mock_hid()
    handle.open_path.side_effect = OSError("open failed")
    usb_core = MagicMock()
    usb_core.find.return_value = None
    usb_module = MagicMock()
    usb_module.core = usb_core

    modules = {
        "hid": hid_module,
        "usb": usb_module,
        "usb.core": usb_core,
        "usb.util": usb_module.util,
    }
    with patch.dict(sys.modules, modules):
        with pytest.raises(ConnectionError):
            asyncio.run(HIDDevice(path=b"p").open())


def test_enumerate_filters_apdu_interface():
    """Only the vendor-defined APDU interface is listed."""
    hid_module = MagicMock()
    hid_module.enumerate.return_value = [
        {
            "vendor_id": LEDGER_VENDOR_ID,
            "product_id": 0x5011,
            "usage_page": LEDGER_USAGE_PAGE,
            "interface_number": 0,
            "manufacturer_string": "Ledger",
            "product_string": "Nano S Plus",
            "serial_number": "",
            "path": b"apdu",
        },
        {
            "vendor_id": LEDGER_VENDOR_ID,
            "product_id": 0x5011,
            "usage_page": 0xF1D0,
            "interface_number": 1,
            "path": b"fido",
        },
    ]
    with patch.dict(sys.modules, {"hid": hid_module}):
        devices = enumerate_devices()

    hid_module.enumerate.assert_called_once_with(LEDGER_VENDOR_ID, 0)
    assert [d.path for d in devices] == [b"apdu"]
    assert devices[0].to_dict()["product_id"] == "0x5011"


def test_from_info_keeps_identity():
    """Devices built from enumeration carry its path and ids."""
    info = DeviceInfo(product_id=0x4011, product="Nano X", path=b"x")
    device = HIDDevice.from_info(info)
    assert device.path == b"x"
    assert device.device_info is info
    assert not device.is_open
