"""USB HID connection to a Ledger device.

Supports both ``hidapi`` (preferred) and ``pyusb`` backends.
Ledger devices expose a vendor-defined HID interface (usage page 0xFFA0,
interface 0) with endpoints 0x82 (IN) and 0x02 (OUT).
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..protocol.framing import HID_PACKET_SIZE

logger = logging.getLogger(__name__)

LEDGER_VENDOR_ID = 0x2C97
LEDGER_USAGE_PAGE = 0xFFA0
HID_INTERFACE = 0
EP_IN = 0x82
EP_OUT = 0x02
READ_TIMEOUT_MS = 100
WRITE_TIMEOUT_MS = 1000


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = LEDGER_VENDOR_ID
    product_id: int = 0
    manufacturer: str = ""
    product: str = ""
    serial_number: str = ""
    path: bytes = b""

    def to_dict(self) -> dict:
        return {
            "vendor_id": f"{self.vendor_id:#06x}",
            "product_id": f"{self.product_id:#06x}",
            "manufacturer": self.manufacturer,
            "product": self.product,
            "serial_number": self.serial_number,
            "path": self.path.decode(errors="replace"),
        }


def enumerate_devices(vendor_id: int = LEDGER_VENDOR_ID) -> list[DeviceInfo]:
    """List the APDU interfaces of every connected device with ``vendor_id``."""
    import hid

    devices: list[DeviceInfo] = []
    for info in hid.enumerate(vendor_id, 0):
        if (
            info.get("usage_page") != LEDGER_USAGE_PAGE
            and info.get("interface_number") != HID_INTERFACE
        ):
            continue
        devices.append(
            DeviceInfo(
                vendor_id=info["vendor_id"],
                product_id=info["product_id"],
                manufacturer=info.get("manufacturer_string") or "",
                product=info.get("product_string") or "",
                serial_number=info.get("serial_number") or "",
                path=info["path"],
            )
        )
    return devices


class HIDDevice:
    """Frame-level access to one Ledger over USB HID.

    Blocking USB calls run on single-worker executors so the event loop is
    never blocked. Inbound frames are pushed onto the queue given to
    :meth:`attach`.

    Usage::

        device = HIDDevice(path=enumerate_devices()[0].path)
        await device.open()
        device.attach(queue)
        await device.write_frame(frame)
        device.close()
    """

    def __init__(
        self,
        path: bytes = b"",
        vendor_id: int = LEDGER_VENDOR_ID,
        product_id: int | None = None,
        packet_size: int = HID_PACKET_SIZE,
        read_timeout_ms: int = READ_TIMEOUT_MS,
    ) -> None:
        self.path = path
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._packet_size = packet_size
        self._read_timeout_ms = read_timeout_ms
        self._device = None
        self._backend: str = ""
        self._connected = False
        self._device_info = DeviceInfo(vendor_id=vendor_id, path=path)
        self._write_executor: ThreadPoolExecutor | None = None
        self._read_executor: ThreadPoolExecutor | None = None
        self._reader: asyncio.Task | None = None

    @classmethod
    def from_info(cls, info: DeviceInfo, **kwargs) -> HIDDevice:
        device = cls(
            path=info.path,
            vendor_id=info.vendor_id,
            product_id=info.product_id,
            **kwargs,
        )
        device._device_info = info
        return device

    @property
    def is_open(self) -> bool:
        return self._connected

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    async def open(self) -> None:
        """Open the device, trying hidapi first, then pyusb.

        Raises:
            ConnectionError: If the device cannot be found or opened.
        """
        if self._connected:
            return

        try:
            self._open_hidapi()
        except Exception as e:
            logger.debug("hidapi backend failed: %s, trying pyusb", e)
            try:
                self._open_pyusb()
            except Exception as e:
                raise ConnectionError(
                    f"Could not connect to Ledger device "
                    f"({self._vendor_id:#06x}, path={self.path!r}). "
                    f"Ensure the device is connected and unlocked and that you "
                    f"have permissions. Last error: {e}"
                ) from e

        self._write_executor = ThreadPoolExecutor(max_workers=1)
        self._read_executor = ThreadPoolExecutor(max_workers=1)

    def _open_hidapi(self) -> None:
        """Open using the hidapi library."""
        import hid

        device = hid.device()
        if self.path:
            device.open_path(self.path)
        else:
            device.open(self._vendor_id, self._product_id or 0)
        device.set_nonblocking(False)

        self._device = device
        self._backend = "hidapi"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id or self._device_info.product_id,
            manufacturer=device.get_manufacturer_string() or "",
            product=device.get_product_string() or "",
            serial_number=device.get_serial_number_string() or "",
            path=self.path,
        )

        logger.info(
            "Connected via hidapi: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )

    def _open_pyusb(self) -> None:
        """Open using pyusb + libusb."""
        import usb.core
        import usb.util

        if self._product_id is None:
            dev = usb.core.find(idVendor=self._vendor_id)
        else:
            dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        if dev is None:
            raise ConnectionError("Device not found via pyusb")

        if dev.is_kernel_driver_active(HID_INTERFACE):
            dev.detach_kernel_driver(HID_INTERFACE)

        usb.util.claim_interface(dev, HID_INTERFACE)

        self._device = dev
        self._backend = "pyusb"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=dev.idProduct,
            manufacturer=usb.util.get_string(dev, dev.iManufacturer) or "",
            product=usb.util.get_string(dev, dev.iProduct) or "",
            path=self.path,
        )

        logger.info(
            "Connected via pyusb: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )

    def close(self) -> None:
        """Stop reading and close the USB connection.

        Waits for a read already running on the reader thread, at most
        ``read_timeout_ms``, so the handle is never closed mid-read.
        """
        self.detach()
        if self._read_executor is not None:
            self._read_executor.shutdown(wait=True)
            self._read_executor = None
        if not self._connected:
            return

        try:
            if self._backend == "hidapi":
                self._device.close()
            elif self._backend == "pyusb":
                import usb.util
                usb.util.release_interface(self._device, HID_INTERFACE)
        except Exception as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            if self._write_executor is not None:
                self._write_executor.shutdown(wait=True)
            self._write_executor = None
            logger.info("Disconnected")

    async def write_frame(self, frame: bytes) -> None:
        """Write one frame to the device.

        Raises:
            ConnectionError: If not connected.
            ValueError: If the frame is not exactly ``packet_size`` bytes.
        """
        if not self._connected or self._write_executor is None:
            raise ConnectionError("Not connected to device")

        if len(frame) != self._packet_size:
            raise ValueError(
                f"Frame must be {self._packet_size} bytes, got {len(frame)}"
            )

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._write_executor, self._write_blocking, frame)
        logger.debug("[%s] write %s", self._backend, frame.hex(" "))

    def _write_blocking(self, frame: bytes) -> int:
        if self._backend == "hidapi":
            # hidapi expects the report id in front; Ledger uses report 0
            return self._device.write(b"\x00" + frame)
        elif self._backend == "pyusb":
            return self._device.write(EP_OUT, frame, timeout=WRITE_TIMEOUT_MS)
        else:
            raise RuntimeError(f"Unknown backend: {self._backend}")

    def _read_blocking(self) -> bytes | None:
        """Read one frame, or None if the read timed out."""
        if self._backend == "hidapi":
            data = self._device.read(self._packet_size, self._read_timeout_ms)
        elif self._backend == "pyusb":
            import usb.core

            try:
                data = self._device.read(EP_IN, self._packet_size, timeout=self._read_timeout_ms)
            except usb.core.USBTimeoutError:
                return None
        else:
            raise RuntimeError(f"Unknown backend: {self._backend}")
        if not data:
            return None
        return bytes(data)

    def attach(self, queue: asyncio.Queue) -> None:
        """Start pushing inbound frames onto ``queue``."""
        if self._reader is not None and not self._reader.done():
            return
        if not self._connected:
            raise ConnectionError("Not connected to device")
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(queue))

    def detach(self) -> None:
        """Stop pushing inbound frames."""
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None

    async def _read_loop(self, queue: asyncio.Queue) -> None:
        loop = asyncio.get_running_loop()
        while self._connected and self._read_executor is not None:
            try:
                frame = await loop.run_in_executor(self._read_executor, self._read_blocking)
            except (OSError, ValueError) as e:
                logger.warning("Read error on %r, stopping reader: %s", self.path, e)
                return
            if frame is not None:
                queue.put_nowait(frame)
