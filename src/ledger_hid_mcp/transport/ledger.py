"""APDU transport over a Ledger's fixed-size frame link.

Commands go through a :class:`SendSerializer` so their frames never
interleave on the wire. Inbound frames and hot-plug events arrive on two
queues consumed by one dispatcher task, which feeds the
:class:`ChannelDemultiplexer` and rebinds the device handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import FrozenSet, Iterable

from ..protocol.commands import Command
from ..protocol.framing import HEADER_SIZE, HID_PACKET_SIZE, encode_command, read_response
from ..protocol.parser import Response, parse_response
from ..protocol.status import StatusCodes
from ..errors import StalledResponseError
from .base import HotplugEvent, PacketDevice
from .demux import ChannelDemultiplexer
from .hid_device import LEDGER_VENDOR_ID, HIDDevice, enumerate_devices
from .hotplug import HotplugMonitor
from .serializer import SendSerializer

logger = logging.getLogger(__name__)

RESPONSE_TIMEOUT = 120.0


class LedgerTransport:
    """Exchanges APDUs with one device.

    Usage::

        async with await LedgerTransport.open_first() as transport:
            response = await transport.send(0xB0, 0x01, 0x00, 0x00)
    """

    def __init__(
        self,
        device: PacketDevice,
        packet_size: int = HID_PACKET_SIZE,
        response_timeout: float | None = RESPONSE_TIMEOUT,
        hotplug: HotplugMonitor | None = None,
    ) -> None:
        self.device = device
        self.packet_size = packet_size
        self.response_timeout = response_timeout
        self._hotplug = hotplug
        self._frames: asyncio.Queue[bytes] = asyncio.Queue()
        self._hotplug_events: asyncio.Queue[HotplugEvent] = asyncio.Queue()
        self._demux = ChannelDemultiplexer()
        self._serializer = SendSerializer(self._exchange)
        self._dispatcher: asyncio.Task | None = None
        self._closed = False

    @classmethod
    async def open_first(
        cls,
        vendor_id: int = LEDGER_VENDOR_ID,
        **kwargs,
    ) -> LedgerTransport:
        """Open the first connected Ledger and watch the bus for reconnects.

        Raises:
            ConnectionError: If no device is connected.
        """
        devices = enumerate_devices(vendor_id)
        if not devices:
            raise ConnectionError(f"No Ledger device found (vendor {vendor_id:#06x})")
        device = HIDDevice.from_info(devices[0])
        await device.open()
        hotplug = HotplugMonitor(vendor_id=vendor_id, known=[device])
        return cls(device, hotplug=hotplug, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    def send(
        self,
        cla: int,
        ins: int,
        p1: int,
        p2: int,
        data: bytes = b"",
        allowed_status_codes: Iterable[int] = (StatusCodes.OK,),
    ) -> asyncio.Task:
        """Queue an APDU and return the task resolving to its :class:`Response`.

        The command is accepted immediately, so commands sent back to back
        reach the device in call order. Must be called from a running event
        loop.

        Raises:
            RuntimeError: If the transport has been closed.
            PayloadTooLargeError: If ``data`` is longer than 255 bytes.
            TypeError: If ``data`` is not bytes-like.

        The returned task fails with :class:`StatusError`,
        :class:`StalledResponseError` or :class:`FramingError`.
        """
        if self._closed:
            raise RuntimeError("Transport is closed")
        command = Command(cla, ins, p1, p2, data)
        self._start()
        return self._serializer.submit(command, frozenset(allowed_status_codes))

    async def _exchange(self, command: Command, allowed_status_codes: FrozenSet[int]) -> Response:
        channel, frames = encode_command(command, self.packet_size)
        await self._ensure_open()

        padded_length = len(frames) * (self.packet_size - HEADER_SIZE)
        logger.info("[SEND] > (channel %d): %d bytes", channel, padded_length)
        for frame in frames:
            logger.debug("[SEND] > %s", frame.hex(" "))
            await self.device.write_frame(frame)

        try:
            if self.response_timeout is None:
                raw = await read_response(self._demux.read, channel)
            else:
                raw = await asyncio.wait_for(
                    read_response(self._demux.read, channel), self.response_timeout
                )
        except asyncio.TimeoutError:
            raise StalledResponseError(channel, self.response_timeout) from None
        finally:
            self._demux.discard(channel)

        response = parse_response(raw, allowed_status_codes)
        logger.debug("Response on channel %d: %r", channel, response)
        return response

    async def _ensure_open(self) -> None:
        if not self.device.is_open:
            await self.device.open()
        self.device.attach(self._frames)

    def _start(self) -> None:
        if self._dispatcher is not None:
            return
        loop = asyncio.get_running_loop()
        self._dispatcher = loop.create_task(self._dispatch())
        if self._hotplug is not None:
            self._hotplug.start(self._hotplug_events)

    async def _dispatch(self) -> None:
        """Feed inbound frames to the demultiplexer and apply hot-plug events."""
        next_frame: asyncio.Task | None = None
        next_event: asyncio.Task | None = None
        try:
            while True:
                if next_frame is None:
                    next_frame = asyncio.ensure_future(self._frames.get())
                if next_event is None:
                    next_event = asyncio.ensure_future(self._hotplug_events.get())
                done, _ = await asyncio.wait(
                    {next_frame, next_event}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_frame in done:
                    self._demux.on_frame(next_frame.result())
                    next_frame = None
                if next_event in done:
                    self._on_hotplug(next_event.result())
                    next_event = None
        finally:
            for pending in (next_frame, next_event):
                if pending is not None:
                    pending.cancel()

    def _on_hotplug(self, event: HotplugEvent) -> None:
        # Single-device assumption: any matching device that appears is
        # taken as the reconnected one.
        if event.kind == "connect":
            self._on_connect(event.device)
        else:
            self._on_disconnect(event.device)

    def _on_connect(self, device: PacketDevice) -> None:
        logger.info("Rebinding from %r to %r", self.device.path, device.path)
        previous, self.device = self.device, device
        if previous is not device and previous.is_open:
            previous.detach()
            previous.close()
        if device.is_open:
            device.attach(self._frames)

    def _on_disconnect(self, device: PacketDevice) -> None:
        if device.path != self.device.path:
            logger.warning(
                "Device %r disconnected while bound to %r", device.path, self.device.path
            )
        else:
            logger.info("Device %r disconnected", device.path)
        device.detach()
        device.close()

    async def close(self) -> None:
        """Detach listeners, cancel pending sends and close the device."""
        if self._closed:
            return
        self._closed = True
        if self._hotplug is not None:
            self._hotplug.stop()
        self._serializer.cancel_all()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None
        self._demux.clear()
        self.device.detach()
        self.device.close()

    async def __aenter__(self) -> LedgerTransport:
        self._start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
