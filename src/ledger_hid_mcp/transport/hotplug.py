"""Polling hot-plug monitor for Ledger HID interfaces.

hidapi has no arrival/removal notifications, so the bus is enumerated every
``poll_interval`` seconds and differences are reported as events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable

from .base import HotplugEvent, PacketDevice
from .hid_device import LEDGER_VENDOR_ID, DeviceInfo, HIDDevice, enumerate_devices

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


class HotplugMonitor:
    """Emits ``connect``/``disconnect`` events onto a queue.

    Devices passed as ``known`` are tracked from the start, so their
    disconnect events carry the same handle object the caller holds.
    """

    def __init__(
        self,
        vendor_id: int = LEDGER_VENDOR_ID,
        poll_interval: float = POLL_INTERVAL,
        known: Iterable[PacketDevice] = (),
        enumerator: Callable[[int], list[DeviceInfo]] = enumerate_devices,
        device_factory: Callable[[DeviceInfo], PacketDevice] = HIDDevice.from_info,
    ) -> None:
        self._vendor_id = vendor_id
        self._poll_interval = poll_interval
        self._enumerate = enumerator
        self._device_factory = device_factory
        self._devices: dict[bytes, PacketDevice] = {d.path: d for d in known}
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, queue: asyncio.Queue) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(queue))

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def poll(self) -> list[HotplugEvent]:
        """Enumerate once and return the changes since the previous poll."""
        return self._diff(self._enumerate(self._vendor_id))

    def _diff(self, infos: list[DeviceInfo]) -> list[HotplugEvent]:
        present = {info.path: info for info in infos}
        events: list[HotplugEvent] = []

        for path in list(self._devices):
            if path not in present:
                events.append(HotplugEvent("disconnect", self._devices.pop(path)))
        for path, info in present.items():
            if path not in self._devices:
                device = self._device_factory(info)
                self._devices[path] = device
                events.append(HotplugEvent("connect", device))
        return events

    async def _run(self, queue: asyncio.Queue) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                infos = await loop.run_in_executor(None, self._enumerate, self._vendor_id)
            except OSError as e:
                logger.warning("Device enumeration failed: %s", e)
            else:
                for event in self._diff(infos):
                    logger.info("Hot-plug %s: %r", event.kind, event.device.path)
                    queue.put_nowait(event)
            await asyncio.sleep(self._poll_interval)
