"""Transport layer: HID device access, frame routing, and send ordering."""

from .demux import ChannelDemultiplexer
from .hid_device import HIDDevice, enumerate_devices
from .hotplug import HotplugMonitor
from .ledger import LedgerTransport
from .serializer import SendSerializer
