#!/usr/bin/env python3
"""
Q-Light device enumerator.

Towers carry no serial number, so identical units are told apart by
their USB topology path (bus + port chain, e.g. ``1-2.4``).  The list is
sorted by that path so "device #2" means the same physical tower on
every call as long as nothing is replugged.

Topology sources, by backend path format:
- older hidapi-libusb paths ``1-2.4:1.0``: the part before the colon.
- current hidapi-libusb paths ``0001:0005:00`` (hex bus:address:interface):
  the ``/sys/bus/usb/devices`` entry with that busnum/devnum.
- Linux hidraw paths ``/dev/hidraw3``: walk up from
  ``/sys/class/hidraw/hidraw3/device`` to the USB device directory.
- pyusb entries: already carry ``topology``.
- Anything else (macOS, Windows): the path string itself.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import DeviceNotFoundError
from .protocol import QLIGHT_PID, QLIGHT_VID
from .transport import HidContext

log = logging.getLogger(__name__)

# "1-2.4" (bus 1, port 2, hub port 4)
_TOPOLOGY_RE = re.compile(r'^(\d+)-(\d+(?:\.\d+)*)$')
# "1-2.4:1.0" (libusb hidapi path: topology, config.interface)
_LIBUSB_PATH_RE = re.compile(r'^(\d+-\d+(?:\.\d+)*):\d+\.\d+$')
# "0001:0005:00" (newer hidapi-libusb path: hex bus, address, interface)
_LIBUSB_BUSDEV_RE = re.compile(r'^([0-9a-fA-F]{4}):([0-9a-fA-F]{4}):([0-9a-fA-F]{2})$')

SYSFS_HIDRAW = "/sys/class/hidraw"
SYSFS_USB_DEVICES = "/sys/bus/usb/devices"


@dataclass(frozen=True)
class DeviceIdentity:
    """One attached tower.

    Attributes:
        vendor_id: USB vendor ID.
        product_id: USB product ID.
        topology: USB port chain, e.g. "1-2.4".  Stable only until replug.
        path: Backend-specific open token (hidraw node, libusb path, ...).
        interface: HID interface number, -1 if unknown.
    """
    vendor_id: int
    product_id: int
    topology: str
    path: bytes
    interface: int = -1

    @property
    def path_str(self) -> str:
        return self.path.decode(errors='replace')

    @property
    def vid_pid(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}"


# =========================================================================
# Topology resolution
# =========================================================================

def topology_sort_key(topology: str) -> Tuple[int, Tuple[int, ...], str]:
    """Numeric sort key so ``1-10`` sorts after ``1-9``.

    Unparseable topologies sort after all parseable ones, by string.
    """
    match = _TOPOLOGY_RE.match(topology)
    if not match:
        return (1, (), topology)
    bus, ports = match.groups()
    return (0, (int(bus),) + tuple(int(p) for p in ports.split('.')), "")


def _topology_from_sysfs(hidraw_path: str) -> Optional[str]:
    """Resolve /dev/hidrawN to its USB port chain via sysfs."""
    name = os.path.basename(hidraw_path)
    device_link = os.path.join(SYSFS_HIDRAW, name, "device")
    if not os.path.exists(device_link):
        return None
    device_path = os.path.realpath(device_link)
    # .../usb1/1-2/1-2.4/1-2.4:1.0/0003:04D8:E73C.0005
    for _ in range(10):
        base = os.path.basename(device_path)
        if _TOPOLOGY_RE.match(base):
            return base
        parent = os.path.dirname(device_path)
        if parent == device_path:
            break
        device_path = parent
    return None


def _topology_from_busdev(bus: int, address: int) -> Optional[str]:
    """Find the USB device directory whose busnum/devnum match."""
    try:
        names = os.listdir(SYSFS_USB_DEVICES)
    except OSError:
        return None
    for name in sorted(names):
        if not _TOPOLOGY_RE.match(name):
            continue
        base = os.path.join(SYSFS_USB_DEVICES, name)
        try:
            with open(os.path.join(base, "busnum")) as f:
                busnum = int(f.read().strip())
            with open(os.path.join(base, "devnum")) as f:
                devnum = int(f.read().strip())
        except (OSError, ValueError):
            continue
        if busnum == bus and devnum == address:
            return name
    return None


def resolve_topology(info: Dict[str, Any]) -> str:
    """Best available topology string for one enumeration entry."""
    if info.get('topology'):
        return info['topology']

    raw = info.get('path', b'')
    path = raw.decode(errors='replace') if isinstance(raw, bytes) else str(raw)

    match = _LIBUSB_PATH_RE.match(path)
    if match:
        return match.group(1)

    match = _LIBUSB_BUSDEV_RE.match(path)
    if match:
        topology = _topology_from_busdev(int(match.group(1), 16), int(match.group(2), 16))
        if topology:
            return topology
        log.debug("No sysfs device for bus/address %s", path)

    if path.startswith("/dev/hidraw"):
        topology = _topology_from_sysfs(path)
        if topology:
            return topology
        log.debug("No sysfs topology for %s", path)

    return path


# =========================================================================
# Public API
# =========================================================================

def _sort_key(device: DeviceIdentity):
    return topology_sort_key(device.topology), device.path


def list_devices(context: HidContext,
                 vid: int = QLIGHT_VID, pid: int = QLIGHT_PID) -> List[DeviceIdentity]:
    """Enumerate attached towers in stable topology order.

    Returns an empty list when nothing is attached.

    Raises:
        DeviceAccessError: If the HID subsystem cannot be queried.
    """
    seen = set()
    devices = []
    for info in context.enumerate(vid, pid):
        if info.get('vendor_id') != vid or info.get('product_id') != pid:
            continue
        path = info.get('path', b'')
        if isinstance(path, str):
            path = path.encode()
        if path in seen:
            # hidapi lists one entry per top-level collection
            continue
        seen.add(path)
        devices.append(DeviceIdentity(
            vendor_id=vid,
            product_id=pid,
            topology=resolve_topology(info),
            path=path,
            interface=info.get('interface_number', -1),
        ))

    devices.sort(key=_sort_key)
    log.debug("Found %d Q-Light device(s) via %s", len(devices), context.name)
    return devices


def select_device(devices: Sequence[DeviceIdentity], index: int) -> DeviceIdentity:
    """Pick by 1-based ordinal, as printed by ``qlight list``."""
    if not devices:
        raise DeviceNotFoundError("No Q-Light devices found")
    if not 1 <= index <= len(devices):
        raise DeviceNotFoundError(
            f"Device index {index} out of range (1-{len(devices)})"
        )
    return devices[index - 1]


def find_device(devices: Sequence[DeviceIdentity], path: str) -> DeviceIdentity:
    """Pick by backend path or topology string."""
    for device in devices:
        if path in (device.path_str, device.topology):
            return device
    raise DeviceNotFoundError(f"No Q-Light device at {path}")
