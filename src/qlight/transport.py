#!/usr/bin/env python3
"""
HID access layer: explicit context objects for enumeration and report writes.

The ``HidContext`` ABC abstracts the HID library so that:
  • Tests can inject a fake context (no real hardware needed).
  • ``HidApiContext`` talks to the OS HID driver via hidapi.
  • ``PyUsbContext`` talks to the device directly via pyusb (libusb backend).

A context is created per invocation and passed explicitly to the
enumerator and sender; nothing here keeps module-level device state.

Linux dependencies:
  • hidapi: ``pip install hidapi`` (needs libhidapi: ``apt install libhidapi-hidraw0``)
  • pyusb:  ``pip install pyusb``  (needs libusb1: ``apt install libusb-1.0-0``)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import usb.core
import usb.util

from .errors import DeviceAccessError, DeviceOpenError, DeviceWriteError
from .protocol import QLIGHT_PID, QLIGHT_VID

# hidapi needs the native libhidapi at import time
try:
    import hid as hidapi
    HIDAPI_AVAILABLE = True
except ImportError:
    HIDAPI_AVAILABLE = False

log = logging.getLogger(__name__)

# =========================================================================
# Constants
# =========================================================================

BACKENDS = ("auto", "hidapi", "pyusb")

# HID class request: SET_REPORT with report type "output"
HID_SET_REPORT = 0x09
HID_REPORT_TYPE_OUTPUT = 0x02
HID_REQUEST_TYPE_OUT = 0x21  # host-to-device | class | interface

USB_INTERFACE = 0
DEFAULT_TIMEOUT_MS = 1000


# =========================================================================
# Abstract handle / context
# =========================================================================

class HidHandle(ABC):
    """An open device.  Usable as a context manager; ``close()`` is idempotent."""

    @abstractmethod
    def write(self, report: bytes) -> int:
        """Write one output report.  Returns bytes transferred."""

    @abstractmethod
    def close(self) -> None:
        """Release the device."""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class HidContext(ABC):
    """Per-invocation handle on the HID subsystem."""

    name = "abstract"

    @abstractmethod
    def enumerate(self, vid: int, pid: int) -> List[Dict[str, Any]]:
        """List attached devices matching *vid*/*pid*.

        Each entry is a dict with at least ``vendor_id``, ``product_id``
        and ``path`` (bytes), in the shape returned by ``hid.enumerate``.
        Backends that know the USB port chain also set ``topology``.

        Raises:
            DeviceAccessError: If the subsystem cannot be queried.
        """

    @abstractmethod
    def open(self, path: bytes) -> HidHandle:
        """Open the device at *path* for writing.

        Raises:
            DeviceOpenError: If the device is missing or busy.
        """


# =========================================================================
# hidapi backend
# =========================================================================

class HidApiHandle(HidHandle):
    """Open hidapi device."""

    def __init__(self, device: Any, path: bytes):
        self._device = device
        self._path = path

    def write(self, report: bytes) -> int:
        """Write via HID output report.

        hidapi treats the first byte as the report ID and sends it on
        the wire since it is non-zero.
        """
        if self._device is None:
            raise DeviceWriteError("Device handle is closed")
        try:
            written = self._device.write(report)
        except Exception as e:
            log.debug("hidapi write to %r failed: %s", self._path, e)
            raise DeviceWriteError(f"HID write failed: {e}") from e
        if written is None or written < 0:
            raise DeviceWriteError(f"HID write rejected (result={written})")
        return written

    def close(self) -> None:
        if self._device is not None:
            try:
                self._device.close()
            except Exception as e:
                log.debug("hidapi close: %s", e)
            self._device = None


class HidApiContext(HidContext):
    """HID access through hidapi (hidraw on Linux, IOKit on macOS, HID.dll on Windows).

    Requires: ``pip install hidapi``
    """

    name = "hidapi"

    def __init__(self):
        if not HIDAPI_AVAILABLE:
            raise DeviceAccessError(
                "hidapi is not available. Install with: pip install hidapi\n"
                "Also need libhidapi: apt install libhidapi-hidraw0 (Debian/Ubuntu) "
                "or dnf install hidapi (Fedora)"
            )

    def enumerate(self, vid: int, pid: int) -> List[Dict[str, Any]]:
        try:
            return [dict(info) for info in hidapi.enumerate(vid, pid)]
        except Exception as e:
            raise DeviceAccessError(f"HID enumeration failed: {e}") from e

    def open(self, path: bytes) -> HidHandle:
        # cython-hidapi exposes device() + open_path(); the ctypes "hid"
        # package exposes Device(path=...)
        try:
            device_class = getattr(hidapi, 'device', None)
            if device_class is not None:
                device = device_class()
                device.open_path(path)
            else:
                device = hidapi.Device(path=path)
        except Exception as e:
            log.debug("hidapi open %r failed: %s", path, e)
            raise DeviceOpenError(f"Cannot open HID device {_path_str(path)}: {e}") from e
        return HidApiHandle(device, path)


# =========================================================================
# pyusb backend
# =========================================================================

def usb_topology(device: Any) -> str:
    """Port-chain string for a pyusb device, e.g. ``"1-2.4"``."""
    ports = getattr(device, 'port_numbers', None)
    if ports:
        return f"{device.bus}-{'.'.join(str(p) for p in ports)}"
    # Root-hub devices or platforms without port info
    return f"{device.bus}-{device.address}"


class PyUsbHandle(HidHandle):
    """Device claimed through libusb.

    The kernel HID driver is detached while the handle is open and
    reattached on close, so hidraw comes back afterwards.
    """

    def __init__(self, device: Any):
        self._device = device
        self._reattach = False
        self._ep_out: Optional[int] = None

    def claim(self) -> None:
        try:
            if self._device.is_kernel_driver_active(USB_INTERFACE):
                self._device.detach_kernel_driver(USB_INTERFACE)
                self._reattach = True
                log.debug("Detached kernel driver from interface %d", USB_INTERFACE)
        except (usb.core.USBError, NotImplementedError) as e:
            log.debug("Kernel driver detach: %s", e)
        usb.util.claim_interface(self._device, USB_INTERFACE)
        self._detect_endpoint()

    def _detect_endpoint(self) -> None:
        """Find the interrupt OUT endpoint, if the interface has one."""
        try:
            cfg = self._device.get_active_configuration()
            intf = cfg[(USB_INTERFACE, 0)]
            for ep in intf:
                if usb.util.endpoint_direction(ep.bEndpointAddress) == usb.util.ENDPOINT_OUT:
                    self._ep_out = ep.bEndpointAddress
                    break
            log.debug("OUT endpoint: %s",
                      f"0x{self._ep_out:02x}" if self._ep_out is not None else "none")
        except (usb.core.USBError, KeyError, IndexError) as e:
            log.debug("Endpoint detection failed: %s", e)

    def write(self, report: bytes) -> int:
        """Interrupt OUT transfer, or SET_REPORT on the control pipe when
        the interface has no OUT endpoint (same fallback as hidapi/libusb).
        """
        if self._device is None:
            raise DeviceWriteError("Device handle is closed")
        try:
            if self._ep_out is not None:
                return self._device.write(self._ep_out, report, timeout=DEFAULT_TIMEOUT_MS)
            return self._device.ctrl_transfer(
                HID_REQUEST_TYPE_OUT,
                HID_SET_REPORT,
                (HID_REPORT_TYPE_OUTPUT << 8) | report[0],
                USB_INTERFACE,
                report,
                timeout=DEFAULT_TIMEOUT_MS,
            )
        except usb.core.USBError as e:
            raise DeviceWriteError(f"USB write failed: {e}") from e

    def close(self) -> None:
        if self._device is None:
            return
        try:
            usb.util.release_interface(self._device, USB_INTERFACE)
        except usb.core.USBError as e:
            log.debug("Release interface: %s", e)
        if self._reattach:
            try:
                self._device.attach_kernel_driver(USB_INTERFACE)
            except usb.core.USBError as e:
                log.debug("Kernel driver reattach: %s", e)
        try:
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as e:
            log.debug("Dispose resources: %s", e)
        self._device = None


class PyUsbContext(HidContext):
    """HID access through pyusb.  Paths are the topology string as bytes.

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``

    ``open`` only matches devices with the VID/PID of the last
    ``enumerate`` call, so a hub whose ``bus-address`` fallback equals a
    tower's port chain is never opened.
    """

    name = "pyusb"

    def __init__(self, vid: int = QLIGHT_VID, pid: int = QLIGHT_PID):
        self._vid = vid
        self._pid = pid

    def _find(self, vid: int, pid: int) -> List[Any]:
        try:
            return list(usb.core.find(find_all=True, idVendor=vid, idProduct=pid) or [])
        except usb.core.NoBackendError as e:
            raise DeviceAccessError(
                "No libusb backend found. Install libusb: "
                "apt install libusb-1.0-0 (Debian/Ubuntu) or dnf install libusb1 (Fedora)"
            ) from e
        except usb.core.USBError as e:
            raise DeviceAccessError(f"USB enumeration failed: {e}") from e

    def enumerate(self, vid: int, pid: int) -> List[Dict[str, Any]]:
        self._vid, self._pid = vid, pid
        entries = []
        for device in self._find(vid, pid):
            topology = usb_topology(device)
            entries.append({
                'vendor_id': device.idVendor,
                'product_id': device.idProduct,
                'path': topology.encode(),
                'topology': topology,
                'interface_number': USB_INTERFACE,
            })
        return entries

    def open(self, path: bytes) -> HidHandle:
        topology = _path_str(path)
        try:
            device = usb.core.find(
                idVendor=self._vid,
                idProduct=self._pid,
                custom_match=lambda d: usb_topology(d) == topology,
            )
        except (usb.core.NoBackendError, usb.core.USBError) as e:
            raise DeviceOpenError(f"Cannot search for USB device {topology}: {e}") from e
        if device is None:
            raise DeviceOpenError(f"USB device not found at {topology}")

        handle = PyUsbHandle(device)
        try:
            handle.claim()
        except usb.core.USBError as e:
            handle.close()
            raise DeviceOpenError(f"Cannot claim USB device {topology}: {e}") from e
        return handle


# =========================================================================
# Factory
# =========================================================================

def create_context(backend: str = "auto") -> HidContext:
    """Build a context for *backend* (``auto``, ``hidapi`` or ``pyusb``).

    ``auto`` prefers hidapi, which works without detaching the kernel
    driver, and falls back to pyusb when libhidapi is missing.
    """
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend {backend!r}, expected one of {', '.join(BACKENDS)}")
    if backend == "pyusb" or (backend == "auto" and not HIDAPI_AVAILABLE):
        log.debug("Using pyusb backend")
        return PyUsbContext()
    log.debug("Using hidapi backend")
    return HidApiContext()


def _path_str(path: bytes) -> str:
    if isinstance(path, bytes):
        return path.decode(errors='replace')
    return str(path)
