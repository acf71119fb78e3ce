"""Shared fixtures: an in-memory HID context standing in for real towers."""
import pytest

from qlight.errors import DeviceOpenError
from qlight.protocol import QLIGHT_PID, QLIGHT_VID
from qlight.transport import HidContext, HidHandle


class FakeHandle(HidHandle):
    """Records writes into the owning FakeContext."""

    def __init__(self, context, path):
        self._context = context
        self._path = path

    def write(self, report):
        if self._context.write_error is not None:
            raise self._context.write_error
        self._context.writes.append((self._path, bytes(report)))
        if self._context.write_result is not None:
            return self._context.write_result
        return len(report)

    def close(self):
        self._context.closed.append(self._path)


class FakeContext(HidContext):
    """HidContext over a mutable list of hid.enumerate()-style dicts.

    Remove an entry from ``entries`` to simulate unplugging a tower.
    """

    name = "fake"

    def __init__(self, entries=None):
        self.entries = list(entries or [])
        self.writes = []
        self.opened = []
        self.closed = []
        self.enumerate_calls = 0
        self.enumerate_error = None
        self.open_error = None
        self.write_error = None
        self.write_result = None

    def enumerate(self, vid, pid):
        self.enumerate_calls += 1
        if self.enumerate_error is not None:
            raise self.enumerate_error
        return [dict(e) for e in self.entries
                if e['vendor_id'] == vid and e['product_id'] == pid]

    def open(self, path):
        if self.open_error is not None:
            raise self.open_error
        if path not in {e['path'] for e in self.entries}:
            raise DeviceOpenError(f"open failed: {path!r}")
        self.opened.append(path)
        return FakeHandle(self, path)


def make_entry(topology, vid=QLIGHT_VID, pid=QLIGHT_PID, interface=0):
    """An enumeration entry with a libusb-style path, e.g. b'1-2.4:1.0'."""
    return {
        'vendor_id': vid,
        'product_id': pid,
        'path': f"{topology}:1.0".encode(),
        'interface_number': interface,
        'usage_page': 0xFF00,
    }


@pytest.fixture
def entry():
    return make_entry


@pytest.fixture
def fake_context():
    """Two towers on distinct ports, listed in non-sorted order."""
    return FakeContext([make_entry("1-3"), make_entry("1-2.4")])


@pytest.fixture
def empty_context():
    return FakeContext()
