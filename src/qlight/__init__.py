"""
qlight - USB Q-Light tower light control

Enumerates Q-Light towers attached over USB HID, tells identical units
apart by their USB port chain, and sets each color channel to on, off
or blink.

Usage:
    # As a library
    from qlight import Color, LightCommand, LightMode, create_context, list_devices, send_command
    ctx = create_context()
    towers = list_devices(ctx)
    send_command(ctx, towers[0], LightCommand(Color.RED, LightMode.ON))

    # Command line
    qlight list
    qlight set -i 1 red:on yellow:blink
"""

from qlight.__version__ import __version__
from qlight.enumerator import DeviceIdentity, find_device, list_devices, select_device
from qlight.errors import (
    CommandParseError,
    DeviceAccessError,
    DeviceNotFoundError,
    DeviceOpenError,
    DeviceWriteError,
    QlightError,
)
from qlight.protocol import (
    Color,
    LightCommand,
    LightCommandSet,
    LightMode,
    encode_report,
    parse_command,
)
from qlight.sender import send_command, send_to_all
from qlight.transport import HidContext, create_context

__all__ = [
    # Version
    "__version__",
    # Enumeration
    "DeviceIdentity",
    "list_devices",
    "select_device",
    "find_device",
    # Commands
    "Color",
    "LightMode",
    "LightCommand",
    "LightCommandSet",
    "encode_report",
    "parse_command",
    # Sending
    "send_command",
    "send_to_all",
    # Transport
    "HidContext",
    "create_context",
    # Errors
    "QlightError",
    "DeviceAccessError",
    "DeviceOpenError",
    "DeviceNotFoundError",
    "DeviceWriteError",
    "CommandParseError",
]
