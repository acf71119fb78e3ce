"""Exception hierarchy for qlight.

Every failure of a device operation is terminal for that operation.
The CLI maps any ``QlightError`` to a one-line message and exit code 1.
"""


class QlightError(RuntimeError):
    """Base class for all device-level failures."""


class DeviceAccessError(QlightError):
    """The HID subsystem could not be queried (missing backend, permissions)."""


class DeviceOpenError(QlightError):
    """The target light is missing, busy, or cannot be opened."""


class DeviceNotFoundError(DeviceOpenError):
    """No enumerated light matches the requested index or path."""


class DeviceWriteError(QlightError):
    """The output report was rejected or only partially written."""


class CommandParseError(ValueError):
    """A ``color:mode`` token could not be parsed."""
