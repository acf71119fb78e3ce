"""Send encoded light commands to towers.

Each send is one independent open -> write -> close.  There is no
acknowledgement: a write that completes with the full report length is
success.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .enumerator import DeviceIdentity, list_devices
from .errors import DeviceAccessError, DeviceOpenError, DeviceWriteError, QlightError
from .protocol import Command, encode_report
from .transport import HidContext

log = logging.getLogger(__name__)


def _ensure_present(context: HidContext, device: DeviceIdentity) -> None:
    """Re-scan so a stale identity fails before anything is opened.

    hidraw node numbers are reused after a replug; checking topology as
    well as path keeps a different tower from picking up the command.
    """
    try:
        current = list_devices(context, device.vendor_id, device.product_id)
    except DeviceAccessError as e:
        raise DeviceOpenError(f"Cannot confirm {device.topology} is attached: {e}") from e
    for candidate in current:
        if candidate.path == device.path and candidate.topology == device.topology:
            return
    raise DeviceOpenError(
        f"Q-Light at {device.topology} ({device.path_str}) is no longer attached"
    )


def send_command(context: HidContext, device: DeviceIdentity, command: Command) -> int:
    """Encode *command* and write it to *device* as one output report.

    Returns:
        Number of bytes written.

    Raises:
        DeviceOpenError: If the device is gone, busy or cannot be opened.
        DeviceWriteError: If the write fails or is short.
    """
    report = encode_report(command)
    _ensure_present(context, device)

    with context.open(device.path) as handle:
        log.debug("TX %s: %s", device.topology, report[:8].hex())
        written = handle.write(report)

    if written < len(report):
        raise DeviceWriteError(
            f"Short write to {device.topology}: {written}/{len(report)} bytes"
        )
    log.info("Updated Q-Light at %s", device.topology)
    return written


def send_to_all(context: HidContext, devices: Sequence[DeviceIdentity],
                command: Command) -> List[Tuple[DeviceIdentity, Optional[QlightError]]]:
    """Send *command* to every device in turn.

    One tower failing does not stop the rest; each result pairs the
    device with its error, or None on success.
    """
    results: List[Tuple[DeviceIdentity, Optional[QlightError]]] = []
    for device in devices:
        try:
            send_command(context, device, command)
        except QlightError as e:
            log.warning("Failed to update %s: %s", device.topology, e)
            results.append((device, e))
        else:
            results.append((device, None))
    return results
