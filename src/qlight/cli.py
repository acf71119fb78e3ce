#!/usr/bin/env python3
"""
qlight - Command Line Interface

Entry point for the ``qlight`` console script.
"""

import argparse
import logging
import os
import subprocess
import sys

from qlight.__version__ import __version__
from qlight.errors import CommandParseError, QlightError
from qlight.protocol import COLOR_NAMES, QLIGHT_PID, QLIGHT_VID, parse_command
from qlight.transport import BACKENDS

UDEV_RULES_PATH = "/etc/udev/rules.d/99-qlight.rules"


def _command_arg(token):
    """argparse type for ``color:mode`` tokens."""
    try:
        return parse_command(token)
    except CommandParseError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _setup_logging(verbose=0, config_level=None):
    """Configure root logging from -v count (config level applies at 0)."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, config_level) if config_level else logging.WARNING
    if level <= logging.DEBUG:
        logging.basicConfig(level=level, format='[%(levelname)s] %(name)s: %(message)s')
    else:
        logging.basicConfig(level=level, format='[%(levelname)s] %(message)s')
    # pyusb logs every transfer at DEBUG
    logging.getLogger('usb').setLevel(logging.WARNING)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="qlight",
        description="Control USB Q-Light tower lights",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    qlight list                          List attached towers
    qlight set -i 1 red:on               Steady red on tower 1
    qlight set --all --reset green:blink Blink green on every tower, rest off
    qlight set -p 1-2.4 yellow:off       Yellow off on the tower at port 1-2.4
    sudo qlight setup-udev               Allow non-root access
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        help="HID backend (default: from config, else auto)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # List command
    subparsers.add_parser("list", help="List attached Q-Light towers")

    # Set command
    set_parser = subparsers.add_parser(
        "set",
        help="Set light colors on one or all towers",
        description=(
            f"Valid colors: {', '.join(COLOR_NAMES)}\n"
            "Valid states: on (steady), off, blink (flashing)"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    target = set_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--index", "-i", type=int, help="Tower number from 'qlight list'")
    target.add_argument("--path", "-p", help="Tower topology (e.g. 1-2.4) or device path")
    target.add_argument("--all", "-a", action="store_true", help="Apply to every attached tower")
    set_parser.add_argument(
        "--reset", "-r",
        action="store_true",
        help="Turn off every color not given on the command line"
    )
    set_parser.add_argument(
        "commands",
        nargs="*",
        type=_command_arg,
        metavar="COLOR:STATE",
        help="e.g. red:on yellow:blink green:off"
    )

    # Setup udev rules command
    udev_parser = subparsers.add_parser("setup-udev", help="Install udev rules for non-root access")
    udev_parser.add_argument("--dry-run", action="store_true", help="Print rules without installing")

    args = parser.parse_args(argv)

    from qlight.conf import load_settings
    settings = load_settings()
    _setup_logging(args.verbose, settings.log_level)
    backend = args.backend or settings.backend

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "list":
        return list_lights(backend=backend)
    elif args.command == "set":
        return set_lights(args.commands, index=args.index, path=args.path,
                          all_devices=args.all, reset=args.reset, backend=backend)
    elif args.command == "setup-udev":
        return setup_udev(dry_run=args.dry_run)

    return 0


def _format_device(index, dev):
    """Format an enumerated tower for display."""
    return f"[{index}] {dev.topology:<12} {dev.path_str}  ({dev.vid_pid})"


def list_lights(backend="auto"):
    """Print attached towers with their 1-based index."""
    try:
        from qlight.enumerator import list_devices
        from qlight.transport import create_context

        devices = list_devices(create_context(backend))
        if not devices:
            print("No Q-Light devices found.")
            return 0
        for i, dev in enumerate(devices, 1):
            print(_format_device(i, dev))
        if len(devices) > 1:
            print("\nUse 'qlight set -i N ...' to target one tower")
        return 0
    except QlightError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def set_lights(commands, index=None, path=None, all_devices=False,
               reset=False, backend="auto"):
    """Apply color commands to the selected tower(s)."""
    if not commands and not reset:
        print("Error: give at least one COLOR:STATE or --reset", file=sys.stderr)
        return 1

    try:
        from qlight.enumerator import find_device, list_devices, select_device
        from qlight.protocol import LightCommandSet
        from qlight.sender import send_command, send_to_all
        from qlight.transport import create_context

        command_set = LightCommandSet.from_commands(commands, reset=reset)
        context = create_context(backend)
        devices = list_devices(context)

        if all_devices:
            if not devices:
                print("Error: No Q-Light devices found", file=sys.stderr)
                return 1
            failed = 0
            for dev, error in send_to_all(context, devices, command_set):
                if error is not None:
                    print(f"Error: {dev.topology}: {error}", file=sys.stderr)
                    failed += 1
            return 1 if failed else 0

        if path is not None:
            dev = find_device(devices, path)
        else:
            dev = select_device(devices, index)
        send_command(context, dev, command_set)
        return 0
    except QlightError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def udev_rules():
    """udev rules granting hidraw and raw USB access to the towers."""
    ids = f'ATTRS{{idVendor}}=="{QLIGHT_VID:04x}", ATTRS{{idProduct}}=="{QLIGHT_PID:04x}"'
    return (
        "# Q-Light USB tower lights - auto-generated by qlight setup-udev\n"
        f'SUBSYSTEM=="hidraw", {ids}, MODE="0666"\n'
        f'SUBSYSTEM=="usb", {ids}, MODE="0666"\n'
    )


def setup_udev(dry_run=False):
    """Install udev rules so towers can be opened without root."""
    rules_content = udev_rules()

    if dry_run:
        print(rules_content)
        print(f"# Would write to {UDEV_RULES_PATH}")
        return 0

    if os.geteuid() != 0:
        print("Error: root required. Run with:", file=sys.stderr)
        print("  sudo qlight setup-udev", file=sys.stderr)
        print("\nOr preview first:", file=sys.stderr)
        print("  qlight setup-udev --dry-run", file=sys.stderr)
        return 1

    try:
        with open(UDEV_RULES_PATH, "w") as f:
            f.write(rules_content)
    except OSError as e:
        print(f"Error: cannot write {UDEV_RULES_PATH}: {e}", file=sys.stderr)
        return 1
    print(f"Wrote {UDEV_RULES_PATH}")

    try:
        subprocess.run(["udevadm", "control", "--reload-rules"], check=False)
        subprocess.run(["udevadm", "trigger"], check=False)
    except FileNotFoundError:
        print("udevadm not found; reload udev rules manually or reboot.")
    print("\nDone. Replug your Q-Light towers for changes to take effect.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
