#!/usr/bin/env python3
"""
Q-Light tower light HID protocol: constants, command model, report encoder.

The tower (VID 0x04D8, PID 0xE73C) accepts a single 65-byte HID output
report.  Byte 0 is the report ID, bytes 2-6 carry one mode byte per
color channel and byte 7 carries the buzzer byte.  The device keeps its
current state for any channel whose byte is ``IGNORE``, so a report only
needs to describe the channels it wants to change.

Report layout::

    [0]    0x57            report ID
    [1]    0x00            reserved
    [2]    red mode        0=off 1=on 2=blink 3=ignore
    [3]    yellow mode
    [4]    green mode
    [5]    blue mode
    [6]    white mode
    [7]    sound           0=off 6=ignore
    [8:65] 0x00            padding

Nothing here touches USB, so the byte table can be tested in isolation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Union

from .errors import CommandParseError

# =========================================================================
# Constants
# =========================================================================

# USB IDs (Q-Light QT-series USB towers)
QLIGHT_VID = 0x04D8
QLIGHT_PID = 0xE73C

REPORT_ID = 0x57
REPORT_SIZE = 65  # report ID + 64-byte payload

# Buzzer byte values.  Only "off" and "leave alone" are ever sent.
SOUND_OFF = 0x00
SOUND_IGNORE = 0x06
SOUND_OFFSET = 7


# =========================================================================
# Enums
# =========================================================================

class Color(Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    WHITE = "white"


class LightMode(Enum):
    OFF = "off"
    ON = "on"
    BLINK = "blink"
    IGNORE = "ignore"


# Report offset of each color channel
CHANNEL_OFFSETS: Dict[Color, int] = {
    Color.RED: 2,
    Color.YELLOW: 3,
    Color.GREEN: 4,
    Color.BLUE: 5,
    Color.WHITE: 6,
}

# Mode byte written into a channel slot
MODE_BYTES: Dict[LightMode, int] = {
    LightMode.OFF: 0x00,
    LightMode.ON: 0x01,
    LightMode.BLINK: 0x02,
    LightMode.IGNORE: 0x03,
}

# User-facing mode names -> LightMode.  IGNORE is internal only.
MODE_ALIASES: Dict[str, LightMode] = {
    "off": LightMode.OFF,
    "on": LightMode.ON,
    "steady": LightMode.ON,
    "blink": LightMode.BLINK,
    "flash": LightMode.BLINK,
    "flashing": LightMode.BLINK,
}

COLOR_NAMES = [c.value for c in Color]


# =========================================================================
# Command model
# =========================================================================

@dataclass(frozen=True)
class LightCommand:
    """One color channel set to one mode."""
    color: Color
    mode: LightMode


def _ignore_all() -> Dict[Color, LightMode]:
    return {color: LightMode.IGNORE for color in Color}


@dataclass
class LightCommandSet:
    """Full state for one report: a mode per channel plus the buzzer byte.

    Attributes:
        modes: Mode for each of the five color channels.
        sound: Raw buzzer byte (SOUND_IGNORE unless resetting).
    """
    modes: Dict[Color, LightMode] = field(default_factory=_ignore_all)
    sound: int = SOUND_IGNORE

    @classmethod
    def default(cls) -> LightCommandSet:
        """Every channel and the buzzer left as they are."""
        return cls()

    @classmethod
    def all_off(cls) -> LightCommandSet:
        """Every channel off and the buzzer silenced."""
        return cls(modes={color: LightMode.OFF for color in Color}, sound=SOUND_OFF)

    @classmethod
    def from_commands(cls, commands: Iterable[LightCommand],
                      reset: bool = False) -> LightCommandSet:
        """Fold commands into a set.  Later commands win for the same color.

        With *reset*, channels not named by any command are turned off.
        """
        command_set = cls.all_off() if reset else cls.default()
        for command in commands:
            command_set.set(command.color, command.mode)
        return command_set

    def set(self, color: Color, mode: LightMode) -> None:
        self.modes[color] = mode


Command = Union[LightCommand, LightCommandSet, Iterable[LightCommand]]


# =========================================================================
# Encoder
# =========================================================================

def encode_report(command: Command) -> bytes:
    """Encode a command into the 65-byte output report.

    Args:
        command: A single LightCommand, a LightCommandSet, or an
            iterable of LightCommand (folded with
            ``LightCommandSet.from_commands``).

    Returns:
        The report, starting with the report ID.
    """
    if isinstance(command, LightCommand):
        command_set = LightCommandSet.from_commands([command])
    elif isinstance(command, LightCommandSet):
        command_set = command
    else:
        command_set = LightCommandSet.from_commands(command)

    report = bytearray(REPORT_SIZE)
    report[0] = REPORT_ID
    for color, offset in CHANNEL_OFFSETS.items():
        report[offset] = MODE_BYTES[command_set.modes.get(color, LightMode.IGNORE)]
    report[SOUND_OFFSET] = command_set.sound & 0xFF
    return bytes(report)


# =========================================================================
# Parsing helpers (used by the CLI)
# =========================================================================

def parse_color(name: str) -> Color:
    try:
        return Color(name.strip().lower())
    except ValueError:
        raise CommandParseError(
            f"Expected one of [{', '.join(COLOR_NAMES)}], got {name!r}"
        ) from None


def parse_mode(name: str) -> LightMode:
    mode = MODE_ALIASES.get(name.strip().lower())
    if mode is None:
        raise CommandParseError(
            f"Expected one of [on, off, blink] in command, got {name!r}"
        )
    return mode


def parse_command(token: str) -> LightCommand:
    """Parse ``color:mode`` (e.g. ``red:blink``) into a LightCommand."""
    color, sep, mode = token.partition(":")
    if not sep:
        raise CommandParseError(
            f"Expected format of [{','.join(COLOR_NAMES)}]:[on,off,blink], got {token!r}"
        )
    return LightCommand(parse_color(color), parse_mode(mode))
