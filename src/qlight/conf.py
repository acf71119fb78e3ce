"""User settings for qlight.

Config is read from ``$XDG_CONFIG_HOME/qlight/config.json`` (XDG-compliant,
default ``~/.config/qlight/config.json``).  qlight only reads it; nothing
is written back.

Example config::

    {"backend": "pyusb", "log_level": "INFO"}

Environment overrides:
    QLIGHT_CONFIG    alternate config file path
    QLIGHT_BACKEND   auto | hidapi | pyusb
    QLIGHT_LOG_LEVEL DEBUG | INFO | WARNING | ERROR

Usage:
    from qlight.conf import load_settings

    settings = load_settings()
    settings.backend      # "auto", "hidapi" or "pyusb"
    settings.log_level    # None or a logging level name
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from .transport import BACKENDS

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'qlight')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


@dataclass
class Settings:
    backend: str = "auto"
    log_level: Optional[str] = None


def config_path() -> str:
    return os.environ.get('QLIGHT_CONFIG') or CONFIG_PATH


def load_config(path: Optional[str] = None) -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    path = path or config_path()
    try:
        with open(path, 'r') as f:
            config = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(config, dict):
        log.warning("Ignoring config %s: expected a JSON object", path)
        return {}
    return config


def load_settings(path: Optional[str] = None) -> Settings:
    """Merge defaults, the config file and environment overrides."""
    config = load_config(path)
    settings = Settings()

    backend = os.environ.get('QLIGHT_BACKEND') or config.get('backend')
    if backend:
        if backend in BACKENDS:
            settings.backend = backend
        else:
            log.warning("Unknown backend %r in config, using %s", backend, settings.backend)

    level = os.environ.get('QLIGHT_LOG_LEVEL') or config.get('log_level')
    if isinstance(level, str) and level.upper() in LOG_LEVELS:
        settings.log_level = level.upper()

    return settings
