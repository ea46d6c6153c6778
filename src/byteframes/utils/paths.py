"""
byteframes: filesystem locations

File: src/byteframes/utils/paths.py

Purpose
- Resolve the per-user application data directory and the files inside it.

Functional requirements
- Windows uses %APPDATA%, macOS ``~/Library/Application Support``, everything else
  ``$XDG_CONFIG_HOME`` falling back to ``~/.config``.
- Resolution never creates directories; the database opener does that.
"""

from __future__ import annotations

import os
import platform
from collections.abc import Mapping
from pathlib import Path

from byteframes.constants import (
    APP_NAME,
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_DB_FILENAME,
)


def user_config_dir(
    *,
    environ: Mapping[str, str] | None = None,
    system: str | None = None,
) -> Path:
    """Return the platform's per-user configuration root."""
    env = os.environ if environ is None else environ
    system_name = platform.system() if system is None else system
    if system_name == "Windows":
        appdata = env.get("APPDATA")
        return Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    if system_name == "Darwin":
        return Path.home() / "Library" / "Application Support"
    xdg = env.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


def default_data_dir(
    *,
    environ: Mapping[str, str] | None = None,
    system: str | None = None,
) -> Path:
    return user_config_dir(environ=environ, system=system) / APP_NAME


def database_path(data_dir: str | Path, filename: str = DEFAULT_DB_FILENAME) -> Path:
    if not filename or Path(filename).name != filename:
        raise ValueError("database filename must be a bare file name")
    return Path(data_dir).expanduser() / filename


def default_config_path(data_dir: str | Path) -> Path:
    return Path(data_dir).expanduser() / DEFAULT_CONFIG_FILENAME


__all__ = [
    "database_path",
    "default_config_path",
    "default_data_dir",
    "user_config_dir",
]
