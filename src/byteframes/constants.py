"""Stable constants shared across the storage backend and its frontends."""

from __future__ import annotations

from typing import Final

APP_NAME: Final[str] = "byteframes"

# Schema version the code knows how to migrate to.
STATE_DB_SCHEMA_VERSION: Final[int] = 1
CONFIG_SCHEMA_VERSION: Final[int] = 1

# On-disk layout under the per-user application data directory.
DEFAULT_DB_FILENAME: Final[str] = "app.db"
DEFAULT_CONFIG_FILENAME: Final[str] = "byteframes.toml"
DEFAULT_LOG_DIRNAME: Final[str] = "logs"

ENV_PREFIX: Final[str] = "BYTEFRAMES_"

# Fixed primary key of the singleton tables.
SINGLETON_ROW_ID: Final[int] = 1

__all__ = [
    "APP_NAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_DB_FILENAME",
    "DEFAULT_LOG_DIRNAME",
    "ENV_PREFIX",
    "SINGLETON_ROW_ID",
    "STATE_DB_SCHEMA_VERSION",
]
