"""
byteframes: persistence package

File: src/byteframes/persistence/__init__.py

Purpose
- Persistence layer: state DB access, migrations, repositories.

Functional requirements
- One owned connection per process; migrations run before any repository call.

Non-functional requirements
- SQLite-first; no server database dependencies.
"""

from byteframes.persistence.repositories import LayoutRepo, SettingsRepo, WindowStateRepo
from byteframes.persistence.state_db import (
    MIGRATIONS,
    Migration,
    RecordNotFoundError,
    StateDB,
    StateDBBusyError,
    StateDBClosedError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

__all__ = [
    "MIGRATIONS",
    "LayoutRepo",
    "Migration",
    "RecordNotFoundError",
    "SettingsRepo",
    "StateDB",
    "StateDBBusyError",
    "StateDBClosedError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
    "WindowStateRepo",
]
