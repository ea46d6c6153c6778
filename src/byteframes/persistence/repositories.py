"""
byteframes: record store

File: src/byteframes/persistence/repositories.py

Purpose
- Repository objects for the three persisted entities: settings, layouts and
  window state.

What is included in this file
- SettingsRepo: keyed upsert map of string preferences.
- LayoutRepo: named layout snapshots with the single-active-layout toggle.
- WindowStateRepo: singleton geometry row, overwritten wholesale.

Functional requirements
- Settings and window state are written with a single insert-or-update-on-conflict
  statement; a layout save updates by name and inserts only when nothing matched, in
  one transaction.
- Layout activation deactivates all rows and activates the target in one transaction.
- Absence (missing setting, no active layout, no saved window) is a normal result.

Non-functional requirements
- Arguments are validated before any statement runs.
- Storage errors propagate unchanged; nothing is retried here.
"""

from __future__ import annotations

from typing import Any, Final

import structlog

from byteframes.constants import SINGLETON_ROW_ID
from byteframes.domain.models import (
    Layout,
    Setting,
    WindowState,
    validate_geometry,
    validate_layout_id,
    validate_layout_name,
    validate_setting_key,
)
from byteframes.persistence.state_db import RecordNotFoundError, RowValue, StateDB

_LAYOUT_COLUMNS: Final[str] = "id, name, layout_json, is_active, created_at, updated_at"
_SETTING_COLUMNS: Final[str] = "key, value, created_at, updated_at"
_WINDOW_COLUMNS: Final[str] = "id, x, y, width, height, maximized, updated_at"


class _BaseRepo:
    def __init__(self, db: StateDB, *, logger: Any | None = None) -> None:
        self._db = db
        self._logger = logger if logger is not None else structlog.get_logger(__name__)


class SettingsRepo(_BaseRepo):
    """Repository for key/value preferences."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when the key was never written."""

        validate_setting_key(key)
        row = self._db.query_one("SELECT value FROM settings WHERE key = ?", (key,))
        if row is None:
            return None
        return _row_text(row, "value", "settings.value")

    def get_record(self, key: str) -> Setting | None:
        validate_setting_key(key)
        row = self._db.query_one(
            f"SELECT {_SETTING_COLUMNS} FROM settings WHERE key = ?",
            (key,),
        )
        return None if row is None else Setting.from_row(row)

    def set(self, key: str, value: str) -> Setting:
        validate_setting_key(key)
        if not isinstance(value, str):
            raise ValueError("setting value: expected string")
        now = self._db.now()
        with self._db.transaction():
            self._db.execute(
                """
                INSERT INTO settings (key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, value, now, now),
            )
            row = self._db.query_one(
                f"SELECT {_SETTING_COLUMNS} FROM settings WHERE key = ?",
                (key,),
            )
        return Setting.from_row(_require_row(row, "settings"))

    def list_all(self) -> list[Setting]:
        rows = self._db.query_all(f"SELECT {_SETTING_COLUMNS} FROM settings ORDER BY key ASC")
        return [Setting.from_row(row) for row in rows]


class LayoutRepo(_BaseRepo):
    """Repository for named layout snapshots.

    Identity is by ``name`` on save and by surrogate ``id`` everywhere else. At most
    one row is active; the partial unique index ``uq_layouts_single_active`` backs the
    transactional toggle in :meth:`set_active`.
    """

    def save(self, name: str, layout_json: str) -> Layout:
        """Create the layout, or replace its payload when the name already exists.

        New rows start inactive; existing rows keep their id and active flag.
        """

        validate_layout_name(name)
        if not isinstance(layout_json, str):
            raise ValueError("layout_json: expected string")
        now = self._db.now()
        with self._db.transaction():
            updated = self._db.execute(
                "UPDATE layouts SET layout_json = ?, updated_at = ? WHERE name = ?",
                (layout_json, now, name),
            )
            if not updated:
                # Re-saves never consume an AUTOINCREMENT value.
                self._db.execute(
                    """
                    INSERT INTO layouts (name, layout_json, is_active, created_at, updated_at)
                    VALUES (?, ?, 0, ?, ?)
                    """,
                    (name, layout_json, now, now),
                )
            row = self._db.query_one(
                f"SELECT {_LAYOUT_COLUMNS} FROM layouts WHERE name = ?",
                (name,),
            )
        return Layout.from_row(_require_row(row, "layouts"))

    def get(self, layout_id: int) -> Layout:
        """Return the layout with ``layout_id``; raise ``RecordNotFoundError`` if absent."""

        validate_layout_id(layout_id)
        row = self._db.query_one(
            f"SELECT {_LAYOUT_COLUMNS} FROM layouts WHERE id = ?",
            (layout_id,),
        )
        if row is None:
            raise RecordNotFoundError(f"layout not found: id={layout_id}")
        return Layout.from_row(row)

    def list_all(self) -> list[Layout]:
        """Most recently touched first."""

        rows = self._db.query_all(
            f"SELECT {_LAYOUT_COLUMNS} FROM layouts ORDER BY updated_at DESC, id DESC"
        )
        return [Layout.from_row(row) for row in rows]

    def set_active(self, layout_id: int) -> Layout | None:
        """Make ``layout_id`` the only active layout.

        An unknown id still clears every active flag and returns ``None``.
        """

        validate_layout_id(layout_id)
        with self._db.transaction():
            self._db.execute("UPDATE layouts SET is_active = 0 WHERE is_active = 1")
            activated = self._db.execute(
                "UPDATE layouts SET is_active = 1 WHERE id = ?",
                (layout_id,),
            )
            row = None
            if activated:
                row = self._db.query_one(
                    f"SELECT {_LAYOUT_COLUMNS} FROM layouts WHERE id = ?",
                    (layout_id,),
                )
        if row is None:
            self._logger.warning("layout_activation_cleared", layout_id=layout_id)
            return None
        self._logger.info("layout_activated", layout_id=layout_id)
        return Layout.from_row(row)

    def get_active(self) -> Layout | None:
        row = self._db.query_one(
            f"SELECT {_LAYOUT_COLUMNS} FROM layouts WHERE is_active = 1 LIMIT 1"
        )
        return None if row is None else Layout.from_row(row)

    def delete(self, layout_id: int) -> bool:
        """Delete by id. Returns whether a row was removed; a missing id is a no-op."""

        validate_layout_id(layout_id)
        removed = self._db.execute("DELETE FROM layouts WHERE id = ?", (layout_id,))
        if removed:
            self._logger.info("layout_deleted", layout_id=layout_id)
        return removed > 0


class WindowStateRepo(_BaseRepo):
    """Repository for the singleton main-window geometry row."""

    def save(self, x: int, y: int, width: int, height: int, maximized: bool) -> WindowState:
        validate_geometry(x, y, width, height, maximized)
        now = self._db.now()
        with self._db.transaction():
            self._db.execute(
                """
                INSERT INTO window_state (id, x, y, width, height, maximized, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    x=excluded.x,
                    y=excluded.y,
                    width=excluded.width,
                    height=excluded.height,
                    maximized=excluded.maximized,
                    updated_at=excluded.updated_at
                """,
                (SINGLETON_ROW_ID, x, y, width, height, int(maximized), now),
            )
            row = self._db.query_one(
                f"SELECT {_WINDOW_COLUMNS} FROM window_state WHERE id = ?",
                (SINGLETON_ROW_ID,),
            )
        state = WindowState.from_row(_require_row(row, "window_state"))
        self._logger.info(
            "window_state_saved",
            x=state.x,
            y=state.y,
            width=state.width,
            height=state.height,
            maximized=state.maximized,
        )
        return state

    def get(self) -> WindowState | None:
        row = self._db.query_one(
            f"SELECT {_WINDOW_COLUMNS} FROM window_state WHERE id = ?",
            (SINGLETON_ROW_ID,),
        )
        return None if row is None else WindowState.from_row(row)


def _row_text(row: dict[str, RowValue], key: str, path: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string column value")
    return value


def _require_row(row: dict[str, RowValue] | None, table: str) -> dict[str, RowValue]:
    if row is None:
        raise RecordNotFoundError(f"{table}: row vanished inside its own write transaction")
    return row


__all__ = [
    "LayoutRepo",
    "SettingsRepo",
    "WindowStateRepo",
]
