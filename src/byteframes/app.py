"""
byteframes: application facade

File: src/byteframes/app.py

Purpose
- The surface the GUI runtime calls: one method per bound operation, each a thin
  pass-through to the record store.

What is included in this file
- ``App``: owns the repositories built over an injected, opened ``StateDB``.
- ``BINDINGS``: GUI method names mapped to facade methods.
- ``open_app``: process bootstrap that resolves the data directory, opens the
  database and applies migrations before any call is served.

Functional requirements
- Errors from the store propagate unchanged to the caller.
- ``invoke`` results are JSON-ready: integer timestamps and native booleans.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import structlog

from byteframes.constants import DEFAULT_DB_FILENAME
from byteframes.domain.models import JSONValue, Layout, Setting, WindowState
from byteframes.observability import configure_structlog
from byteframes.persistence.repositories import LayoutRepo, SettingsRepo, WindowStateRepo
from byteframes.persistence.state_db import DEFAULT_BUSY_TIMEOUT_MS, Clock, StateDB
from byteframes.utils.paths import database_path, default_data_dir

BINDINGS: Final[Mapping[str, str]] = {
    "GetSetting": "get_setting",
    "SetSetting": "set_setting",
    "GetAllSettings": "get_all_settings",
    "SaveLayout": "save_layout",
    "GetAllLayouts": "get_all_layouts",
    "GetLayout": "get_layout",
    "SetActiveLayout": "set_active_layout",
    "GetActiveLayout": "get_active_layout",
    "DeleteLayout": "delete_layout",
    "SaveWindowState": "save_window_state",
    "GetWindowState": "get_window_state",
}


class App:
    """Facade over the record store, bound to one opened database."""

    def __init__(self, db: StateDB, *, logger: Any | None = None) -> None:
        self._db = db
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.settings = SettingsRepo(db, logger=self._logger)
        self.layouts = LayoutRepo(db, logger=self._logger)
        self.window = WindowStateRepo(db, logger=self._logger)

    @property
    def db(self) -> StateDB:
        return self._db

    def startup(self) -> int:
        """Open and migrate the database; returns the schema version. Idempotent."""
        self._db.open()
        version = self._db.migrate()
        self._logger.info("app_started", db_path=str(self._db.path), schema_version=version)
        return version

    def shutdown(self) -> None:
        if self._db.is_open:
            self._logger.info("app_stopping", db_path=str(self._db.path))
        self._db.close()

    def get_setting(self, key: str, default: str = "") -> str:
        value = self.settings.get(key)
        return default if value is None else value

    def set_setting(self, key: str, value: str) -> Setting:
        return self.settings.set(key, value)

    def get_all_settings(self) -> list[Setting]:
        return self.settings.list_all()

    def save_layout(self, name: str, layout_json: str) -> Layout:
        return self.layouts.save(name, layout_json)

    def get_all_layouts(self) -> list[Layout]:
        return self.layouts.list_all()

    def get_layout(self, layout_id: int) -> Layout:
        return self.layouts.get(layout_id)

    def set_active_layout(self, layout_id: int) -> Layout | None:
        return self.layouts.set_active(layout_id)

    def get_active_layout(self) -> Layout | None:
        return self.layouts.get_active()

    def delete_layout(self, layout_id: int) -> bool:
        return self.layouts.delete(layout_id)

    def save_window_state(
        self, x: int, y: int, width: int, height: int, maximized: bool
    ) -> WindowState:
        return self.window.save(x, y, width, height, maximized)

    def get_window_state(self) -> WindowState | None:
        return self.window.get()

    def invoke(self, name: str, *args: Any) -> JSONValue:
        """Dispatch a GUI binding by name and return a JSON-ready result."""
        method_name = BINDINGS.get(name)
        if method_name is None:
            raise KeyError(f"unknown binding: {name}")
        result = getattr(self, method_name)(*args)
        return to_json_ready(result)

    def __enter__(self) -> App:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.shutdown()


def to_json_ready(value: object) -> JSONValue:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (Setting, Layout, WindowState)):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_json_ready(item) for item in value]
    raise TypeError(f"cannot serialize {type(value).__name__} for the GUI boundary")


def open_app(
    data_dir: str | Path | None = None,
    *,
    db_filename: str = DEFAULT_DB_FILENAME,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    clock: Clock = time.time,
    logger: Any | None = None,
) -> App:
    """Open ``<data_dir>/<db_filename>``, migrate it and return a ready facade.

    Any failure closes the connection and propagates; the caller must not continue.
    When the host process has not configured ``structlog``, events are routed into
    the standard-library logger tree instead of structlog's stdout printer.
    """

    if not structlog.is_configured():
        configure_structlog()
    resolved_dir = default_data_dir() if data_dir is None else Path(data_dir).expanduser()
    db = StateDB(
        database_path(resolved_dir, db_filename),
        busy_timeout_ms=busy_timeout_ms,
        clock=clock,
        logger=logger,
    )
    app = App(db, logger=logger)
    try:
        app.startup()
    except BaseException:
        db.close()
        raise
    return app


__all__ = ["BINDINGS", "App", "open_app", "to_json_ready"]
