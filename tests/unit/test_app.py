"""Application facade: bootstrap, pass-through operations, and GUI dispatch."""

from __future__ import annotations

import json
from itertools import count
from typing import TYPE_CHECKING

import pytest
import structlog

from byteframes.app import BINDINGS, App, open_app, to_json_ready
from byteframes.persistence import (
    RecordNotFoundError,
    StateDB,
    StateDBClosedError,
    StateDBCorruptionError,
)
from byteframes.persistence.state_db import Migration, StateDBMigrationError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def _stepping_clock(start: int = 1_767_225_600) -> object:
    ticks = count()
    return lambda: float(start + next(ticks))


@pytest.fixture
def app(tmp_path: Path) -> Iterator[App]:
    facade = open_app(tmp_path / "data", clock=_stepping_clock())  # type: ignore[arg-type]
    yield facade
    facade.shutdown()


def test_open_app_creates_data_dir_and_migrates(tmp_path: Path) -> None:
    data_dir = tmp_path / "nested" / "data"

    with open_app(data_dir) as facade:
        assert facade.db.is_open
        assert facade.db.schema_version() == 1
        assert (data_dir / "app.db").exists()

    assert not facade.db.is_open


def test_open_app_closes_database_when_startup_fails(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "app.db").write_bytes(b"garbage that is not a database " * 64)

    with pytest.raises(StateDBCorruptionError, match="not a database"):
        open_app(data_dir)


def test_startup_failure_leaves_db_closed(tmp_path: Path) -> None:
    db = StateDB(
        tmp_path / "app.db",
        migrations=(Migration(version=1, name="broken", statements=("NOT SQL",)),),
    )
    facade = App(db)

    with pytest.raises(StateDBMigrationError):
        facade.startup()
    facade.shutdown()

    with pytest.raises(StateDBClosedError):
        facade.get_all_settings()


def test_get_setting_defaults_to_empty_string(app: App) -> None:
    assert app.get_setting("theme") == ""
    assert app.get_setting("theme", "light") == "light"

    app.set_setting("theme", "dark")

    assert app.get_setting("theme") == "dark"
    assert [item.key for item in app.get_all_settings()] == ["theme"]


def test_layout_pass_through_operations(app: App) -> None:
    work = app.save_layout("work", '{"panes":2}')
    home = app.save_layout("home", "{}")

    assert app.get_layout(work.id).name == "work"
    assert app.get_active_layout() is None

    app.set_active_layout(work.id)
    active = app.get_active_layout()
    assert active is not None
    assert active.id == work.id

    app.save_layout("home", '{"panes":1}')
    active = app.get_active_layout()
    assert active is not None
    assert active.id == work.id
    assert [layout.id for layout in app.get_all_layouts()] == [home.id, work.id]

    assert app.delete_layout(work.id) is True
    assert app.get_active_layout() is None
    with pytest.raises(RecordNotFoundError):
        app.get_layout(work.id)


def test_window_state_pass_through(app: App) -> None:
    assert app.get_window_state() is None

    saved = app.save_window_state(-100, 50, 1280, 720, False)

    assert app.get_window_state() == saved


def test_invoke_dispatches_every_binding(app: App) -> None:
    assert set(BINDINGS) == {
        "GetSetting",
        "SetSetting",
        "GetAllSettings",
        "SaveLayout",
        "GetAllLayouts",
        "GetLayout",
        "SetActiveLayout",
        "GetActiveLayout",
        "DeleteLayout",
        "SaveWindowState",
        "GetWindowState",
    }
    for method_name in BINDINGS.values():
        assert callable(getattr(app, method_name))

    stored = app.invoke("SetSetting", "theme", "dark")
    assert isinstance(stored, dict)
    assert stored["value"] == "dark"
    assert app.invoke("GetSetting", "theme") == "dark"

    layout = app.invoke("SaveLayout", "work", "{}")
    assert isinstance(layout, dict)
    assert layout["is_active"] is False
    assert isinstance(layout["created_at"], int)

    active = app.invoke("SetActiveLayout", layout["id"])
    assert isinstance(active, dict)
    assert active["is_active"] is True
    assert app.invoke("GetActiveLayout") == active
    assert app.invoke("GetAllLayouts") == [active]

    assert app.invoke("GetWindowState") is None
    window = app.invoke("SaveWindowState", 1, 2, 3, 4, True)
    assert isinstance(window, dict)
    assert window["maximized"] is True

    assert app.invoke("DeleteLayout", layout["id"]) is True
    assert app.invoke("GetActiveLayout") is None

    json.dumps(app.invoke("GetAllSettings"))


def test_invoke_rejects_unknown_binding(app: App) -> None:
    with pytest.raises(KeyError, match="DropAllTables"):
        app.invoke("DropAllTables")


def test_invoke_propagates_store_errors(app: App) -> None:
    with pytest.raises(RecordNotFoundError):
        app.invoke("GetLayout", 404)
    with pytest.raises(ValueError, match="setting key"):
        app.invoke("SetSetting", "", "x")


def test_to_json_ready_rejects_unknown_types() -> None:
    assert to_json_ready(None) is None
    assert to_json_ready([1, "a", True]) == [1, "a", True]

    with pytest.raises(TypeError, match="cannot serialize"):
        to_json_ready(object())


def test_invoke_accepts_any_string_key_and_name(app: App) -> None:
    assert app.invoke("GetSetting", "") == ""
    app.invoke("SetSetting", "", "blank-key")
    assert app.invoke("GetSetting", "") == "blank-key"

    long_name = "n" * 300
    saved = app.invoke("SaveLayout", long_name, "{}")
    assert isinstance(saved, dict)
    assert saved["name"] == long_name
    assert [item["name"] for item in app.invoke("GetAllLayouts")] == [long_name]  # type: ignore[union-attr]


@pytest.fixture
def unconfigured_structlog() -> Iterator[None]:
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.mark.usefixtures("unconfigured_structlog")
def test_open_app_keeps_store_events_off_stdout(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with open_app(tmp_path / "data") as facade:
        facade.save_window_state(0, 0, 800, 600, False)
        facade.set_active_layout(99)

    assert structlog.is_configured()
    assert capsys.readouterr().out == ""


@pytest.mark.usefixtures("unconfigured_structlog")
def test_open_app_respects_host_structlog_configuration(tmp_path: Path) -> None:
    processors = [structlog.processors.KeyValueRenderer()]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.ReturnLoggerFactory(),
    )

    with open_app(tmp_path / "data"):
        pass

    assert structlog.get_config()["processors"] == processors
    assert isinstance(structlog.get_config()["logger_factory"], structlog.ReturnLoggerFactory)
