"""Unit tests for the Textual shell over the application facade.

File: tests/unit/ui/test_tui.py

Tests:
- Layout and settings tables populated from the facade
- Activate / delete actions on the highlighted layout
- Quit records window geometry
- Install hint when Textual is missing

Uses Textual's async test harness (App.run_test).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

import byteframes.ui.tui as tui_module
from byteframes.app import App, open_app
from byteframes.ui.tui import run_tui, tui_available

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

pytestmark = [pytest.mark.unit]

_requires_textual = pytest.mark.skipif(
    not tui_available(),
    reason="Textual not installed; skipping TUI tests",
)


@pytest.fixture
def backend(tmp_path: Path) -> Iterator[App]:
    facade = open_app(tmp_path / "data")
    facade.save_layout("work", '{"panes":2}')
    facade.save_layout("home", '{"panes":1}')
    facade.set_setting("theme", "dark")
    yield facade
    facade.shutdown()


def test_run_tui_without_textual_prints_install_hint(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(tui_module, "tui_available", lambda: False)

    assert run_tui(None) == 2
    assert "pip install" in capsys.readouterr().err


@_requires_textual
def test_run_tui_requires_a_facade() -> None:
    with pytest.raises(ValueError, match="facade"):
        run_tui(None)


@_requires_textual
@pytest.mark.asyncio
async def test_tables_reflect_stored_records(backend: App) -> None:
    from textual.widgets import DataTable

    from byteframes.ui.tui.app import ByteframesTUI

    app = ByteframesTUI(backend)
    async with app.run_test(size=(100, 30)) as pilot:
        await pilot.pause()

        assert app.layout_ids == (2, 1)
        assert app.query_one("#layouts", DataTable).row_count == 2
        assert app.query_one("#settings", DataTable).row_count == 1
        assert app.highlighted_layout_id() == 2


@_requires_textual
@pytest.mark.asyncio
async def test_activate_and_delete_highlighted_layout(backend: App) -> None:
    from byteframes.ui.tui.app import ByteframesTUI

    app = ByteframesTUI(backend)
    async with app.run_test(size=(100, 30)) as pilot:
        await pilot.pause()

        await pilot.press("a")
        await pilot.pause()
        active = backend.get_active_layout()
        assert active is not None
        assert active.id == 2

        await pilot.press("d")
        await pilot.pause()
        assert app.layout_ids == (1,)
        assert backend.get_active_layout() is None


@_requires_textual
@pytest.mark.asyncio
async def test_quit_saves_window_geometry(backend: App) -> None:
    from byteframes.ui.tui.app import ByteframesTUI

    app = ByteframesTUI(backend)
    async with app.run_test(size=(100, 30)) as pilot:
        await pilot.pause()
        await pilot.press("q")

    state = backend.get_window_state()
    assert state is not None
    assert (state.x, state.y, state.width, state.height) == (0, 0, 100, 30)
    assert state.maximized is False
    assert app.return_value == 0
