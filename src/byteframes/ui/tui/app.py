"""Textual shell over the application facade.

File: src/byteframes/ui/tui/app.py

Renders the saved layouts and settings, and drives the same facade calls a
desktop frontend would: ``a`` activates the highlighted layout, ``d`` deletes it,
``r`` reloads, ``q`` quits and records the terminal geometry as window state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import DataTable, Footer, Static

if TYPE_CHECKING:
    from byteframes.app import App as Backend
    from byteframes.domain.models import Layout

_CSS = """
#header-bar { dock: top; height: 1; padding: 0 1; text-style: bold; }
#main-area { height: 1fr; }
#layouts-pane { width: 2fr; }
#settings-pane { width: 1fr; border-left: solid $accent; }
.pane-heading { height: 1; padding: 0 1; text-style: bold; }
#status-line { dock: bottom; height: 1; padding: 0 1; }
"""


class ByteframesTUI(App[int]):
    """Layout and settings browser backed by the persistence facade."""

    CSS = _CSS
    TITLE = "byteframes"
    BINDINGS = [
        Binding("a", "activate_layout", "Activate", show=True),
        Binding("d", "delete_layout", "Delete", show=True),
        Binding("r", "refresh", "Reload", show=True),
        Binding("q", "quit_app", "Quit", show=True),
    ]

    def __init__(self, backend: Backend) -> None:
        super().__init__()
        self._backend = backend
        self._layout_ids: list[int] = []

    def compose(self) -> ComposeResult:
        yield Static(f"byteframes  {self._backend.db.path}", id="header-bar")
        with Horizontal(id="main-area"):
            with Vertical(id="layouts-pane"):
                yield Static("Layouts", classes="pane-heading")
                yield DataTable(id="layouts", cursor_type="row", zebra_stripes=True)
            with Vertical(id="settings-pane"):
                yield Static("Settings", classes="pane-heading")
                yield DataTable(id="settings", cursor_type="row")
        yield Static("", id="status-line")
        yield Footer()

    def on_mount(self) -> None:
        layouts = self.query_one("#layouts", DataTable)
        layouts.add_columns("id", "name", "active", "updated")
        settings = self.query_one("#settings", DataTable)
        settings.add_columns("key", "value")
        self._reload()
        layouts.focus()

    @property
    def layout_ids(self) -> tuple[int, ...]:
        """Layout ids in display order (most recently updated first)."""
        return tuple(self._layout_ids)

    def highlighted_layout_id(self) -> int | None:
        table = self.query_one("#layouts", DataTable)
        if not self._layout_ids:
            return None
        row = table.cursor_row
        if row < 0 or row >= len(self._layout_ids):
            return None
        return self._layout_ids[row]

    def action_activate_layout(self) -> None:
        layout_id = self.highlighted_layout_id()
        if layout_id is None:
            self._set_status("no layout selected")
            return
        layout = self._backend.set_active_layout(layout_id)
        self._reload()
        if layout is None:
            self._set_status(f"layout {layout_id} vanished; no layout is active")
        else:
            self._set_status(f"active layout: {layout.name}")

    def action_delete_layout(self) -> None:
        layout_id = self.highlighted_layout_id()
        if layout_id is None:
            self._set_status("no layout selected")
            return
        removed = self._backend.delete_layout(layout_id)
        self._reload()
        self._set_status(f"deleted layout {layout_id}" if removed else "nothing deleted")

    def action_refresh(self) -> None:
        self._reload()
        self._set_status("reloaded")

    def action_quit_app(self) -> None:
        width, height = self.size.width, self.size.height
        self._backend.save_window_state(0, 0, width, height, False)
        self.exit(0)

    def _reload(self) -> None:
        layouts = self._backend.get_all_layouts()
        table = self.query_one("#layouts", DataTable)
        table.clear()
        self._layout_ids = [layout.id for layout in layouts]
        for layout in layouts:
            table.add_row(*_layout_cells(layout), key=str(layout.id))

        settings_table = self.query_one("#settings", DataTable)
        settings_table.clear()
        for setting in self._backend.get_all_settings():
            settings_table.add_row(setting.key, setting.value, key=setting.key)

    def _set_status(self, message: str) -> None:
        self.query_one("#status-line", Static).update(message)


def _layout_cells(layout: Layout) -> tuple[str, str, str, str]:
    return (str(layout.id), layout.name, "*" if layout.is_active else "", str(layout.updated_at))


def run_tui_app(backend: Backend) -> int:
    """Create and run the TUI app, returning exit code."""
    result = ByteframesTUI(backend).run()
    return result if isinstance(result, int) else 0


__all__ = ["ByteframesTUI", "run_tui_app"]
