"""Optional terminal UI acting as the GUI collaborator of the facade.

Exposes ``tui_available()`` and ``run_tui()``; this module imports cleanly
without Textual installed.
"""

from __future__ import annotations

import sys
from importlib.util import find_spec
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from byteframes.app import App


def tui_available() -> bool:
    """Return whether optional TUI dependencies are available in this environment."""
    return find_spec("textual") is not None


def run_tui(app: App | None) -> int:
    """Run the interactive TUI over ``app``, or exit with code 2 and an install hint."""
    if not tui_available():
        print(
            "TUI requires optional dependency. Install: pip install -e '.[tui]'",
            file=sys.stderr,
        )
        return 2
    if app is None:
        raise ValueError("run_tui requires an opened application facade")

    from byteframes.ui.tui.app import run_tui_app

    return run_tui_app(app)


__all__ = ["run_tui", "tui_available"]
