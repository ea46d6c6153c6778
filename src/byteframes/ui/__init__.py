"""User-facing surfaces: the argparse CLI and the optional Textual shell."""

from byteframes.ui.cli import CLIError, build_parser, run_cli
from byteframes.ui.tui import run_tui, tui_available

__all__ = ["CLIError", "build_parser", "run_cli", "run_tui", "tui_available"]
