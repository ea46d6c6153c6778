"""Command-line interface router for byteframes."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from byteframes.app import App, open_app, to_json_ready
from byteframes.config import database_file, load_config, log_directory
from byteframes.domain.models import Layout, Setting, WindowState
from byteframes.observability import (
    LoggingConfig,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from byteframes.persistence import StateDB
from byteframes.ui.render import CLIRenderer, create_renderer


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="byteframes",
        description=(
            "byteframes: local settings, layout and window-state store.\n\n"
            "Common workflows:\n"
            "  byteframes info                     Show data paths and schema version\n"
            "  byteframes settings set theme dark  Store a preference\n"
            "  byteframes layouts list             List saved layouts, newest first\n"
            "  byteframes db backup ./app.bak      Snapshot the database\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--data-dir",
        default=None,
        help="Application data directory (default: per-user config dir/byteframes).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to byteframes TOML config (default: <data dir>/byteframes.toml if present).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level and mirror log lines to stderr.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # info ----------------------------------------------------------------
    info_parser = subparsers.add_parser(
        "info", parents=[common], help="Show data paths, schema version and record counts"
    )
    info_parser.set_defaults(handler=_cmd_info)

    # migrate -------------------------------------------------------------
    migrate_parser = subparsers.add_parser(
        "migrate", parents=[common], help="Apply pending schema migrations"
    )
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="Report pending migrations without applying"
    )
    migrate_parser.set_defaults(handler=_cmd_migrate)

    # settings ------------------------------------------------------------
    settings_parser = subparsers.add_parser("settings", help="Read and write preferences")
    settings_sub = settings_parser.add_subparsers(dest="settings_command", required=True)

    settings_get = settings_sub.add_parser("get", parents=[common], help="Print one setting")
    settings_get.add_argument("key")
    settings_get.add_argument(
        "--default", default="", help="Value printed when the key is unset (default: empty)"
    )
    settings_get.set_defaults(handler=_cmd_settings_get)

    settings_set = settings_sub.add_parser("set", parents=[common], help="Create or update a setting")
    settings_set.add_argument("key")
    settings_set.add_argument("value")
    settings_set.set_defaults(handler=_cmd_settings_set)

    settings_list = settings_sub.add_parser("list", parents=[common], help="List all settings")
    settings_list.set_defaults(handler=_cmd_settings_list)

    # layouts -------------------------------------------------------------
    layouts_parser = subparsers.add_parser("layouts", help="Manage saved layouts")
    layouts_sub = layouts_parser.add_subparsers(dest="layouts_command", required=True)

    layouts_save = layouts_sub.add_parser(
        "save",
        parents=[common],
        help="Save a layout by name (creates or replaces its payload)",
        description=(
            "The payload is stored verbatim.\n\n"
            "Examples:\n"
            "  byteframes layouts save work '{\"panels\":[]}'\n"
            "  byteframes layouts save work --file layout.json\n"
            "  cat layout.json | byteframes layouts save work -\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    layouts_save.add_argument("name")
    layouts_save.add_argument(
        "layout_json", nargs="?", default=None, help="Layout payload, or '-' for stdin"
    )
    layouts_save.add_argument("--file", default=None, help="Read the payload from a file")
    layouts_save.set_defaults(handler=_cmd_layouts_save)

    layouts_list = layouts_sub.add_parser(
        "list", parents=[common], help="List layouts, most recently updated first"
    )
    layouts_list.set_defaults(handler=_cmd_layouts_list)

    layouts_show = layouts_sub.add_parser("show", parents=[common], help="Show one layout")
    layouts_show.add_argument("layout_id", type=int)
    layouts_show.set_defaults(handler=_cmd_layouts_show)

    layouts_activate = layouts_sub.add_parser(
        "activate", parents=[common], help="Make a layout the only active one"
    )
    layouts_activate.add_argument("layout_id", type=int)
    layouts_activate.set_defaults(handler=_cmd_layouts_activate)

    layouts_active = layouts_sub.add_parser(
        "active", parents=[common], help="Show the active layout"
    )
    layouts_active.set_defaults(handler=_cmd_layouts_active)

    layouts_delete = layouts_sub.add_parser("delete", parents=[common], help="Delete a layout")
    layouts_delete.add_argument("layout_id", type=int)
    layouts_delete.set_defaults(handler=_cmd_layouts_delete)

    # window --------------------------------------------------------------
    window_parser = subparsers.add_parser("window", help="Saved window geometry")
    window_sub = window_parser.add_subparsers(dest="window_command", required=True)

    window_show = window_sub.add_parser("show", parents=[common], help="Show saved geometry")
    window_show.set_defaults(handler=_cmd_window_show)

    window_save = window_sub.add_parser("save", parents=[common], help="Overwrite saved geometry")
    window_save.add_argument("x", type=int)
    window_save.add_argument("y", type=int)
    window_save.add_argument("width", type=int)
    window_save.add_argument("height", type=int)
    window_save.add_argument("--maximized", action="store_true", default=False)
    window_save.set_defaults(handler=_cmd_window_save)

    # db ------------------------------------------------------------------
    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_sub = db_parser.add_subparsers(dest="db_command", required=True)

    db_backup = db_sub.add_parser("backup", parents=[common], help="Write a consistent snapshot")
    db_backup.add_argument("destination")
    db_backup.set_defaults(handler=_cmd_db_backup)

    db_check = db_sub.add_parser("check", parents=[common], help="Run SQLite integrity_check")
    db_check.set_defaults(handler=_cmd_db_check)

    # ui ------------------------------------------------------------------
    ui_parser = subparsers.add_parser(
        "ui", parents=[common], help="Launch the interactive terminal UI"
    )
    ui_parser.set_defaults(handler=_cmd_ui)

    return parser


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_info(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _session(args, config) as app:
        payload: dict[str, object] = {
            "command": "info",
            "config_path": config["config_path"],
            "data_dir": config["paths"]["data_dir"],
            "db_path": app.db.path.as_posix(),
            "log_dir": config["observability"]["log_dir"],
            "schema_version": app.db.schema_version(),
            "settings": len(app.get_all_settings()),
            "layouts": len(app.get_all_layouts()),
            "window_state_saved": app.get_window_state() is not None,
        }
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.heading("byteframes")
    for key in (
        "data_dir",
        "db_path",
        "config_path",
        "log_dir",
        "schema_version",
        "settings",
        "layouts",
        "window_state_saved",
    ):
        renderer.kv(key, payload[key])
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    with _logging(args, config), correlation_scope(command="migrate"):
        db = StateDB(
            database_file(config),
            busy_timeout_ms=config["database"]["busy_timeout_ms"],
        )
        db.open()
        try:
            before = db.schema_version()
            pending = db.pending_migrations()
            after = before if _flag(args, "dry_run") else db.migrate()
        finally:
            db.close()

    payload: dict[str, object] = {
        "command": "migrate",
        "db_path": db.path.as_posix(),
        "dry_run": _flag(args, "dry_run"),
        "version_before": before,
        "version_after": after,
        "target_version": db.target_version,
        "pending": [
            {"version": migration.version, "name": migration.name} for migration in pending
        ],
    }
    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("database", payload["db_path"])
    renderer.kv("schema_version", f"{before} -> {after} (target {db.target_version})")
    if not pending:
        renderer.text("Schema is up to date.")
        return 0
    verb = "pending" if _flag(args, "dry_run") else "applied"
    for migration in pending:
        renderer.text(f"  {verb}: {migration.version:04d} {migration.name}")
    return 0


def _cmd_settings_get(args: argparse.Namespace) -> int:
    key = _require_str(args.key, "key")
    with _session(args) as app:
        record = app.settings.get_record(key)
    value = None if record is None else record.value
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "settings get",
                "key": key,
                "value": value,
                "setting": None if record is None else record.to_dict(),
            }
        )
        return 0
    print(args.default if value is None else value)
    return 0


def _cmd_settings_set(args: argparse.Namespace) -> int:
    with _session(args) as app:
        setting = app.set_setting(_require_str(args.key, "key"), args.value)
    if _flag(args, "json"):
        _emit_json({"command": "settings set", "setting": setting.to_dict()})
        return 0
    _get_renderer(args).kv(setting.key, setting.value)
    return 0


def _cmd_settings_list(args: argparse.Namespace) -> int:
    with _session(args) as app:
        settings = app.get_all_settings()
    if _flag(args, "json"):
        _emit_json({"command": "settings list", "settings": to_json_ready(settings)})
        return 0
    renderer = _get_renderer(args)
    if not settings:
        renderer.text("No settings stored.")
        return 0
    renderer.table(("KEY", "VALUE", "UPDATED"), [_setting_row(item) for item in settings])
    return 0


def _cmd_layouts_save(args: argparse.Namespace) -> int:
    name = _require_str(args.name, "name")
    layout_json = _read_layout_payload(args)
    with _session(args) as app:
        layout = app.save_layout(name, layout_json)
    if _flag(args, "json"):
        _emit_json({"command": "layouts save", "layout": layout.to_dict()})
        return 0
    _get_renderer(args).text(f"saved layout {layout.id} ({layout.name})")
    return 0


def _cmd_layouts_list(args: argparse.Namespace) -> int:
    with _session(args) as app:
        layouts = app.get_all_layouts()
    if _flag(args, "json"):
        _emit_json({"command": "layouts list", "layouts": to_json_ready(layouts)})
        return 0
    renderer = _get_renderer(args)
    if not layouts:
        renderer.text("No layouts saved.")
        return 0
    renderer.table(("ID", "NAME", "ACTIVE", "UPDATED"), [_layout_row(item) for item in layouts])
    return 0


def _cmd_layouts_show(args: argparse.Namespace) -> int:
    with _session(args) as app:
        layout = app.get_layout(args.layout_id)
    if _flag(args, "json"):
        _emit_json({"command": "layouts show", "layout": layout.to_dict()})
        return 0
    _render_layout(_get_renderer(args), layout)
    return 0


def _cmd_layouts_activate(args: argparse.Namespace) -> int:
    with _session(args) as app:
        layout = app.set_active_layout(args.layout_id)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "layouts activate",
                "layout_id": args.layout_id,
                "active": None if layout is None else layout.to_dict(),
            }
        )
        return 0
    renderer = _get_renderer(args)
    if layout is None:
        renderer.text(f"layout {args.layout_id} not found; no layout is active now")
        return 0
    renderer.text(f"active layout: {layout.id} ({layout.name})")
    return 0


def _cmd_layouts_active(args: argparse.Namespace) -> int:
    with _session(args) as app:
        layout = app.get_active_layout()
    if _flag(args, "json"):
        _emit_json(
            {"command": "layouts active", "active": None if layout is None else layout.to_dict()}
        )
        return 0
    renderer = _get_renderer(args)
    if layout is None:
        renderer.text("No active layout.")
        return 0
    _render_layout(renderer, layout)
    return 0


def _cmd_layouts_delete(args: argparse.Namespace) -> int:
    with _session(args) as app:
        removed = app.delete_layout(args.layout_id)
    if _flag(args, "json"):
        _emit_json({"command": "layouts delete", "layout_id": args.layout_id, "removed": removed})
        return 0
    state = "deleted" if removed else "nothing to delete for"
    _get_renderer(args).text(f"{state} layout {args.layout_id}")
    return 0


def _cmd_window_show(args: argparse.Namespace) -> int:
    with _session(args) as app:
        state = app.get_window_state()
    if _flag(args, "json"):
        _emit_json(
            {"command": "window show", "window": None if state is None else state.to_dict()}
        )
        return 0
    renderer = _get_renderer(args)
    if state is None:
        renderer.text("No saved window state.")
        return 0
    _render_window(renderer, state)
    return 0


def _cmd_window_save(args: argparse.Namespace) -> int:
    with _session(args) as app:
        state = app.save_window_state(
            args.x, args.y, args.width, args.height, _flag(args, "maximized")
        )
    if _flag(args, "json"):
        _emit_json({"command": "window save", "window": state.to_dict()})
        return 0
    _render_window(_get_renderer(args), state)
    return 0


def _cmd_db_backup(args: argparse.Namespace) -> int:
    raw_destination = _require_str(args.destination, "destination")
    if not raw_destination.strip():
        raise CLIError("invalid destination: value cannot be empty", exit_code=2)
    destination = Path(raw_destination).expanduser().resolve()
    with _session(args) as app:
        if destination == app.db.path.resolve():
            raise CLIError("backup destination must differ from the live database", exit_code=2)
        written = app.db.backup(destination)
    if _flag(args, "json"):
        _emit_json({"command": "db backup", "destination": written.as_posix()})
        return 0
    _get_renderer(args).text(f"backup written to {written.as_posix()}")
    return 0


def _cmd_db_check(args: argparse.Namespace) -> int:
    with _session(args) as app:
        problems = app.db.integrity_check()
    if _flag(args, "json"):
        _emit_json({"command": "db check", "ok": not problems, "errors": list(problems)})
    else:
        renderer = _get_renderer(args)
        if problems:
            for problem in problems:
                renderer.fail(problem)
        else:
            renderer.ok("integrity_check")
    return 3 if problems else 0


def _cmd_ui(args: argparse.Namespace) -> int:
    from byteframes.ui.tui import run_tui, tui_available

    if not tui_available():
        return run_tui(None)
    with _session(args) as app:
        return run_tui(app)


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    if _flag(args, "verbose"):
        overrides["observability.log_level"] = "DEBUG"
        overrides["observability.log_to_stdout"] = True
    return load_config(
        getattr(args, "config_path", None),
        data_dir=getattr(args, "data_dir", None),
        cli_overrides=overrides,
    )


@contextmanager
def _logging(args: argparse.Namespace, config: Mapping[str, Any]) -> Iterator[None]:
    handle = setup_structured_logging(
        LoggingConfig(
            log_dir=log_directory(config),
            level=config["observability"]["log_level"],
            log_to_stdout=config["observability"]["log_to_stdout"],
        )
    )
    try:
        yield
    finally:
        shutdown_logging(handle)


@contextmanager
def _session(
    args: argparse.Namespace, config: Mapping[str, Any] | None = None
) -> Iterator[App]:
    """Load config, start logging and yield an opened facade; always tears down."""

    effective = _load_effective_config(args) if config is None else config
    command = " ".join(
        part
        for part in (
            getattr(args, "command", None),
            getattr(args, "settings_command", None),
            getattr(args, "layouts_command", None),
            getattr(args, "window_command", None),
            getattr(args, "db_command", None),
        )
        if part
    )
    with _logging(args, effective), correlation_scope(command=command or None):
        app = open_app(
            effective["paths"]["data_dir"],
            db_filename=effective["database"]["filename"],
            busy_timeout_ms=effective["database"]["busy_timeout_ms"],
        )
        with app:
            yield app


def _read_layout_payload(args: argparse.Namespace) -> str:
    inline = getattr(args, "layout_json", None)
    file_arg = getattr(args, "file", None)
    if inline is not None and file_arg is not None:
        raise CLIError("pass the layout payload inline or with --file, not both", exit_code=2)
    if file_arg is not None:
        try:
            return Path(file_arg).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise CLIError(f"unable to read layout file {file_arg}: {exc}", exit_code=2) from exc
    if inline is None:
        raise CLIError("missing layout payload (inline, '-' or --file)", exit_code=2)
    if inline == "-":
        return sys.stdin.read()
    return str(inline)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


def _setting_row(setting: Setting) -> tuple[str, str, str]:
    return (setting.key, _truncate(setting.value, 60), str(setting.updated_at))


def _layout_row(layout: Layout) -> tuple[str, str, str, str]:
    return (
        str(layout.id),
        layout.name,
        "*" if layout.is_active else "",
        str(layout.updated_at),
    )


def _render_layout(renderer: CLIRenderer, layout: Layout) -> None:
    renderer.kv("id", layout.id)
    renderer.kv("name", layout.name)
    renderer.kv("active", "yes" if layout.is_active else "no")
    renderer.kv("created_at", layout.created_at)
    renderer.kv("updated_at", layout.updated_at)
    renderer.kv("layout_json", layout.layout_json)


def _render_window(renderer: CLIRenderer, state: WindowState) -> None:
    renderer.kv("position", f"{state.x},{state.y}")
    renderer.kv("size", f"{state.width}x{state.height}")
    renderer.kv("maximized", "yes" if state.maximized else "no")
    renderer.kv("updated_at", state.updated_at)


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


# ---------------------------------------------------------------------------
# Helpers: argument parsing
# ---------------------------------------------------------------------------


def _require_str(value: object, name: str) -> str:
    """Type-check a positional argument; the value is passed through unchanged."""

    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=2)
    return value


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = [
    "CLIError",
    "build_parser",
    "run_cli",
]
