"""
byteframes: migrate the application database schema.

Purpose
- Apply the ordered SQLite migrations to an ``app.db`` file.
- Provide migration status output for both apply and dry-run flows.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"

if TYPE_CHECKING:
    from byteframes.persistence.state_db import Migration


def _ensure_src_path() -> None:
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


def _default_db_path() -> Path:
    _ensure_src_path()
    from byteframes.utils.paths import database_path, default_data_dir

    return database_path(default_data_dir())


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Apply or inspect byteframes database migrations.",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite database (default: <per-user data dir>/byteframes/app.db).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show migration status without mutating the target database.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output.",
    )
    return parser.parse_args(argv)


def _read_current_version(db_path: Path) -> int:
    """Read the stored schema version without applying migrations."""

    _ensure_src_path()
    from byteframes.persistence.state_db import StateDB

    if not db_path.exists():
        return 0
    db = StateDB(db_path)
    db.open()
    try:
        return db.schema_version()
    finally:
        db.close()


def _status_rows(
    *,
    catalog: Sequence[Migration],
    current_version: int,
) -> tuple[dict[str, object], ...]:
    rows: list[dict[str, object]] = []
    for migration in catalog:
        rows.append(
            {
                "version": migration.version,
                "name": migration.name,
                "status": "applied" if migration.version <= current_version else "pending",
            }
        )
    return tuple(rows)


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _emit_text(payload: Mapping[str, object]) -> None:
    print(f"db_path: {payload['db_path']}")
    print(f"dry_run: {payload['dry_run']}")
    print(f"schema_version: {payload['schema_version']}")
    print(f"target_schema_version: {payload['target_schema_version']}")
    print(f"up_to_date: {payload['up_to_date']}")
    print("migrations:")

    migrations_obj = payload.get("migrations")
    migrations = migrations_obj if isinstance(migrations_obj, list) else []
    for row in migrations:
        if not isinstance(row, Mapping):
            continue
        print(f"  v{row.get('version')}: {row.get('status')} ({row.get('name')})")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    raw_db_path = args.db if args.db is not None else _default_db_path()
    resolved_db_path = raw_db_path.expanduser().resolve()
    existed_before = resolved_db_path.exists()

    _ensure_src_path()
    from byteframes.constants import STATE_DB_SCHEMA_VERSION
    from byteframes.observability import configure_structlog
    from byteframes.persistence.state_db import MIGRATIONS, StateDB, StateDBError

    configure_structlog()

    try:
        if args.dry_run:
            current_version = _read_current_version(resolved_db_path)
        else:
            with StateDB(resolved_db_path) as db:
                current_version = db.schema_version()

        rows = _status_rows(catalog=MIGRATIONS, current_version=current_version)
        pending = sum(1 for row in rows if row["status"] == "pending")
        newer = current_version > STATE_DB_SCHEMA_VERSION

        payload: dict[str, object] = {
            "db_path": resolved_db_path.as_posix(),
            "dry_run": bool(args.dry_run),
            "db_existed": existed_before,
            "schema_version": current_version,
            "target_schema_version": STATE_DB_SCHEMA_VERSION,
            "up_to_date": pending == 0 and not newer,
            "pending_migrations": pending,
            "migrations": [dict(row) for row in rows],
        }

        if args.json:
            _emit_json(payload)
        else:
            _emit_text(payload)
        return 1 if newer else 0
    except (StateDBError, OSError) as exc:
        error_payload: dict[str, object] = {
            "db_path": resolved_db_path.as_posix(),
            "dry_run": bool(args.dry_run),
            "error": str(exc),
        }
        if args.json:
            _emit_json(error_payload)
        else:
            print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
