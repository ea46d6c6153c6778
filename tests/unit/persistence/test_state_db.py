"""State DB lifecycle, migration, pragma, backup, and error-classification tests."""

from __future__ import annotations

import sqlite3
import threading
from typing import TYPE_CHECKING

import pytest

from byteframes.constants import STATE_DB_SCHEMA_VERSION
from byteframes.persistence.repositories import SettingsRepo
from byteframes.persistence.state_db import (
    MIGRATIONS,
    Migration,
    StateDB,
    StateDBBusyError,
    StateDBClosedError,
    StateDBCorruptionError,
    StateDBError,
    StateDBMigrationError,
)

from . import BASE_TS, FakeClock, db_path, open_db

if TYPE_CHECKING:
    from pathlib import Path


def _table_names(db: StateDB) -> set[str]:
    rows = db.query_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {str(row["name"]) for row in rows}


def _index_names(db: StateDB) -> set[str]:
    rows = db.query_all("SELECT name FROM sqlite_master WHERE type = 'index'")
    return {str(row["name"]) for row in rows}


def test_migration_idempotence_schema_version_and_pragmas(tmp_path: Path) -> None:
    db = StateDB(db_path(tmp_path), busy_timeout_ms=4_321, clock=FakeClock())
    db.open()
    try:
        version_first = db.migrate()
        version_second = db.migrate()

        assert version_first == STATE_DB_SCHEMA_VERSION
        assert version_second == STATE_DB_SCHEMA_VERSION
        assert db.schema_version() == STATE_DB_SCHEMA_VERSION

        assert {"schema_version", "settings", "layouts", "window_state"} <= _table_names(db)
        assert {"idx_layouts_active", "uq_layouts_single_active"} <= _index_names(db)

        assert db.query_all("SELECT id, version FROM schema_version") == [
            {"id": 1, "version": STATE_DB_SCHEMA_VERSION}
        ]

        with db.connection() as conn:
            assert str(conn.execute("PRAGMA journal_mode").fetchone()[0]).lower() == "wal"
            assert int(conn.execute("PRAGMA foreign_keys").fetchone()[0]) == 1
            assert int(conn.execute("PRAGMA busy_timeout").fetchone()[0]) == 4_321
    finally:
        db.close()


def test_schema_version_is_zero_before_first_migration(tmp_path: Path) -> None:
    db = StateDB(db_path(tmp_path))
    db.open()
    try:
        assert db.schema_version() == 0
        assert db.pending_migrations() == MIGRATIONS
        assert db.target_version == STATE_DB_SCHEMA_VERSION

        db.migrate()

        assert db.pending_migrations() == ()
    finally:
        db.close()


def test_schema_version_row_records_clock_time(tmp_path: Path) -> None:
    db = open_db(tmp_path, FakeClock(start=BASE_TS, step=0.0))
    try:
        row = db.query_one("SELECT updated_at FROM schema_version WHERE id = 1")
        assert row == {"updated_at": BASE_TS}
    finally:
        db.close()


def test_context_manager_opens_migrates_and_closes(tmp_path: Path) -> None:
    with StateDB(db_path(tmp_path)) as db:
        assert db.is_open
        assert db.schema_version() == STATE_DB_SCHEMA_VERSION

    assert not db.is_open
    assert db_path(tmp_path).exists()


def test_open_and_close_are_idempotent(tmp_path: Path) -> None:
    db = StateDB(db_path(tmp_path))

    assert db.open() is db
    assert db.open() is db
    db.close()
    db.close()

    assert not db.is_open


def test_use_before_open_or_after_close_raises_closed_error(tmp_path: Path) -> None:
    db = StateDB(db_path(tmp_path))

    with pytest.raises(StateDBClosedError):
        db.query_one("SELECT 1")

    db.open()
    db.close()

    with pytest.raises(StateDBClosedError):
        db.migrate()


def test_failed_migration_rolls_back_and_keeps_last_applied_version(tmp_path: Path) -> None:
    path = db_path(tmp_path)
    with StateDB(path):
        pass

    catalog = (
        *MIGRATIONS,
        Migration(
            version=2,
            name="add_extra_things",
            statements=(
                "CREATE TABLE IF NOT EXISTS extra_things (id INTEGER PRIMARY KEY)",
                "THIS IS NOT VALID SQL",
            ),
        ),
        Migration(
            version=3,
            name="add_more_things",
            statements=("CREATE TABLE IF NOT EXISTS more_things (id INTEGER PRIMARY KEY)",),
        ),
    )
    db = StateDB(path, migrations=catalog)
    db.open()
    try:
        with pytest.raises(StateDBMigrationError, match="migration 2"):
            db.migrate()

        assert db.schema_version() == 1
        tables = _table_names(db)
        assert "extra_things" not in tables
        assert "more_things" not in tables
        assert [migration.version for migration in db.pending_migrations()] == [2, 3]
    finally:
        db.close()


def test_context_manager_closes_connection_when_migration_fails(tmp_path: Path) -> None:
    catalog = (Migration(version=1, name="broken", statements=("NOT SQL AT ALL",)),)
    db = StateDB(db_path(tmp_path), migrations=catalog)

    with pytest.raises(StateDBMigrationError), db:
        pass

    assert not db.is_open


def test_database_newer_than_code_is_rejected(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    try:
        db.execute("UPDATE schema_version SET version = ? WHERE id = 1", (99,))

        with pytest.raises(StateDBMigrationError, match="newer"):
            db.migrate()

        assert db.schema_version() == 99
    finally:
        db.close()


def test_out_of_order_migration_catalog_is_rejected(tmp_path: Path) -> None:
    catalog = (
        Migration(version=2, name="second", statements=()),
        Migration(version=1, name="first", statements=()),
    )
    db = StateDB(db_path(tmp_path), migrations=catalog)
    db.open()
    try:
        with pytest.raises(StateDBMigrationError, match="strictly increasing"):
            db.migrate()
    finally:
        db.close()


def test_nested_transaction_rolls_back_only_the_savepoint(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    insert = "INSERT INTO settings (key, value, created_at, updated_at) VALUES (?, ?, 0, 0)"
    try:
        with db.transaction():
            db.execute(insert, ("outer", "kept"))
            with pytest.raises(RuntimeError, match="boom"), db.transaction():
                db.execute(insert, ("inner", "discarded"))
                raise RuntimeError("boom")

        keys = [row["key"] for row in db.query_all("SELECT key FROM settings ORDER BY key")]
        assert keys == ["outer"]
    finally:
        db.close()


def test_failed_transaction_rolls_back_every_statement(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    insert = "INSERT INTO settings (key, value, created_at, updated_at) VALUES (?, ?, 0, 0)"
    try:
        with pytest.raises(RuntimeError), db.transaction():
            db.execute(insert, ("a", "1"))
            db.execute(insert, ("b", "2"))
            raise RuntimeError("abort")

        assert db.query_all("SELECT key FROM settings") == []
    finally:
        db.close()


def test_integrity_errors_pass_through_unwrapped(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    insert = (
        "INSERT INTO layouts (name, layout_json, is_active, created_at, updated_at) "
        "VALUES (?, '{}', 1, 0, 0)"
    )
    try:
        db.execute(insert, ("first",))
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(insert, ("second",))
    finally:
        db.close()


def test_invalid_sql_is_wrapped_in_state_db_error(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    try:
        with pytest.raises(StateDBError, match="execute statement failed"):
            db.execute("SELECT * FROM no_such_table")
    finally:
        db.close()


def test_non_database_file_raises_corruption_error(tmp_path: Path) -> None:
    path = db_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_bytes(b"this is definitely not a sqlite database file " * 64)

    db = StateDB(path)
    with pytest.raises(StateDBCorruptionError):
        db.open()

    assert not db.is_open


def test_lock_held_by_other_connection_raises_busy_error(tmp_path: Path) -> None:
    holder = open_db(tmp_path)
    contender = StateDB(db_path(tmp_path), busy_timeout_ms=50)
    contender.open()
    try:
        with holder.transaction():
            holder.execute(
                "INSERT INTO settings (key, value, created_at, updated_at) VALUES ('k', 'v', 0, 0)"
            )
            with pytest.raises(StateDBBusyError):
                SettingsRepo(contender).set("other", "value")

        assert SettingsRepo(contender).get("k") == "v"
    finally:
        contender.close()
        holder.close()


def test_concurrent_writers_on_shared_connection_serialize(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    repo = SettingsRepo(db)
    errors: list[BaseException] = []

    def _worker(index: int) -> None:
        try:
            for round_number in range(20):
                repo.set(f"worker-{index}", str(round_number))
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(index,)) for index in range(4)]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert {setting.key: setting.value for setting in repo.list_all()} == {
            f"worker-{index}": "19" for index in range(4)
        }
    finally:
        db.close()


def test_backup_and_integrity_check(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    try:
        SettingsRepo(db).set("theme", "dark")
        assert db.integrity_check() == ()

        target = db.backup(tmp_path / "backups" / "copy.db")
    finally:
        db.close()

    assert target.exists()
    with StateDB(target) as restored:
        assert restored.schema_version() == STATE_DB_SCHEMA_VERSION
        assert SettingsRepo(restored).get("theme") == "dark"
        assert restored.integrity_check() == ()


def test_constructor_rejects_negative_busy_timeout(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="busy_timeout_ms"):
        StateDB(db_path(tmp_path), busy_timeout_ms=-1)


def test_integrity_check_rejects_non_positive_limit(tmp_path: Path) -> None:
    db = open_db(tmp_path)
    try:
        with pytest.raises(ValueError, match="max_errors"):
            db.integrity_check(max_errors=0)
    finally:
        db.close()


def test_migration_catalog_must_start_at_version_one(tmp_path: Path) -> None:
    catalog = (Migration(version=2, name="late_start", statements=()),)
    db = StateDB(db_path(tmp_path), migrations=catalog)
    db.open()
    try:
        with pytest.raises(StateDBMigrationError, match="start at 1"):
            db.migrate()
        assert db.schema_version() == 0
    finally:
        db.close()
