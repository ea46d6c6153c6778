"""
byteframes: state database

File: src/byteframes/persistence/state_db.py

Purpose
- SQLite connection lifecycle, transactions, and the schema migrator.

What is included in this file
- A single owned connection, opened once at startup and closed once at shutdown.
- Singleton ``schema_version`` row and an ordered migration runner.
- Error taxonomy for storage, busy, corruption, and migration failures.
- Backup and integrity-check helpers.

Functional requirements
- Migrations are idempotent and each one commits atomically with its version bump.
- A failed migration aborts startup and leaves the stored version at the last
  successfully applied migration.

Non-functional requirements
- Calls from several threads serialize at the connection boundary.
- Errors are never retried internally.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, NoReturn

import structlog

from byteframes.constants import SINGLETON_ROW_ID, STATE_DB_SCHEMA_VERSION

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None
Clock = Callable[[], float]

DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

_SCHEMA_VERSION_TABLE_SQL: Final[str] = f"""
CREATE TABLE IF NOT EXISTS schema_version (
    id INTEGER PRIMARY KEY CHECK (id = {SINGLETON_ROW_ID}),
    version INTEGER NOT NULL CHECK (version >= 0),
    updated_at REAL NOT NULL
)
"""

_SET_VERSION_SQL: Final[str] = f"""
INSERT INTO schema_version (id, version, updated_at)
VALUES ({SINGLETON_ROW_ID}, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    version=excluded.version,
    updated_at=excluded.updated_at
"""

_MIGRATION_0001_STATEMENTS: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS layouts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        layout_json TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 0 CHECK (is_active IN (0, 1)),
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS window_state (
        id INTEGER PRIMARY KEY CHECK (id = {SINGLETON_ROW_ID}),
        x INTEGER NOT NULL,
        y INTEGER NOT NULL,
        width INTEGER NOT NULL,
        height INTEGER NOT NULL,
        maximized INTEGER NOT NULL DEFAULT 0 CHECK (maximized IN (0, 1)),
        updated_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_layouts_active ON layouts(is_active)",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_layouts_single_active
    ON layouts(is_active) WHERE is_active = 1
    """,
)


@dataclass(frozen=True, slots=True)
class Migration:
    """One schema upgrade step. Statements must be safe to re-run."""

    version: int
    name: str
    statements: tuple[str, ...]


MIGRATIONS: Final[tuple[Migration, ...]] = (
    Migration(
        version=1,
        name="initial_schema",
        statements=_MIGRATION_0001_STATEMENTS,
    ),
)

_SQLITE_BUSY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_BUSY", None),
        getattr(sqlite3, "SQLITE_BUSY_RECOVERY", None),
        getattr(sqlite3, "SQLITE_BUSY_SNAPSHOT", None),
        getattr(sqlite3, "SQLITE_LOCKED", None),
        getattr(sqlite3, "SQLITE_LOCKED_SHAREDCACHE", None),
    )
    if isinstance(code, int)
)

_SQLITE_CORRUPTION_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CORRUPT", None),
        getattr(sqlite3, "SQLITE_NOTADB", None),
    )
    if isinstance(code, int)
)

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)

_CORRUPTION_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "malformed database",
    "file is not a database",
)


class StateDBError(RuntimeError):
    """Base class for storage failures."""


class StateDBBusyError(StateDBError):
    """Raised when the database stays locked past the busy timeout."""


class StateDBMigrationError(StateDBError):
    """Raised when migrations cannot be applied; fatal at startup."""


class StateDBCorruptionError(StateDBError):
    """Raised when SQLite reports possible corruption."""


class StateDBClosedError(StateDBError):
    """Raised when the database is used before ``open()`` or after ``close()``."""


class RecordNotFoundError(StateDBError, LookupError):
    """Raised when a lookup that requires a row finds none."""


class StateDB:
    """Owner of the single SQLite connection backing the application."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        clock: Clock = time.time,
        migrations: Sequence[Migration] | None = None,
        logger: Any | None = None,
    ) -> None:
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        self._path = Path(path).expanduser()
        self._busy_timeout_ms = busy_timeout_ms
        self._clock = clock
        self._migrations = tuple(MIGRATIONS if migrations is None else migrations)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._savepoint_counter = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def target_version(self) -> int:
        return max((migration.version for migration in self._migrations), default=0)

    def now(self) -> float:
        """Current Unix time from the injected clock."""

        return float(self._clock())

    def open(self) -> StateDB:
        """Open the connection. Calling it on an open database is a no-op."""

        with self._lock:
            if self._conn is not None:
                return self
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StateDBError(
                    f"failed to create data directory {self._path.parent}: {exc}"
                ) from exc
            try:
                conn = sqlite3.connect(
                    self._path,
                    timeout=self._busy_timeout_ms / 1000.0,
                    isolation_level=None,
                    check_same_thread=False,
                )
            except sqlite3.Error as exc:
                self._raise_actionable_error(exc, operation="open database")
            conn.row_factory = sqlite3.Row
            try:
                self._configure_connection(conn)
            except sqlite3.Error as exc:
                conn.close()
                self._raise_actionable_error(exc, operation="configure connection")
            except StateDBError:
                conn.close()
                raise
            self._conn = conn
            self._logger.info("state_db_opened", path=str(self._path))
            return self

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

        with self._lock:
            if self._conn is None:
                return
            conn = self._conn
            self._conn = None
            conn.close()
            self._logger.info("state_db_closed", path=str(self._path))

    def __enter__(self) -> StateDB:
        self.open()
        try:
            self.migrate()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Hold the connection lock for the duration of the block."""

        with self._lock:
            yield self._require_connection()

    @contextmanager
    def transaction(self, *, immediate: bool = True) -> Iterator[sqlite3.Connection]:
        """Run statements atomically; nested calls become savepoints."""

        with self._lock:
            conn = self._require_connection()
            if conn.in_transaction:
                savepoint = self._next_savepoint_name()
                self._execute(conn, f"SAVEPOINT {savepoint}", (), operation="savepoint")
                try:
                    yield conn
                except BaseException:
                    self._execute(
                        conn,
                        f"ROLLBACK TO SAVEPOINT {savepoint}",
                        (),
                        operation="rollback to savepoint",
                    )
                    self._execute(
                        conn, f"RELEASE SAVEPOINT {savepoint}", (), operation="release savepoint"
                    )
                    raise
                else:
                    self._execute(
                        conn, f"RELEASE SAVEPOINT {savepoint}", (), operation="release savepoint"
                    )
                return

            begin_sql = "BEGIN IMMEDIATE" if immediate else "BEGIN"
            self._execute(conn, begin_sql, (), operation="begin transaction")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    self._execute(conn, "ROLLBACK", (), operation="rollback transaction")
                raise
            else:
                self._execute(conn, "COMMIT", (), operation="commit transaction")

    def migrate(self) -> int:
        """Bring the schema to the latest version and return the resulting version."""

        _validate_migration_chain(self._migrations)
        with self.connection() as conn:
            self._execute(
                conn,
                _SCHEMA_VERSION_TABLE_SQL,
                (),
                operation="create schema_version table",
            )
            current = self._read_version(conn)
            target = self.target_version
            if current > target:
                raise StateDBMigrationError(
                    "database schema is newer than supported by this build "
                    f"(db={current}, code={target})"
                )

            for migration in self._migrations:
                if migration.version <= current:
                    continue
                try:
                    with self.transaction() as tx:
                        for statement in migration.statements:
                            self._execute(
                                tx,
                                statement,
                                (),
                                operation=f"apply migration {migration.version}",
                            )
                        self._execute(
                            tx,
                            _SET_VERSION_SQL,
                            (migration.version, self.now()),
                            operation=f"record migration {migration.version}",
                        )
                except (StateDBError, sqlite3.Error) as exc:
                    self._logger.error(
                        "state_db_migration_failed",
                        version=migration.version,
                        migration=migration.name,
                        error=str(exc),
                    )
                    raise StateDBMigrationError(
                        f"migration {migration.version} ({migration.name}) failed: {exc}"
                    ) from exc
                current = migration.version
                self._logger.info(
                    "state_db_migration_applied",
                    version=migration.version,
                    migration=migration.name,
                )
            return current

    def schema_version(self) -> int:
        """Stored schema version; 0 for a database that was never migrated."""

        with self.connection() as conn:
            table = self._execute(
                conn,
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'",
                (),
                operation="inspect schema_version table",
            ).fetchone()
            if table is None:
                return 0
            return self._read_version(conn)

    def pending_migrations(self) -> tuple[Migration, ...]:
        current = self.schema_version()
        return tuple(migration for migration in self._migrations if migration.version > current)

    def execute(self, sql: str, params: SQLParams = ()) -> int:
        """Execute a parameterized statement and return the affected row count."""

        with self.connection() as conn:
            return self._execute(conn, sql, params, operation="execute statement").rowcount

    def query_all(self, sql: str, params: SQLParams = ()) -> list[dict[str, RowValue]]:
        with self.connection() as conn:
            cursor = self._execute(conn, sql, params, operation="query all")
            return [_row_to_dict(row) for row in cursor.fetchall()]

    def query_one(self, sql: str, params: SQLParams = ()) -> dict[str, RowValue] | None:
        with self.connection() as conn:
            cursor = self._execute(conn, sql, params, operation="query one")
            row = cursor.fetchone()
            return None if row is None else _row_to_dict(row)

    def backup(self, destination: str | Path) -> Path:
        """Create a consistent snapshot using the SQLite backup API."""

        destination_path = Path(destination).expanduser()
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as source:
            target = sqlite3.connect(destination_path)
            try:
                source.backup(target)
            except sqlite3.Error as exc:
                self._raise_actionable_error(exc, operation="backup")
            finally:
                target.close()
        self._logger.info("state_db_backup_written", destination=str(destination_path))
        return destination_path

    def integrity_check(self, *, max_errors: int = 100) -> tuple[str, ...]:
        """Return integrity-check errors; empty tuple means OK."""

        if max_errors <= 0:
            raise ValueError("max_errors must be > 0")
        rows = self.query_all(f"PRAGMA integrity_check({max_errors})")
        messages = tuple(str(next(iter(row.values()), "")) for row in rows)
        if messages == ("ok",):
            return ()
        return messages

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StateDBClosedError(f"state database is not open: {self._path}")
        return self._conn

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
        journal_row = conn.execute("PRAGMA journal_mode=WAL").fetchone()
        if journal_row is None:
            raise StateDBError("failed to configure journal_mode")
        journal_mode = str(journal_row[0]).lower()
        if journal_mode != "wal":
            raise StateDBError(f"journal_mode must be WAL, got {journal_mode!r}")

    def _read_version(self, conn: sqlite3.Connection) -> int:
        row = self._execute(
            conn,
            "SELECT version FROM schema_version WHERE id = ?",
            (SINGLETON_ROW_ID,),
            operation="read schema version",
        ).fetchone()
        if row is None:
            return 0
        value = row["version"]
        if isinstance(value, bool) or not isinstance(value, int):
            raise StateDBMigrationError("schema_version.version must be an integer")
        return value

    def _next_savepoint_name(self) -> str:
        self._savepoint_counter += 1
        return f"sp_{self._savepoint_counter}"

    def _execute(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams,
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        try:
            return conn.execute(sql, tuple(params))
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            self._raise_actionable_error(exc, operation=operation)

    def _is_busy_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_BUSY_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _BUSY_SUBSTRINGS)

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_CORRUPTION_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _CORRUPTION_SUBSTRINGS)

    def _raise_actionable_error(self, exc: sqlite3.Error, *, operation: str) -> NoReturn:
        if self._is_corruption_error(exc):
            raise StateDBCorruptionError(
                f"{operation} failed for {self._path}: {exc}. "
                "Run `StateDB.integrity_check()` and restore from `StateDB.backup(...)` if needed."
            ) from exc
        if self._is_busy_error(exc):
            raise StateDBBusyError(
                f"{operation} hit SQLITE_BUSY for {self._path} after "
                f"{self._busy_timeout_ms} ms: {exc}"
            ) from exc
        raise StateDBError(f"{operation} failed for {self._path}: {exc}") from exc


def _validate_migration_chain(migrations: Sequence[Migration]) -> None:
    previous = 0
    for migration in migrations:
        out_of_order = migration.version <= previous
        if out_of_order or (previous == 0 and migration.version != 1):
            raise StateDBMigrationError(
                "migration versions must be strictly increasing and start at 1 "
                f"(got {migration.version} after {previous})"
            )
        previous = migration.version


def _row_to_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    raw = dict(row)
    return {str(key): raw[key] for key in raw}


_validate_migration_chain(MIGRATIONS)
if MIGRATIONS[-1].version != STATE_DB_SCHEMA_VERSION:
    raise StateDBMigrationError(
        "STATE_DB_SCHEMA_VERSION does not match the latest migration "
        f"({STATE_DB_SCHEMA_VERSION} != {MIGRATIONS[-1].version})"
    )


__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "MIGRATIONS",
    "Clock",
    "Migration",
    "RecordNotFoundError",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "StateDB",
    "StateDBBusyError",
    "StateDBClosedError",
    "StateDBCorruptionError",
    "StateDBError",
    "StateDBMigrationError",
]
