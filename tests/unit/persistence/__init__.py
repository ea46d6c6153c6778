"""Shared deterministic fixtures and builders for persistence tests."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from byteframes.persistence import LayoutRepo, SettingsRepo, StateDB, WindowStateRepo

BASE_TS: Final[float] = 1_767_225_600.0


class FakeClock:
    """Deterministic clock: every reading advances by ``step`` seconds."""

    def __init__(self, start: float = BASE_TS, step: float = 0.25) -> None:
        self._now = start
        self._step = step

    def __call__(self) -> float:
        current = self._now
        self._now += self._step
        return current

    def advance(self, seconds: float) -> None:
        self._now += seconds


def db_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "app.db"


def open_db(tmp_path: Path, clock: FakeClock | None = None) -> StateDB:
    db = StateDB(db_path(tmp_path), clock=clock if clock is not None else FakeClock())
    db.open()
    db.migrate()
    return db


def make_repos(db: StateDB) -> tuple[SettingsRepo, LayoutRepo, WindowStateRepo]:
    return SettingsRepo(db), LayoutRepo(db), WindowStateRepo(db)


__all__ = ["BASE_TS", "FakeClock", "db_path", "make_repos", "open_db"]
