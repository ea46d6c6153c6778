"""Per-platform data directory resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from byteframes.utils.paths import (
    database_path,
    default_config_path,
    default_data_dir,
    user_config_dir,
)


def test_linux_prefers_xdg_config_home(tmp_path: Path) -> None:
    root = user_config_dir(environ={"XDG_CONFIG_HOME": str(tmp_path)}, system="Linux")

    assert root == tmp_path
    assert default_data_dir(environ={"XDG_CONFIG_HOME": str(tmp_path)}, system="Linux") == (
        tmp_path / "byteframes"
    )


def test_linux_falls_back_to_dot_config() -> None:
    assert user_config_dir(environ={}, system="Linux") == Path.home() / ".config"


def test_windows_uses_appdata(tmp_path: Path) -> None:
    root = user_config_dir(environ={"APPDATA": str(tmp_path)}, system="Windows")

    assert root == tmp_path
    assert user_config_dir(environ={}, system="Windows") == Path.home() / "AppData" / "Roaming"


def test_macos_uses_application_support() -> None:
    root = user_config_dir(environ={"XDG_CONFIG_HOME": "/ignored"}, system="Darwin")

    assert root == Path.home() / "Library" / "Application Support"


def test_database_and_config_paths_live_in_data_dir(tmp_path: Path) -> None:
    assert database_path(tmp_path) == tmp_path / "app.db"
    assert database_path(tmp_path, "other.db") == tmp_path / "other.db"
    assert default_config_path(tmp_path) == tmp_path / "byteframes.toml"


@pytest.mark.parametrize("filename", ["", "nested/app.db", "../app.db"])
def test_database_filename_must_be_bare(tmp_path: Path, filename: str) -> None:
    with pytest.raises(ValueError, match="bare file name"):
        database_path(tmp_path, filename)
