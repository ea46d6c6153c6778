"""Utility exports for filesystem location helpers."""

from byteframes.utils.paths import (
    database_path,
    default_config_path,
    default_data_dir,
    user_config_dir,
)

__all__ = [
    "database_path",
    "default_config_path",
    "default_data_dir",
    "user_config_dir",
]
