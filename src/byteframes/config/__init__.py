"""
byteframes config package public API.

File: src/byteframes/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``byteframes.toml`` + ``BYTEFRAMES_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from byteframes.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    database_file,
    load_config,
    log_directory,
    normalize_paths,
)
from byteframes.config.schema import (
    LOG_LEVELS,
    PATH_FIELDS,
    ByteframesConfig,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ByteframesConfig",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "database_file",
    "default_config",
    "load_config",
    "log_directory",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
