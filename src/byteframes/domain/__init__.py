"""Domain records for settings, layouts, and window state."""

from byteframes.domain.models import (
    JSONScalar,
    JSONValue,
    Layout,
    Setting,
    WindowState,
    canonical_json,
)

__all__ = [
    "JSONScalar",
    "JSONValue",
    "Layout",
    "Setting",
    "WindowState",
    "canonical_json",
]
