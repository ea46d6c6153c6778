"""Typed records for the three persisted entities with canonical serialization.

Timestamps are carried as integer Unix seconds and booleans as native ``bool``,
which is also how they cross the GUI boundary.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass

from byteframes.constants import SINGLETON_ROW_ID

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


@dataclass(frozen=True, slots=True)
class Setting:
    """A single key/value preference."""

    key: str
    value: str
    created_at: int
    updated_at: int

    def __post_init__(self) -> None:
        validate_setting_key(self.key)
        _as_str(self.value, "Setting.value")
        _as_timestamp(self.created_at, "Setting.created_at")
        _as_timestamp(self.updated_at, "Setting.updated_at")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "key": self.key,
            "value": self.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> Setting:
        return cls(
            key=_as_str(row["key"], "settings.key"),
            value=_as_str(row["value"], "settings.value"),
            created_at=_row_timestamp(row["created_at"], "settings.created_at"),
            updated_at=_row_timestamp(row["updated_at"], "settings.updated_at"),
        )


@dataclass(frozen=True, slots=True)
class Layout:
    """A named UI-layout snapshot.

    ``layout_json`` is owned by the frontend and stored verbatim; it is never parsed
    or validated here.
    """

    id: int
    name: str
    layout_json: str
    is_active: bool
    created_at: int
    updated_at: int

    def __post_init__(self) -> None:
        validate_layout_id(self.id)
        validate_layout_name(self.name)
        _as_str(self.layout_json, "Layout.layout_json")
        if not isinstance(self.is_active, bool):
            raise ValueError("Layout.is_active: expected boolean")
        _as_timestamp(self.created_at, "Layout.created_at")
        _as_timestamp(self.updated_at, "Layout.updated_at")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "name": self.name,
            "layout_json": self.layout_json,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> Layout:
        return cls(
            id=_row_int(row["id"], "layouts.id"),
            name=_as_str(row["name"], "layouts.name"),
            layout_json=_as_str(row["layout_json"], "layouts.layout_json"),
            is_active=_row_bool(row["is_active"], "layouts.is_active"),
            created_at=_row_timestamp(row["created_at"], "layouts.created_at"),
            updated_at=_row_timestamp(row["updated_at"], "layouts.updated_at"),
        )


@dataclass(frozen=True, slots=True)
class WindowState:
    """Saved main-window geometry. Position may be negative on multi-monitor setups."""

    x: int
    y: int
    width: int
    height: int
    maximized: bool
    updated_at: int
    id: int = SINGLETON_ROW_ID

    def __post_init__(self) -> None:
        validate_geometry(self.x, self.y, self.width, self.height, self.maximized)
        _as_timestamp(self.updated_at, "WindowState.updated_at")
        if self.id != SINGLETON_ROW_ID:
            raise ValueError(f"WindowState.id: must be {SINGLETON_ROW_ID}")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "maximized": self.maximized,
            "updated_at": self.updated_at,
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> WindowState:
        return cls(
            x=_row_int(row["x"], "window_state.x"),
            y=_row_int(row["y"], "window_state.y"),
            width=_row_int(row["width"], "window_state.width"),
            height=_row_int(row["height"], "window_state.height"),
            maximized=_row_bool(row["maximized"], "window_state.maximized"),
            updated_at=_row_timestamp(row["updated_at"], "window_state.updated_at"),
        )


def validate_setting_key(key: object) -> str:
    if not isinstance(key, str):
        raise ValueError("setting key: expected string")
    return key


def validate_layout_name(name: object) -> str:
    if not isinstance(name, str):
        raise ValueError("layout name: expected string")
    return name


def validate_layout_id(layout_id: object) -> int:
    if isinstance(layout_id, bool) or not isinstance(layout_id, int):
        raise ValueError("layout id: expected integer")
    return layout_id


def validate_geometry(x: object, y: object, width: object, height: object, maximized: object) -> None:
    for label, value in (("x", x), ("y", y), ("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"window {label}: expected integer")
    if not isinstance(maximized, bool):
        raise ValueError("window maximized: expected boolean")


def canonical_json(value: object) -> str:
    """Deterministic JSON for payloads handed to the frontend."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string")
    return value


def _as_timestamp(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}: expected integer Unix seconds")
    if value < 0:
        raise ValueError(f"{path}: must be >= 0")
    return value


def _row_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}: expected integer column value")
    return value


def _row_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1):
        return bool(value)
    raise ValueError(f"{path}: expected 0/1 column value")


def _row_timestamp(value: object, path: str) -> int:
    # Stored with sub-second precision so ordering follows touch order.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{path}: expected numeric timestamp")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"{path}: timestamp must be finite")
    return int(math.floor(value))


__all__ = [
    "JSONScalar",
    "JSONValue",
    "Layout",
    "Setting",
    "WindowState",
    "canonical_json",
    "validate_geometry",
    "validate_layout_id",
    "validate_layout_name",
    "validate_setting_key",
]
