"""
byteframes: unit tests for domain records

File: tests/unit/domain/test_models.py

Purpose
- Validate record construction, row decoding, and canonical serialization.

What this test file should cover
- Timestamp flooring from sub-second storage values.
- 0/1 column decoding into native booleans.
- Rejection of malformed fields at construction time.

Functional requirements
- Offline operation.
"""

from __future__ import annotations

import json

import pytest

from byteframes.domain.models import (
    Layout,
    Setting,
    WindowState,
    canonical_json,
    validate_layout_id,
    validate_layout_name,
    validate_setting_key,
)


def test_setting_from_row_floors_fractional_timestamps() -> None:
    setting = Setting.from_row(
        {"key": "theme", "value": "dark", "created_at": 1_700_000_000.9, "updated_at": 1_700_000_005.1}
    )

    assert setting.created_at == 1_700_000_000
    assert setting.updated_at == 1_700_000_005
    assert setting.to_dict() == {
        "key": "theme",
        "value": "dark",
        "created_at": 1_700_000_000,
        "updated_at": 1_700_000_005,
    }


def test_layout_from_row_decodes_active_flag() -> None:
    row = {
        "id": 7,
        "name": "work",
        "layout_json": '{"panes":2}',
        "is_active": 1,
        "created_at": 10.0,
        "updated_at": 12.5,
    }

    layout = Layout.from_row(row)

    assert layout.is_active is True
    assert layout.updated_at == 12
    assert Layout.from_row({**row, "is_active": 0}).is_active is False


def test_layout_to_json_is_canonical() -> None:
    layout = Layout(
        id=1,
        name="home",
        layout_json="{}",
        is_active=False,
        created_at=1,
        updated_at=2,
    )

    encoded = layout.to_json()

    assert encoded == (
        '{"created_at":1,"id":1,"is_active":false,"layout_json":"{}",'
        '"name":"home","updated_at":2}'
    )
    assert json.loads(encoded) == layout.to_dict()


def test_window_state_from_row_and_singleton_id() -> None:
    state = WindowState.from_row(
        {"id": 1, "x": -5, "y": 10, "width": 1024, "height": 768, "maximized": 0, "updated_at": 3.0}
    )

    assert state == WindowState(x=-5, y=10, width=1024, height=768, maximized=False, updated_at=3)
    assert state.to_dict()["id"] == 1

    with pytest.raises(ValueError, match="WindowState.id"):
        WindowState(x=0, y=0, width=1, height=1, maximized=False, updated_at=0, id=2)


@pytest.mark.parametrize(
    "row",
    [
        {"id": 1, "name": "x", "layout_json": "{}", "is_active": 2, "created_at": 0, "updated_at": 0},
        {"id": 1, "name": "x", "layout_json": None, "is_active": 0, "created_at": 0, "updated_at": 0},
        {"id": 1, "name": "", "layout_json": "{}", "is_active": 0, "created_at": 0, "updated_at": 0},
        {"id": 1, "name": "x", "layout_json": "{}", "is_active": 0, "created_at": "0", "updated_at": 0},
    ],
)
def test_layout_from_row_rejects_malformed_rows(row: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        Layout.from_row(row)


def test_records_reject_negative_or_non_finite_timestamps() -> None:
    with pytest.raises(ValueError, match="must be >= 0"):
        Setting(key="k", value="v", created_at=-1, updated_at=0)
    with pytest.raises(ValueError, match="finite"):
        Setting.from_row({"key": "k", "value": "v", "created_at": float("nan"), "updated_at": 0})


def test_records_are_frozen() -> None:
    setting = Setting(key="k", value="v", created_at=0, updated_at=0)

    with pytest.raises(AttributeError):
        setting.value = "other"  # type: ignore[misc]


def test_validators() -> None:
    assert validate_setting_key("theme") == "theme"
    assert validate_setting_key("") == ""
    assert validate_layout_name(" padded ") == " padded "
    assert validate_layout_id(3) == 3

    with pytest.raises(ValueError):
        validate_setting_key(None)
    with pytest.raises(ValueError):
        validate_layout_id(False)


def test_canonical_json_sorts_keys_and_keeps_unicode() -> None:
    assert canonical_json({"b": 1, "a": "ü"}) == '{"a":"ü","b":1}'
