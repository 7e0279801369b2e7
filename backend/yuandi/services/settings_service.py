from __future__ import annotations

import threading
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import SystemSetting
from ..validation import ValidationError
from .concurrency import run_in_transaction


SETTINGS_CATALOG: dict[str, dict[str, Any]] = {
    "inventory.low_stock_threshold_default": {
        "type": "int",
        "default": 5,
        "description": "Low-stock threshold for products without their own threshold",
    },
    "fx.fallback_cny_krw": {
        "type": "number",
        "default": None,
        "description": "CNY->KRW rate used when no dated exchange rate exists (null disables)",
    },
}

EXTENSION_KEY = "yuandi.settings"


class SettingsNotFoundError(ValidationError):
    pass


def _validate_value(key: str, value: Any) -> Any:
    definition = SETTINGS_CATALOG[key]
    if value is None:
        if definition["default"] is not None and definition["type"] == "int":
            raise ValidationError(f"{key} cannot be null")
        return None
    if definition["type"] == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{key} must be an integer")
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        return value
    if definition["type"] == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{key} must be a number")
        if value <= 0:
            raise ValidationError(f"{key} must be > 0")
        return value
    return value


class SettingsStore:
    """
    Read-through cache over the system_settings table.

    The cache is filled on first read and dropped by invalidate(). Writers
    call invalidate() after their transaction commits so readers never cache
    an uncommitted value.
    """

    def __init__(self, catalog: dict[str, dict[str, Any]] | None = None):
        self._catalog = catalog if catalog is not None else SETTINGS_CATALOG
        self._cache: dict[str, Any] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        cache = self._cache
        if cache is not None:
            return cache
        with self._lock:
            if self._cache is None:
                rows = db.session.query(SystemSetting).all()
                self._cache = {row.key: row.value for row in rows}
            return self._cache

    def get(self, key: str) -> Any:
        if key not in self._catalog:
            raise SettingsNotFoundError(f"Unknown setting: {key}")
        values = self._load()
        if key in values:
            return values[key]
        return self._catalog[key]["default"]

    def all(self) -> dict[str, Any]:
        return {key: self.get(key) for key in sorted(self._catalog)}

    def invalidate(self) -> None:
        with self._lock:
            self._cache = None


def get_settings_store() -> SettingsStore:
    return current_app.extensions[EXTENSION_KEY]


def write_setting(key: str, value: Any, *, actor_user_id: int | None = None) -> SystemSetting:
    """Upsert one setting inside the caller's transaction (flush only)."""
    if key not in SETTINGS_CATALOG:
        raise SettingsNotFoundError(f"Unknown setting: {key}")
    value = _validate_value(key, value)

    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row is None:
        row = SystemSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by_user_id = actor_user_id
    db.session.flush()
    return row


def update_settings(values: dict, *, actor_user_id: int | None = None) -> dict[str, Any]:
    """Apply several settings atomically, then drop the cache."""
    if not isinstance(values, dict) or not values:
        raise ValidationError("settings payload must be a non-empty object")

    def _op():
        for key, value in values.items():
            write_setting(key, value, actor_user_id=actor_user_id)

    run_in_transaction(_op)
    store = get_settings_store()
    store.invalidate()
    return store.all()
