from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable

from .config import StatusConfig, parse_bool
from .db import Database

ConfigListener = Callable[[StatusConfig, StatusConfig], None]

# The API token comes from the environment only and is never written to disk.
PERSISTED_FIELDS: dict[str, type] = {
    "project_id": str,
    "user_id": str,
    "refresh_interval_seconds": int,
    "target_hours_per_day": float,
    "prefix": str,
    "show_time": bool,
    "show_activity": bool,
    "show_remaining": bool,
}


def _encode(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _decode(field_type: type, raw: str) -> Any:
    if field_type is bool:
        return parse_bool(raw)
    return field_type(raw)


class ConfigProvider:
    def __init__(self, base: StatusConfig, db: Database | None = None, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: list[ConfigListener] = []
        self._current = self._apply_overrides(base)
        self._current.validate()

    @property
    def current(self) -> StatusConfig:
        return self._current

    def subscribe(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def update(self, **changes: Any) -> StatusConfig:
        unknown = set(changes) - set(PERSISTED_FIELDS) - {"api_token"}
        if unknown:
            raise ValueError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        if "user_id" in changes and not changes["user_id"]:
            changes["user_id"] = None

        previous = self._current
        updated = dataclasses.replace(previous, **changes)
        updated.validate()
        if updated == previous:
            return previous

        self._current = updated
        self._persist(changes)
        self.logger.info("Configuration updated: %s", ", ".join(sorted(changes)))

        for listener in list(self._listeners):
            listener(previous, updated)
        return updated

    def _apply_overrides(self, base: StatusConfig) -> StatusConfig:
        if self.db is None:
            return base

        overrides: dict[str, Any] = {}
        for key, raw in self.db.list_settings().items():
            field_type = PERSISTED_FIELDS.get(key)
            if field_type is None:
                continue
            try:
                overrides[key] = _decode(field_type, raw)
            except ValueError:
                self.logger.warning("Ignoring invalid stored setting %s=%r", key, raw)

        if not overrides:
            return base
        self.logger.info("Applying stored settings: %s", ", ".join(sorted(overrides)))
        return dataclasses.replace(base, **overrides)

    def _persist(self, changes: dict[str, Any]) -> None:
        if self.db is None:
            return

        for key, value in changes.items():
            if key not in PERSISTED_FIELDS:
                continue
            if value is None:
                self.db.delete_setting(key)
            else:
                self.db.set_setting(key, _encode(value))
