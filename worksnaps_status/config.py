from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_REFRESH_INTERVAL_SECONDS = 60
DEFAULT_TARGET_HOURS_PER_DAY = 8.0
DEFAULT_PREFIX = "WS:"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class StatusConfig:
    api_token: str = ""
    project_id: str = ""
    user_id: str | None = None
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS
    target_hours_per_day: float = DEFAULT_TARGET_HOURS_PER_DAY
    prefix: str = DEFAULT_PREFIX
    show_time: bool = True
    show_activity: bool = True
    show_remaining: bool = True

    @property
    def is_complete(self) -> bool:
        return bool(self.api_token) and bool(self.project_id)

    def validate(self) -> None:
        if self.refresh_interval_seconds <= 0:
            raise ValueError("Refresh interval must be positive")
        if self.target_hours_per_day <= 0:
            raise ValueError("Target hours per day must be positive")


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    status_channel_id: int
    status: StatusConfig


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _required_int_env(name: str) -> int:
    value = _required_env(name)
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _optional_int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _optional_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean value: {value!r}")


def _optional_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return parse_bool(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a boolean") from exc


def load_status_config() -> StatusConfig:
    # Missing credentials are not fatal; the status line shows N/A until they are set.
    user_id = os.getenv("WORKSNAPS_USER_ID", "").strip()
    return StatusConfig(
        api_token=os.getenv("WORKSNAPS_API_TOKEN", "").strip(),
        project_id=os.getenv("WORKSNAPS_PROJECT_ID", "").strip(),
        user_id=user_id or None,
        refresh_interval_seconds=_optional_int_env("REFRESH_INTERVAL_SECONDS", DEFAULT_REFRESH_INTERVAL_SECONDS),
        target_hours_per_day=_optional_float_env("TARGET_HOURS_PER_DAY", DEFAULT_TARGET_HOURS_PER_DAY),
        prefix=os.getenv("STATUS_PREFIX", DEFAULT_PREFIX),
        show_time=_optional_bool_env("SHOW_TIME", True),
        show_activity=_optional_bool_env("SHOW_ACTIVITY", True),
        show_remaining=_optional_bool_env("SHOW_REMAINING", True),
    )


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        status_channel_id=_required_int_env("STATUS_CHANNEL_ID"),
        status=load_status_config(),
    )
