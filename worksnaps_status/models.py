from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

CACHE_TTL_SECONDS = 60


class ErrorKind(Enum):
    CONFIGURATION_MISSING = "API token or project ID not configured"
    NETWORK_TIMEOUT = "API request timed out. The server might be slow or unavailable."
    NETWORK_UNREACHABLE = "No internet connection or server unavailable."
    UNEXPECTED_RESPONSE = "Unexpected response from the Worksnaps API."
    NO_DATA = "No time entries for today."

    @property
    def message(self) -> str:
        return self.value


class ColorTier(Enum):
    PLAIN = "plain"
    GOOD = "good"
    WARN = "warn"
    BAD = "bad"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class WorkSummary:
    hours_worked: float
    activity_percent: int

    @classmethod
    def empty(cls) -> WorkSummary:
        return cls(hours_worked=0.0, activity_percent=0)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    summary: WorkSummary
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_valid(self, now: float, ttl: float = CACHE_TTL_SECONDS) -> bool:
        return self.age(now) < ttl


@dataclass(frozen=True, slots=True)
class Segment:
    text: str
    tier: ColorTier = ColorTier.PLAIN


@dataclass(frozen=True, slots=True)
class RefreshSnapshot:
    """One consistent read of the coordinator state for rendering."""

    summary: WorkSummary | None
    last_error: ErrorKind | None
    in_progress: bool
    using_cached_data: bool
