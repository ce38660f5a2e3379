"""Status line formatting.

Everything here is a pure function of its arguments: the same summary and
configuration always produce the same segments and tooltip.
"""
from __future__ import annotations

from .config import StatusConfig
from .models import ColorTier, ErrorKind, Segment, WorkSummary

GOOD_ACTIVITY_PERCENT = 80
WARN_ACTIVITY_PERCENT = 60
STALE_MARKER = " ⚠"
MINUTE_EPSILON = 1e-6


def worked_minutes(hours: float) -> int:
    # Truncate to whole minutes; the epsilon only absorbs float noise such as 125/60*60 < 125.
    return max(0, int(hours * 60 + MINUTE_EPSILON))


def round_to_ten(minutes: int) -> int:
    """Round to the nearest 10 minutes, halves away from zero."""
    if minutes >= 0:
        return (minutes + 5) // 10 * 10
    return -((-minutes + 5) // 10 * 10)


def format_hm(minutes: int) -> str:
    hours, mins = divmod(abs(minutes), 60)
    return f"{hours}:{mins:02}"


def format_time(hours: float) -> str:
    return format_hm(round_to_ten(worked_minutes(hours)))


def remaining_minutes(hours: float, target_hours: float) -> int:
    """Target minus rounded worked time, rounded to 10; negative means overtime."""
    target = round(target_hours * 60)
    worked = round_to_ten(worked_minutes(hours))
    return round_to_ten(target - worked)


def format_remaining(hours: float, target_hours: float) -> Segment:
    remaining = remaining_minutes(hours, target_hours)
    if remaining < 0:
        return Segment(f"(+{format_hm(remaining)})", ColorTier.GOOD)
    return Segment(f"(-{format_hm(remaining)})", ColorTier.BAD)


def activity_tier(activity_percent: int) -> ColorTier:
    if activity_percent >= GOOD_ACTIVITY_PERCENT:
        return ColorTier.GOOD
    if activity_percent >= WARN_ACTIVITY_PERCENT:
        return ColorTier.WARN
    return ColorTier.BAD


def build_segments(
    summary: WorkSummary | None,
    config: StatusConfig,
    *,
    has_error: bool = False,
    using_stale_data: bool = False,
) -> list[Segment]:
    prefix = config.prefix

    if not config.is_complete:
        return [Segment(f"{prefix} N/A")]

    if summary is None:
        if has_error:
            return [Segment(f"{prefix} ⚠ Error")]
        return [Segment(f"{prefix} Loading...")]

    segments = [Segment(prefix)]

    if config.show_time:
        segments.append(Segment(" "))
        segments.append(Segment(format_time(summary.hours_worked)))

        if config.show_remaining:
            segments.append(Segment(" "))
            segments.append(format_remaining(summary.hours_worked, config.target_hours_per_day))

    if config.show_activity:
        segments.append(Segment(" | "))
        segments.append(Segment(f"{summary.activity_percent}%", activity_tier(summary.activity_percent)))

    if using_stale_data:
        segments.append(Segment(STALE_MARKER, ColorTier.STALE))

    return segments


def build_tooltip(
    config: StatusConfig,
    *,
    last_error: ErrorKind | None,
    using_cached_data: bool,
) -> str:
    if last_error is not None:
        return f"Error: {last_error.message}\nClick to retry"
    if using_cached_data:
        return "(using cached data)\nClick to refresh"
    if not config.is_complete:
        return "Not configured"
    return "Click to refresh"


def segments_to_text(segments: list[Segment]) -> str:
    return "".join(segment.text for segment in segments)
