"""Worksnaps API adapter: today's time entries for one user and project."""
from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, time, timezone

import aiohttp

from .models import WorkSummary
from .source import NetworkTimeoutError, NetworkUnreachableError, UnexpectedResponseError

API_BASE_URL = "https://api.worksnaps.com/api"
REQUEST_TIMEOUT_SECONDS = 30


def parse_user_id(xml_text: str) -> str:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise UnexpectedResponseError("Malformed user response") from exc

    node = root if root.tag == "id" else root.find(".//id")
    if node is None or not (node.text or "").strip().isdigit():
        raise UnexpectedResponseError("User response has no id")
    return node.text.strip()


def parse_time_entries(xml_text: str) -> WorkSummary:
    """Sum durations and average activity levels of a time_entries document.

    Activity levels are reported on a 0-10 scale and converted to percent.
    An error document or one without entries means nothing was logged today.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise UnexpectedResponseError("Malformed time entries response") from exc

    if root.tag == "error" or root.find(".//error") is not None:
        return WorkSummary.empty()

    entries = root.findall(".//time_entry")
    if root.tag == "time_entry":
        entries = [root]
    if not entries:
        return WorkSummary.empty()

    total_minutes = 0
    activities: list[int] = []
    for entry in entries:
        total_minutes += _int_child(entry, "duration_in_minutes") or 0
        level = _int_child(entry, "activity_level")
        if level is not None:
            activities.append(level * 10)

    average_activity = int(sum(activities) / len(activities)) if activities else 0
    return WorkSummary(hours_worked=total_minutes / 60.0, activity_percent=average_activity)


def _int_child(element: ET.Element, tag: str) -> int | None:
    text = element.findtext(tag)
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError as exc:
        raise UnexpectedResponseError(f"Non-numeric {tag}: {text!r}") from exc


def today_range_utc(now_utc: datetime | None = None) -> tuple[int, int]:
    now = (now_utc or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    return int(start.timestamp()), int(now.timestamp())


class WorksnapsClient:
    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = API_BASE_URL,
        timeout_seconds: float = REQUEST_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._auth = aiohttp.BasicAuth(api_token, "")
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self.logger = logger or logging.getLogger(__name__)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def resolve_user_id(self) -> str:
        self.logger.info("Resolving Worksnaps user id")
        body = await self._get_xml("/me.xml")
        user_id = parse_user_id(body)
        self.logger.info("Resolved Worksnaps user id %s", user_id)
        return user_id

    async def fetch_today_summary(self, user_id: str, project_id: str) -> WorkSummary:
        from_ts, to_ts = today_range_utc()
        params = {
            "from_timestamp": str(from_ts),
            "to_timestamp": str(to_ts),
            "user_ids": user_id,
        }
        body = await self._get_xml(f"/projects/{project_id}/time_entries.xml", params=params)
        summary = parse_time_entries(body)
        self.logger.info(
            "Parsed summary: hours=%.2f activity=%s%%",
            summary.hours_worked,
            summary.activity_percent,
        )
        return summary

    async def _get_xml(self, path: str, params: dict[str, str] | None = None) -> str:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

        url = f"{self._base_url}{path}"
        try:
            async with self._session.get(url, params=params, auth=self._auth, timeout=self._timeout) as resp:
                body = await resp.text()
                if resp.status in (401, 403):
                    raise UnexpectedResponseError(f"Authentication rejected ({resp.status})")
                if resp.status != 200:
                    self.logger.warning("Worksnaps %s returned %s: %s", path, resp.status, body[:200])
                    raise UnexpectedResponseError(f"API error ({resp.status})")
                return body
        except asyncio.TimeoutError as exc:
            raise NetworkTimeoutError(f"Request to {path} timed out") from exc
        except aiohttp.ClientConnectionError as exc:
            raise NetworkUnreachableError(str(exc) or "Connection failed") from exc
        except aiohttp.ClientError as exc:
            raise UnexpectedResponseError(str(exc) or "Client error") from exc
