from __future__ import annotations

from typing import Protocol

from .models import ErrorKind, WorkSummary


class SummarySourceError(Exception):
    kind: ErrorKind = ErrorKind.UNEXPECTED_RESPONSE


class NetworkTimeoutError(SummarySourceError):
    kind = ErrorKind.NETWORK_TIMEOUT


class NetworkUnreachableError(SummarySourceError):
    kind = ErrorKind.NETWORK_UNREACHABLE


class UnexpectedResponseError(SummarySourceError):
    kind = ErrorKind.UNEXPECTED_RESPONSE


class SummarySource(Protocol):
    async def resolve_user_id(self) -> str: ...

    async def fetch_today_summary(self, user_id: str, project_id: str) -> WorkSummary: ...
