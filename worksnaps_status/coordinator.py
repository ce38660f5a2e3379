"""Refresh coordinator: owns the cached summary and the refresh state.

All mutation of the cache, the last error and the in-flight flag happens on
the event loop inside ``_run_refresh``; readers never block and always see a
finished state because ``in_progress`` is cleared only after the cache and
error are final.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Callable

from .config import StatusConfig
from .models import CACHE_TTL_SECONDS, CacheEntry, ErrorKind, RefreshSnapshot, WorkSummary
from .source import SummarySource, SummarySourceError

ConfigGetter = Callable[[], StatusConfig]
SourceFactory = Callable[[StatusConfig], SummarySource]
ChangeCallback = Callable[[], None]


class RefreshCoordinator:
    def __init__(
        self,
        get_config: ConfigGetter,
        source_factory: SourceFactory,
        *,
        on_change: ChangeCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._get_config = get_config
        self._source_factory = source_factory
        self._on_change = on_change
        self._clock = clock
        self._ttl = ttl_seconds
        self.logger = logger or logging.getLogger(__name__)

        self._cache: CacheEntry | None = None
        self._last_error: ErrorKind | None = None
        self._in_progress = False
        self._inflight: asyncio.Task[None] | None = None
        self._resolved_user_id: str | None = None
        # Bumped by clear_cache so an attempt started under old settings is discarded.
        self._generation = 0

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def last_error(self) -> ErrorKind | None:
        return self._last_error

    @property
    def cache_entry(self) -> CacheEntry | None:
        return self._cache

    def set_on_change(self, callback: ChangeCallback | None) -> None:
        self._on_change = callback

    def is_using_cached_data(self) -> bool:
        return self._last_error is not None and self._cache is not None

    def get_summary(self) -> WorkSummary | None:
        if not self._get_config().is_complete:
            return None

        entry = self._cache
        if entry is not None and entry.is_valid(self._clock(), self._ttl):
            return entry.summary

        if not self._in_progress:
            try:
                self.trigger_refresh()
            except RuntimeError:
                # No running event loop; the next scheduled tick will refresh.
                self.logger.debug("Cache stale but no event loop to refresh on")

        return entry.summary if entry is not None else None

    def snapshot(self) -> RefreshSnapshot:
        # Read-only: rendering must never start a fetch, or a failed refresh
        # would re-render and retry forever.
        entry = self._cache
        summary = entry.summary if entry is not None and self._get_config().is_complete else None
        return RefreshSnapshot(
            summary=summary,
            last_error=self._last_error,
            in_progress=self._in_progress,
            using_cached_data=self.is_using_cached_data(),
        )

    def clear_cache(self) -> None:
        self._cache = None
        self._last_error = None
        # A resolved id belongs to the credentials it was resolved with.
        self._resolved_user_id = None
        self._generation += 1
        self.logger.info("Cache cleared")

    def trigger_refresh(self) -> asyncio.Task[None]:
        """Start a refresh unless one is in flight; return the in-flight task.

        Raises RuntimeError when called outside a running event loop.
        """
        if self._inflight is not None and not self._inflight.done():
            self.logger.debug("Refresh already in progress; joining it")
            return self._inflight

        loop = asyncio.get_running_loop()
        self._in_progress = True
        self._inflight = loop.create_task(self._run_refresh(), name="worksnaps-refresh")
        return self._inflight

    async def refresh(self) -> None:
        # Shield so a cancelled caller never aborts the shared attempt.
        await asyncio.shield(self.trigger_refresh())

    async def _run_refresh(self) -> None:
        self.logger.info("Refresh started")
        try:
            while True:
                generation = self._generation
                await self._attempt(generation)
                if generation == self._generation:
                    break
                # Settings changed mid-flight; fetch again under the new ones.
                self.logger.info("Cache cleared during refresh; retrying with current settings")
        finally:
            self._in_progress = False
            self.logger.info("Refresh completed. Error: %s", self._last_error.name if self._last_error else None)
            self._notify()

    async def _attempt(self, generation: int) -> None:
        config = self._get_config()
        self._last_error = None
        source: SummarySource | None = None

        try:
            if not config.is_complete:
                self.logger.warning("Refresh aborted: API token or project ID is empty")
                self._last_error = ErrorKind.CONFIGURATION_MISSING
                return

            self.logger.info(
                "Refreshing project %s with token %s...",
                config.project_id,
                config.api_token[:4],
            )
            source = self._source_factory(config)
            user_id = await self._resolve_user_id(config, source, generation)
            summary = await source.fetch_today_summary(user_id, config.project_id)

            if generation != self._generation:
                return

            self._cache = CacheEntry(summary=summary, fetched_at=self._clock())
            self._last_error = None
            self.logger.info(
                "Refresh succeeded: hours=%.2f activity=%s%%",
                summary.hours_worked,
                summary.activity_percent,
            )
        except SummarySourceError as exc:
            self._last_error = exc.kind
            self.logger.warning("Refresh failed (%s): %s", exc.kind.name, exc)
        except Exception:
            self._last_error = ErrorKind.UNEXPECTED_RESPONSE
            self.logger.exception("Unexpected error during refresh")
        finally:
            await _close_source(source, self.logger)

    async def _resolve_user_id(self, config: StatusConfig, source: SummarySource, generation: int) -> str:
        if config.user_id:
            return config.user_id
        if self._resolved_user_id is not None:
            self.logger.debug("Using cached user id %s", self._resolved_user_id)
            return self._resolved_user_id

        user_id = await source.resolve_user_id()
        if generation == self._generation:
            self._resolved_user_id = user_id
        return user_id

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            self.logger.exception("Change listener failed")


async def _close_source(source: SummarySource | None, logger: logging.Logger) -> None:
    close = getattr(source, "close", None)
    if close is None:
        return
    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Failed to close summary source")
