from __future__ import annotations

import asyncio
import logging

from discord.ext import tasks

from .coordinator import RefreshCoordinator


class RefreshScheduler:
    """Periodic refresh ticks for one coordinator; at most one loop at a time."""

    def __init__(self, coordinator: RefreshCoordinator, logger: logging.Logger | None = None) -> None:
        self.coordinator = coordinator
        self.logger = logger or logging.getLogger(__name__)
        self._loop: tasks.Loop | None = None
        self._interval: float | None = None

    @property
    def is_running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    @property
    def interval(self) -> float | None:
        return self._interval if self.is_running else None

    def start(self, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("Refresh interval must be positive")

        self.stop()
        refresh_loop = tasks.loop(seconds=interval_seconds)(self._tick)
        refresh_loop.before_loop(self._wait_first_interval)
        self._interval = interval_seconds
        self._loop = refresh_loop
        refresh_loop.start()
        self.logger.info("Auto-refresh started with interval %ss", interval_seconds)

    def stop(self) -> None:
        refresh_loop = self._loop
        self._loop = None
        self._interval = None
        if refresh_loop is None or not refresh_loop.is_running():
            return
        # Only the wait is cancelled; a refresh in flight runs in its own task.
        refresh_loop.cancel()
        self.logger.info("Auto-refresh stopped")

    async def _wait_first_interval(self) -> None:
        # tasks.loop fires immediately on start; the first refresh comes one interval later.
        await asyncio.sleep(self._interval or 0)

    async def _tick(self) -> None:
        self.logger.debug("Auto-refresh tick")
        try:
            self.coordinator.trigger_refresh()
        except Exception:
            self.logger.exception("Scheduled refresh failed to start")
