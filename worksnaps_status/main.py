from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, StatusConfig, load_config
from .coordinator import RefreshCoordinator
from .db import Database
from .formatter import build_segments, build_tooltip
from .models import Segment
from .provider import ConfigProvider
from .scheduler import RefreshScheduler
from .surface import RefreshView, RenderDispatcher, StatusSurface, presence_for
from .worksnaps import WorksnapsClient

DEFAULT_DB_PATH = Path("worksnaps_status.db")


def build_source(config: StatusConfig) -> WorksnapsClient:
    # Rebuilt per refresh so credential changes apply without a restart.
    return WorksnapsClient(config.api_token)


class WorksnapsStatusBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.logger = logging.getLogger("worksnaps-status-bot")

        self.settings = ConfigProvider(config.status, db=db)
        self.coordinator = RefreshCoordinator(lambda: self.settings.current, build_source)
        self.scheduler = RefreshScheduler(self.coordinator)
        self.surface = StatusSurface(db)
        self.refresh_view: RefreshView | None = None
        self.dispatcher: RenderDispatcher | None = None

        # runtime_ready prevents rendering before the status channel has been validated.
        self.runtime_ready = False
        self.status_channel: discord.TextChannel | None = None

        self.settings.subscribe(lambda _old, _new: self.on_configuration_changed())

    async def setup_hook(self) -> None:
        self.dispatcher = RenderDispatcher(asyncio.get_running_loop(), self.render_status)
        self.refresh_view = RefreshView(self.on_user_requested_refresh)
        self.coordinator.set_on_change(self.dispatcher.request)

        self.add_view(self.refresh_view)
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")
            self.on_activate()

    async def _validate_runtime_resources(self) -> bool:
        # Fail fast if guild/channel/permissions are misconfigured.
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return False

        channel = guild.get_channel(self.config.status_channel_id)
        if not isinstance(channel, discord.TextChannel):
            self.logger.error("Status channel %s is missing or not a text channel", self.config.status_channel_id)
            await self.close()
            return False

        me = guild.me
        if me is None and self.user is not None:
            me = guild.get_member(self.user.id)

        if me is None:
            self.logger.error("Unable to resolve bot member in guild %s", guild.id)
            await self.close()
            return False

        perms = channel.permissions_for(me)
        if not perms.view_channel or not perms.send_messages:
            self.logger.error("Missing view/send permission in status channel %s", channel.id)
            await self.close()
            return False

        self.status_channel = channel
        return True

    def on_activate(self) -> None:
        self.scheduler.start(self.settings.current.refresh_interval_seconds)
        self.request_render()
        self.coordinator.trigger_refresh()

    def on_deactivate(self) -> None:
        self.scheduler.stop()

    def on_configuration_changed(self) -> None:
        self.coordinator.clear_cache()
        self.scheduler.stop()
        if not self.runtime_ready:
            return

        self.scheduler.start(self.settings.current.refresh_interval_seconds)
        self.request_render()
        self.coordinator.trigger_refresh()

    async def on_user_requested_refresh(self) -> None:
        self.logger.info("Manual refresh requested")
        await self.coordinator.refresh()
        try:
            await self.render_status()
        except discord.HTTPException:
            self.logger.exception("Failed to update status display")

    def request_render(self) -> None:
        if self.dispatcher is not None:
            self.dispatcher.request()

    def current_display(self) -> tuple[list[Segment], str]:
        snapshot = self.coordinator.snapshot()
        current = self.settings.current
        segments = build_segments(
            snapshot.summary,
            current,
            has_error=snapshot.last_error is not None,
            using_stale_data=snapshot.using_cached_data,
        )
        tooltip = build_tooltip(
            current,
            last_error=snapshot.last_error,
            using_cached_data=snapshot.using_cached_data,
        )
        return segments, tooltip

    async def render_status(self) -> None:
        if not self.runtime_ready or self.status_channel is None:
            return

        segments, tooltip = self.current_display()
        await self.surface.render(self.status_channel, segments, tooltip, view=self.refresh_view)
        await self.change_presence(activity=presence_for(segments))

    async def close(self) -> None:
        self.on_deactivate()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(DEFAULT_DB_PATH)
    db.initialize()

    bot = WorksnapsStatusBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
