"""Discord rendering of the status line.

Colour tiers become concrete colours only here: segments are painted as an
``ansi`` code block, which Discord clients colour with SGR escape codes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

import discord

from .db import Database
from .formatter import segments_to_text
from .models import ColorTier, Segment

STATUS_MESSAGE_META_KEY = "status_message_id"
REFRESH_BUTTON_ID = "worksnaps:refresh"
PRESENCE_MAX_LENGTH = 128

ESC = "\u001b"
TIER_ANSI: dict[ColorTier, str] = {
    ColorTier.PLAIN: "0",
    ColorTier.GOOD: "0;32",
    ColorTier.WARN: "0;33",
    ColorTier.BAD: "0;31",
    ColorTier.STALE: "1;33",
}
TIER_EMBED_COLOR: dict[ColorTier, discord.Colour] = {
    ColorTier.GOOD: discord.Colour.green(),
    ColorTier.WARN: discord.Colour.gold(),
    ColorTier.BAD: discord.Colour.red(),
    ColorTier.STALE: discord.Colour.orange(),
}


def render_ansi(segments: list[Segment]) -> str:
    parts = []
    for segment in segments:
        if segment.tier is ColorTier.PLAIN:
            parts.append(segment.text)
        else:
            parts.append(f"{ESC}[{TIER_ANSI[segment.tier]}m{segment.text}{ESC}[0m")
    return "```ansi\n" + "".join(parts) + "\n```"


def embed_colour(segments: list[Segment]) -> discord.Colour:
    # Stale data wins; otherwise the activity tier (last coloured segment) sets the accent.
    tiers = [segment.tier for segment in segments if segment.tier is not ColorTier.PLAIN]
    if ColorTier.STALE in tiers:
        return TIER_EMBED_COLOR[ColorTier.STALE]
    if tiers:
        return TIER_EMBED_COLOR[tiers[-1]]
    return discord.Colour.light_grey()


def build_status_embed(segments: list[Segment], tooltip: str) -> discord.Embed:
    embed = discord.Embed(
        title="Worksnaps - today",
        description=render_ansi(segments),
        colour=embed_colour(segments),
    )
    embed.set_footer(text=tooltip)
    return embed


class RefreshView(discord.ui.View):
    """Persistent view carrying the manual refresh button."""

    def __init__(self, on_refresh: Callable[[], Awaitable[None]]) -> None:
        super().__init__(timeout=None)
        self._on_refresh = on_refresh

    @discord.ui.button(label="Refresh", emoji="🔄", style=discord.ButtonStyle.secondary, custom_id=REFRESH_BUTTON_ID)
    async def refresh_button(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.defer()
        await self._on_refresh()


class StatusChannelLike(Protocol):
    def get_partial_message(self, message_id: int): ...

    async def send(self, content: str | None = None, **kwargs): ...


class StatusSurface:
    """Keeps one status message in the status channel up to date."""

    def __init__(self, db: Database, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        # One render at a time, or two callers could each post a new message.
        self._lock = asyncio.Lock()

    async def render(
        self,
        channel: StatusChannelLike,
        segments: list[Segment],
        tooltip: str,
        view: discord.ui.View | None = None,
    ) -> None:
        embed = build_status_embed(segments, tooltip)
        kwargs = {"embed": embed}
        if view is not None:
            kwargs["view"] = view

        async with self._lock:
            message_id = self.db.get_meta(STATUS_MESSAGE_META_KEY)
            if message_id is not None:
                try:
                    await channel.get_partial_message(int(message_id)).edit(**kwargs)
                    return
                except discord.NotFound:
                    self.logger.info("Status message %s is gone; posting a new one", message_id)

            message = await channel.send(allowed_mentions=discord.AllowedMentions.none(), **kwargs)
            self.db.set_meta(STATUS_MESSAGE_META_KEY, str(message.id))
            self.logger.info("Posted status message %s", message.id)


def presence_for(segments: list[Segment]) -> discord.CustomActivity:
    text = segments_to_text(segments)[:PRESENCE_MAX_LENGTH]
    return discord.CustomActivity(name=text)


class RenderDispatcher:
    """Hands render requests to the event loop that owns the Discord client.

    ``request`` may be called from any thread. A single drain task renders
    while requests keep arriving; requests made during a render fold into
    one follow-up pass.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        render: Callable[[], Awaitable[None]],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._render = render
        self._dirty = False
        self._task: asyncio.Task[None] | None = None
        self.logger = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> bool:
        return self._dirty

    def request(self) -> None:
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule)

    def _schedule(self) -> None:
        self._dirty = True
        if self._task is None or self._task.done():
            self._task = self._loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty:
            self._dirty = False
            try:
                await self._render()
            except discord.HTTPException:
                self.logger.exception("Failed to update status display")
            except Exception:
                self.logger.exception("Unexpected error while rendering status")
