from typing import Optional

import discord
from discord import app_commands

from .surface import render_ansi


def _describe_settings(bot) -> list[str]:
    current = bot.settings.current
    return [
        f"Project ID: `{current.project_id or 'not set'}`",
        f"User ID: `{current.user_id or 'auto'}`",
        f"API token: `{'set' if current.api_token else 'not set'}`",
        f"Refresh interval: `{current.refresh_interval_seconds}s`",
        f"Target hours/day: `{current.target_hours_per_day:g}`",
        f"Prefix: `{current.prefix}`",
        f"Show time: `{current.show_time}` / remaining: `{current.show_remaining}` / activity: `{current.show_activity}`",
    ]


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def _reject_foreign_guild(interaction: discord.Interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return True
        return False

    @bot.tree.command(name="status", description="Show today's Worksnaps status", guild=guild_scope)
    async def status(interaction: discord.Interaction):
        if await _reject_foreign_guild(interaction):
            return

        segments, tooltip = bot.current_display()
        scheduler_line = (
            f"Auto-refresh every `{bot.scheduler.interval:g}s`" if bot.scheduler.is_running else "Auto-refresh stopped"
        )
        lines = [render_ansi(segments), tooltip, scheduler_line]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    @bot.tree.command(name="refresh", description="Fetch today's Worksnaps summary now", guild=guild_scope)
    async def refresh(interaction: discord.Interaction):
        if await _reject_foreign_guild(interaction):
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        await bot.on_user_requested_refresh()

        segments, tooltip = bot.current_display()
        outcome = "Refreshed." if bot.coordinator.last_error is None else "Refresh failed."
        await interaction.followup.send("\n".join([outcome, render_ansi(segments), tooltip]), ephemeral=True)

    @bot.tree.command(name="settings", description="Show or change the status display settings", guild=guild_scope)
    @app_commands.describe(
        project_id="Worksnaps project ID",
        user_id="Worksnaps user ID (empty to resolve automatically)",
        refresh_interval="Seconds between automatic refreshes",
        target_hours="Target working hours per day",
        prefix="Text shown before the status",
        show_time="Show worked time",
        show_remaining="Show remaining time or overtime",
        show_activity="Show activity percentage",
    )
    async def settings(
        interaction: discord.Interaction,
        project_id: Optional[str] = None,
        user_id: Optional[str] = None,
        refresh_interval: Optional[app_commands.Range[int, 10, 86400]] = None,
        target_hours: Optional[app_commands.Range[float, 0.5, 24.0]] = None,
        prefix: Optional[str] = None,
        show_time: Optional[bool] = None,
        show_remaining: Optional[bool] = None,
        show_activity: Optional[bool] = None,
    ):
        if await _reject_foreign_guild(interaction):
            return

        requested = {
            "project_id": project_id.strip() if project_id is not None else None,
            "user_id": user_id.strip() if user_id is not None else None,
            "refresh_interval_seconds": refresh_interval,
            "target_hours_per_day": target_hours,
            "prefix": prefix,
            "show_time": show_time,
            "show_remaining": show_remaining,
            "show_activity": show_activity,
        }
        # user_id may be explicitly cleared with an empty string.
        changes = {key: value for key, value in requested.items() if value is not None}

        if not changes:
            await interaction.response.send_message("\n".join(_describe_settings(bot)), ephemeral=True)
            return

        try:
            bot.settings.update(**changes)
        except ValueError as exc:
            await interaction.response.send_message(f"Invalid settings: `{exc}`", ephemeral=True)
            return

        bot.logger.info("Settings changed via /settings by %s", interaction.user)
        lines = ["Settings updated.", *_describe_settings(bot)]
        await interaction.response.send_message("\n".join(lines), ephemeral=True)
