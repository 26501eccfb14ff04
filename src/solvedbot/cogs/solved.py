from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import ERROR_MESSAGES, MAX_REMOVAL_DELAY_HOURS, SUCCESS_MESSAGES
from ..errors import PermissionDeniedError, SolvedBotError
from ..solved.interfaces import Identity
from ..solved.models import MarkOutcome, RemovalMode, utcnow
from ..utils import error_embed, parse_message_ref, safe_response, success_embed

log = logging.getLogger("solvedbot.cogs.solved")

_MODE_CHOICES = [
    app_commands.Choice(name="Off", value=RemovalMode.OFF.value),
    app_commands.Choice(name="Remove immediately", value=RemovalMode.REMOVE_IMMEDIATELY.value),
    app_commands.Choice(name="Remove after delay", value=RemovalMode.REMOVE_AFTER_DELAY.value),
]


def _identity(user: Optional[discord.abc.User]) -> Optional[Identity]:
    if user is None:
        return None
    return Identity(id=str(user.id), name=user.name)


def _forum_post(channel: object) -> Optional[discord.Thread]:
    if isinstance(channel, discord.Thread) and isinstance(channel.parent, discord.ForumChannel):
        return channel
    return None


class SolvedCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @property
    def service(self):
        return self.bot.solved_service  # type: ignore[attr-defined]

    @commands.Cog.listener()
    async def on_thread_create(self, thread: discord.Thread) -> None:
        if _forum_post(thread) is None:
            return
        try:
            await self.service.on_item_created(str(thread.id), str(thread.guild.id), thread.created_at or utcnow())
        except SolvedBotError:
            log.exception("Failed to track new post %s", thread.id)

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self._install(guild)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            await self.service.on_uninstalled(str(guild.id))
        except SolvedBotError:
            log.exception("Failed to drop stats schedule for guild %s", guild.id)

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        for guild in list(self.bot.guilds):
            await self._install(guild)

    async def _install(self, guild: discord.Guild) -> None:
        try:
            await self.service.on_installed(str(guild.id))
        except SolvedBotError:
            log.exception("Failed to schedule stats page for guild %s", guild.id)

    @app_commands.command(name="solved", description="Mark this post as solved, optionally pinning the answer.")
    @app_commands.describe(answer="Message ID or link of the answer to highlight (optional)")
    @app_commands.guild_only()
    async def solved(self, interaction: discord.Interaction, answer: Optional[str] = None) -> None:
        assert interaction.guild is not None
        thread = _forum_post(interaction.channel)
        if thread is None:
            await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["not_a_post"]))
            return

        item_id, collection_id = str(thread.id), str(interaction.guild.id)
        actor = _identity(interaction.user)
        try:
            await self.service.check_can_mark_solved(actor, item_id, collection_id)
        except PermissionDeniedError:
            await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["not_author_or_mod"]))
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await self.service.on_marked_solved(item_id, collection_id, actor.id, parse_message_ref(answer))

        if result.outcome is MarkOutcome.ALREADY_SOLVED:
            await safe_response(interaction, embed=error_embed(SUCCESS_MESSAGES["already_solved"]))
            return
        if result.outcome is not MarkOutcome.SOLVED:
            await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["mark_failed"]))
            return

        text = SUCCESS_MESSAGES["marked_solved"]
        if result.comment_error:
            text += f"\n{result.comment_error}."
        if result.directive is not None:
            text += f"\nThis post will be removed <t:{int(result.directive.run_at.timestamp())}:R>."
        await safe_response(interaction, embed=success_embed(text))

    @app_commands.command(name="solvedstats", description="Show how many posts have been solved (mods only).")
    @app_commands.guild_only()
    async def solvedstats(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        collection_id = str(interaction.guild.id)
        try:
            await self.service.check_is_moderator(_identity(interaction.user), collection_id)
        except PermissionDeniedError:
            await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["mod_only"]))
            return
        await safe_response(interaction, embed=success_embed(await self.service.stats_summary(collection_id)))

    @app_commands.command(name="solvedconfig", description="Configure what happens to solved posts.")
    @app_commands.describe(
        mode="What to do with a post once it is solved",
        delay_hours="Hours to wait before removal (remove after delay only)",
        stats_channel="Channel where the daily stats are published",
    )
    @app_commands.choices(mode=_MODE_CHOICES)
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def solvedconfig(
        self,
        interaction: discord.Interaction,
        mode: app_commands.Choice[str],
        delay_hours: app_commands.Range[int, 0, MAX_REMOVAL_DELAY_HOURS] = 48,
        stats_channel: Optional[discord.TextChannel] = None,
    ) -> None:
        assert interaction.guild is not None
        collection_id = str(interaction.guild.id)
        store = self.bot.collection_config_store  # type: ignore[attr-defined]
        try:
            cfg = await store.set_removal(collection_id, mode.value, int(delay_hours))
        except ValueError as e:
            await safe_response(interaction, embed=error_embed(str(e)))
            return
        if stats_channel is not None:
            cfg = await store.set_stats_channel(collection_id, stats_channel.id)

        lines = [SUCCESS_MESSAGES["configuration_saved"], f"Mode: `{cfg.removal_mode.value}`"]
        if cfg.removal_mode is RemovalMode.REMOVE_AFTER_DELAY:
            lines.append(f"Delay: {cfg.removal_delay_hours}h")
        if cfg.stats_channel_id:
            lines.append(f"Stats channel: <#{cfg.stats_channel_id}>")
        await safe_response(interaction, embed=success_embed("\n".join(lines)))

    @app_commands.command(name="solvedreport", description="Publish the solved stats page now.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.guild_only()
    async def solvedreport(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        await interaction.response.defer(ephemeral=True)
        content = await self.service.on_cadence_tick(str(interaction.guild.id))
        await safe_response(interaction, content=content)
