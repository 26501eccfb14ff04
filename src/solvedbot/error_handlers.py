from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .constants import ERROR_MESSAGES
from .errors import NotAuthenticatedError, PermissionDeniedError, TransientStoreError
from .utils import error_embed, safe_response

log = logging.getLogger("solvedbot.error_handlers")


async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
    """Every interactive failure ends as a neutral notice to the user."""
    if isinstance(error, app_commands.MissingPermissions):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]))
        return

    if isinstance(error, app_commands.NoPrivateMessage):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["not_a_post"]))
        return

    original = getattr(error, "original", error)
    if isinstance(original, NotAuthenticatedError):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["not_logged_in"]))
        return
    if isinstance(original, PermissionDeniedError):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]))
        return
    if isinstance(original, TransientStoreError):
        log.error("Store error in app command %s: %s", getattr(interaction.command, "name", "?"), original)
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["database_error"]))
        return

    log.error("Unexpected error in app command %s", getattr(interaction.command, "name", "?"), exc_info=error)
    await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["command_failed"]))


def setup_error_handlers(bot: commands.Bot) -> None:
    bot.tree.on_error = on_app_command_error
