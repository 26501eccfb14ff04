from __future__ import annotations

import logging
import re
from typing import Any, Optional

import discord

from .constants import COLORS, MAX_EMBED_DESCRIPTION, MAX_EMBED_TITLE

log = logging.getLogger("solvedbot.utils")

_MESSAGE_LINK_RE = re.compile(r"discord(?:app)?\.com/channels/\d+/\d+/(\d+)")


def safe_embed(title: str, description: str, color: int = COLORS["default"]) -> discord.Embed:
    """Create an embed with safe length limits."""
    if len(title) > MAX_EMBED_TITLE:
        title = title[:MAX_EMBED_TITLE - 3] + "…"
    if len(description) > MAX_EMBED_DESCRIPTION:
        description = description[:MAX_EMBED_DESCRIPTION - 3] + "…"

    return discord.Embed(title=title, description=description, color=color)


def error_embed(message: str) -> discord.Embed:
    """Neutral failure notice. Users never see stack traces."""
    return safe_embed("Heads up", message, COLORS["muted"])


def success_embed(message: str) -> discord.Embed:
    return safe_embed("Done", message, COLORS["success"])


def parse_message_ref(raw: Optional[str]) -> Optional[str]:
    """Accept a message id or a message link; returns the id, or None when blank."""
    raw = (raw or "").strip()
    if not raw:
        return None
    m = _MESSAGE_LINK_RE.search(raw)
    return m.group(1) if m else raw


async def safe_response(
    interaction: discord.Interaction,
    content: str | None = None,
    embed: discord.Embed | None = None,
    ephemeral: bool = True,
    **kwargs: Any,
) -> bool:
    """Respond to an interaction whether or not it was already deferred."""
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content=content, embed=embed, ephemeral=ephemeral, **kwargs)
        else:
            await interaction.response.send_message(content=content, embed=embed, ephemeral=ephemeral, **kwargs)
        return True
    except discord.HTTPException as e:
        log.error("Failed to send response: %s", e)
        return False
