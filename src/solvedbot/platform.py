from __future__ import annotations

import logging
from typing import Optional

import discord

from .constants import COLORS, MAX_EMBED_DESCRIPTION
from .errors import ExternalActionFailure, NotFoundError, SolvedBotError
from .services.collection_config_store import CollectionConfigStore
from .services.page_store import PublishedPageStore
from .solved.interfaces import CommentInfo, Identity, ItemInfo, Label
from .solved.models import utcnow
from .utils import safe_embed

log = logging.getLogger("solvedbot.platform")


def _http_error(e: discord.HTTPException, what: str) -> SolvedBotError:
    if isinstance(e, discord.NotFound):
        return NotFoundError(what)
    return ExternalActionFailure(f"{what}: HTTP {e.status} {e.text}")


def _snowflake(raw: str, what: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise NotFoundError(f"{what} {raw!r} is not a valid id") from None


class DiscordPlatform:
    """discord.py implementation of the identity, content and publishing interfaces.

    Items are forum threads, collections are guilds, comments are messages
    inside the thread, and pages are bot messages edited in place.
    """

    def __init__(
        self,
        bot: discord.Client,
        *,
        config_store: CollectionConfigStore,
        page_store: PublishedPageStore,
        solved_tag_name: str,
    ) -> None:
        self.bot = bot
        self.config_store = config_store
        self.page_store = page_store
        self.solved_tag_name = solved_tag_name

    async def _get_thread(self, item_id: str) -> discord.Thread:
        tid = _snowflake(item_id, "item")
        channel = self.bot.get_channel(tid)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(tid)
            except discord.HTTPException as e:
                raise _http_error(e, f"thread {item_id}") from e
        if not isinstance(channel, discord.Thread):
            raise NotFoundError(f"{item_id} is not a thread")
        return channel

    async def _get_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            raise _http_error(e, f"member {user_id}") from e

    # Identity

    async def is_moderator(self, collection_id: str, identity: Identity) -> bool:
        guild = self.bot.get_guild(_snowflake(collection_id, "guild"))
        if guild is None:
            return False
        member = await self._get_member(guild, _snowflake(identity.id, "user"))
        if member is None:
            return False
        perms = member.guild_permissions
        return bool(perms.manage_threads or perms.manage_messages)

    async def item_author(self, item_id: str) -> Optional[Identity]:
        thread = await self._get_thread(item_id)
        if thread.owner_id is None:
            return None
        owner = thread.owner
        name = owner.display_name if owner is not None else str(thread.owner_id)
        return Identity(id=str(thread.owner_id), name=name)

    # Content

    async def set_label(self, item_id: str, label: Label) -> None:
        """Apply the forum's solved tag, or prefix the title when the forum has none.

        Discord tags carry no colours, so `label` colours are not used here.
        """
        thread = await self._get_thread(item_id)
        forum = thread.parent
        tag = None
        if isinstance(forum, discord.ForumChannel):
            wanted = self.solved_tag_name.casefold()
            tag = next((t for t in forum.available_tags if t.name.casefold() == wanted), None)

        try:
            if tag is not None:
                if tag not in thread.applied_tags:
                    await thread.add_tags(tag, reason="Marked as solved")
                return
            prefix = f"[{label.text}] "
            if not thread.name.startswith(prefix):
                await thread.edit(name=(prefix + thread.name)[:100], reason="Marked as solved")
        except discord.HTTPException as e:
            raise _http_error(e, f"label thread {item_id}") from e

    async def remove_item(self, item_id: str) -> None:
        thread = await self._get_thread(item_id)
        try:
            await thread.delete()
        except discord.HTTPException as e:
            raise _http_error(e, f"delete thread {item_id}") from e

    async def post_comment(self, item_id: str, text: str) -> str:
        thread = await self._get_thread(item_id)
        embed = discord.Embed(description=text[:MAX_EMBED_DESCRIPTION], color=COLORS["success"])
        try:
            msg = await thread.send(embed=embed)
        except discord.HTTPException as e:
            raise _http_error(e, f"comment on thread {item_id}") from e
        try:
            await msg.pin(reason="Solution")
        except discord.HTTPException as e:
            log.warning("Posted solution in %s but could not pin it: %s", item_id, e)
        return str(msg.id)

    async def get_item(self, item_id: str) -> ItemInfo:
        try:
            thread = await self._get_thread(item_id)
        except NotFoundError:
            return ItemInfo(author_name="", exists=False)
        owner = thread.owner
        return ItemInfo(author_name=owner.display_name if owner is not None else str(thread.owner_id), exists=True)

    async def get_comment(self, item_id: str, comment_id: str) -> CommentInfo:
        thread = await self._get_thread(item_id)
        mid = _snowflake(comment_id, "comment")
        try:
            msg = await thread.fetch_message(mid)
        except discord.HTTPException as e:
            raise _http_error(e, f"comment {comment_id}") from e
        return CommentInfo(author_name=msg.author.display_name, body=msg.content or "")

    # Publishing

    async def write_page(self, collection_id: str, page_key: str, content: str, reason: str) -> None:
        cfg = await self.config_store.get_config(collection_id)
        if cfg.stats_channel_id is None:
            raise NotFoundError(f"no stats channel configured for {collection_id}")
        guild = self.bot.get_guild(_snowflake(collection_id, "guild"))
        channel = guild.get_channel(cfg.stats_channel_id) if guild else None
        if not isinstance(channel, discord.TextChannel):
            raise NotFoundError(f"stats channel {cfg.stats_channel_id} not found")

        title, _, body = content.partition("\n")
        embed = safe_embed(title.lstrip("# ").strip(), body.strip(), COLORS["default"])

        record = await self.page_store.get_page(collection_id, page_key)
        try:
            if record is not None and record.channel_id == channel.id:
                try:
                    msg = await channel.fetch_message(record.message_id)
                    await msg.edit(embed=embed)
                    log.info("Updated page %s in %s (%s)", page_key, collection_id, reason)
                    return
                except discord.NotFound:
                    log.info("Page %s message vanished; posting a new one", page_key)
            msg = await channel.send(embed=embed)
        except discord.HTTPException as e:
            raise _http_error(e, f"publish {page_key}") from e

        await self.page_store.upsert(collection_id, page_key, channel.id, msg.id, utcnow().isoformat(timespec="seconds"))
        log.info("Published page %s in %s (%s)", page_key, collection_id, reason)
