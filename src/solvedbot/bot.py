from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import Settings
from .constants import SOLVED_LABEL_BACKGROUND, SOLVED_LABEL_TEXT_COLOR
from .database import initialize_database
from .cogs.solved import SolvedCog
from .error_handlers import setup_error_handlers
from .platform import DiscordPlatform
from .services.collection_config_store import CollectionConfigStore
from .services.counter_store import CounterStore
from .services.job_runner import JobRunner, RunnerPolicy
from .services.job_store import JobStore
from .services.page_store import PublishedPageStore
from .services.post_state_store import PostStateStore
from .services.stats import RuntimeStats
from .solved.executor import GuardedActionExecutor
from .solved.interfaces import Label
from .solved.report import ReportRenderer
from .solved.service import SolvedService

log = logging.getLogger("solvedbot.bot")


class _CommandSyncManager:
    def __init__(self, bot: "SolvedBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        # Use sync_guild_id if set, otherwise dev_guild_id, else global
        guild_id = self.bot.settings.sync_guild_id or self.bot.settings.dev_guild_id
        async with self._lock:
            if guild_id:
                guild = discord.Object(id=guild_id)
                self.bot.tree.copy_global_to(guild=guild)
                await self.bot.tree.sync(guild=guild)
                log.info("Commands synced to guild %d", guild_id)
            else:
                await self.bot.tree.sync()
                log.info("Commands synced globally")
            for c in self.bot.tree.get_commands():
                log.info(" - /%s", c.name)


class SolvedBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            help_command=None,
        )

        self.settings = settings
        self.stats = RuntimeStats()

        path = settings.sqlite_path
        self.post_state_store = PostStateStore(path)
        self.counter_store = CounterStore(path)
        self.collection_config_store = CollectionConfigStore(path, default_policy=settings.default_policy)
        self.job_store = JobStore(path)
        self.page_store = PublishedPageStore(path)

        self.job_runner = JobRunner(
            self.job_store,
            policy=RunnerPolicy(poll_seconds=settings.job_poll_seconds),
            stats=self.stats,
        )
        self.platform = DiscordPlatform(
            self,
            config_store=self.collection_config_store,
            page_store=self.page_store,
            solved_tag_name=settings.solved_tag_name,
        )
        executor = GuardedActionExecutor(
            state_store=self.post_state_store,
            content=self.platform,
            stats=self.stats,
        )
        self.solved_service = SolvedService(
            state_store=self.post_state_store,
            counters=self.counter_store,
            config=self.collection_config_store,
            content=self.platform,
            identity=self.platform,
            transport=self.job_runner,
            executor=executor,
            reports=ReportRenderer(counters=self.counter_store, publisher=self.platform),
            label=Label(
                text=settings.solved_label_text,
                background_color=SOLVED_LABEL_BACKGROUND,
                text_color=SOLVED_LABEL_TEXT_COLOR,
            ),
            stats_cron=settings.stats_cron,
        )
        self._sync_mgr = _CommandSyncManager(self)

    async def setup_hook(self) -> None:
        stores = [
            self.post_state_store,
            self.counter_store,
            self.collection_config_store,
            self.job_store,
            self.page_store,
        ]
        await initialize_database(self.settings.sqlite_path, stores)

        for job_name, handler in self.solved_service.job_handlers().items():
            self.job_runner.register(job_name, handler)

        setup_error_handlers(self)

        await self.add_cog(SolvedCog(self))
        log.info("Loaded cog: SolvedCog")

        await self._sync_mgr.sync_startup()
        self.job_runner.start()
        log.info("SolvedBot startup complete")

    async def close(self) -> None:
        try:
            await self.job_runner.stop()
        except Exception as e:
            log.warning("Failed to stop job runner: %s", e)
        finally:
            await super().close()
