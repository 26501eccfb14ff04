from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from .constants import (
    DEFAULT_JOB_POLL_SECONDS,
    DEFAULT_REMOVAL_DELAY_HOURS,
    DEFAULT_STATS_CRON,
    SOLVED_LABEL_TEXT,
    SOLVED_TAG_NAME,
)
from .solved.cadence import parse_cadence
from .solved.models import RemovalMode, RemovalPolicy


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _get_mode(name: str, default: RemovalMode) -> RemovalMode:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    try:
        return RemovalMode(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    token: str
    dev_guild_id: int
    sync_guild_id: int
    sqlite_path: str
    log_level: str
    job_poll_seconds: int
    # Applies to guilds that never ran /solvedconfig.
    default_removal_mode: RemovalMode
    default_removal_delay_hours: int
    # Cadence of the stats page refresh, minute/hour cron fields only.
    stats_cron: str = DEFAULT_STATS_CRON
    solved_tag_name: str = SOLVED_TAG_NAME
    solved_label_text: str = SOLVED_LABEL_TEXT

    @property
    def default_policy(self) -> RemovalPolicy:
        return RemovalPolicy(mode=self.default_removal_mode, delay=timedelta(hours=self.default_removal_delay_hours))


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")

    stats_cron = _get_str("STATS_CRON", DEFAULT_STATS_CRON)
    try:
        parse_cadence(stats_cron)
    except ValueError as e:
        raise RuntimeError(f"STATS_CRON is invalid: {e}") from e

    return Settings(
        token=token,
        dev_guild_id=_get_int("DEV_GUILD_ID", 0),
        sync_guild_id=_get_int("SYNC_GUILD_ID", 0),
        sqlite_path=_get_str("SQLITE_PATH", "solvedbot.sqlite3"),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        job_poll_seconds=max(1, _get_int("JOB_POLL_SECONDS", DEFAULT_JOB_POLL_SECONDS)),
        default_removal_mode=_get_mode("DEFAULT_REMOVAL_MODE", RemovalMode.OFF),
        default_removal_delay_hours=max(0, _get_int("DEFAULT_REMOVAL_DELAY_HOURS", DEFAULT_REMOVAL_DELAY_HOURS)),
        stats_cron=stats_cron,
        solved_tag_name=_get_str("SOLVED_TAG_NAME", SOLVED_TAG_NAME),
        solved_label_text=_get_str("SOLVED_LABEL_TEXT", SOLVED_LABEL_TEXT),
    )
