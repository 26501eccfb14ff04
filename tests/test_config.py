from __future__ import annotations

from datetime import timedelta

import pytest

from solvedbot.config import load_settings
from solvedbot.constants import DEFAULT_STATS_CRON
from solvedbot.solved.models import RemovalMode

ENV_VARS = (
    "DISCORD_TOKEN",
    "DEV_GUILD_ID",
    "SYNC_GUILD_ID",
    "SQLITE_PATH",
    "LOG_LEVEL",
    "JOB_POLL_SECONDS",
    "DEFAULT_REMOVAL_MODE",
    "DEFAULT_REMOVAL_DELAY_HOURS",
    "STATS_CRON",
    "SOLVED_TAG_NAME",
    "SOLVED_LABEL_TEXT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_token_is_required():
    with pytest.raises(RuntimeError, match="DISCORD_TOKEN"):
        load_settings()


def test_defaults(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abc")
    s = load_settings()
    assert s.token == "abc"
    assert s.sqlite_path == "solvedbot.sqlite3"
    assert s.stats_cron == DEFAULT_STATS_CRON
    assert s.default_removal_mode is RemovalMode.OFF
    assert s.solved_tag_name == "Solved"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abc")
    monkeypatch.setenv("DEFAULT_REMOVAL_MODE", "Remove_After_Delay")
    monkeypatch.setenv("DEFAULT_REMOVAL_DELAY_HOURS", "12")
    monkeypatch.setenv("JOB_POLL_SECONDS", "0")
    monkeypatch.setenv("DEV_GUILD_ID", "not-a-number")
    s = load_settings()
    assert s.default_policy.mode is RemovalMode.REMOVE_AFTER_DELAY
    assert s.default_policy.delay == timedelta(hours=12)
    assert s.job_poll_seconds == 1
    assert s.dev_guild_id == 0


def test_invalid_cron_fails_fast(monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "abc")
    monkeypatch.setenv("STATS_CRON", "0 0 1 * *")
    with pytest.raises(RuntimeError, match="STATS_CRON"):
        load_settings()
