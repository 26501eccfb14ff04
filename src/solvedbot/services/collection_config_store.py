from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import aiosqlite

from ..constants import MAX_REMOVAL_DELAY_HOURS
from ..solved.models import RemovalMode, RemovalPolicy
from .base import BaseService


@dataclass(frozen=True)
class CollectionConfig:
    collection_id: str
    removal_mode: RemovalMode
    removal_delay_hours: int
    stats_channel_id: Optional[int]

    @property
    def policy(self) -> RemovalPolicy:
        return RemovalPolicy(mode=self.removal_mode, delay=timedelta(hours=self.removal_delay_hours))


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str


def validate_removal(mode: str, delay_hours: int) -> list[ValidationIssue]:
    """Validate removal settings. Returns list of issues; empty means valid."""

    issues: list[ValidationIssue] = []
    try:
        parsed = RemovalMode(mode)
    except ValueError:
        allowed = ", ".join(m.value for m in RemovalMode)
        return [ValidationIssue(path="removal_mode", message=f"must be one of: {allowed}")]

    if not isinstance(delay_hours, int) or isinstance(delay_hours, bool):
        issues.append(ValidationIssue(path="removal_delay_hours", message="must be an integer"))
    elif delay_hours < 0 or delay_hours > MAX_REMOVAL_DELAY_HOURS:
        issues.append(
            ValidationIssue(path="removal_delay_hours", message=f"must be between 0 and {MAX_REMOVAL_DELAY_HOURS}")
        )
    elif parsed is RemovalMode.REMOVE_AFTER_DELAY and delay_hours == 0:
        issues.append(ValidationIssue(path="removal_delay_hours", message="must be positive for remove_after_delay"))
    return issues


class CollectionConfigStore(BaseService[CollectionConfig]):
    """Per-guild removal policy and stats channel.

    Read on every decision; a change applies to the next solved post but
    does not cancel directives that are already scheduled.
    """

    def __init__(self, sqlite_path: str, *, default_policy: RemovalPolicy) -> None:
        super().__init__(sqlite_path)
        self._default_policy = default_policy

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS solved_collection_config (
              collection_id TEXT PRIMARY KEY,
              removal_mode TEXT NOT NULL,
              removal_delay_hours INTEGER NOT NULL,
              stats_channel_id INTEGER NULL
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> CollectionConfig:
        try:
            mode = RemovalMode(row["removal_mode"])
        except ValueError:
            self._logger.warning("Unknown removal mode %r for %s; treating as off", row["removal_mode"], row["collection_id"])
            mode = RemovalMode.OFF
        return CollectionConfig(
            collection_id=str(row["collection_id"]),
            removal_mode=mode,
            removal_delay_hours=int(row["removal_delay_hours"]),
            stats_channel_id=(int(row["stats_channel_id"]) if row["stats_channel_id"] is not None else None),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT collection_id, removal_mode, removal_delay_hours, stats_channel_id FROM solved_collection_config WHERE collection_id = ?"

    def _defaults(self, collection_id: str) -> CollectionConfig:
        return CollectionConfig(
            collection_id=str(collection_id),
            removal_mode=self._default_policy.mode,
            removal_delay_hours=int(self._default_policy.delay.total_seconds() // 3600),
            stats_channel_id=None,
        )

    async def get_config(self, collection_id: str) -> CollectionConfig:
        cfg = await self.get(str(collection_id))
        return cfg or self._defaults(collection_id)

    async def get_mode(self, collection_id: str) -> RemovalPolicy:
        return (await self.get_config(collection_id)).policy

    async def set_removal(self, collection_id: str, mode: str, delay_hours: int) -> CollectionConfig:
        issues = validate_removal(mode, delay_hours)
        if issues:
            raise ValueError("Config validation failed: " + "; ".join(f"{i.path}: {i.message}" for i in issues))

        current = await self.get_config(collection_id)
        cfg = CollectionConfig(
            collection_id=str(collection_id),
            removal_mode=RemovalMode(mode),
            removal_delay_hours=int(delay_hours),
            stats_channel_id=current.stats_channel_id,
        )
        await self._upsert(cfg)
        return cfg

    async def set_stats_channel(self, collection_id: str, channel_id: Optional[int]) -> CollectionConfig:
        current = await self.get_config(collection_id)
        cfg = CollectionConfig(
            collection_id=current.collection_id,
            removal_mode=current.removal_mode,
            removal_delay_hours=current.removal_delay_hours,
            stats_channel_id=int(channel_id) if channel_id is not None else None,
        )
        await self._upsert(cfg)
        return cfg

    async def _upsert(self, cfg: CollectionConfig) -> None:
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO solved_collection_config (collection_id, removal_mode, removal_delay_hours, stats_channel_id)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(collection_id) DO UPDATE SET
                    removal_mode=excluded.removal_mode,
                    removal_delay_hours=excluded.removal_delay_hours,
                    stats_channel_id=excluded.stats_channel_id
                """,
                (cfg.collection_id, cfg.removal_mode.value, cfg.removal_delay_hours, cfg.stats_channel_id),
            )
            await db.commit()
