from __future__ import annotations

import aiosqlite

from ..solved.models import Metric
from .base import BaseService


class CounterStore(BaseService[int]):
    """Monotonic per-collection counters. Only ever incremented by one."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS solved_counters (
              collection_id TEXT NOT NULL,
              metric TEXT NOT NULL,
              value INTEGER NOT NULL DEFAULT 0 CHECK (value >= 0),
              PRIMARY KEY (collection_id, metric)
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> int:
        return int(row["value"])

    @property
    def _get_query(self) -> str:
        return "SELECT value FROM solved_counters WHERE collection_id = ? AND metric = ?"

    async def increment(self, collection_id: str, metric: Metric) -> int:
        # Single statement: atomic across processes sharing the file.
        async with self._connect() as db:
            async with db.execute(
                """
                INSERT INTO solved_counters (collection_id, metric, value) VALUES (?, ?, 1)
                ON CONFLICT(collection_id, metric) DO UPDATE SET value = value + 1
                RETURNING value
                """,
                (str(collection_id), metric.value),
            ) as cur:
                row = await cur.fetchone()
            await db.commit()
        return int(row["value"])

    async def read(self, collection_id: str, metric: Metric) -> int:
        value = await self.get(str(collection_id), metric.value)
        return value or 0

    async def read_all(self, collection_id: str) -> dict[Metric, int]:
        values = {metric: 0 for metric in Metric}
        async with self._connect() as db:
            async with db.execute(
                "SELECT metric, value FROM solved_counters WHERE collection_id = ?",
                (str(collection_id),),
            ) as cur:
                for row in await cur.fetchall():
                    try:
                        values[Metric(row["metric"])] = int(row["value"])
                    except ValueError:
                        continue
        return values
