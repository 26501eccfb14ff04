from __future__ import annotations

from datetime import datetime
from typing import Optional

import aiosqlite

from ..solved.models import MarkOutcome, PostRecord, SolveState, parse_iso
from .base import BaseService


class PostStateStore(BaseService[PostRecord]):
    """Durable per-post lifecycle record.

    One row per post. The solved field group (state, solved_at, solved_by)
    is written by a single conditional UPDATE, so it is set at most once
    and never partially.
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS solved_posts (
              item_id TEXT PRIMARY KEY,
              collection_id TEXT NOT NULL,
              state TEXT NOT NULL DEFAULT 'unsolved',
              created_at_iso TEXT NOT NULL,
              solved_at_iso TEXT,
              solved_by TEXT,
              CHECK ((state = 'solved') = (solved_at_iso IS NOT NULL AND solved_by IS NOT NULL))
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_solved_posts_collection ON solved_posts(collection_id, state)")

    def _from_row(self, row: aiosqlite.Row) -> PostRecord:
        return PostRecord(
            item_id=str(row["item_id"]),
            collection_id=str(row["collection_id"]),
            state=SolveState(row["state"]),
            created_at=parse_iso(row["created_at_iso"]),
            solved_at=(parse_iso(row["solved_at_iso"]) if row["solved_at_iso"] is not None else None),
            solved_by=(str(row["solved_by"]) if row["solved_by"] is not None else None),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT item_id, collection_id, state, created_at_iso, solved_at_iso, solved_by FROM solved_posts WHERE item_id = ?"

    async def get_item(self, item_id: str) -> Optional[PostRecord]:
        return await self.get(str(item_id))

    async def create_unsolved(self, item_id: str, collection_id: str, created_at: datetime) -> bool:
        """Insert an unsolved record. Returns False if the post was already tracked."""
        async with self._connect() as db:
            cur = await db.execute(
                "INSERT OR IGNORE INTO solved_posts (item_id, collection_id, state, created_at_iso) VALUES (?, ?, 'unsolved', ?)",
                (str(item_id), str(collection_id), created_at.isoformat()),
            )
            await db.commit()
            return cur.rowcount == 1

    async def mark_solved(self, item_id: str, actor_id: str, solved_at: datetime) -> MarkOutcome:
        async with self._connect() as db:
            cur = await db.execute(
                """
                UPDATE solved_posts
                SET state = 'solved', solved_at_iso = ?, solved_by = ?
                WHERE item_id = ? AND state = 'unsolved'
                """,
                (solved_at.isoformat(), str(actor_id), str(item_id)),
            )
            await db.commit()
            if cur.rowcount == 1:
                return MarkOutcome.SOLVED

            async with db.execute("SELECT 1 FROM solved_posts WHERE item_id = ?", (str(item_id),)) as check:
                exists = await check.fetchone()
        return MarkOutcome.ALREADY_SOLVED if exists else MarkOutcome.NOT_FOUND

