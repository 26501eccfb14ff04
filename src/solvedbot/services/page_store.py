from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import aiosqlite

from .base import BaseService


@dataclass(frozen=True)
class PageRecord:
    """Where a published page (a bot message edited in place) lives."""

    collection_id: str
    page_key: str
    channel_id: int
    message_id: int
    updated_at_iso: str


class PublishedPageStore(BaseService[PageRecord]):
    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS published_pages (
              collection_id TEXT NOT NULL,
              page_key TEXT NOT NULL,
              channel_id INTEGER NOT NULL,
              message_id INTEGER NOT NULL,
              updated_at_iso TEXT NOT NULL,
              PRIMARY KEY (collection_id, page_key)
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> PageRecord:
        return PageRecord(
            collection_id=str(row["collection_id"]),
            page_key=str(row["page_key"]),
            channel_id=int(row["channel_id"]),
            message_id=int(row["message_id"]),
            updated_at_iso=str(row["updated_at_iso"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT collection_id, page_key, channel_id, message_id, updated_at_iso FROM published_pages WHERE collection_id = ? AND page_key = ?"

    async def get_page(self, collection_id: str, page_key: str) -> Optional[PageRecord]:
        return await self.get(str(collection_id), page_key)

    async def upsert(self, collection_id: str, page_key: str, channel_id: int, message_id: int, updated_at_iso: str) -> None:
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO published_pages (collection_id, page_key, channel_id, message_id, updated_at_iso)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(collection_id, page_key) DO UPDATE SET
                    channel_id=excluded.channel_id,
                    message_id=excluded.message_id,
                    updated_at_iso=excluded.updated_at_iso
                """,
                (str(collection_id), page_key, int(channel_id), int(message_id), updated_at_iso),
            )
            await db.commit()
