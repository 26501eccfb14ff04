from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Generic, Optional, TypeVar

import aiosqlite

from ..errors import TransientStoreError

T = TypeVar("T")
log = logging.getLogger("solvedbot.base_service")


class BaseService(ABC, Generic[T]):
    """Base class for all SQLite-backed stores.

    No read cache: several processes may share the file, and callers rely
    on read-your-writes.
    """

    def __init__(self, sqlite_path: str) -> None:
        self._path = sqlite_path
        self._logger = logging.getLogger(f"solvedbot.{self.__class__.__name__.lower()}")

    async def init(self) -> None:
        """Initialize the database schema."""
        async with self._connect() as db:
            await self._create_tables(db)
            await db.commit()

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self._path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            self._logger.error("Store operation failed: %s", e)
            raise TransientStoreError(f"{self.__class__.__name__}: {e}") from e

    @abstractmethod
    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        """Create the necessary database tables."""
        pass

    @abstractmethod
    def _from_row(self, row: aiosqlite.Row) -> T:
        """Convert a database row to the service's data type."""
        pass

    async def get(self, *key: object) -> Optional[T]:
        """Fetch one row by primary key."""
        async with self._connect() as db:
            async with db.execute(self._get_query, key) as cur:
                row = await cur.fetchone()
        if row is None:
            return None
        return self._from_row(row)

    @property
    @abstractmethod
    def _get_query(self) -> str:
        """SQL query for getting data by key."""
        pass
