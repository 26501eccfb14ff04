from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import aiosqlite

from .base import BaseService


@dataclass(frozen=True)
class ScheduledJob:
    id: int
    job_name: str
    run_at_ts: int
    payload_json: str
    created_at_iso: str


@dataclass(frozen=True)
class CronJob:
    job_name: str
    scope_key: str
    cron_expr: str
    next_run_ts: int
    payload_json: str


class JobStore(BaseService[ScheduledJob]):
    """Persisted one-shot and recurring jobs.

    - `scheduled_jobs`: one row per pending one-shot job, deleted once handled
    - `cron_jobs`: one row per (job_name, scope_key), re-armed after each run
    """

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS scheduled_jobs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              job_name TEXT NOT NULL,
              run_at_ts INTEGER NOT NULL,
              payload_json TEXT NOT NULL,
              created_at_iso TEXT NOT NULL
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_scheduled_jobs_due ON scheduled_jobs(run_at_ts)")
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS cron_jobs (
              job_name TEXT NOT NULL,
              scope_key TEXT NOT NULL,
              cron_expr TEXT NOT NULL,
              next_run_ts INTEGER NOT NULL,
              payload_json TEXT NOT NULL,
              PRIMARY KEY (job_name, scope_key)
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> ScheduledJob:
        return ScheduledJob(
            id=int(row["id"]),
            job_name=str(row["job_name"]),
            run_at_ts=int(row["run_at_ts"]),
            payload_json=str(row["payload_json"]),
            created_at_iso=str(row["created_at_iso"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT id, job_name, run_at_ts, payload_json, created_at_iso FROM scheduled_jobs WHERE id = ?"

    async def add(self, job_name: str, run_at_ts: int, payload: dict[str, Any], created_at_iso: str) -> int:
        payload_json = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        async with self._connect() as db:
            cur = await db.execute(
                "INSERT INTO scheduled_jobs (job_name, run_at_ts, payload_json, created_at_iso) VALUES (?, ?, ?, ?)",
                (job_name, int(run_at_ts), payload_json, created_at_iso),
            )
            await db.commit()
            return int(cur.lastrowid)

    async def due(self, now_ts: int, limit: int = 50) -> list[ScheduledJob]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT id, job_name, run_at_ts, payload_json, created_at_iso FROM scheduled_jobs WHERE run_at_ts <= ? ORDER BY run_at_ts ASC, id ASC LIMIT ?",
                (int(now_ts), int(limit)),
            ) as cur:
                rows = await cur.fetchall()
        return [self._from_row(r) for r in rows]

    async def pending(self, job_name: str) -> list[ScheduledJob]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT id, job_name, run_at_ts, payload_json, created_at_iso FROM scheduled_jobs WHERE job_name = ? ORDER BY run_at_ts ASC, id ASC",
                (job_name,),
            ) as cur:
                rows = await cur.fetchall()
        return [self._from_row(r) for r in rows]

    async def delete(self, job_id: int) -> None:
        async with self._connect() as db:
            await db.execute("DELETE FROM scheduled_jobs WHERE id = ?", (int(job_id),))
            await db.commit()

    async def upsert_cron(self, job_name: str, scope_key: str, cron_expr: str, next_run_ts: int, payload: dict[str, Any]) -> None:
        """Register a recurring job. Re-registering replaces the schedule instead of duplicating it."""
        payload_json = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        async with self._connect() as db:
            await db.execute(
                """
                INSERT INTO cron_jobs (job_name, scope_key, cron_expr, next_run_ts, payload_json)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(job_name, scope_key) DO UPDATE SET
                    cron_expr=excluded.cron_expr,
                    payload_json=excluded.payload_json,
                    next_run_ts=CASE WHEN cron_jobs.cron_expr = excluded.cron_expr
                                     THEN cron_jobs.next_run_ts ELSE excluded.next_run_ts END
                """,
                (job_name, str(scope_key), cron_expr, int(next_run_ts), payload_json),
            )
            await db.commit()

    async def due_cron(self, now_ts: int, limit: int = 50) -> list[CronJob]:
        async with self._connect() as db:
            async with db.execute(
                "SELECT job_name, scope_key, cron_expr, next_run_ts, payload_json FROM cron_jobs WHERE next_run_ts <= ? ORDER BY next_run_ts ASC LIMIT ?",
                (int(now_ts), int(limit)),
            ) as cur:
                rows = await cur.fetchall()
        return [
            CronJob(
                job_name=str(r["job_name"]),
                scope_key=str(r["scope_key"]),
                cron_expr=str(r["cron_expr"]),
                next_run_ts=int(r["next_run_ts"]),
                payload_json=str(r["payload_json"]),
            )
            for r in rows
        ]

    async def rearm_cron(self, job_name: str, scope_key: str, expected_ts: int, next_run_ts: int) -> bool:
        """Advance a cron job. False if another runner already advanced it."""
        async with self._connect() as db:
            cur = await db.execute(
                "UPDATE cron_jobs SET next_run_ts = ? WHERE job_name = ? AND scope_key = ? AND next_run_ts = ?",
                (int(next_run_ts), job_name, str(scope_key), int(expected_ts)),
            )
            await db.commit()
            return cur.rowcount == 1

    async def delete_cron(self, job_name: str, scope_key: str) -> bool:
        async with self._connect() as db:
            cur = await db.execute(
                "DELETE FROM cron_jobs WHERE job_name = ? AND scope_key = ?",
                (job_name, str(scope_key)),
            )
            await db.commit()
            return cur.rowcount == 1
