from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ..constants import JOB_BATCH_LIMIT
from ..errors import MalformedPayloadError, TransientStoreError
from ..solved.cadence import next_run, parse_cadence
from ..solved.models import utcnow
from .job_store import CronJob, JobStore, ScheduledJob
from .stats import RuntimeStats

log = logging.getLogger("solvedbot.jobs")

JobHandler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class RunnerPolicy:
    poll_seconds: float = 15.0
    batch_limit: int = JOB_BATCH_LIMIT


@dataclass
class RunSummary:
    executed: int = 0
    failed: int = 0
    dropped: int = 0
    deferred: int = 0
    cron_runs: int = 0


class JobRunner:
    """SQLite-backed job transport.

    One-shot jobs are delivered at least once: the row is deleted only after
    the handler finishes, and a TransientStoreError leaves it in place for
    the next poll. Handlers must therefore be idempotent.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        policy: Optional[RunnerPolicy] = None,
        stats: Optional[RuntimeStats] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._policy = policy or RunnerPolicy()
        self._stats = stats or RuntimeStats()
        self._clock = clock
        self._handlers: dict[str, JobHandler] = {}
        self._stop = asyncio.Event()
        self._runner: Optional[asyncio.Task[None]] = None

    def register(self, job_name: str, handler: JobHandler) -> None:
        if job_name in self._handlers:
            raise ValueError(f"Handler already registered for job {job_name!r}")
        self._handlers[job_name] = handler

    async def schedule_once(self, job_name: str, run_at: datetime, payload: dict[str, Any]) -> int:
        if job_name not in self._handlers:
            raise ValueError(f"No handler registered for job {job_name!r}")
        job_id = await self._store.add(
            job_name,
            # Rounded up: a job never becomes due before its run_at.
            math.ceil(run_at.timestamp()),
            payload,
            self._clock().isoformat(timespec="seconds"),
        )
        self._stats.jobs_scheduled += 1
        return job_id

    async def schedule_cron(self, job_name: str, scope_key: str, cron_expr: str, payload: dict[str, Any]) -> None:
        if job_name not in self._handlers:
            raise ValueError(f"No handler registered for job {job_name!r}")
        parse_cadence(cron_expr)
        first = next_run(cron_expr, self._clock())
        await self._store.upsert_cron(job_name, scope_key, cron_expr, int(first.timestamp()), payload)
        log.info("Cron job %s[%s] registered (%s), next run %s", job_name, scope_key, cron_expr, first.isoformat())

    async def cancel_cron(self, job_name: str, scope_key: str) -> bool:
        removed = await self._store.delete_cron(job_name, scope_key)
        if removed:
            log.info("Cron job %s[%s] removed", job_name, scope_key)
        return removed

    def start(self) -> None:
        if self._runner and not self._runner.done():
            return
        self._stop.clear()
        self._runner = asyncio.create_task(self._run(), name="solvedbot-job-runner")
        log.info("JobRunner started (poll_seconds=%s batch_limit=%s)", self._policy.poll_seconds, self._policy.batch_limit)

    async def stop(self) -> None:
        self._stop.set()
        if self._runner:
            await self._runner
        log.info("JobRunner stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.run_due()
            except Exception:
                log.exception("Job runner iteration failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=max(0.1, self._policy.poll_seconds))
            except asyncio.TimeoutError:
                pass

    async def run_due(self, now: Optional[datetime] = None) -> RunSummary:
        """Deliver every job due at `now`. One deterministic pass."""
        now = now or self._clock()
        now_ts = int(now.timestamp())
        summary = RunSummary()

        for job in await self._store.due(now_ts, self._policy.batch_limit):
            await self._deliver(job, summary)

        for cron in await self._store.due_cron(now_ts, self._policy.batch_limit):
            await self._deliver_cron(cron, now, summary)

        return summary

    async def _deliver(self, job: ScheduledJob, summary: RunSummary) -> None:
        handler = self._handlers.get(job.job_name)
        if handler is None:
            log.warning("No handler for job %s (%s); dropping", job.id, job.job_name)
            await self._drop(job, summary)
            return

        try:
            payload = json.loads(job.payload_json)
        except json.JSONDecodeError:
            log.warning("Job %s (%s) has undecodable payload; dropping", job.id, job.job_name)
            await self._drop(job, summary)
            return

        try:
            await handler(payload)
        except MalformedPayloadError as e:
            log.warning("Job %s (%s) rejected payload: %s; dropping", job.id, job.job_name, e)
            await self._drop(job, summary)
            return
        except TransientStoreError as e:
            log.warning("Job %s (%s) hit a store error, will redeliver: %s", job.id, job.job_name, e)
            summary.deferred += 1
            return
        except Exception:
            log.exception("Job %s (%s) failed; abandoning", job.id, job.job_name)
            self._stats.jobs_failed += 1
            summary.failed += 1
            await self._store.delete(job.id)
            return

        self._stats.jobs_executed += 1
        summary.executed += 1
        await self._store.delete(job.id)

    async def _drop(self, job: ScheduledJob, summary: RunSummary) -> None:
        self._stats.jobs_dropped += 1
        summary.dropped += 1
        await self._store.delete(job.id)

    async def _deliver_cron(self, cron: CronJob, now: datetime, summary: RunSummary) -> None:
        handler = self._handlers.get(cron.job_name)
        if handler is None:
            log.warning("No handler for cron job %s[%s]; dropping", cron.job_name, cron.scope_key)
            self._stats.jobs_dropped += 1
            summary.dropped += 1
            await self._store.delete_cron(cron.job_name, cron.scope_key)
            return

        try:
            following = next_run(cron.cron_expr, now)
        except ValueError:
            log.error("Cron job %s[%s] has invalid expression %r", cron.job_name, cron.scope_key, cron.cron_expr)
            return

        # Claim the tick by advancing it first; a concurrent runner loses the race.
        if not await self._store.rearm_cron(cron.job_name, cron.scope_key, cron.next_run_ts, int(following.timestamp())):
            return

        try:
            await handler(json.loads(cron.payload_json))
            summary.cron_runs += 1
        except Exception:
            log.exception("Cron job %s[%s] failed", cron.job_name, cron.scope_key)
            summary.failed += 1
