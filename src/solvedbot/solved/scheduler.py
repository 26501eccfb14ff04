from __future__ import annotations

import logging
from dataclasses import dataclass

from ..constants import REMOVAL_JOB_NAME
from .interfaces import JobTransport
from .models import Directive

log = logging.getLogger("solvedbot.scheduler")


@dataclass(frozen=True)
class JobHandle:
    job_id: int
    job_name: str


class DeferredScheduler:
    """Hands directives to the job transport. There is no cancel; the guard check covers that."""

    def __init__(self, transport: JobTransport) -> None:
        self._transport = transport

    async def schedule(self, directive: Directive) -> JobHandle:
        if directive.immediate:
            raise ValueError("Immediate directives are executed inline, not scheduled")
        job_id = await self._transport.schedule_once(REMOVAL_JOB_NAME, directive.run_at, directive.to_payload())
        log.info(
            "Scheduled %s for item %s at %s (job %s)",
            directive.action_kind.value,
            directive.target_item_id,
            directive.run_at.isoformat(timespec="seconds"),
            job_id,
        )
        return JobHandle(job_id=job_id, job_name=REMOVAL_JOB_NAME)
