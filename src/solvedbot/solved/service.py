from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..constants import MAX_QUOTE_LENGTH, REMOVAL_JOB_NAME, STATS_JOB_NAME
from ..errors import (
    ExternalActionFailure,
    MalformedPayloadError,
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
)
from ..services.counter_store import CounterStore
from ..services.post_state_store import PostStateStore
from .executor import GuardedActionExecutor
from .interfaces import ConfigProvider, ContentApi, Identity, IdentityProvider, JobTransport, Label
from .models import (
    Directive,
    ExecuteOutcome,
    MarkOutcome,
    MarkSolvedResult,
    Metric,
    utcnow,
)
from .policy import decide
from .report import ReportRenderer, summary_line
from .scheduler import DeferredScheduler

log = logging.getLogger("solvedbot.service")

JobHandlers = dict[str, Callable[[dict[str, Any]], Any]]


def solution_text(author_name: str, body: str) -> str:
    body = body.strip()
    if len(body) > MAX_QUOTE_LENGTH:
        body = body[: MAX_QUOTE_LENGTH - 1] + "…"
    quoted = "\n".join(f"> {line}" for line in body.splitlines()) or ">"
    return (
        f"✅ **Solution by {author_name}:**\n\n"
        f"{quoted}\n\n"
        "---\n\n"
        "*This post has been marked as solved. Thank you!*"
    )


class SolvedService:
    """Entry points for every event the platform delivers.

    Each call is a short, independent unit of work. Two calls for the same
    post may overlap; correctness rests on the state store's conditional
    writes and on the executor's guard re-check.
    """

    def __init__(
        self,
        *,
        state_store: PostStateStore,
        counters: CounterStore,
        config: ConfigProvider,
        content: ContentApi,
        identity: IdentityProvider,
        transport: JobTransport,
        executor: GuardedActionExecutor,
        reports: ReportRenderer,
        label: Label,
        stats_cron: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.state = state_store
        self.counters = counters
        self.config = config
        self.content = content
        self.identity = identity
        self.transport = transport
        self.scheduler = DeferredScheduler(transport)
        self.executor = executor
        self.reports = reports
        self.label = label
        self.stats_cron = stats_cron
        self._clock = clock

    def job_handlers(self) -> JobHandlers:
        return {
            REMOVAL_JOB_NAME: self.on_deferred_job,
            STATS_JOB_NAME: self._on_stats_job,
        }

    async def on_item_created(self, item_id: str, collection_id: str, created_at: Optional[datetime] = None) -> bool:
        created = await self.state.create_unsolved(item_id, collection_id, created_at or self._clock())
        if not created:
            log.debug("Item %s already tracked", item_id)
            return False
        total = await self.counters.increment(collection_id, Metric.TOTAL)
        log.info("Tracking item %s in %s as unsolved (total=%s)", item_id, collection_id, total)
        return True

    async def on_marked_solved(
        self,
        item_id: str,
        collection_id: str,
        actor_id: str,
        comment_id: Optional[str] = None,
        solved_at: Optional[datetime] = None,
    ) -> MarkSolvedResult:
        solved_at = solved_at or self._clock()

        # Posts made before the bot joined are first observed here.
        if await self.state.get_item(item_id) is None:
            await self.on_item_created(item_id, collection_id, solved_at)

        outcome = await self.state.mark_solved(item_id, actor_id, solved_at)
        if outcome is not MarkOutcome.SOLVED:
            log.info("Item %s not transitioned: %s", item_id, outcome.value)
            return MarkSolvedResult(outcome=outcome)

        solved = await self.counters.increment(collection_id, Metric.SOLVED)
        log.info("Item %s marked solved by %s (solved=%s)", item_id, actor_id, solved)

        # The directive is built from the state just written, never from a stale read.
        policy = await self.config.get_mode(collection_id)
        directive = decide(policy, item_id, collection_id, solved_at)

        # Deferred directives are handed off before any platform call.
        scheduled = None
        if directive is not None and not directive.immediate:
            try:
                await self.scheduler.schedule(directive)
            except TransientStoreError:
                log.error(
                    "Item %s is solved but its %s at %s could not be scheduled",
                    item_id,
                    directive.action_kind.value,
                    directive.run_at.isoformat(timespec="seconds"),
                )
                raise
            scheduled = directive

        label_applied = await self._apply_label(item_id)
        comment_posted, comment_error = False, None
        if comment_id:
            comment_posted, comment_error = await self._post_solution(item_id, comment_id)

        removed_immediately = False
        if directive is not None and directive.immediate:
            result = await self.executor.execute(directive)
            removed_immediately = result in (ExecuteOutcome.REMOVED, ExecuteOutcome.ALREADY_REMOVED)

        return MarkSolvedResult(
            outcome=outcome,
            label_applied=label_applied,
            comment_posted=comment_posted,
            comment_error=comment_error,
            directive=scheduled,
            removed_immediately=removed_immediately,
        )

    async def on_deferred_job(self, payload: dict[str, Any]) -> ExecuteOutcome:
        directive = Directive.from_payload(payload)
        return await self.executor.execute(directive)

    async def on_cadence_tick(self, collection_id: str) -> str:
        return await self.reports.publish(collection_id, self._clock())

    async def _on_stats_job(self, payload: dict[str, Any]) -> str:
        collection_id = payload.get("collection_id") if isinstance(payload, dict) else None
        if not isinstance(collection_id, str) or not collection_id:
            raise MalformedPayloadError("stats job payload needs a collection_id")
        return await self.on_cadence_tick(collection_id)

    async def on_installed(self, collection_id: str) -> None:
        await self.transport.schedule_cron(STATS_JOB_NAME, collection_id, self.stats_cron, {"collection_id": collection_id})

    async def on_uninstalled(self, collection_id: str) -> None:
        await self.transport.cancel_cron(STATS_JOB_NAME, collection_id)

    async def stats_summary(self, collection_id: str) -> str:
        values = await self.counters.read_all(collection_id)
        return summary_line(values[Metric.TOTAL], values[Metric.SOLVED])

    async def check_can_mark_solved(self, actor: Optional[Identity], item_id: str, collection_id: str) -> None:
        if actor is None:
            raise NotAuthenticatedError("no current actor")
        author = await self.identity.item_author(item_id)
        if author is not None and author.id == actor.id:
            return
        if await self.identity.is_moderator(collection_id, actor):
            return
        raise PermissionDeniedError(f"{actor.id} is neither the author of {item_id} nor a moderator")

    async def check_is_moderator(self, actor: Optional[Identity], collection_id: str) -> None:
        if actor is None:
            raise NotAuthenticatedError("no current actor")
        if not await self.identity.is_moderator(collection_id, actor):
            raise PermissionDeniedError(f"{actor.id} is not a moderator of {collection_id}")

    async def _apply_label(self, item_id: str) -> bool:
        try:
            await self.content.set_label(item_id, self.label)
            return True
        except (ExternalActionFailure, NotFoundError) as e:
            log.warning("Could not label item %s as solved: %s", item_id, e)
            return False

    async def _post_solution(self, item_id: str, comment_id: str) -> tuple[bool, Optional[str]]:
        try:
            comment = await self.content.get_comment(item_id, comment_id)
        except NotFoundError:
            log.info("Solution comment %s not found on item %s", comment_id, item_id)
            return False, "Solution comment not found"
        except ExternalActionFailure as e:
            log.warning("Could not fetch comment %s: %s", comment_id, e)
            return False, "Could not fetch the solution comment"

        try:
            await self.content.post_comment(item_id, solution_text(comment.author_name, comment.body))
        except (ExternalActionFailure, NotFoundError) as e:
            log.warning("Failed to pin solution on item %s: %s", item_id, e)
            return False, "Failed to pin the solution"
        return True, None
