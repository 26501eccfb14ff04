from __future__ import annotations

import logging
from typing import Optional

from ..errors import ExternalActionFailure, NotFoundError
from ..services.post_state_store import PostStateStore
from ..services.stats import RuntimeStats
from .interfaces import ContentApi
from .models import ActionKind, Directive, ExecuteOutcome

log = logging.getLogger("solvedbot.executor")


class GuardedActionExecutor:
    """Runs a directive only if the item is still in the guarded state.

    Read, check, act. Every step is safe to repeat, so a redelivered job
    is harmless: the platform treats removing a removed post as a no-op.
    External failures are logged and abandoned, never retried here.
    """

    def __init__(
        self,
        *,
        state_store: PostStateStore,
        content: ContentApi,
        stats: Optional[RuntimeStats] = None,
        verify_exists: bool = True,
    ) -> None:
        self.state = state_store
        self.content = content
        self.stats = stats or RuntimeStats()
        self.verify_exists = verify_exists

    async def execute(self, directive: Directive) -> ExecuteOutcome:
        item_id = directive.target_item_id

        record = await self.state.get_item(item_id)
        if record is None:
            log.info("Item %s has no record; skipping %s", item_id, directive.action_kind.value)
            self.stats.missing_items += 1
            return ExecuteOutcome.ITEM_MISSING

        if record.state != directive.guard_snapshot:
            log.info(
                "Guard failed, skipping %s for item %s (expected %s, found %s)",
                directive.action_kind.value,
                item_id,
                directive.guard_snapshot.value,
                record.state.value,
            )
            self.stats.guard_skips += 1
            return ExecuteOutcome.GUARD_FAILED

        if self.verify_exists:
            try:
                info = await self.content.get_item(item_id)
            except NotFoundError:
                info = None
            except ExternalActionFailure:
                log.exception("Could not look up item %s; abandoning %s", item_id, directive.action_kind.value)
                self.stats.action_failures += 1
                return ExecuteOutcome.ACTION_FAILED
            if info is None or not info.exists:
                log.info("Item %s no longer exists on the platform", item_id)
                self.stats.missing_items += 1
                return ExecuteOutcome.ITEM_MISSING

        return await self._perform(directive)

    async def _perform(self, directive: Directive) -> ExecuteOutcome:
        item_id = directive.target_item_id

        if directive.action_kind is ActionKind.REMOVE:
            try:
                await self.content.remove_item(item_id)
            except NotFoundError:
                log.info("Item %s already removed", item_id)
                self.stats.already_removed += 1
                return ExecuteOutcome.ALREADY_REMOVED
            except ExternalActionFailure:
                log.exception("Removal of item %s failed; abandoning", item_id)
                self.stats.action_failures += 1
                return ExecuteOutcome.ACTION_FAILED

            self.stats.removals += 1
            log.info("Removed solved item %s in collection %s", item_id, directive.collection_id)
            return ExecuteOutcome.REMOVED

        raise ValueError(f"Unsupported action kind: {directive.action_kind!r}")
