from __future__ import annotations

from datetime import datetime
from typing import Optional

from .models import ActionKind, Directive, RemovalMode, RemovalPolicy, SolveState


def decide(
    policy: RemovalPolicy,
    item_id: str,
    collection_id: str,
    solved_at: datetime,
) -> Optional[Directive]:
    """Map the collection's removal policy onto zero or one directive.

    Deterministic, no I/O:
    - off: nothing
    - remove_immediately: run now, in the same unit of work
    - remove_after_delay: run at solved_at + delay, via the scheduler
    """

    if policy.mode is RemovalMode.OFF:
        return None

    if policy.mode is RemovalMode.REMOVE_IMMEDIATELY:
        return Directive(
            action_kind=ActionKind.REMOVE,
            target_item_id=item_id,
            collection_id=collection_id,
            run_at=solved_at,
            guard_snapshot=SolveState.SOLVED,
            immediate=True,
        )

    if policy.mode is RemovalMode.REMOVE_AFTER_DELAY:
        return Directive(
            action_kind=ActionKind.REMOVE,
            target_item_id=item_id,
            collection_id=collection_id,
            run_at=solved_at + policy.delay,
            guard_snapshot=SolveState.SOLVED,
        )

    raise ValueError(f"Unknown removal mode: {policy.mode!r}")
