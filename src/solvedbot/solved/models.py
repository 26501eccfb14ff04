from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from ..errors import MalformedPayloadError

PAYLOAD_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class SolveState(str, Enum):
    UNSOLVED = "unsolved"
    SOLVED = "solved"


class Metric(str, Enum):
    TOTAL = "total"
    SOLVED = "solved"


class ActionKind(str, Enum):
    REMOVE = "remove"


class RemovalMode(str, Enum):
    OFF = "off"
    REMOVE_IMMEDIATELY = "remove_immediately"
    REMOVE_AFTER_DELAY = "remove_after_delay"


class MarkOutcome(str, Enum):
    SOLVED = "solved"
    ALREADY_SOLVED = "already_solved"
    NOT_FOUND = "not_found"


class ExecuteOutcome(str, Enum):
    REMOVED = "removed"
    ALREADY_REMOVED = "already_removed"
    GUARD_FAILED = "guard_failed"
    ITEM_MISSING = "item_missing"
    ACTION_FAILED = "action_failed"


@dataclass(frozen=True)
class RemovalPolicy:
    mode: RemovalMode
    delay: timedelta = timedelta(0)


@dataclass(frozen=True)
class PostRecord:
    """Current lifecycle record of one tracked post."""

    item_id: str
    collection_id: str
    state: SolveState
    created_at: datetime
    solved_at: Optional[datetime] = None
    solved_by: Optional[str] = None

    @property
    def is_solved(self) -> bool:
        return self.state is SolveState.SOLVED


@dataclass(frozen=True)
class Directive:
    """Request to perform `action_kind` on an item no earlier than `run_at`.

    `guard_snapshot` is the state that must still hold when the action runs.
    """

    action_kind: ActionKind
    target_item_id: str
    collection_id: str
    run_at: datetime
    guard_snapshot: SolveState
    immediate: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "version": PAYLOAD_VERSION,
            "action_kind": self.action_kind.value,
            "target_item_id": self.target_item_id,
            "collection_id": self.collection_id,
            "run_at": self.run_at.isoformat(),
            "guard_snapshot": self.guard_snapshot.value,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> Directive:
        if not isinstance(payload, dict):
            raise MalformedPayloadError("payload must be an object")
        if payload.get("version") != PAYLOAD_VERSION:
            raise MalformedPayloadError(f"unsupported payload version: {payload.get('version')!r}")

        for key in ("target_item_id", "collection_id"):
            value = payload.get(key)
            if not isinstance(value, str) or not value:
                raise MalformedPayloadError(f"{key} must be a non-empty string")

        try:
            action_kind = ActionKind(payload.get("action_kind"))
        except ValueError as e:
            raise MalformedPayloadError(f"unknown action_kind: {payload.get('action_kind')!r}") from e
        try:
            guard = SolveState(payload.get("guard_snapshot"))
        except ValueError as e:
            raise MalformedPayloadError(f"unknown guard_snapshot: {payload.get('guard_snapshot')!r}") from e

        run_at_raw = payload.get("run_at")
        if not isinstance(run_at_raw, str):
            raise MalformedPayloadError("run_at must be an ISO-8601 string")
        try:
            run_at = parse_iso(run_at_raw)
        except ValueError as e:
            raise MalformedPayloadError(f"invalid run_at: {run_at_raw!r}") from e

        return cls(
            action_kind=action_kind,
            target_item_id=payload["target_item_id"],
            collection_id=payload["collection_id"],
            run_at=run_at,
            guard_snapshot=guard,
        )


@dataclass(frozen=True)
class MarkSolvedResult:
    outcome: MarkOutcome
    label_applied: bool = False
    comment_posted: bool = False
    comment_error: Optional[str] = None
    directive: Optional[Directive] = None
    removed_immediately: bool = False
