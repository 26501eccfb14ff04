from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import pytest

from solvedbot.constants import REMOVAL_JOB_NAME
from solvedbot.errors import NotAuthenticatedError, PermissionDeniedError, TransientStoreError
from solvedbot.solved.interfaces import CommentInfo
from solvedbot.solved.models import MarkOutcome, Metric, RemovalMode, SolveState
from solvedbot.solved.service import solution_text

from conftest import AUTHOR, MOD, STRANGER, T0


def _counts(h, collection_id="c1"):
    return asyncio.run(h.counters.read_all(collection_id))


class TestDeferredRemoval:
    def test_removed_after_delay_exactly_once(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        solved_at = h.clock.advance(seconds=10)
        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id))

        assert result.outcome is MarkOutcome.SOLVED
        assert result.directive is not None
        assert result.directive.run_at == solved_at + timedelta(hours=48)
        assert result.removed_immediately is False
        assert h.content.removed == []

        early = asyncio.run(h.runner.run_due(solved_at + timedelta(hours=47, minutes=59)))
        assert early.executed == 0
        assert h.content.removed == []

        due = asyncio.run(h.runner.run_due(solved_at + timedelta(hours=48)))
        assert due.executed == 1
        assert h.content.removed == ["p1"]
        assert asyncio.run(h.jobs.pending(REMOVAL_JOB_NAME)) == []

        # Nothing left to deliver.
        asyncio.run(h.runner.run_due(solved_at + timedelta(hours=96)))
        assert h.content.removed == ["p1"]

    def test_guard_blocks_removal_after_state_reverts(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))
        asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0 + timedelta(seconds=10)))

        asyncio.run(h.force_unsolved("p1"))
        summary = asyncio.run(h.runner.run_due(T0 + timedelta(hours=49)))

        assert summary.executed == 1
        assert h.content.removed == []
        assert h.stats.guard_skips == 1
        rec = asyncio.run(h.state.get_item("p1"))
        assert rec.state is SolveState.UNSOLVED

    def test_redelivered_job_removes_once(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 1)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))
        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))
        payload = result.directive.to_payload()

        asyncio.run(h.runner.run_due(T0 + timedelta(hours=2)))
        asyncio.run(h.service.on_deferred_job(payload))

        assert h.content.removed == ["p1"]
        assert h.stats.removals == 1

    def test_config_change_does_not_cancel_pending_directive(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 2)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))
        asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))

        h.config.set("c1", RemovalMode.OFF)
        asyncio.run(h.runner.run_due(T0 + timedelta(hours=3)))

        assert h.content.removed == ["p1"]


class TestImmediateAndOff:
    def test_remove_immediately_removes_inline(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_IMMEDIATELY)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", MOD.id))

        assert result.removed_immediately is True
        assert result.directive is None
        assert h.content.removed == ["p1"]
        assert asyncio.run(h.jobs.pending(REMOVAL_JOB_NAME)) == []

    def test_off_only_labels(self, harness):
        h = harness
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id))

        assert result.outcome is MarkOutcome.SOLVED
        assert result.label_applied is True
        assert result.directive is None
        assert [item for item, _ in h.content.labels] == ["p1"]
        assert asyncio.run(h.jobs.pending(REMOVAL_JOB_NAME)) == []
        assert h.content.removed == []

    def test_mode_is_read_at_decision_time(self, harness):
        h = harness
        asyncio.run(h.service.on_item_created("p1", "c1", T0))
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 24)

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))

        assert result.directive is not None
        assert h.config.reads == 1


class TestCountersAndIdempotence:
    def test_counts_after_three_solved_of_ten(self, harness):
        h = harness
        for i in range(10):
            h.content.add_post(f"q{i}", AUTHOR)
            asyncio.run(h.service.on_item_created(f"q{i}", "c1", T0))
        for i in range(3):
            asyncio.run(h.service.on_marked_solved(f"q{i}", "c1", AUTHOR.id))

        assert _counts(h) == {Metric.TOTAL: 10, Metric.SOLVED: 3}
        assert asyncio.run(h.service.stats_summary("c1")) == "📊 3/10 solved (30.0%)"

    def test_duplicate_create_counts_once(self, harness):
        h = harness
        assert asyncio.run(h.service.on_item_created("p1", "c1", T0)) is True
        assert asyncio.run(h.service.on_item_created("p1", "c1", T0)) is False
        assert _counts(h)[Metric.TOTAL] == 1

    def test_re_marking_is_a_no_op(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)
        asyncio.run(h.service.on_item_created("p1", "c1", T0))
        asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))

        again = asyncio.run(h.service.on_marked_solved("p1", "c1", MOD.id, solved_at=T0 + timedelta(hours=1)))

        assert again.outcome is MarkOutcome.ALREADY_SOLVED
        assert again.directive is None
        assert _counts(h)[Metric.SOLVED] == 1
        assert len(h.content.labels) == 1
        assert len(asyncio.run(h.jobs.pending(REMOVAL_JOB_NAME))) == 1
        rec = asyncio.run(h.state.get_item("p1"))
        assert rec.solved_at == T0
        assert rec.solved_by == AUTHOR.id

    def test_concurrent_marks_transition_once(self, harness):
        h = harness
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        async def race():
            return await asyncio.gather(
                h.service.on_marked_solved("p1", "c1", AUTHOR.id),
                h.service.on_marked_solved("p1", "c1", MOD.id),
            )

        results = asyncio.run(race())
        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["already_solved", "solved"]
        assert _counts(h)[Metric.SOLVED] == 1

    def test_unseen_post_is_tracked_when_solved(self, harness):
        h = harness
        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id))

        assert result.outcome is MarkOutcome.SOLVED
        assert _counts(h) == {Metric.TOTAL: 1, Metric.SOLVED: 1}


class TestSideEffects:
    def test_label_failure_does_not_undo_solve(self, harness):
        h = harness
        h.content.fail_label = True
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id))

        assert result.outcome is MarkOutcome.SOLVED
        assert result.label_applied is False
        assert asyncio.run(h.state.get_item("p1")).is_solved

    def test_solution_comment_is_posted(self, harness):
        h = harness
        h.content.add_post("p2", AUTHOR, comments={"m1": CommentInfo(author_name="helper", body="restart it\nthen retry")})
        asyncio.run(h.service.on_item_created("p2", "c1", T0))

        result = asyncio.run(h.service.on_marked_solved("p2", "c1", AUTHOR.id, comment_id="m1"))

        assert result.comment_posted is True
        assert result.comment_error is None
        item_id, text = h.content.comments[0]
        assert item_id == "p2"
        assert "**Solution by helper:**" in text
        assert "> restart it\n> then retry" in text

    def test_missing_solution_comment_is_reported(self, harness):
        h = harness
        asyncio.run(h.service.on_item_created("p1", "c1", T0))

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, comment_id="nope"))

        assert result.outcome is MarkOutcome.SOLVED
        assert result.comment_posted is False
        assert result.comment_error == "Solution comment not found"

    def test_solution_text_truncates_long_answers(self):
        text = solution_text("helper", "x" * 5000)
        assert "x" * 1499 + "…" in text
        assert "x" * 1500 not in text


class TestPermissions:
    def test_author_and_moderator_may_mark(self, harness):
        asyncio.run(harness.service.check_can_mark_solved(AUTHOR, "p1", "c1"))
        asyncio.run(harness.service.check_can_mark_solved(MOD, "p1", "c1"))

    def test_stranger_is_denied(self, harness):
        with pytest.raises(PermissionDeniedError):
            asyncio.run(harness.service.check_can_mark_solved(STRANGER, "p1", "c1"))

    def test_no_actor_is_unauthenticated(self, harness):
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(harness.service.check_can_mark_solved(None, "p1", "c1"))

    def test_moderator_check(self, harness):
        asyncio.run(harness.service.check_is_moderator(MOD, "c1"))
        with pytest.raises(PermissionDeniedError):
            asyncio.run(harness.service.check_is_moderator(AUTHOR, "c1"))


class TestInstall:
    def test_installing_twice_keeps_one_schedule(self, harness):
        asyncio.run(harness.service.on_installed("c1"))
        asyncio.run(harness.service.on_installed("c1"))

        due = asyncio.run(harness.jobs.due_cron(int((T0 + timedelta(days=1)).timestamp())))
        assert [(c.job_name, c.scope_key) for c in due] == [("update-stats-page", "c1")]

    def test_scheduled_stats_tick_publishes(self, harness):
        asyncio.run(harness.service.on_installed("c1"))
        summary = asyncio.run(harness.runner.run_due(T0 + timedelta(days=1)))

        assert summary.cron_runs == 1
        assert len(harness.publisher.writes) == 1

    def test_uninstalling_drops_the_schedule(self, harness):
        asyncio.run(harness.service.on_installed("c1"))
        asyncio.run(harness.service.on_uninstalled("c1"))

        summary = asyncio.run(harness.runner.run_due(T0 + timedelta(days=2)))

        assert summary.cron_runs == 0
        assert harness.publisher.writes == []


class TestSchedulingEdges:
    def test_sub_second_solve_is_never_removed_early(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)
        solved_at = T0 + timedelta(seconds=10, milliseconds=900)
        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=solved_at))
        run_at = result.directive.run_at

        asyncio.run(h.runner.run_due(run_at - timedelta(milliseconds=800)))
        assert h.content.removed == []

        asyncio.run(h.runner.run_due(run_at + timedelta(milliseconds=100)))
        assert h.content.removed == ["p1"]

    def test_schedule_failure_is_logged_with_item(self, harness, monkeypatch, caplog):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)

        async def broken(job_name, run_at, payload):
            raise TransientStoreError("disk full")

        monkeypatch.setattr(h.runner, "schedule_once", broken)

        with caplog.at_level(logging.ERROR, logger="solvedbot.service"):
            with pytest.raises(TransientStoreError):
                asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))

        assert "Item p1 is solved but its remove" in caplog.text
        assert h.content.labels == []

    def test_directive_is_scheduled_even_if_label_fails(self, harness):
        h = harness
        h.config.set("c1", RemovalMode.REMOVE_AFTER_DELAY, 48)
        h.content.fail_label = True

        result = asyncio.run(h.service.on_marked_solved("p1", "c1", AUTHOR.id, solved_at=T0))

        assert result.label_applied is False
        assert len(asyncio.run(h.jobs.pending(REMOVAL_JOB_NAME))) == 1
