from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

from solvedbot.constants import DEFAULT_STATS_CRON
from solvedbot.database import initialize_database
from solvedbot.services.counter_store import CounterStore
from solvedbot.services.job_runner import JobRunner
from solvedbot.services.job_store import JobStore
from solvedbot.services.post_state_store import PostStateStore
from solvedbot.services.stats import RuntimeStats
from solvedbot.solved.executor import GuardedActionExecutor
from solvedbot.solved.interfaces import Identity, Label
from solvedbot.solved.report import ReportRenderer
from solvedbot.solved.service import SolvedService
from solvedbot.testing.fakes import FakeContentApi, FakePublisher, StaticConfig

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

AUTHOR = Identity(id="100", name="asker")
MOD = Identity(id="200", name="helper-mod")
STRANGER = Identity(id="300", name="passerby")


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class Harness:
    db_path: str
    clock: FakeClock
    state: PostStateStore
    counters: CounterStore
    jobs: JobStore
    runner: JobRunner
    content: FakeContentApi
    publisher: FakePublisher
    config: StaticConfig
    stats: RuntimeStats
    executor: GuardedActionExecutor
    service: SolvedService

    async def force_unsolved(self, item_id: str) -> None:
        """Revert a record behind the model's back, the way an operator might."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE solved_posts SET state = 'unsolved', solved_at_iso = NULL, solved_by = NULL WHERE item_id = ?",
                (item_id,),
            )
            await db.commit()

    async def delete_record(self, item_id: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM solved_posts WHERE item_id = ?", (item_id,))
            await db.commit()


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "solvedbot.sqlite3")


@pytest.fixture
def harness(db_path) -> Harness:
    clock = FakeClock()
    stats = RuntimeStats()
    state = PostStateStore(db_path)
    counters = CounterStore(db_path)
    jobs = JobStore(db_path)
    asyncio.run(initialize_database(db_path, [state, counters, jobs]))

    content = FakeContentApi()
    content.add_post("p1", AUTHOR)
    content.add_moderator("c1", MOD)
    publisher = FakePublisher()
    config = StaticConfig()
    runner = JobRunner(jobs, stats=stats, clock=clock)
    executor = GuardedActionExecutor(state_store=state, content=content, stats=stats)
    service = SolvedService(
        state_store=state,
        counters=counters,
        config=config,
        content=content,
        identity=content,
        transport=runner,
        executor=executor,
        reports=ReportRenderer(counters=counters, publisher=publisher),
        label=Label(text="✓ Solved", background_color="#46d160", text_color="light"),
        stats_cron=DEFAULT_STATS_CRON,
        clock=clock,
    )
    for job_name, handler in service.job_handlers().items():
        runner.register(job_name, handler)

    return Harness(
        db_path=db_path,
        clock=clock,
        state=state,
        counters=counters,
        jobs=jobs,
        runner=runner,
        content=content,
        publisher=publisher,
        config=config,
        stats=stats,
        executor=executor,
        service=service,
    )
