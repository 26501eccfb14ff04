from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import format_datetime

from ..constants import STATS_PAGE_KEY, STATS_PAGE_REASON
from ..errors import SolvedBotError
from ..services.counter_store import CounterStore
from .interfaces import Publisher
from .models import Metric, utcnow

log = logging.getLogger("solvedbot.report")


def format_rate(total: int, solved: int) -> str:
    if total <= 0:
        return "0.0%"
    return f"{solved / total * 100:.1f}%"


def summary_line(total: int, solved: int) -> str:
    return f"📊 {solved}/{total} solved ({format_rate(total, solved)})"


def render_report(total: int, solved: int, now: datetime) -> str:
    return (
        "# SolvedBot Statistics\n\n"
        f"**Total Posts Tracked:** {total}\n\n"
        f"**Posts Marked Solved:** {solved}\n\n"
        f"**Solve Rate:** {format_rate(total, solved)}\n\n"
        "---\n\n"
        f"*Last updated: {format_datetime(now.astimezone(timezone.utc), usegmt=True)}*\n\n"
        "*Powered by SolvedBot*"
    )


class ReportRenderer:
    def __init__(self, *, counters: CounterStore, publisher: Publisher) -> None:
        self.counters = counters
        self.publisher = publisher

    async def render(self, collection_id: str, now: datetime | None = None) -> str:
        values = await self.counters.read_all(collection_id)
        return render_report(values[Metric.TOTAL], values[Metric.SOLVED], now or utcnow())

    async def publish(self, collection_id: str, now: datetime | None = None) -> str:
        """Render and publish. A failed publish is logged; the next tick overwrites it."""
        content = await self.render(collection_id, now)
        try:
            await self.publisher.write_page(collection_id, STATS_PAGE_KEY, content, STATS_PAGE_REASON)
        except SolvedBotError as e:
            log.error("Failed to publish stats for %s: %s", collection_id, e)
        else:
            log.info("Stats page updated for %s", collection_id)
        return content
