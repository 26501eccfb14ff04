from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class RuntimeStats:
    started_at: float = field(default_factory=time.time)
    jobs_scheduled: int = 0
    jobs_executed: int = 0
    jobs_failed: int = 0
    jobs_dropped: int = 0
    removals: int = 0
    already_removed: int = 0
    guard_skips: int = 0
    missing_items: int = 0
    action_failures: int = 0

    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)
