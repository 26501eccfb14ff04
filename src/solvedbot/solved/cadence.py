from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class Cadence:
    """Parsed cron expression restricted to minute and hour fields.

    Day-of-month, month and day-of-week must be `*`, which covers the
    daily and hourly cadences this bot needs.
    """

    expr: str
    minutes: tuple[int, ...]
    hours: tuple[int, ...]

    def next_after(self, after: datetime) -> datetime:
        if after.tzinfo is None:
            after = after.replace(tzinfo=timezone.utc)
        after = after.astimezone(timezone.utc)
        day = after.replace(hour=0, minute=0, second=0, microsecond=0)
        for offset in (0, 1):
            base = day + timedelta(days=offset)
            for hour in self.hours:
                for minute in self.minutes:
                    candidate = base.replace(hour=hour, minute=minute)
                    if candidate > after:
                        return candidate
        raise AssertionError("unreachable: every cadence fires within two days")


def _parse_field(raw: str, name: str, upper: int) -> tuple[int, ...]:
    if raw == "*":
        return tuple(range(upper))
    if raw.startswith("*/"):
        try:
            step = int(raw[2:])
        except ValueError:
            raise ValueError(f"invalid {name} step: {raw!r}") from None
        if step <= 0 or step >= upper:
            raise ValueError(f"{name} step out of range: {raw!r}")
        return tuple(range(0, upper, step))

    values: set[int] = set()
    for part in raw.split(","):
        try:
            v = int(part)
        except ValueError:
            raise ValueError(f"invalid {name}: {raw!r}") from None
        if not 0 <= v < upper:
            raise ValueError(f"{name} out of range: {v}")
        values.add(v)
    return tuple(sorted(values))


def parse_cadence(expr: str) -> Cadence:
    fields = (expr or "").split()
    if len(fields) != 5:
        raise ValueError(f"cron expression must have 5 fields: {expr!r}")
    minute, hour, dom, month, dow = fields
    if (dom, month, dow) != ("*", "*", "*"):
        raise ValueError(f"only minute and hour may be restricted: {expr!r}")
    return Cadence(
        expr=" ".join(fields),
        minutes=_parse_field(minute, "minute", 60),
        hours=_parse_field(hour, "hour", 24),
    )


def next_run(cron_expr: str, after: datetime) -> datetime:
    return parse_cadence(cron_expr).next_after(after)
