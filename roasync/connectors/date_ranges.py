"""ROASYNC — Date Range Resolution.

Turns a named preset or an explicit from/to pair into a concrete, bounded
``DateRange``. Always daily granularity.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from roasync.core.errors import InvalidInput

PRESETS = (
    "today",
    "yesterday",
    "last_7d",
    "last_14d",
    "last_30d",
    "last_90d",
    "this_month",
    "last_month",
    "lifetime",
)

# "lifetime" is a bounded proxy for all-time; unbounded queries are impractical
LIFETIME_LOOKBACK_DAYS = 30


@dataclass(frozen=True)
class DateRange:
    since: date
    until: date
    preset: Optional[str] = None

    @property
    def days(self) -> int:
        return (self.until - self.since).days + 1

    def as_meta_time_range(self) -> dict:
        return {"since": self.since.isoformat(), "until": self.until.isoformat()}


def _parse(value: str, field: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a YYYY-MM-DD date, got {value!r}")


def _from_preset(preset: str, today: date) -> DateRange:
    if preset == "today":
        return DateRange(today, today, preset)
    if preset == "yesterday":
        day = today - timedelta(days=1)
        return DateRange(day, day, preset)
    if preset in ("last_7d", "last_14d", "last_30d", "last_90d"):
        days = int(preset[len("last_") : -1])
        return DateRange(today - timedelta(days=days), today - timedelta(days=1), preset)
    if preset == "this_month":
        return DateRange(today.replace(day=1), today, preset)
    if preset == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return DateRange(last_day.replace(day=1), last_day, preset)
    if preset == "lifetime":
        return DateRange(
            today - timedelta(days=LIFETIME_LOOKBACK_DAYS), today, preset
        )
    raise InvalidInput(f"Unknown date preset '{preset}'. Valid: {', '.join(PRESETS)}")


def resolve_date_range(
    date_preset: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    today: Optional[date] = None,
) -> DateRange:
    """Resolve request parameters into a DateRange.

    Explicit ``date_from``/``date_to`` win over a preset. Omitting both falls
    back to ``last_30d``.
    """
    today = today or date.today()

    if date_from or date_to:
        if not (date_from and date_to):
            raise InvalidInput("date_from and date_to must be given together")
        since = _parse(date_from, "date_from")
        until = _parse(date_to, "date_to")
        if since > until:
            raise InvalidInput(f"date_from {date_from} is after date_to {date_to}")
        return DateRange(since, until)

    return _from_preset(date_preset or "last_30d", today)
