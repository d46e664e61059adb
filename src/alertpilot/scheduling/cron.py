"""Cron expression evaluation — next execution instant for a 5-field schedule.

Field order::

    minute  hour  day-of-month  month  day-of-week
    0-59    0-23  1-31          1-12   0-7 (0 and 7 are Sunday)

Each field accepts ``*``, single values, ``a-b`` ranges, comma lists and
``/n`` steps (``*/15``, ``1-31/2``).  Month and weekday names (``JAN``,
``MON``) are accepted.  When both day-of-month and day-of-week are
restricted a day matches if *either* matches, as in Vixie cron.  A field
starting with ``*`` (``*/2`` included) counts as unrestricted.

Expressions that cannot be parsed, or that can never fire (``0 9 30 2 *``),
fall back to daily at ``DEFAULT_HOUR``:00.

Usage::

    next_run("0 9 * * 1", datetime(2024, 1, 1, 10, 0))
    # datetime(2024, 1, 8, 9, 0), the following Monday
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

DEFAULT_HOUR = 9

# Upper bound on how far ahead the search walks before giving up
_MAX_SEARCH_DAYS = 5 * 366

_MONTH_NAMES = {
    name: i
    for i, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"],
        start=1,
    )
}
_DAY_NAMES = {name: i for i, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])}

_DESCRIPTIONS: dict[str, str] = {
    "0 9 * * *": "Daily at 9:00 AM",
    "0 9 * * 1": "Weekly on Monday at 9:00 AM",
    "0 9 1 * *": "Monthly on the 1st at 9:00 AM",
    "0 9 1 1,4,7,10 *": "Quarterly (Jan, Apr, Jul, Oct) on the 1st at 9:00 AM",
}


def cron_weekday(moment: datetime) -> int:
    """Weekday in cron numbering: 0 = Sunday … 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def _parse_value(token: str, names: dict[str, int]) -> int:
    upper = token.upper()
    if upper in names:
        return names[upper]
    return int(token)


def _parse_field(text: str, lo: int, hi: int, names: dict[str, int] | None = None) -> frozenset[int]:
    names = names or {}
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ValueError(f"empty list item in {text!r}")
        step = 1
        has_step = "/" in part
        if has_step:
            part, raw_step = part.split("/", 1)
            step = int(raw_step)
            if step <= 0:
                raise ValueError(f"step must be positive in {text!r}")
        if part == "*":
            start, end = lo, hi
        elif "-" in part:
            raw_start, raw_end = part.split("-", 1)
            start, end = _parse_value(raw_start, names), _parse_value(raw_end, names)
        else:
            start = _parse_value(part, names)
            end = hi if has_step else start
        if start < lo or end > hi or start > end:
            raise ValueError(f"value out of range {lo}-{hi} in {text!r}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression."""

    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        fields = expression.split()
        if len(fields) != 5:
            raise ValueError(f"expected 5 fields, got {len(fields)} in {expression!r}")
        minute, hour, dom, month, dow = fields
        weekdays = _parse_field(dow, 0, 7, _DAY_NAMES)
        if 7 in weekdays:
            weekdays = (weekdays - {7}) | {0}
        return cls(
            minutes=_parse_field(minute, 0, 59),
            hours=_parse_field(hour, 0, 23),
            days=_parse_field(dom, 1, 31),
            months=_parse_field(month, 1, 12, _MONTH_NAMES),
            weekdays=weekdays,
            day_restricted=not dom.startswith("*"),
            weekday_restricted=not dow.startswith("*"),
        )

    def matches_day(self, moment: datetime) -> bool:
        dom = moment.day in self.days
        dow = cron_weekday(moment) in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return dom or dow
        return dom and dow

    def next_after(self, now: datetime) -> datetime | None:
        """First matching minute strictly after *now*, or None if none within the search horizon."""
        candidate = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=_MAX_SEARCH_DAYS)
        while candidate < limit:
            if candidate.month not in self.months:
                if candidate.month == 12:
                    candidate = candidate.replace(year=candidate.year + 1, month=1, day=1, hour=0, minute=0)
                else:
                    candidate = candidate.replace(month=candidate.month + 1, day=1, hour=0, minute=0)
                continue
            if not self.matches_day(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate
        return None


def _daily_fallback(now: datetime) -> datetime:
    candidate = now.replace(hour=DEFAULT_HOUR, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_run(expression: str, now: datetime) -> datetime:
    """Return the next instant strictly after *now* at which *expression* fires."""
    try:
        schedule = CronSchedule.parse(expression)
    except ValueError as exc:
        logger.warning(
            "Unrecognised cron expression %r (%s) — defaulting to daily at %02d:00",
            expression, exc, DEFAULT_HOUR,
        )
        return _daily_fallback(now)

    result = schedule.next_after(now)
    if result is None:
        logger.warning(
            "Cron expression %r never fires — defaulting to daily at %02d:00",
            expression, DEFAULT_HOUR,
        )
        return _daily_fallback(now)
    return result


def describe(expression: str) -> str:
    """Human-readable description of the well-known schedule presets."""
    return _DESCRIPTIONS.get(" ".join(expression.split()), "Custom schedule")
