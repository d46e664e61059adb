"""Active-window check for alert rules.

Times are wall-clock minutes since midnight and both bounds are inclusive.
A window whose start is later than its end (``22:00``–``06:00``) runs over
midnight: it opens on each listed day and closes on the following morning,
so the early-morning part is attributed to the previous day.
"""
from __future__ import annotations

from datetime import datetime

from ..models import ActiveWindow, parse_hhmm
from .cron import cron_weekday


def in_active_window(window: ActiveWindow | None, now: datetime) -> bool:
    """Return True when a rule with this window may fire at *now*."""
    if window is None or not window.enabled:
        return True

    start = parse_hhmm(window.start_time)
    end = parse_hhmm(window.end_time)
    current = now.hour * 60 + now.minute
    today = cron_weekday(now)
    days = set(window.days_of_week)

    if start <= end:
        return today in days and start <= current <= end

    if current >= start:
        return today in days
    if current <= end:
        return (today - 1) % 7 in days
    return False
