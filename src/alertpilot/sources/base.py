"""Log source Protocol — the search backend rules are evaluated against."""
from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import LogEntry


@runtime_checkable
class LogSource(Protocol):
    """Protocol for log/event backends — duck-typed, no inheritance required.

    The query string is opaque to alertpilot; each backend applies its own
    query-language semantics.  Implementations raise LogSourceError (or any
    exception) when the backend is unavailable; the caller treats that as a
    failure of the one rule being evaluated.
    """

    def search(
        self,
        query: str,
        start: datetime,
        end: datetime,
        max_entries: int,
    ) -> list[LogEntry]:
        """Return at most *max_entries* entries matching *query* within [start, end]."""
        ...
