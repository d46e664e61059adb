"""NDJSON file-backed log source.

Each line of the file is a JSON object with at least a timestamp; ``level``,
``message``, ``source`` and ``metadata`` are picked up when present::

    {"timestamp": "2025-08-01T10:00:01", "level": "ERROR", "message": "disk full",
     "source": "api", "metadata": {"value": 512}}

The query is a case-insensitive regex searched in the level, message and
source of each entry.  ``*`` or an empty query matches everything.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterator

from ..errors import LogSourceError
from ..models import LogEntry

logger = logging.getLogger(__name__)

_SEARCH_FIELDS = ("level", "message", "source")


def parse_line(line: str) -> LogEntry | None:
    """Parse a single NDJSON line. Returns None for blank lines or unusable records."""
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    try:
        return LogEntry.from_dict(raw)
    except ValueError:
        return None


class FileLogSource:
    """Search an NDJSON log file.

    The file is re-read on every search so appended lines are seen on the
    next tick.  Memory usage is bounded by ``max_entries``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _compile(self, query: str) -> re.Pattern[str] | None:
        if not query.strip() or query.strip() == "*":
            return None
        try:
            return re.compile(query, re.IGNORECASE)
        except re.error as exc:
            raise LogSourceError(f"invalid query {query!r}: {exc}") from exc

    def _entries(self) -> Iterator[LogEntry]:
        try:
            with self._path.open(encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    entry = parse_line(line)
                    if entry is not None:
                        yield entry
        except OSError as exc:
            raise LogSourceError(f"cannot read {self._path}: {exc}") from exc

    def search(
        self,
        query: str,
        start: datetime,
        end: datetime,
        max_entries: int,
    ) -> list[LogEntry]:
        regex = self._compile(query)
        results: list[LogEntry] = []
        for entry in self._entries():
            if entry.timestamp < start or entry.timestamp > end:
                continue
            if regex is not None and not any(
                regex.search(str(getattr(entry, f))) for f in _SEARCH_FIELDS
            ):
                continue
            results.append(entry)
            if len(results) >= max_entries:
                break
        logger.debug("Search %r in %s returned %d entries", query, self._path, len(results))
        return results
