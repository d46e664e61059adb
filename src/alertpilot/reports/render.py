"""Render report rows into a file artifact (CSV or HTML).

PDF output needs an external renderer; asking this one for it fails the
execution with a descriptive error.
"""
from __future__ import annotations

import csv
import html
import io
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import Settings
from ..errors import ReportExecutionError
from .definition import ReportDefinition


def _slug(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_") or "report"


def _columns(rows: list[dict[str, Any]]) -> list[str]:
    """Union of row keys, in first-seen order."""
    cols: list[str] = []
    for row in rows:
        for key in row:
            if key not in cols:
                cols.append(key)
    return cols


def render_csv(rows: list[dict[str, Any]]) -> str:
    if not rows:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(
        buf, fieldnames=_columns(rows), extrasaction="ignore", lineterminator="\n"
    )
    writer.writeheader()
    writer.writerows(rows)
    return buf.getvalue()


def render_html(definition: ReportDefinition, rows: list[dict[str, Any]]) -> str:
    """Render rows as a standalone HTML table; every value is escaped."""
    cols = _columns(rows)
    title = html.escape(definition.name, quote=True)
    head = "".join(f"<th>{html.escape(str(c), quote=True)}</th>" for c in cols)
    body = "\n".join(
        "<tr>" + "".join(f"<td>{html.escape(str(row.get(c, '')), quote=True)}</td>" for c in cols) + "</tr>"
        for row in rows
    )
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><meta charset=\"utf-8\"><title>{title}</title></head>\n"
        f"<body><h1>{title}</h1>\n"
        f"<p>{len(rows)} records</p>\n"
        f"<table>\n<thead><tr>{head}</tr></thead>\n<tbody>\n{body}\n</tbody>\n</table>\n"
        "</body></html>\n"
    )


class ReportRenderer:
    """Write rendered reports into *output_dir* and return the file path."""

    def __init__(self, output_dir: str | Path = "reports") -> None:
        self._output_dir = Path(output_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReportRenderer":
        return cls(settings.report_output_dir)

    def render(
        self,
        definition: ReportDefinition,
        rows: list[dict[str, Any]],
        fmt: str,
        now: datetime | None = None,
    ) -> str:
        if fmt == "csv":
            content = render_csv(rows)
        elif fmt == "html":
            content = render_html(definition, rows)
        else:
            raise ReportExecutionError(f"no renderer available for {fmt!r} reports")

        stamp = (now or datetime.now()).strftime("%Y-%m-%d_%H%M%S")
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / f"{_slug(definition.name)}_{stamp}.{fmt}"
        path.write_text(content, encoding="utf-8")
        return str(path)
