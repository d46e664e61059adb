"""Tests for the NDJSON log source, log entry parsing and the memory store."""
from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest

from alertpilot.errors import LogSourceError, NotFoundError
from alertpilot.models import LogEntry, ReportScheduleConfig, parse_timestamp
from alertpilot.sources.base import LogSource
from alertpilot.sources.file_source import FileLogSource, parse_line
from alertpilot.storage import MemoryStore

from conftest import NOW


@pytest.fixture()
def records() -> list[dict]:
    return [
        {"timestamp": "2024-01-01T11:50:00", "level": "INFO", "message": "startup", "source": "api"},
        {"timestamp": "2024-01-01T11:55:00", "level": "ERROR", "message": "disk full", "source": "db",
         "metadata": {"value": 97}},
        {"timestamp": "2024-01-01T11:58:00", "level": "WARN", "message": "retry", "source": "api"},
        {"timestamp": "2024-01-01T12:00:00", "level": "ERROR", "message": "timeout", "source": "api"},
        {"timestamp": "2024-01-01T12:05:00", "level": "ERROR", "message": "late", "source": "api"},
    ]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

class TestParseLine:
    def test_full_record(self) -> None:
        entry = parse_line(json.dumps({
            "timestamp": "2024-01-01T12:00:00Z", "level": "ERROR", "message": "boom",
            "source": "api", "metadata": {"value": 1.5},
        }))
        assert entry == LogEntry(
            level="ERROR", message="boom", timestamp=NOW, source="api", metadata={"value": 1.5}
        )

    def test_msg_alias(self) -> None:
        entry = parse_line('{"time": "2024-01-01 12:00:00", "msg": "hello"}')
        assert entry is not None
        assert entry.message == "hello"
        assert entry.level == "INFO"

    @pytest.mark.parametrize("line", ["", "   ", "not json", "[1, 2]", '{"message": "no time"}'])
    def test_unusable_lines(self, line: str) -> None:
        assert parse_line(line) is None

    def test_parse_timestamp_formats(self) -> None:
        assert parse_timestamp("2024-01-01T12:00:00+02:00") == NOW
        assert parse_timestamp("01/Jan/2024:12:00:00 +0000") == NOW
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


# ---------------------------------------------------------------------------
# FileLogSource
# ---------------------------------------------------------------------------

class TestFileLogSource:
    def test_satisfies_protocol(self, ndjson_file, records) -> None:
        assert isinstance(FileLogSource(ndjson_file(records)), LogSource)

    def test_time_range_is_inclusive(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        found = source.search("*", NOW - timedelta(minutes=5), NOW, 100)
        assert [e.message for e in found] == ["disk full", "retry", "timeout"]

    def test_query_is_case_insensitive_regex(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        found = source.search("error", NOW - timedelta(hours=1), NOW, 100)
        assert [e.message for e in found] == ["disk full", "timeout"]

    def test_query_matches_source_field(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        found = source.search("^db$", NOW - timedelta(hours=1), NOW, 100)
        assert [e.message for e in found] == ["disk full"]

    def test_max_entries(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        assert len(source.search("", NOW - timedelta(hours=1), NOW + timedelta(hours=1), 2)) == 2

    def test_metadata_is_kept(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        found = source.search("disk", NOW - timedelta(hours=1), NOW, 10)
        assert found[0].metadata == {"value": 97}

    def test_invalid_regex(self, ndjson_file, records) -> None:
        source = FileLogSource(ndjson_file(records))
        with pytest.raises(LogSourceError):
            source.search("([", NOW - timedelta(hours=1), NOW, 10)

    def test_missing_file(self, tmp_path) -> None:
        source = FileLogSource(tmp_path / "absent.ndjson")
        with pytest.raises(LogSourceError):
            source.search("*", NOW - timedelta(hours=1), NOW, 10)

    def test_appended_lines_are_seen(self, ndjson_file, records) -> None:
        path = ndjson_file(records[:1])
        source = FileLogSource(path)
        window = (NOW - timedelta(hours=1), NOW)
        assert len(source.search("*", *window, 10)) == 1
        with path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(records[3]) + "\n")
        assert len(source.search("*", *window, 10)) == 2


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------

def _schedule(schedule_id: str = "s1") -> ReportScheduleConfig:
    return ReportScheduleConfig(id=schedule_id, report_id="rep", name="weekly", cron="0 9 * * 1")


class TestMemoryStore:
    def test_crud(self) -> None:
        store: MemoryStore[ReportScheduleConfig] = MemoryStore()
        store.create(_schedule())
        assert store.get("s1") is not None
        assert len(store) == 1
        updated = store.update("s1", {"name": "renamed"})
        assert updated.name == "renamed"
        assert store.delete("s1") is True
        assert store.delete("s1") is False
        assert store.get("s1") is None

    def test_reads_are_snapshots(self) -> None:
        store = MemoryStore([_schedule()])
        copy = store.get("s1")
        copy.recipients.append("someone@example.com")
        assert store.get("s1").recipients == []

    def test_update_touches_only_named_fields(self) -> None:
        store = MemoryStore([_schedule()])
        store.update("s1", {"last_run": datetime(2024, 1, 1)})
        item = store.get("s1")
        assert item.name == "weekly"
        assert item.last_run == datetime(2024, 1, 1)

    def test_update_unknown_field(self) -> None:
        store = MemoryStore([_schedule()])
        with pytest.raises(ValueError):
            store.update("s1", {"colour": "red"})

    def test_update_missing_item(self) -> None:
        with pytest.raises(NotFoundError):
            MemoryStore().update("nope", {"name": "x"})

    def test_duplicate_create(self) -> None:
        store = MemoryStore([_schedule()])
        with pytest.raises(ValueError):
            store.create(_schedule())
