"""Report definitions and the query built from them.

A report selects fields from a data source, narrows it with filters and may
aggregate some fields.  ``build_query`` turns that definition into the query
document handed to the report data source::

    {
        "collection": "events",
        "filters": {"level": {"eq": "ERROR"}},
        "fields": ["timestamp", "message"],
        "aggregation": [{"$group": {"_id": None, "total": {"$sum": "$bytes"}}}],
        "limit": 10000,
    }
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from ..errors import ReportExecutionError

QUERY_LIMIT = 10000
DEFAULT_COLLECTION = "events"

FIELD_AGGREGATIONS = ("sum", "avg", "count", "min", "max")
FILTER_OPERATORS = ("eq", "ne", "gt", "gte", "lt", "lte", "in", "nin", "contains")


@dataclass
class ReportField:
    id: str
    name: str
    type: str = "string"
    source: str = DEFAULT_COLLECTION
    aggregation: str | None = None


@dataclass
class ReportFilter:
    field: str
    operator: str
    value: Any
    label: str = ""


@dataclass
class ReportDefinition:
    id: str
    name: str
    data_sources: list[str] = field(default_factory=lambda: [DEFAULT_COLLECTION])
    fields: list[ReportField] = field(default_factory=list)
    filters: list[ReportFilter] = field(default_factory=list)
    description: str = ""


class ReportDefinitionStore(Protocol):
    def get(self, report_id: str) -> ReportDefinition | None: ...


class ReportDataSource(Protocol):
    """Executes a query document and returns the result rows."""

    def execute(self, query: dict[str, Any]) -> list[dict[str, Any]]: ...


def build_query(definition: ReportDefinition) -> dict[str, Any]:
    """Build the data-source query for *definition*.

    Raises ReportExecutionError for unknown filter operators or field
    aggregations.
    """
    filters: dict[str, dict[str, Any]] = {}
    for flt in definition.filters:
        if flt.operator not in FILTER_OPERATORS:
            raise ReportExecutionError(f"unknown filter operator {flt.operator!r} on {flt.field!r}")
        filters.setdefault(flt.field, {})[flt.operator] = flt.value

    aggregation: list[dict[str, Any]] = []
    plain_fields: list[str] = []
    for fld in definition.fields:
        if fld.aggregation is None:
            plain_fields.append(fld.name)
            continue
        if fld.aggregation not in FIELD_AGGREGATIONS:
            raise ReportExecutionError(f"unknown aggregation {fld.aggregation!r} on {fld.name!r}")
        aggregation.append({"$group": {"_id": None, fld.id: {f"${fld.aggregation}": f"${fld.name}"}}})

    return {
        "collection": definition.data_sources[0] if definition.data_sources else DEFAULT_COLLECTION,
        "filters": filters,
        "fields": plain_fields,
        "aggregation": aggregation,
        "limit": QUERY_LIMIT,
    }


def definition_from_dict(data: Mapping[str, Any]) -> ReportDefinition:
    return ReportDefinition(
        id=str(data["id"]),
        name=str(data.get("name", data["id"])),
        data_sources=list(data.get("data_sources") or [DEFAULT_COLLECTION]),
        fields=[
            ReportField(
                id=str(f.get("id", f["name"])),
                name=str(f["name"]),
                type=str(f.get("type", "string")),
                source=str(f.get("source", DEFAULT_COLLECTION)),
                aggregation=f.get("aggregation"),
            )
            for f in data.get("fields", [])
        ],
        filters=[
            ReportFilter(
                field=str(f["field"]),
                operator=str(f["operator"]),
                value=f.get("value"),
                label=str(f.get("label", "")),
            )
            for f in data.get("filters", [])
        ],
        description=str(data.get("description", "")),
    )
