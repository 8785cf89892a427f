"""
Data model for auditgrid.

Coordinates and ranges live in true spreadsheet space: rows are 1-indexed,
columns are 0-indexed. Only ``auditgrid.grid`` deals with display indices.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True, order=True)
class Coordinate:
    """A single cell position."""

    row: int
    col: int

    def to_dict(self) -> dict[str, int]:
        return {"row": self.row, "col": self.col}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Coordinate:
        return cls(row=int(data["row"]), col=int(data["col"]))


@dataclass(frozen=True)
class Range:
    """A rectangular block of cells on one sheet.

    ``start`` and ``end`` may be in any order until ``normalized()`` is
    called. A range whose start equals its end is a single cell.
    """

    sheet: str
    start: Coordinate
    end: Coordinate

    def normalized(self) -> Range:
        """Return the range with start at the top-left and end at the bottom-right."""
        start = Coordinate(
            min(self.start.row, self.end.row), min(self.start.col, self.end.col)
        )
        end = Coordinate(
            max(self.start.row, self.end.row), max(self.start.col, self.end.col)
        )
        if start == self.start and end == self.end:
            return self
        return Range(self.sheet, start, end)

    @property
    def is_single_cell(self) -> bool:
        return self.start == self.end

    @property
    def row_count(self) -> int:
        return abs(self.end.row - self.start.row) + 1

    @property
    def col_count(self) -> int:
        return abs(self.end.col - self.start.col) + 1

    def contains(self, sheet: str, coord: Coordinate) -> bool:
        """Check whether ``coord`` on ``sheet`` falls inside this range (inclusive)."""
        if sheet != self.sheet:
            return False
        bounds = self.normalized()
        return (
            bounds.start.row <= coord.row <= bounds.end.row
            and bounds.start.col <= coord.col <= bounds.end.col
        )

    def cells(self) -> Iterator[Coordinate]:
        """Yield every covered coordinate, row by row."""
        bounds = self.normalized()
        for row in range(bounds.start.row, bounds.end.row + 1):
            for col in range(bounds.start.col, bounds.end.col + 1):
                yield Coordinate(row, col)


class Transform(Enum):
    """Aggregation applied to a mapped range before it reaches its field."""

    SUM = "sum"
    AVERAGE = "average"
    COUNT = "count"
    MAX = "max"
    MIN = "min"
    FIRST = "first"
    LAST = "last"
    CONCAT = "concat"
    LINK = "link"
    MAP = "map"
    CURRENCY_NORMALIZE = "currency_normalize"
    TEXT_PARSE = "text_parse"
    DATE_FORMAT = "date_format"


@dataclass
class Mapping:
    """A saved binding from a cell range to a destination field."""

    id: str
    sheet: str
    start: Coordinate
    end: Coordinate
    destination_field: str
    transform: Transform = Transform.SUM
    validation: str | None = None
    color: str = ""

    @property
    def range(self) -> Range:
        return Range(self.sheet, self.start, self.end)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "sheet": self.sheet,
            "start": self.start.to_dict(),
            "end": self.end.to_dict(),
            "destinationField": self.destination_field,
            "transform": self.transform.value,
            "color": self.color,
        }
        if self.validation is not None:
            data["validation"] = self.validation
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Mapping:
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            sheet=data["sheet"],
            start=Coordinate.from_dict(data["start"]),
            end=Coordinate.from_dict(data["end"]),
            destination_field=data.get("destinationField", ""),
            transform=Transform(data.get("transform") or Transform.SUM.value),
            validation=data.get("validation"),
            color=data.get("color", ""),
        )


@dataclass
class NamedRange:
    """A user-defined alias for an address string such as ``Sheet1!B2:C3``."""

    id: str
    name: str
    range: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "range": self.range}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NamedRange:
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=data["name"],
            range=data["range"],
        )


_VERSION_RE = re.compile(r"^v(\d+)$")


def next_version(version: str) -> str:
    """Return the version identifier that follows ``version``.

    Examples:
        v1 -> v2, v9 -> v10. Unrecognized identifiers restart at v1.
    """
    match = _VERSION_RE.match(version)
    if not match:
        return "v1"
    return f"v{int(match.group(1)) + 1}"


@dataclass
class Workbook:
    """An uploaded workbook together with the mappings and named ranges it owns."""

    id: str
    name: str
    version: str = "v1"
    previous_version: str | None = None
    sheets: dict[str, list[list[str]]] = field(default_factory=dict)
    origins: dict[str, Coordinate] = field(default_factory=dict)
    mappings: list[Mapping] = field(default_factory=list)
    named_ranges: list[NamedRange] = field(default_factory=list)
    uploaded_at: datetime | None = None
    last_modified: datetime | None = None
    last_modified_by: str | None = None

    def origin_of(self, sheet: str) -> Coordinate:
        """Anchor of the true data on ``sheet``; A1 unless the source said otherwise."""
        return self.origins.get(sheet, Coordinate(1, 0))

    def bumped(self, sheets: dict[str, list[list[str]]], actor: str) -> Workbook:
        """Return a copy carrying the next version and the re-uploaded sheets."""
        return replace(
            self,
            version=next_version(self.version),
            previous_version=self.version,
            sheets=sheets,
            origins=dict(self.origins),
            last_modified=datetime.now(UTC),
            last_modified_by=actor,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "previousVersion": self.previous_version,
            "sheets": self.sheets,
            "origins": {name: c.to_dict() for name, c in self.origins.items()},
            "mappings": [m.to_dict() for m in self.mappings],
            "namedRanges": [n.to_dict() for n in self.named_ranges],
            "uploadedDate": _iso(self.uploaded_at),
            "lastModified": _iso(self.last_modified),
            "lastModifiedBy": self.last_modified_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Workbook:
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=data.get("name", ""),
            version=data.get("version") or "v1",
            previous_version=data.get("previousVersion"),
            sheets=data.get("sheets") or {},
            origins={
                name: Coordinate.from_dict(c)
                for name, c in (data.get("origins") or {}).items()
            },
            mappings=[Mapping.from_dict(m) for m in data.get("mappings") or []],
            named_ranges=[
                NamedRange.from_dict(n) for n in data.get("namedRanges") or []
            ],
            uploaded_at=_parse_iso(data.get("uploadedDate")),
            last_modified=_parse_iso(data.get("lastModified")),
            last_modified_by=data.get("lastModifiedBy"),
        )


class AuditAction(Enum):
    """Kinds of change recorded in the audit trail."""

    UPLOAD = "upload"
    CREATE_MAPPING = "create_mapping"
    UPDATE_MAPPING = "update_mapping"
    DELETE_MAPPING = "delete_mapping"
    CREATE_NAMED_RANGE = "create_named_range"
    UPDATE_NAMED_RANGE = "update_named_range"
    DELETE_NAMED_RANGE = "delete_named_range"
    REUPLOAD = "reupload"


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable line of the audit trail."""

    id: str
    timestamp: datetime
    actor: str
    action: AuditAction
    subject_workbook_id: str
    details: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": _iso(self.timestamp),
            "actor": self.actor,
            "action": self.action.value,
            "subjectWorkbookId": self.subject_workbook_id,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditLogEntry:
        timestamp = _parse_iso(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Audit entry without timestamp: {data!r}")
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            timestamp=timestamp,
            actor=data.get("actor", ""),
            action=AuditAction(data["action"]),
            subject_workbook_id=data.get("subjectWorkbookId", ""),
            details=data.get("details", ""),
        )


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
