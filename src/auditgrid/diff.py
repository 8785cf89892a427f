"""
Version diff engine for auditgrid.

Compares two versions of a workbook's tabular data and reports cell-level
changes, added/removed rows, and which mappings the changes touch.
Cells are matched by true coordinate, so each version is placed at its own
anchor before comparing; trailing empty cells count as missing.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from auditgrid.address import cell_to_a1
from auditgrid.grid import DEFAULT_ORIGIN
from auditgrid.models import Coordinate, Mapping
from auditgrid.overlay import find_owning_mapping

ChangeType = Literal["added", "deleted", "modified"]
SheetChangeType = Literal["added", "removed", "modified", "unchanged"]

_NUMBER_CLEAN_RE = re.compile(r"[,$€£\s]")


@dataclass
class CellChange:
    """Represents a change to a single cell's value."""

    coord: Coordinate
    cell_ref: str  # A1 notation
    change_type: ChangeType
    old_value: str | None
    new_value: str | None
    percent_change: float | None = None
    mapping_field: str | None = None  # destination field of the owning mapping

    @property
    def mapping_affected(self) -> bool:
        return self.mapping_field is not None


@dataclass
class SheetDiff:
    """Differences found on one sheet."""

    sheet_name: str
    change_type: SheetChangeType
    cell_changes: list[CellChange] = field(default_factory=list)
    rows_added: int = 0
    rows_removed: int = 0
    rows_modified: int = 0
    affected_mappings: list[Mapping] = field(default_factory=list)

    def has_changes(self) -> bool:
        return self.change_type != "unchanged"


@dataclass
class WorkbookDiff:
    """Differences between two versions of a workbook."""

    old_version: str | None
    new_version: str | None
    sheet_diffs: list[SheetDiff] = field(default_factory=list)

    @property
    def sheets_added(self) -> list[str]:
        return [d.sheet_name for d in self.sheet_diffs if d.change_type == "added"]

    @property
    def sheets_removed(self) -> list[str]:
        return [d.sheet_name for d in self.sheet_diffs if d.change_type == "removed"]

    @property
    def cell_changes(self) -> list[tuple[str, CellChange]]:
        return [(d.sheet_name, c) for d in self.sheet_diffs for c in d.cell_changes]

    @property
    def affected_mappings(self) -> list[Mapping]:
        return [m for d in self.sheet_diffs for m in d.affected_mappings]

    def has_changes(self) -> bool:
        return any(d.has_changes() for d in self.sheet_diffs)

    def get(self, sheet_name: str) -> SheetDiff | None:
        for sheet_diff in self.sheet_diffs:
            if sheet_diff.sheet_name == sheet_name:
                return sheet_diff
        return None


def parse_number(value: str | None) -> float | None:
    """Parse a display value like ``$1,250`` or ``(300)`` as a number."""
    if value is None:
        return None
    text = _NUMBER_CLEAN_RE.sub("", value)
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return -number if negative else number


def percent_change(old_value: str | None, new_value: str | None) -> float | None:
    """Relative change in percent between two numeric values, if both are numbers."""
    old = parse_number(old_value)
    new = parse_number(new_value)
    if old is None or new is None or old == 0:
        return None
    return (new - old) / abs(old) * 100


def _is_blank(row: Sequence[str] | None) -> bool:
    return row is None or all(value == "" for value in row)


def _cell(grid: Sequence[Sequence[str]], row: int, col: int) -> str:
    if row < 0 or col < 0 or row >= len(grid) or col >= len(grid[row]):
        return ""
    return grid[row][col]


def _bounds(
    grids: Iterable[tuple[Sequence[Sequence[str]], Coordinate]],
) -> tuple[range, range]:
    """True-space rows and columns covered by any of the placed grids."""
    placed = [(grid, origin) for grid, origin in grids if grid]
    if not placed:
        return range(0), range(0)
    rows = range(
        min(origin.row for _, origin in placed),
        max(origin.row + len(grid) for grid, origin in placed),
    )
    cols = range(
        min(origin.col for _, origin in placed),
        max(origin.col + max(len(row) for row in grid) for grid, origin in placed),
    )
    return rows, cols


def diff_sheet(
    sheet_name: str,
    old: Sequence[Sequence[str]] | None,
    new: Sequence[Sequence[str]] | None,
    mappings: Iterable[Mapping] = (),
    origin: Coordinate = DEFAULT_ORIGIN,
    old_origin: Coordinate | None = None,
) -> SheetDiff:
    """Compare two versions of one sheet.

    ``old`` or ``new`` may be None when the sheet only exists in one version.
    ``origin`` anchors the new grid; ``old_origin`` anchors the old one and
    defaults to ``origin``. Cells are matched by true coordinate, so a sheet
    whose anchor moved reports the moved cells as deleted and added.
    """
    if old is None and new is None:
        return SheetDiff(sheet_name, "unchanged")

    old_grid = old or []
    new_grid = new or []
    old_origin = old_origin or origin
    mapping_list = list(mappings)

    result = SheetDiff(sheet_name, "unchanged")
    affected_ids: set[str] = set()
    rows, cols = _bounds([(old_grid, old_origin), (new_grid, origin)])

    for row in rows:
        old_row = [
            _cell(old_grid, row - old_origin.row, col - old_origin.col) for col in cols
        ]
        new_row = [_cell(new_grid, row - origin.row, col - origin.col) for col in cols]

        row_changed = False
        for col, old_value, new_value in zip(cols, old_row, new_row):
            if old_value == new_value:
                continue
            row_changed = True

            change_type: ChangeType
            if old_value == "":
                change_type = "added"
            elif new_value == "":
                change_type = "deleted"
            else:
                change_type = "modified"

            coord = Coordinate(row, col)
            owner = find_owning_mapping(mapping_list, sheet_name, coord)
            if owner is not None and owner.id not in affected_ids:
                affected_ids.add(owner.id)
                result.affected_mappings.append(owner)

            result.cell_changes.append(
                CellChange(
                    coord=coord,
                    cell_ref=cell_to_a1(coord),
                    change_type=change_type,
                    old_value=old_value or None,
                    new_value=new_value or None,
                    percent_change=(
                        percent_change(old_value, new_value)
                        if change_type == "modified"
                        else None
                    ),
                    mapping_field=owner.destination_field if owner else None,
                )
            )

        if not row_changed:
            continue
        if _is_blank(old_row):
            result.rows_added += 1
        elif _is_blank(new_row):
            result.rows_removed += 1
        else:
            result.rows_modified += 1

    if old is None:
        result.change_type = "added"
    elif new is None:
        result.change_type = "removed"
    elif result.cell_changes:
        result.change_type = "modified"
    return result


def diff_workbooks(
    old_sheets: dict[str, list[list[str]]],
    new_sheets: dict[str, list[list[str]]],
    mappings: Iterable[Mapping] = (),
    *,
    old_version: str | None = None,
    new_version: str | None = None,
    origins: dict[str, Coordinate] | None = None,
    old_origins: dict[str, Coordinate] | None = None,
) -> WorkbookDiff:
    """Compare every sheet of two workbook versions.

    Sheets are reported in the new version's order, followed by sheets that
    only exist in the old version. ``origins`` anchors the new sheets and
    ``old_origins`` the old ones; when ``old_origins`` is None the old sheets
    share the new anchors.
    """
    mapping_list = list(mappings)
    origins = origins or {}
    old_origins = origins if old_origins is None else old_origins
    names = list(new_sheets) + [name for name in old_sheets if name not in new_sheets]

    result = WorkbookDiff(old_version=old_version, new_version=new_version)
    for name in names:
        result.sheet_diffs.append(
            diff_sheet(
                name,
                old_sheets.get(name),
                new_sheets.get(name),
                mapping_list,
                origins.get(name, DEFAULT_ORIGIN),
                old_origins.get(name, DEFAULT_ORIGIN),
            )
        )
    return result
