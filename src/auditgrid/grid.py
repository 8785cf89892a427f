"""
Display grid adapter.

The rendered grid prepends a header row of column letters (display row 0)
and a gutter of row numbers (display column 0) to the true sheet data. This
module is the only place that converts between display indices and true
coordinates; everything else in auditgrid works in true coordinates.

Sheet data does not always start at A1: the ingestion service reports an
anchor address such as ``Sheet1!B3`` when the source had leading blank rows
or columns. That anchor is the ``origin`` below, the true coordinate of
display cell (1, 1).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from auditgrid.address import index_to_column_letter, parse_address
from auditgrid.models import Coordinate

DEFAULT_ORIGIN = Coordinate(row=1, col=0)


def to_true_coordinate(
    display_row: int,
    display_col: int,
    origin: Coordinate = DEFAULT_ORIGIN,
) -> Coordinate | None:
    """Map a display cell to its true coordinate.

    Returns None for the header row and the gutter column, which are not
    data cells and should be ignored by interaction handlers.
    """
    if display_row <= 0 or display_col <= 0:
        return None
    return Coordinate(
        row=display_row - 1 + origin.row,
        col=display_col - 1 + origin.col,
    )


def from_true_coordinate(
    coord: Coordinate,
    origin: Coordinate = DEFAULT_ORIGIN,
) -> tuple[int, int]:
    """Map a true coordinate to its (display_row, display_col)."""
    return coord.row - origin.row + 1, coord.col - origin.col + 1


def origin_from_address(address: str | None) -> Coordinate:
    """Return the anchor of the data described by an ingestion address.

    Examples:
        "Sheet1!A1" -> (1, 0), "Sheet1!B3:F20" -> (3, 1), None -> (1, 0)
    """
    if not address:
        return DEFAULT_ORIGIN
    return parse_address(address).start


def build_display_grid(
    true_data: list[list[str]],
    origin: Coordinate = DEFAULT_ORIGIN,
) -> list[list[str]]:
    """Build the rendered grid for ``true_data``.

    Every row is padded to the width of the widest true row. An empty sheet
    yields just the corner cell.
    """
    width = max((len(row) for row in true_data), default=0)
    header = [""] + [index_to_column_letter(origin.col + j) for j in range(width)]

    grid = [header]
    for i, row in enumerate(true_data):
        padding = [""] * (width - len(row))
        grid.append([str(origin.row + i), *row, *padding])
    return grid


@dataclass
class DisplayGrid:
    """True sheet data bundled with its origin, for renderers and hit tests."""

    data: list[list[str]]
    origin: Coordinate = DEFAULT_ORIGIN
    _rows: list[list[str]] | None = field(default=None, repr=False)

    @property
    def rows(self) -> list[list[str]]:
        if self._rows is None:
            self._rows = build_display_grid(self.data, self.origin)
        return self._rows

    def to_true(self, display_row: int, display_col: int) -> Coordinate | None:
        return to_true_coordinate(display_row, display_col, self.origin)

    def from_true(self, coord: Coordinate) -> tuple[int, int]:
        return from_true_coordinate(coord, self.origin)

    def value_at(self, coord: Coordinate) -> str | None:
        """Value of the true cell ``coord``, or None when outside the data."""
        row_index = coord.row - self.origin.row
        col_index = coord.col - self.origin.col
        if row_index < 0 or col_index < 0 or row_index >= len(self.data):
            return None
        row = self.data[row_index]
        if col_index >= len(row):
            return None
        return row[col_index]
