"""
Address codec for auditgrid.

Converts between zero-based column indices and column letters, and between
``Sheet!A1`` / ``Sheet!A1:B5`` strings and ``Range`` values.
"""

from __future__ import annotations

import re

from auditgrid.exceptions import InvalidAddressError
from auditgrid.models import Coordinate, Range

_CELL_RE = re.compile(r"([A-Z]+)([0-9]+)")
_LETTERS_RE = re.compile(r"[A-Z]+")


def index_to_column_letter(index: int) -> str:
    """Convert a zero-based column index to column letter(s).

    Examples:
        0 -> A, 1 -> B, 25 -> Z, 26 -> AA, 27 -> AB, 702 -> AAA
    """
    if index < 0:
        raise InvalidAddressError(str(index), "column index must be >= 0")
    result = ""
    while True:
        result = chr(ord("A") + (index % 26)) + result
        index = index // 26 - 1
        if index < 0:
            break
    return result


def column_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to a zero-based column index.

    Letters form a base-26 numeral with digits A..Z worth 1..26 (there is
    no zero digit, so Z rolls over to AA).

    Examples:
        A -> 0, B -> 1, Z -> 25, AA -> 26, AB -> 27, AAA -> 702
    """
    if not _LETTERS_RE.fullmatch(letters):
        raise InvalidAddressError(letters, "column letters must be A-Z")
    result = 0
    for char in letters:
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result - 1


def cell_to_a1(coord: Coordinate) -> str:
    """Convert a true coordinate to a bare cell reference.

    Examples:
        (1, 0) -> A1, (2, 1) -> B2, (10, 2) -> C10
    """
    return f"{index_to_column_letter(coord.col)}{coord.row}"


def a1_to_cell(ref: str) -> Coordinate:
    """Convert a bare cell reference to a true coordinate.

    Examples:
        A1 -> (1, 0), B2 -> (2, 1), C10 -> (10, 2)
    """
    match = _CELL_RE.fullmatch(ref)
    if not match:
        raise InvalidAddressError(ref, InvalidAddressError.MALFORMED_REFERENCE)
    letters, digits = match.groups()
    row = int(digits)
    if row < 1:
        raise InvalidAddressError(ref, InvalidAddressError.MALFORMED_REFERENCE)
    return Coordinate(row=row, col=column_letter_to_index(letters))


def parse_address(address: str) -> Range:
    """Parse ``Sheet!A1`` or ``Sheet!A1:B5`` into a normalized Range.

    The sheet name ends at the first ``!``. A quoted sheet name
    (``'My Sheet'!A1``) is unquoted.

    Raises:
        InvalidAddressError: If the separator is missing or a cell
            reference is malformed
    """
    sheet, sep, cells = address.partition("!")
    if not sep:
        raise InvalidAddressError(address, InvalidAddressError.MISSING_SEPARATOR)
    sheet = _unquote_sheet_name(sheet)
    if not sheet:
        raise InvalidAddressError(address, "empty sheet name")

    parts = cells.split(":")
    if len(parts) > 2:
        raise InvalidAddressError(address, InvalidAddressError.MALFORMED_REFERENCE)
    try:
        start = a1_to_cell(parts[0])
        end = a1_to_cell(parts[1]) if len(parts) == 2 else start
    except InvalidAddressError as e:
        raise InvalidAddressError(address, e.reason) from e

    return Range(sheet, start, end).normalized()


def format_address(rng: Range) -> str:
    """Format a Range as an address string.

    A single cell is emitted as ``Sheet!A1``, never ``Sheet!A1:A1``.

    Raises:
        InvalidAddressError: If the sheet name is empty or contains ``!``,
            which could not be parsed back
    """
    if not rng.sheet or "!" in rng.sheet:
        raise InvalidAddressError(rng.sheet, "sheet name cannot be empty or contain '!'")
    bounds = rng.normalized()
    sheet = _quote_sheet_name(bounds.sheet)
    if bounds.is_single_cell:
        return f"{sheet}!{cell_to_a1(bounds.start)}"
    return f"{sheet}!{cell_to_a1(bounds.start)}:{cell_to_a1(bounds.end)}"


def _quote_sheet_name(name: str) -> str:
    """Wrap a sheet name in single quotes when it would not parse back bare."""
    needs_quoting = (
        " " in name
        or "'" in name
        or ":" in name
        or (len(name) > 0 and name[0].isdigit())
    )
    if needs_quoting:
        escaped = name.replace("'", "''")
        return f"'{escaped}'"
    return name


def _unquote_sheet_name(name: str) -> str:
    if len(name) >= 2 and name[0] == "'" and name[-1] == "'":
        return name[1:-1].replace("''", "'")
    return name
