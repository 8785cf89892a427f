"""
Mapping overlay resolver.

Answers which saved mapping owns a cell and builds or edits mapping records
from committed selections. Records leaving this module are always
normalized so that start <= end on both axes.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import replace
from itertools import cycle

from auditgrid.exceptions import InvalidMappingError
from auditgrid.models import Coordinate, Mapping, Range, Transform

DEFAULT_PALETTE = (
    "bg-blue-200",
    "bg-green-200",
    "bg-yellow-200",
    "bg-purple-200",
    "bg-pink-200",
)


class ColorPalette:
    """Hands out mapping colors in a fixed rotation."""

    def __init__(self, colors: Sequence[str] = DEFAULT_PALETTE) -> None:
        if not colors:
            raise ValueError("Palette needs at least one color")
        self.colors = tuple(colors)
        self._cycle = cycle(self.colors)

    def next_color(self) -> str:
        return next(self._cycle)


def find_owning_mapping(
    mappings: Iterable[Mapping], sheet: str, coord: Coordinate
) -> Mapping | None:
    """Return the first mapping (in creation order) that covers ``coord``.

    Overlaps are allowed; the earliest mapping wins for rendering.
    """
    for mapping in mappings:
        if mapping.range.contains(sheet, coord):
            return mapping
    return None


def mappings_at(
    mappings: Iterable[Mapping], sheet: str, coord: Coordinate
) -> list[Mapping]:
    """All mappings covering ``coord``, in creation order."""
    return [m for m in mappings if m.range.contains(sheet, coord)]


def parse_transform(value: Transform | str) -> Transform:
    if isinstance(value, Transform):
        return value
    try:
        return Transform(value)
    except ValueError as e:
        raise InvalidMappingError(f"unknown transform {value!r}") from e


def create_mapping(
    selection: Range | None,
    destination_field: str,
    transform: Transform | str = Transform.SUM,
    validation: str | None = None,
    *,
    palette: ColorPalette | None = None,
    mapping_id: str | None = None,
) -> Mapping:
    """Build a mapping record from a committed selection.

    Raises:
        InvalidMappingError: If there is no selection or the destination
            field is empty
    """
    if selection is None:
        raise InvalidMappingError("no cells selected")
    if not destination_field or not destination_field.strip():
        raise InvalidMappingError("destination field is required")

    bounds = selection.normalized()
    return Mapping(
        id=mapping_id or uuid.uuid4().hex,
        sheet=bounds.sheet,
        start=bounds.start,
        end=bounds.end,
        destination_field=destination_field,
        transform=parse_transform(transform),
        validation=validation,
        color=(palette or ColorPalette()).next_color(),
    )


def update_mapping(
    mapping: Mapping,
    *,
    sheet: str | None = None,
    start: Coordinate | None = None,
    end: Coordinate | None = None,
    destination_field: str | None = None,
    transform: Transform | str | None = None,
    validation: str | None = None,
    color: str | None = None,
) -> Mapping:
    """Apply a partial update. Fields left as None keep their current value."""
    if destination_field is not None and not destination_field.strip():
        raise InvalidMappingError("destination field is required")

    bounds = Range(
        sheet if sheet is not None else mapping.sheet,
        start if start is not None else mapping.start,
        end if end is not None else mapping.end,
    ).normalized()

    return replace(
        mapping,
        sheet=bounds.sheet,
        start=bounds.start,
        end=bounds.end,
        destination_field=(
            destination_field
            if destination_field is not None
            else mapping.destination_field
        ),
        transform=(
            parse_transform(transform) if transform is not None else mapping.transform
        ),
        validation=validation if validation is not None else mapping.validation,
        color=color if color is not None else mapping.color,
    )


def delete_mapping(mappings: Iterable[Mapping], mapping_id: str) -> list[Mapping]:
    """Return ``mappings`` without ``mapping_id``. Absent ids are a no-op."""
    return [m for m in mappings if m.id != mapping_id]


def normalize_mapping(mapping: Mapping) -> Mapping:
    """Return ``mapping`` with start/end in top-left/bottom-right order."""
    bounds = mapping.range.normalized()
    if bounds.start == mapping.start and bounds.end == mapping.end:
        return mapping
    return replace(mapping, start=bounds.start, end=bounds.end)
