"""Named range registry: name -> address bindings for one workbook."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator
from dataclasses import replace

from auditgrid.address import parse_address
from auditgrid.exceptions import InvalidNamedRangeError, NotFoundError
from auditgrid.models import NamedRange, Range


def validate_name(name: str) -> None:
    """Reject empty names and names with surrounding whitespace.

    Names are never trimmed, so ``"ppe_values "`` cannot silently become a
    second ``"ppe_values"``.
    """
    if not name:
        raise InvalidNamedRangeError(name, "name is required")
    if name != name.strip():
        raise InvalidNamedRangeError(name, "name has leading or trailing whitespace")


class NamedRangeRegistry:
    """Case-sensitive, insertion-ordered registry of named ranges."""

    def __init__(self, named_ranges: Iterable[NamedRange] = ()) -> None:
        self._by_id: dict[str, NamedRange] = {}
        for named_range in named_ranges:
            self._by_id[named_range.id] = named_range

    def __iter__(self) -> Iterator[NamedRange]:
        return iter(list(self._by_id.values()))

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, named_range_id: str) -> NamedRange | None:
        return self._by_id.get(named_range_id)

    def _find(self, name: str) -> NamedRange | None:
        for named_range in self._by_id.values():
            if named_range.name == name:
                return named_range
        return None

    def resolve(self, name: str) -> Range:
        """Look up a name exactly and return its parsed Range."""
        validate_name(name)
        named_range = self._find(name)
        if named_range is None:
            raise NotFoundError("Named range", name)
        return parse_address(named_range.range)

    def select_by_name(self, name: str) -> Range:
        """Resolve ``name`` so the caller can switch to its sheet and select it."""
        return self.resolve(name)

    def find_by_range(self, rng: Range) -> list[NamedRange]:
        """Named ranges whose address covers exactly ``rng``."""
        target = rng.normalized()
        return [n for n in self._by_id.values() if parse_address(n.range) == target]

    def build(
        self, name: str, address: str, named_range_id: str | None = None
    ) -> NamedRange:
        """Validate and return a new record without registering it."""
        validate_name(name)
        parse_address(address)
        if self._find(name) is not None:
            raise InvalidNamedRangeError(name, "name already exists")
        return NamedRange(
            id=named_range_id or uuid.uuid4().hex,
            name=name,
            range=address,
        )

    def create(
        self, name: str, address: str, named_range_id: str | None = None
    ) -> NamedRange:
        named_range = self.build(name, address, named_range_id)
        self._by_id[named_range.id] = named_range
        return named_range

    def build_update(
        self,
        named_range_id: str,
        name: str | None = None,
        address: str | None = None,
    ) -> NamedRange:
        """Validate a partial update and return the updated record without storing it."""
        current = self._by_id.get(named_range_id)
        if current is None:
            raise NotFoundError("Named range", named_range_id)

        changes: dict[str, str] = {}
        if name is not None and name != current.name:
            validate_name(name)
            if self._find(name) is not None:
                raise InvalidNamedRangeError(name, "name already exists")
            changes["name"] = name
        if address is not None:
            parse_address(address)
            changes["range"] = address
        return replace(current, **changes)

    def update(
        self,
        named_range_id: str,
        name: str | None = None,
        address: str | None = None,
    ) -> NamedRange:
        updated = self.build_update(named_range_id, name, address)
        self._by_id[named_range_id] = updated
        return updated

    def put(self, named_range: NamedRange) -> None:
        """Store a record as-is (used to apply confirmed server state)."""
        self._by_id[named_range.id] = named_range

    def delete(self, named_range_id: str) -> NamedRange | None:
        """Remove a named range. Deleting an absent id is a no-op."""
        return self._by_id.pop(named_range_id, None)

    def copy(self) -> NamedRangeRegistry:
        return NamedRangeRegistry(self._by_id.values())
