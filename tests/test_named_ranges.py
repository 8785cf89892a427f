"""Tests for the named range registry."""

import pytest

from auditgrid.exceptions import InvalidAddressError, InvalidNamedRangeError, NotFoundError
from auditgrid.models import Coordinate, NamedRange, Range
from auditgrid.named_ranges import NamedRangeRegistry, validate_name


@pytest.fixture
def registry() -> NamedRangeRegistry:
    registry = NamedRangeRegistry()
    registry.create("ppe_values", "Balance_Sheet!B2:C3", "nr1")
    return registry


class TestValidateName:
    def test_valid(self) -> None:
        validate_name("ppe_values")

    @pytest.mark.parametrize("name", ["", " ppe", "ppe ", "\tppe"])
    def test_invalid(self, name: str) -> None:
        with pytest.raises(InvalidNamedRangeError):
            validate_name(name)


class TestResolve:
    def test_resolve(self, registry: NamedRangeRegistry) -> None:
        assert registry.resolve("ppe_values") == Range(
            "Balance_Sheet", Coordinate(2, 1), Coordinate(3, 2)
        )

    def test_case_sensitive(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(NotFoundError):
            registry.resolve("PPE_values")

    def test_surrounding_whitespace_rejected(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(InvalidNamedRangeError):
            registry.resolve("ppe_values ")

    def test_unknown(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            registry.resolve("missing")
        assert exc_info.value.key == "missing"

    def test_select_by_name(self, registry: NamedRangeRegistry) -> None:
        assert registry.select_by_name("ppe_values").sheet == "Balance_Sheet"

    def test_find_by_range(self, registry: NamedRangeRegistry) -> None:
        rng = Range("Balance_Sheet", Coordinate(3, 2), Coordinate(2, 1))
        assert [n.name for n in registry.find_by_range(rng)] == ["ppe_values"]
        other = Range("Balance_Sheet", Coordinate(2, 1), Coordinate(2, 1))
        assert registry.find_by_range(other) == []


class TestCreate:
    def test_stores_address_as_given(self, registry: NamedRangeRegistry) -> None:
        record = registry.get("nr1")
        assert record == NamedRange("nr1", "ppe_values", "Balance_Sheet!B2:C3")
        assert len(registry) == 1

    def test_duplicate_name(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(InvalidNamedRangeError):
            registry.create("ppe_values", "Notes!A1")

    def test_padded_name_is_not_a_second_name(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(InvalidNamedRangeError):
            registry.create("ppe_values ", "Notes!A1")
        assert len(registry) == 1

    def test_malformed_address(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(InvalidAddressError):
            registry.create("revenue", "B2:C3")
        assert len(registry) == 1

    def test_build_does_not_register(self, registry: NamedRangeRegistry) -> None:
        record = registry.build("revenue", "Income!C5")
        assert record.id
        assert registry.get(record.id) is None

    def test_iteration_order(self, registry: NamedRangeRegistry) -> None:
        registry.create("revenue", "Income!C5", "nr2")
        assert [n.id for n in registry] == ["nr1", "nr2"]


class TestUpdateDelete:
    def test_rename(self, registry: NamedRangeRegistry) -> None:
        updated = registry.update("nr1", name="ppe_gross")
        assert updated.name == "ppe_gross"
        assert updated.range == "Balance_Sheet!B2:C3"
        assert registry.resolve("ppe_gross").sheet == "Balance_Sheet"
        with pytest.raises(NotFoundError):
            registry.resolve("ppe_values")

    def test_readdress(self, registry: NamedRangeRegistry) -> None:
        registry.update("nr1", address="Notes!A1")
        assert registry.resolve("ppe_values") == Range("Notes", Coordinate(1, 0), Coordinate(1, 0))

    def test_rename_to_same_name(self, registry: NamedRangeRegistry) -> None:
        assert registry.update("nr1", name="ppe_values").name == "ppe_values"

    def test_rename_to_taken_name(self, registry: NamedRangeRegistry) -> None:
        registry.create("revenue", "Income!C5", "nr2")
        with pytest.raises(InvalidNamedRangeError):
            registry.update("nr2", name="ppe_values")

    def test_update_unknown(self, registry: NamedRangeRegistry) -> None:
        with pytest.raises(NotFoundError):
            registry.update("missing", name="x")

    def test_delete_is_idempotent(self, registry: NamedRangeRegistry) -> None:
        removed = registry.delete("nr1")
        assert removed is not None and removed.name == "ppe_values"
        assert registry.delete("nr1") is None
        assert len(registry) == 0

    def test_copy_is_independent(self, registry: NamedRangeRegistry) -> None:
        clone = registry.copy()
        clone.delete("nr1")
        assert registry.get("nr1") is not None
