"""Tests for the version diff engine."""

import pytest

from auditgrid.diff import diff_sheet, diff_workbooks, parse_number, percent_change
from auditgrid.models import Coordinate, Mapping

BALANCE_SHEET = [
    ["Assets", "1000", "2000", "3000"],
    ["Liabilities", "250", "600", "700"],
    ["Equity", "500", "1400", "2300"],
    ["Total", "1750", "4000", "6000"],
]


def _copy(grid: list[list[str]]) -> list[list[str]]:
    return [list(row) for row in grid]


@pytest.fixture
def ppe_mapping() -> Mapping:
    return Mapping(
        id="m1",
        sheet="Balance_Sheet",
        start=Coordinate(2, 1),
        end=Coordinate(2, 1),
        destination_field="ppe_nbv_close",
    )


class TestParseNumber:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1000", 1000.0),
            ("$1,250", 1250.0),
            ("(300)", -300.0),
            ("-4.5", -4.5),
            (" 12 ", 12.0),
        ],
    )
    def test_numbers(self, value: str, expected: float) -> None:
        assert parse_number(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "()", "$"])
    def test_not_numbers(self, value: str | None) -> None:
        assert parse_number(value) is None

    def test_percent_change(self) -> None:
        assert percent_change("250", "275") == pytest.approx(10.0)
        assert percent_change("-200", "-100") == pytest.approx(50.0)
        assert percent_change("0", "5") is None
        assert percent_change("n/a", "5") is None


class TestDiffSheet:
    def test_modified_cells(self, ppe_mapping: Mapping) -> None:
        new = _copy(BALANCE_SHEET)
        new[1][1] = "275"
        new[3][1] = "1775"

        result = diff_sheet("Balance_Sheet", BALANCE_SHEET, new, [ppe_mapping])

        assert result.change_type == "modified"
        assert [c.cell_ref for c in result.cell_changes] == ["B2", "B4"]
        first, second = result.cell_changes
        assert first.coord == Coordinate(2, 1)
        assert first.change_type == "modified"
        assert (first.old_value, first.new_value) == ("250", "275")
        assert first.percent_change == pytest.approx(10.0)
        assert first.mapping_field == "ppe_nbv_close"
        assert first.mapping_affected
        assert second.mapping_field is None
        assert second.percent_change == pytest.approx(25 / 1750 * 100)
        assert result.rows_modified == 2
        assert result.affected_mappings == [ppe_mapping]

    def test_unchanged(self) -> None:
        result = diff_sheet("Balance_Sheet", BALANCE_SHEET, _copy(BALANCE_SHEET))
        assert result.change_type == "unchanged"
        assert not result.has_changes()
        assert result.cell_changes == []

    def test_trailing_empty_cells_are_missing(self) -> None:
        result = diff_sheet("Sheet1", [["a"]], [["a", ""], ["", ""]])
        assert not result.has_changes()

    def test_rows_added(self) -> None:
        new = _copy(BALANCE_SHEET) + [["Reserves", "10"]]
        result = diff_sheet("Balance_Sheet", BALANCE_SHEET, new)
        assert result.rows_added == 1
        assert result.rows_removed == 0
        assert [c.change_type for c in result.cell_changes] == ["added", "added"]
        assert result.cell_changes[0].cell_ref == "A5"
        assert result.cell_changes[0].old_value is None

    def test_rows_removed(self) -> None:
        result = diff_sheet("Balance_Sheet", BALANCE_SHEET, _copy(BALANCE_SHEET[:3]))
        assert result.rows_removed == 1
        assert all(c.change_type == "deleted" for c in result.cell_changes)
        assert result.cell_changes[0].new_value is None
        assert result.cell_changes[0].percent_change is None

    def test_origin_offsets_cell_refs(self) -> None:
        result = diff_sheet("Sheet1", [["1", "2"]], [["1", "3"]], origin=Coordinate(3, 1))
        assert result.cell_changes[0].cell_ref == "C3"

    def test_moved_anchor_reports_delete_and_add(self) -> None:
        result = diff_sheet(
            "S", [["100"]], [["100"]], origin=Coordinate(3, 1), old_origin=Coordinate(1, 0)
        )
        assert result.change_type == "modified"
        assert [(c.cell_ref, c.change_type) for c in result.cell_changes] == [
            ("A1", "deleted"),
            ("B3", "added"),
        ]
        assert (result.rows_added, result.rows_removed) == (1, 1)

    def test_moved_anchor_with_overlap(self) -> None:
        # old A1:B1, new B1:C1
        result = diff_sheet(
            "S", [["1", "2"]], [["2", "3"]], origin=Coordinate(1, 1), old_origin=Coordinate(1, 0)
        )
        assert [(c.cell_ref, c.change_type) for c in result.cell_changes] == [
            ("A1", "deleted"),
            ("C1", "added"),
        ]
        assert result.rows_modified == 1

    def test_sheet_only_in_one_version(self) -> None:
        assert diff_sheet("New", None, [["x"]]).change_type == "added"
        assert diff_sheet("Old", [["x"]], None).change_type == "removed"
        assert diff_sheet("Gone", None, None).change_type == "unchanged"


class TestDiffWorkbooks:
    def test_sheets_added_and_removed(self, ppe_mapping: Mapping) -> None:
        new_balance = _copy(BALANCE_SHEET)
        new_balance[1][1] = "300"
        old = {"Balance_Sheet": BALANCE_SHEET, "Notes": [["Note"]]}
        new = {"Balance_Sheet": new_balance, "Income": [["Revenue", "10"]]}

        result = diff_workbooks(
            old, new, [ppe_mapping], old_version="v1", new_version="v2"
        )

        assert [d.sheet_name for d in result.sheet_diffs] == [
            "Balance_Sheet",
            "Income",
            "Notes",
        ]
        assert result.sheets_added == ["Income"]
        assert result.sheets_removed == ["Notes"]
        assert result.affected_mappings == [ppe_mapping]
        assert result.has_changes()
        assert (result.old_version, result.new_version) == ("v1", "v2")

        balance = result.get("Balance_Sheet")
        assert balance is not None
        assert [c.cell_ref for c in balance.cell_changes] == ["B2"]
        assert ("Balance_Sheet", balance.cell_changes[0]) in result.cell_changes
        assert result.get("Missing") is None

    def test_no_changes(self) -> None:
        sheets = {"Balance_Sheet": BALANCE_SHEET}
        assert not diff_workbooks(sheets, {"Balance_Sheet": _copy(BALANCE_SHEET)}).has_changes()

    def test_origins_per_sheet(self) -> None:
        result = diff_workbooks(
            {"S": [["1"]]},
            {"S": [["2"]]},
            origins={"S": Coordinate(5, 2)},
        )
        assert result.cell_changes[0][1].cell_ref == "C5"

    def test_old_origins_differ(self) -> None:
        result = diff_workbooks(
            {"S": [["100"]]},
            {"S": [["100"]]},
            origins={"S": Coordinate(3, 1)},
            old_origins={},
        )
        assert [c.cell_ref for _, c in result.cell_changes] == ["A1", "B3"]
