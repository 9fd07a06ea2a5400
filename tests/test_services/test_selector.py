"""Tests for sheet selection."""

import pytest

from xlsx_pipe.models import SheetSelection
from xlsx_pipe.services.catalog import SheetCatalog
from xlsx_pipe.services.selector import SheetSelector
from xlsx_pipe.utils.exceptions import ErrorCode, SelectionError
from xlsx_pipe.workbook import SheetDescriptor


def _catalog(*sheets: tuple[str, bool]) -> SheetCatalog:
    return SheetCatalog(
        sheets=tuple(
            SheetDescriptor(
                sheet_id=position,
                name=name,
                hidden=hidden,
                part=f"xl/worksheets/sheet{position}.xml",
                position=position,
                state="hidden" if hidden else "visible",
            )
            for position, (name, hidden) in enumerate(sheets, start=1)
        )
    )


@pytest.fixture
def selector() -> SheetSelector:
    return SheetSelector(
        _catalog(
            ("Data", False),
            ("Summary", False),
            ("Raw 2023", True),
            ("Raw 2024", False),
        )
    )


def _names(selector: SheetSelector, **criteria: object) -> list[str]:
    return [sheet.name for sheet in selector.select(SheetSelection(**criteria))]


class TestDefaultSelection:
    """Selection without explicit names or numbers."""

    def test_visible_sheets_only(self, selector: SheetSelector) -> None:
        assert _names(selector) == ["Data", "Summary", "Raw 2024"]

    def test_all_sheets_includes_hidden(self, selector: SheetSelector) -> None:
        assert _names(selector, all_sheets=True) == [
            "Data",
            "Summary",
            "Raw 2023",
            "Raw 2024",
        ]

    def test_include_pattern_matches_hidden_sheets(
        self, selector: SheetSelector
    ) -> None:
        assert _names(selector, include_patterns=("Raw *",)) == [
            "Raw 2023",
            "Raw 2024",
        ]

    def test_exclude_pattern(self, selector: SheetSelector) -> None:
        assert _names(selector, exclude_patterns=("Raw*",)) == ["Data", "Summary"]

    def test_include_and_exclude(self, selector: SheetSelector) -> None:
        names = _names(
            selector, include_patterns=("Raw *",), exclude_patterns=("*2023",)
        )
        assert names == ["Raw 2024"]

    def test_exclude_hidden_sheets(self, selector: SheetSelector) -> None:
        names = _names(
            selector, include_patterns=("Raw *",), exclude_hidden_sheets=True
        )
        assert names == ["Raw 2024"]

    def test_patterns_are_case_sensitive(self, selector: SheetSelector) -> None:
        assert _names(selector, include_patterns=("data",)) == []

    def test_empty_selection_is_valid(self, selector: SheetSelector) -> None:
        assert _names(selector, include_patterns=("Nothing*",)) == []

    def test_empty_workbook(self) -> None:
        assert SheetSelector(_catalog()).select(SheetSelection()) == []


class TestExplicitSelection:
    """Selection by name or number."""

    def test_names_in_requested_order(self, selector: SheetSelector) -> None:
        assert _names(selector, names=("Summary", "Data")) == ["Summary", "Data"]

    def test_explicit_name_selects_hidden_sheet(self, selector: SheetSelector) -> None:
        assert _names(selector, names=("Raw 2023",)) == ["Raw 2023"]

    def test_numbers_are_one_based(self, selector: SheetSelector) -> None:
        assert _names(selector, numbers=(4, 1)) == ["Raw 2024", "Data"]

    def test_duplicates_are_collapsed(self, selector: SheetSelector) -> None:
        assert _names(selector, names=("Data",), numbers=(1, 2)) == [
            "Data",
            "Summary",
        ]

    def test_explicit_selection_ignores_patterns(self, selector: SheetSelector) -> None:
        names = _names(selector, names=("Data",), exclude_patterns=("*",))
        assert names == ["Data"]

    def test_missing_name(self) -> None:
        selector = SheetSelector(
            _catalog(("Sheet1", False), ("Sheet2", False), ("Sheet3", False))
        )
        with pytest.raises(SelectionError) as exc_info:
            selector.select(SheetSelection(names=("Report",)))

        error = exc_info.value
        assert error.error_code is ErrorCode.SHEET_NOT_FOUND
        assert "Report" in error.message
        assert error.details["available_sheets"] == ["Sheet1", "Sheet2", "Sheet3"]
        assert error.get_exit_code() == 4

    def test_number_out_of_range(self, selector: SheetSelector) -> None:
        with pytest.raises(SelectionError) as exc_info:
            selector.select(SheetSelection(numbers=(5,)))

        assert exc_info.value.error_code is ErrorCode.SHEET_NUMBER_OUT_OF_RANGE
        assert "4 sheets" in exc_info.value.message
