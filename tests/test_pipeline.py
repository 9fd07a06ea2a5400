"""Tests for conversion orchestration."""

import io
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from tests.fixtures import (
    HYPERLINK_TYPE,
    make_xlsx,
    number_row,
    relationships_xml,
    sheet_xml,
    styles_xml,
)
from xlsx_pipe import ConversionOptions, Pipeline, SheetSelection, convert
from xlsx_pipe.models import FormatKind
from xlsx_pipe.services.archive import ArchiveReader
from xlsx_pipe.utils.exceptions import (
    FormatError,
    MalformedSheetXmlError,
    SelectionError,
)


def run(source: Path | bytes, **options: object) -> str:
    """Convert to text with the given options and return the CSV output."""
    sink = io.StringIO()
    if isinstance(source, bytes):
        archive = ArchiveReader(io.BytesIO(source))
    else:
        archive = ArchiveReader.open(source)
    with archive:
        Pipeline(archive, ConversionOptions(**options)).run(sink)
    return sink.getvalue()


class TestThreeSheetWorkbook:
    """Conversion of a multi-sheet workbook written by openpyxl."""

    def test_all_visible_sheets_with_separators(
        self, three_sheet_workbook: Path
    ) -> None:
        assert run(three_sheet_workbook) == (
            "Name,Amount,Count\n"
            "Alice,123.45,3\n"
            "Bob,10,7\n"
            "--------\n"
            "Total,133.45\n"
            "--------\n"
            '"line one\nline two"\n'
        )

    def test_single_sheet_has_no_separator(self, three_sheet_workbook: Path) -> None:
        output = run(three_sheet_workbook, selection=SheetSelection(names=("Summary",)))
        assert output == "Total,133.45\n"

    def test_separator_with_header(self, three_sheet_workbook: Path) -> None:
        output = run(
            three_sheet_workbook,
            sheet_delimiter_header=True,
            selection=SheetSelection(numbers=(2, 3)),
        )
        assert output.splitlines()[0] == "-------- 2 - Summary"
        assert "-------- 3 - Notes" in output

    def test_empty_separator_disables_it(self, three_sheet_workbook: Path) -> None:
        output = run(
            three_sheet_workbook,
            sheet_delimiter="",
            selection=SheetSelection(names=("Data", "Summary")),
        )
        assert output == "Name,Amount,Count\nAlice,123.45,3\nBob,10,7\nTotal,133.45\n"

    def test_delimiter_and_terminator(self, three_sheet_workbook: Path) -> None:
        output = run(
            three_sheet_workbook,
            delimiter=";",
            line_terminator="\r\n",
            selection=SheetSelection(names=("Summary",)),
        )
        assert output == "Total;133.45\r\n"

    def test_no_line_breaks(self, three_sheet_workbook: Path) -> None:
        output = run(
            three_sheet_workbook,
            no_line_breaks=True,
            selection=SheetSelection(names=("Notes",)),
        )
        assert output == "line one line two\n"

    def test_result_counts(self, three_sheet_workbook: Path) -> None:
        with ArchiveReader.open(three_sheet_workbook) as archive:
            result = Pipeline(archive, ConversionOptions()).run(io.BytesIO())

        assert result.sheets == ["Data", "Summary", "Notes"]
        assert result.rows_written == 5
        assert result.output_closed is False

    def test_unknown_sheet_fails_before_output(
        self, three_sheet_workbook: Path
    ) -> None:
        sink = io.StringIO()
        options = ConversionOptions(selection=SheetSelection(names=("Report",)))
        with ArchiveReader.open(three_sheet_workbook) as archive:
            with pytest.raises(SelectionError) as exc_info:
                Pipeline(archive, options).run(sink)

        assert sink.getvalue() == ""
        available = exc_info.value.details["available_sheets"]
        assert available == ["Data", "Summary", "Notes"]

    def test_invalid_format_fails_before_output(
        self, three_sheet_workbook: Path
    ) -> None:
        sink = io.StringIO()
        with ArchiveReader.open(three_sheet_workbook) as archive:
            with pytest.raises(FormatError):
                Pipeline(archive, ConversionOptions(date_format="day")).run(sink)

        assert sink.getvalue() == ""

    def test_run_per_sheet(self, three_sheet_workbook: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        with ArchiveReader.open(three_sheet_workbook) as archive:
            result = Pipeline(archive, ConversionOptions()).run_per_sheet(
                lambda sheet: open(out_dir / f"{sheet.name}.csv", "wb")
            )

        assert result.rows_written == 5
        assert (out_dir / "Summary.csv").read_text() == "Total,133.45\n"
        assert (out_dir / "Data.csv").read_text().startswith("Name,Amount,Count\n")
        assert "--------" not in (out_dir / "Data.csv").read_text()

    def test_list_sheets(self, three_sheet_workbook: Path) -> None:
        with ArchiveReader.open(three_sheet_workbook) as archive:
            sheets = Pipeline(archive, ConversionOptions()).list_sheets()

        assert [(s.position, s.name) for s in sheets] == [
            (1, "Data"),
            (2, "Summary"),
            (3, "Notes"),
        ]


class TestTypedWorkbook:
    """Dates, booleans, percentages, merges and hidden content."""

    def test_defaults(self, typed_workbook: Path) -> None:
        assert run(typed_workbook).splitlines() == [
            "2023-03-15,true,12.50%",
            ",,",
            "Merged,,",
            ",,",
            ",,",
            "after,,",
        ]

    def test_merge_cells_and_hidden_rows(self, typed_workbook: Path) -> None:
        lines = run(typed_workbook, merge_cells=True, include_hidden_rows=True)

        assert lines.splitlines()[2:] == [
            "Merged,Merged,Merged",
            "Merged,Merged,Merged",
            ",,",
            "hidden row,,",
            "after,,",
        ]

    def test_skip_empty_rows_and_columns(self, typed_workbook: Path) -> None:
        output = run(typed_workbook, skip_empty_rows=True, skip_empty_columns=True)
        assert output == "2023-03-15,true,12.50%\nMerged\nafter\n"

    def test_hidden_sheet_selected_with_all_sheets(self, typed_workbook: Path) -> None:
        output = run(
            typed_workbook,
            selection=SheetSelection(all_sheets=True),
            skip_empty_rows=True,
        )
        assert output.endswith("--------\nclassified\n")

    def test_ignore_formats_and_booleans(self, typed_workbook: Path) -> None:
        output = run(
            typed_workbook,
            ignore_formats=frozenset({FormatKind.DATE, FormatKind.PERCENTAGE}),
            true_value="yes",
        )
        first = output.splitlines()[0].split(",")
        assert float(first[0]) == 45000
        assert first[1:] == ["yes", "0.125"]


class TestHandBuiltWorkbooks:
    """Edge cases assembled part by part."""

    def test_shared_strings_and_styles(self) -> None:
        rows = (
            '<row r="1"><c r="A1" t="s"><v>1</v></c><c r="B1" s="1"><v>45000</v></c>'
            '<c r="C1" t="inlineStr"><is><t>x, y</t></is></c></row>'
        )
        data = make_xlsx(
            [("Data", sheet_xml(rows))],
            shared_strings=["zero", "one"],
            styles=styles_xml([0, 14]),
        )
        assert run(data) == 'one,2023-03-15,"x, y"\n'

    def test_1904_workbook(self) -> None:
        rows = '<row r="1"><c r="A1" s="1"><v>0</v></c></row>'
        data = make_xlsx(
            [("Data", sheet_xml(rows))], styles=styles_xml([0, 14]), date1904=True
        )
        assert run(data) == "1904-01-01\n"

    def test_hyperlinks(self) -> None:
        rows = '<row r="1"><c r="A1" t="inlineStr"><is><t>site</t></is></c></row>'
        sheet = sheet_xml(
            rows, after='<hyperlinks><hyperlink ref="A1" r:id="rId1"/></hyperlinks>'
        )
        rels = relationships_xml([("rId1", HYPERLINK_TYPE, "https://x.org", True)])
        data = make_xlsx([("Data", sheet)], sheet_rels={1: rels})

        assert run(data, hyperlinks=True) == "site (https://x.org)\n"
        assert run(data) == "site\n"

    def test_escape_replaces_quoting(self) -> None:
        rows = (
            '<row r="1">'
            '<c r="A1" t="inlineStr"><is><t>a,b</t></is></c>'
            '<c r="B1" t="inlineStr"><is><t>say "hi"</t></is></c>'
            '<c r="C1" t="inlineStr"><is><t>two\nlines</t></is></c>'
            '<c r="D1" t="inlineStr"><is><t>x|y</t></is></c>'
            "</row>"
        )
        data = make_xlsx([("Data", sheet_xml(rows))])

        assert run(data, escape=True) == 'a\\,b,say \\"hi\\",two\\nlines,x|y\n'
        assert run(data, escape=True, line_terminator="|") == (
            'a\\,b,say \\"hi\\",two\\nlines,x\\|y|'
        )

    def test_empty_sheet_between_others(self) -> None:
        data = make_xlsx(
            [
                ("A", sheet_xml(number_row(1, [1]))),
                ("Empty", sheet_xml("")),
                ("B", sheet_xml(number_row(1, [2]))),
            ]
        )
        assert run(data) == "1\n--------\n--------\n2\n"

    def test_bad_shared_string_index_names_sheet(self) -> None:
        rows = '<row r="2"><c r="C2" t="s"><v>9</v></c></row>'
        data = make_xlsx([("Data", sheet_xml(rows))], shared_strings=["only"])
        sink = io.StringIO()

        with ArchiveReader(io.BytesIO(data)) as archive:
            with pytest.raises(FormatError) as exc_info:
                Pipeline(archive, ConversionOptions()).run(sink)

        assert exc_info.value.details == {"sheet": "Data", "row": 2, "column": 3}
        assert sink.getvalue() == "\n"

    def test_malformed_sheet_keeps_written_prefix(self) -> None:
        rows = number_row(1, [1]) + number_row(3, [3]) + number_row(2, [2])
        data = make_xlsx([("Data", sheet_xml(rows))])
        sink = io.StringIO()

        with ArchiveReader(io.BytesIO(data)) as archive:
            with pytest.raises(MalformedSheetXmlError):
                Pipeline(archive, ConversionOptions(read_chunk_size=16)).run(sink)

        assert sink.getvalue().startswith("1\n")

    def test_iter_rows_is_lazy(self) -> None:
        rows = "".join(number_row(i, [i]) for i in range(1, 1001))
        data = make_xlsx([("Data", sheet_xml(rows))])

        with ArchiveReader(io.BytesIO(data)) as archive:
            pipeline = Pipeline(archive, ConversionOptions(read_chunk_size=256))
            sheet = pipeline.select()[0]
            rows_iter = pipeline.iter_rows(sheet)
            assert next(rows_iter) == ["1"]
            assert next(rows_iter) == ["2"]
            rows_iter.close()


class TestOutputClosed:
    """A consumer closing the output ends the run cleanly."""

    def test_broken_pipe_stops_run(self, three_sheet_workbook: Path) -> None:
        sink = MagicMock(spec=io.BytesIO)
        sink.write.side_effect = [None, BrokenPipeError()]

        with ArchiveReader.open(three_sheet_workbook) as archive:
            result = Pipeline(archive, ConversionOptions()).run(sink)

        assert result.output_closed is True
        assert result.rows_written == 1
        assert result.sheets == []


def test_convert_from_path_and_stream(three_sheet_workbook: Path) -> None:
    options = ConversionOptions(selection=SheetSelection(names=("Summary",)))

    by_path = io.BytesIO()
    convert(three_sheet_workbook, by_path, options)
    by_stream = io.BytesIO()
    with open(three_sheet_workbook, "rb") as source:
        convert(source, by_stream, options)

    assert by_path.getvalue() == by_stream.getvalue() == b"Total,133.45\n"
