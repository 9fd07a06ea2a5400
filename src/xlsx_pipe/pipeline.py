"""Conversion orchestration.

For each selected sheet the pipeline pulls cell events from the sheet
part, assembles dense rows, renders values and writes records, one sheet
at a time in selection order. Every stage produces its next item only
when the next stage asks for it; the shared-string table, style table
and sheet catalog are loaded once and only read afterwards.

Usage:
    with ArchiveReader.open("book.xlsx") as archive:
        result = Pipeline(archive, ConversionOptions()).run(sys.stdout.buffer)
"""

import uuid
from collections.abc import Callable, Generator
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, TextIO

from xlsx_pipe.models import ConversionOptions
from xlsx_pipe.output.csv_writer import CsvWriter
from xlsx_pipe.services.archive import ArchiveReader
from xlsx_pipe.services.catalog import (
    Relationship,
    SheetCatalog,
    load_relationships,
    relationships_part_for,
)
from xlsx_pipe.services.cell_parser import CellEventParser, scan_sheet_metadata
from xlsx_pipe.services.row_assembler import AssembledRow, RowAssembler
from xlsx_pipe.services.selector import SheetSelector
from xlsx_pipe.services.shared_strings import SharedStringTable
from xlsx_pipe.services.styles import StyleTable
from xlsx_pipe.services.value_formatter import ValueFormatter
from xlsx_pipe.utils.exceptions import OutputClosedError, XlsxPipeError
from xlsx_pipe.utils.logging import (
    LogContext,
    PerformanceMetrics,
    get_logger,
    timed_operation,
)
from xlsx_pipe.workbook import SheetDescriptor, SheetMetadata

logger = get_logger(__name__)

Sink = BinaryIO | TextIO


@dataclass
class ConversionResult:
    """Outcome of one conversion run."""

    sheets: list[str] = field(default_factory=list)
    """Names of the sheets streamed, in output order."""

    rows_written: int = 0
    """Number of CSV records written, separators excluded."""

    output_closed: bool = False
    """Whether the consumer closed the output before the run finished.

    A closed output ends the run early but is not a failure.
    """

    duration_seconds: float = 0.0


class Pipeline:
    """Streams the selected sheets of one opened container to CSV."""

    def __init__(self, archive: ArchiveReader, options: ConversionOptions) -> None:
        """Load the workbook catalog.

        Raises:
            EntryMissingError: If the workbook part is absent.
            MalformedWorkbookError: If the manifest is invalid.
        """
        self.archive = archive
        self.options = options
        self.catalog = SheetCatalog.load(archive)
        self._shared_strings: SharedStringTable | None = None
        self._styles: StyleTable | None = None

    def list_sheets(self) -> list[SheetDescriptor]:
        """All sheets of the workbook in declaration order."""
        return list(self.catalog)

    def select(self) -> list[SheetDescriptor]:
        """Resolve the configured selection against the catalog.

        Raises:
            SelectionError: If an explicitly requested sheet does not exist.
        """
        return SheetSelector(self.catalog).select(self.options.selection)

    # ------------------------------------------------------------------ #
    # Side tables
    # ------------------------------------------------------------------ #

    @property
    def shared_strings(self) -> SharedStringTable:
        if self._shared_strings is None:
            part = self.catalog.shared_strings_part
            if part is None:
                self._shared_strings = SharedStringTable.empty()
            else:
                with self.archive.open_entry(part) as stream:
                    self._shared_strings = SharedStringTable.load(
                        stream, part=part, chunk_size=self.options.read_chunk_size
                    )
        return self._shared_strings

    @property
    def styles(self) -> StyleTable:
        if self._styles is None:
            part = self.catalog.styles_part
            if part is None:
                self._styles = StyleTable.empty()
            else:
                with self.archive.open_entry(part) as stream:
                    self._styles = StyleTable.load(
                        stream, part=part, chunk_size=self.options.read_chunk_size
                    )
        return self._styles

    def formatter(self) -> ValueFormatter:
        """Build the value formatter for this run.

        Raises:
            FormatError: If an override format string is invalid.
        """
        return ValueFormatter(
            self.options,
            shared_strings=self.shared_strings,
            styles=self.styles,
            date1904=self.catalog.date1904,
        )

    # ------------------------------------------------------------------ #
    # Per-sheet streaming
    # ------------------------------------------------------------------ #

    def sheet_metadata(self, sheet: SheetDescriptor) -> SheetMetadata:
        """Pre-scan a sheet for merge regions and hyperlinks when needed."""
        options = self.options
        if not (options.merge_cells or options.hyperlinks):
            return SheetMetadata()

        relationships: dict[str, Relationship] = {}
        if options.hyperlinks:
            relationships = load_relationships(
                self.archive, relationships_part_for(sheet.part)
            )
        with self.archive.open_entry(sheet.part) as stream:
            return scan_sheet_metadata(
                stream,
                part=sheet.part,
                sheet_name=sheet.name,
                relationships=relationships,
                collect_merges=options.merge_cells,
                collect_hyperlinks=options.hyperlinks,
                chunk_size=options.read_chunk_size,
            )

    def iter_rows(
        self,
        sheet: SheetDescriptor,
        formatter: ValueFormatter | None = None,
        metrics: PerformanceMetrics | None = None,
    ) -> Generator[AssembledRow, None, None]:
        """Lazily yield the assembled rows of one sheet.

        The sheet part stays open only while the generator is being
        consumed; closing the generator early releases it. When `metrics`
        is given, its cell counter is updated once the generator ends.
        """
        formatter = formatter or self.formatter()
        assembler = RowAssembler(formatter, self.options, self.sheet_metadata(sheet))
        parser = CellEventParser(
            sheet_name=sheet.name,
            part=sheet.part,
            chunk_size=self.options.read_chunk_size,
            strict=self.options.strict,
        )
        try:
            with self.archive.open_entry(sheet.part) as stream:
                yield from assembler.assemble(parser.parse(stream))
        finally:
            if metrics is not None:
                metrics.cells_processed = assembler.cells_processed

    def _write_sheet(
        self,
        writer: CsvWriter,
        sheet: SheetDescriptor,
        formatter: ValueFormatter,
    ) -> int:
        with (
            LogContext(sheet=sheet.name),
            timed_operation(logger, "sheet") as metrics,
            closing(self.iter_rows(sheet, formatter, metrics)) as rows,
        ):
            try:
                metrics.rows_written = writer.write_rows(rows)
            except OutputClosedError:
                raise
            except XlsxPipeError as e:
                e.details.setdefault("sheet", sheet.name)
                raise
            logger.debug("Sheet converted", rows=metrics.rows_written)
            return metrics.rows_written

    # ------------------------------------------------------------------ #
    # Runs
    # ------------------------------------------------------------------ #

    def run(self, sink: Sink) -> ConversionResult:
        """Convert the selected sheets into a single output stream.

        Sheets are concatenated in selection order with the sheet delimiter
        line between consecutive sheets, or before every sheet when the
        delimiter carries a sheet header.

        Raises:
            SelectionError: Before any output, for unknown explicit sheets.
            FormatError: Before any output, for invalid override formats.
            XlsxPipeError: For any other fatal error; output written so far
                remains a well-formed prefix.
        """
        selected = self.select()
        formatter = self.formatter()
        writer = CsvWriter(sink, self.options)
        result = ConversionResult()
        separator = self.options.sheet_delimiter
        with_header = self.options.sheet_delimiter_header

        with (
            LogContext(run_id=uuid.uuid4().hex[:12]),
            timed_operation(logger, "conversion") as metrics,
        ):
            try:
                for index, sheet in enumerate(selected):
                    if separator and with_header:
                        writer.write_separator(separator, sheet.position, sheet.name)
                    elif separator and index > 0:
                        writer.write_separator(separator)
                    self._write_sheet(writer, sheet, formatter)
                    result.sheets.append(sheet.name)
                writer.flush()
            except OutputClosedError:
                logger.debug("Output closed by consumer; stopping")
                result.output_closed = True
            result.rows_written = writer.rows_written
            metrics.sheets_processed = len(result.sheets)
            metrics.rows_written = result.rows_written

        return self._report(result, metrics.duration_seconds)

    def run_per_sheet(
        self, open_output: Callable[[SheetDescriptor], Sink]
    ) -> ConversionResult:
        """Convert each selected sheet into its own output stream.

        `open_output` is called once per sheet, just before the sheet is
        streamed; the returned sink is closed afterwards. No sheet
        delimiter is written.
        """
        selected = self.select()
        formatter = self.formatter()
        result = ConversionResult()

        with (
            LogContext(run_id=uuid.uuid4().hex[:12]),
            timed_operation(logger, "conversion") as metrics,
        ):
            try:
                for sheet in selected:
                    with closing(open_output(sheet)) as sink:
                        writer = CsvWriter(sink, self.options)
                        result.rows_written += self._write_sheet(
                            writer, sheet, formatter
                        )
                    result.sheets.append(sheet.name)
            except OutputClosedError:
                logger.debug("Output closed by consumer; stopping")
                result.output_closed = True
            metrics.sheets_processed = len(result.sheets)
            metrics.rows_written = result.rows_written

        return self._report(result, metrics.duration_seconds)

    @staticmethod
    def _report(result: ConversionResult, duration_seconds: float) -> ConversionResult:
        result.duration_seconds = duration_seconds
        logger.log_conversion_result(
            sheets=len(result.sheets),
            rows=result.rows_written,
            duration_seconds=duration_seconds,
            output_closed=result.output_closed,
        )
        return result


def convert(
    source: str | Path | BinaryIO,
    sink: Sink,
    options: ConversionOptions | None = None,
) -> ConversionResult:
    """Convert a workbook from a path or binary stream into one CSV stream.

    Example:
        with open("out.csv", "wb") as out:
            convert("book.xlsx", out, ConversionOptions(delimiter=";"))
    """
    options = options or ConversionOptions()
    if isinstance(source, (str, Path)):
        archive = ArchiveReader.open(source)
    else:
        archive = ArchiveReader.from_stream(source)
    with archive:
        return Pipeline(archive, options).run(sink)
