"""Command-line interface for xlsx-pipe."""

import os
import sys
import traceback
from pathlib import Path
from typing import BinaryIO

import typer
from pydantic import ValidationError

from xlsx_pipe import __version__
from xlsx_pipe.config import settings
from xlsx_pipe.models import (
    ConversionOptions,
    FormatKind,
    QuotingPolicy,
    SheetSelection,
    parse_delimiter,
    parse_escape_sequence,
)
from xlsx_pipe.pipeline import ConversionResult, Pipeline
from xlsx_pipe.services.archive import ArchiveReader
from xlsx_pipe.utils.exceptions import ConfigurationError, XlsxPipeError
from xlsx_pipe.utils.logging import configure_logging, get_logger
from xlsx_pipe.workbook import SheetDescriptor

logger = get_logger(__name__)

app = typer.Typer(add_completion=False)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"xlsx-pipe {__version__}")
        raise typer.Exit()


def _parse_ignore_formats(values: list[str]) -> frozenset[FormatKind]:
    kinds: set[FormatKind] = set()
    for value in values:
        for item in value.split(","):
            item = item.strip().lower()
            if not item:
                continue
            try:
                kinds.add(FormatKind(item))
            except ValueError:
                raise ConfigurationError(
                    f"Unknown format kind to ignore: {item!r}", field="ignore_formats"
                ) from None
    return frozenset(kinds)


def _safe_filename(name: str) -> str:
    """File name for a sheet's CSV in per-sheet output mode."""
    cleaned = name.replace("/", "_").replace("\\", "_").strip()
    return f"{cleaned or 'sheet'}.csv"


def _open_input(path: str) -> ArchiveReader:
    if path == "-":
        return ArchiveReader.from_stream(
            sys.stdin.buffer, spool_max_bytes=settings.stdin_spool_max_bytes
        )
    return ArchiveReader.open(path)


def _convert(pipeline: Pipeline, outfile: str | None) -> ConversionResult:
    if outfile and outfile != "-":
        target = Path(outfile)
        if target.is_dir():

            def open_output(sheet: SheetDescriptor) -> BinaryIO:
                return open(target / _safe_filename(sheet.name), "wb")

            return pipeline.run_per_sheet(open_output)
        with open(target, "wb") as sink:
            return pipeline.run(sink)
    return pipeline.run(sys.stdout.buffer)


def _silence_stdout() -> None:
    """Point stdout at devnull so the final interpreter flush stays quiet."""
    try:
        devnull = os.open(os.devnull, os.O_WRONLY)
    except OSError:
        return
    try:
        os.dup2(devnull, sys.stdout.fileno())
    except (OSError, ValueError):
        # Replaced streams (e.g. under a test runner) have no descriptor.
        pass
    finally:
        os.close(devnull)


@app.command()
def main(
    xlsxfile: str = typer.Argument(
        ..., help="Workbook to convert, or '-' to read from stdin"
    ),
    outfile: str | None = typer.Argument(
        None,
        help="Output CSV file, or a directory for one CSV per sheet (default: stdout)",
    ),
    all_sheets: bool = typer.Option(
        False, "--all", "-a", help="Export all sheets, each preceded by a header line"
    ),
    outputencoding: str = typer.Option(
        "utf-8", "--outputencoding", "-c", help="Encoding of the CSV output"
    ),
    delimiter: str = typer.Option(
        ",",
        "--delimiter",
        "-d",
        help="Column delimiter; 'tab' or 'x09' for a tab",
    ),
    hyperlinks: bool = typer.Option(
        False, "--hyperlinks", help="Include hyperlink targets in cell text"
    ),
    escape: bool = typer.Option(
        False, "--escape", "-e", help="Escape \\r\\n\\t characters"
    ),
    no_line_breaks: bool = typer.Option(
        False,
        "--no-line-breaks",
        help="Replace line breaks and tabs in cells with a space",
    ),
    exclude_sheet_pattern: list[str] = typer.Option(
        [], "--exclude-sheet-pattern", "-E", help="Glob pattern of sheets to skip"
    ),
    include_sheet_pattern: list[str] = typer.Option(
        [], "--include-sheet-pattern", "-I", help="Glob pattern of sheets to export"
    ),
    exclude_hidden_sheets: bool = typer.Option(
        False, "--exclude-hidden-sheets", help="Skip hidden sheets"
    ),
    dateformat: str | None = typer.Option(
        None, "--dateformat", "-f", help="strftime format for date cells"
    ),
    timeformat: str | None = typer.Option(
        None, "--timeformat", "-t", help="strftime format for time cells"
    ),
    floatformat: str | None = typer.Option(
        None, "--floatformat", help="printf format for floats, e.g. '%.2f'"
    ),
    sci_float: bool = typer.Option(
        False, "--sci-float", help="Render scientific notation as plain decimals"
    ),
    ignore_formats: list[str] = typer.Option(
        [],
        "--ignore-formats",
        help="Format kinds rendered as plain numbers: date, time, float, percentage",
    ),
    lineterminator: str = typer.Option(
        "\\n",
        "--lineterminator",
        "-l",
        help="Line terminator: \\n, \\r\\n or \\r",
    ),
    merge_cells: bool = typer.Option(
        False, "--merge-cells", "-m", help="Fill merged cells with their value"
    ),
    sheetname: list[str] = typer.Option(
        [], "--sheetname", "-n", help="Name of a sheet to export"
    ),
    sheet: list[int] = typer.Option(
        [], "--sheet", "-s", help="Number of a sheet to export, starting at 1"
    ),
    ignoreempty: bool = typer.Option(
        False, "--ignoreempty", "-i", help="Skip empty rows"
    ),
    skipemptycolumns: bool = typer.Option(
        False, "--skipemptycolumns", help="Drop trailing empty columns"
    ),
    sheetdelimiter: str = typer.Option(
        "--------",
        "--sheetdelimiter",
        "-p",
        help="Line written between sheets; '' to disable, 'x07' or '\\f' for form feed",
    ),
    quoting: QuotingPolicy = typer.Option(
        QuotingPolicy.MINIMAL, "--quoting", "-q", help="Field quoting policy"
    ),
    include_hidden_rows: bool = typer.Option(
        False, "--include-hidden-rows", help="Keep rows marked hidden"
    ),
    strict: bool = typer.Option(
        settings.strict, "--strict", help="Fail on unknown cell types"
    ),
    list_sheets: bool = typer.Option(
        False, "--list-sheets", help="List the workbook's sheets and exit"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """Convert an xlsx workbook to CSV, streaming rows as they are read."""
    configure_logging(level="DEBUG" if verbose else settings.log_level)
    logger.debug("Settings loaded", **settings.to_safe_dict())

    try:
        try:
            options = ConversionOptions(
                delimiter=parse_delimiter(delimiter),
                line_terminator=parse_escape_sequence(lineterminator),
                sheet_delimiter=parse_escape_sequence(sheetdelimiter),
                sheet_delimiter_header=all_sheets,
                quoting=quoting,
                output_encoding=outputencoding,
                selection=SheetSelection(
                    names=tuple(sheetname),
                    numbers=tuple(sheet),
                    include_patterns=tuple(include_sheet_pattern),
                    exclude_patterns=tuple(exclude_sheet_pattern),
                    exclude_hidden_sheets=exclude_hidden_sheets,
                    all_sheets=all_sheets,
                ),
                skip_empty_rows=ignoreempty,
                skip_empty_columns=skipemptycolumns,
                include_hidden_rows=include_hidden_rows,
                merge_cells=merge_cells,
                escape=escape,
                no_line_breaks=no_line_breaks,
                hyperlinks=hyperlinks,
                date_format=dateformat,
                time_format=timeformat,
                float_format=floatformat,
                sci_float=sci_float,
                ignore_formats=_parse_ignore_formats(ignore_formats),
                strict=strict,
                read_chunk_size=settings.read_chunk_size,
            )
        except ValidationError as e:
            messages = "; ".join(error["msg"] for error in e.errors())
            raise ConfigurationError(f"Invalid options: {messages}") from e
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        with _open_input(xlsxfile) as archive:
            pipeline = Pipeline(archive, options)
            if list_sheets:
                for descriptor in pipeline.list_sheets():
                    suffix = f"\t{descriptor.state}" if descriptor.hidden else ""
                    typer.echo(f"{descriptor.position}\t{descriptor.name}{suffix}")
                return
            result = _convert(pipeline, outfile)
    except XlsxPipeError as e:
        typer.echo(f"Error: {e}", err=True)
        if settings.debug or verbose:
            traceback.print_exc(file=sys.stderr)
        raise typer.Exit(code=e.get_exit_code()) from None
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        if settings.debug or verbose:
            traceback.print_exc(file=sys.stderr)
        raise typer.Exit(code=1) from None

    if result.output_closed:
        _silence_stdout()


if __name__ == "__main__":
    app()
