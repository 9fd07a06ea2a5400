"""Streaming cell-event parser for sheet parts.

`CellEventParser.parse` turns one sheet part into a lazy, single-pass
sequence of `RowStart` markers and `CellEvent`s in document order. No DOM
is built: each completed row is detached from the partial tree as soon as
its cells have been yielded, so memory stays bounded by one row.

`scan_sheet_metadata` is a separate forward pass that collects the merge
regions and hyperlinks serialized after the cell data.
"""

from collections.abc import Callable, Iterator
from typing import IO
from xml.etree.ElementTree import Element

from xlsx_pipe.services.catalog import Relationship
from xlsx_pipe.services.xml_stream import (
    DEFAULT_CHUNK_SIZE,
    get_attr,
    get_namespaced_attr,
    is_true,
    iter_events,
    local_name,
    rich_text,
)
from xlsx_pipe.utils.exceptions import MalformedSheetXmlError, UnknownCellTypeError
from xlsx_pipe.utils.logging import get_logger
from xlsx_pipe.workbook import (
    CellEvent,
    CellKind,
    CellRef,
    Hyperlink,
    MergeRegion,
    RowStart,
    SheetMetadata,
)

logger = get_logger(__name__)

SheetItem = RowStart | CellEvent

# Type attribute codes of <c>. "str" is a formula's cached string result
# and "d" an ISO 8601 date; both are passed through as text.
CELL_TYPES: dict[str, CellKind] = {
    "s": CellKind.SHARED_STRING,
    "inlineStr": CellKind.INLINE_STRING,
    "str": CellKind.INLINE_STRING,
    "d": CellKind.INLINE_STRING,
    "n": CellKind.NUMBER,
    "b": CellKind.BOOLEAN,
    "e": CellKind.ERROR,
}


class CellEventParser:
    """Pull-parses one sheet part into row markers and cell events."""

    def __init__(
        self,
        *,
        sheet_name: str | None = None,
        part: str = "<sheet>",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        strict: bool = False,
    ) -> None:
        self.sheet_name = sheet_name
        self.part = part
        self.chunk_size = chunk_size
        self.strict = strict

    def _error(
        self, message: str, row: int | None = None, column: int | None = None
    ) -> MalformedSheetXmlError:
        return MalformedSheetXmlError(
            message, part=self.part, sheet=self.sheet_name, row=row, column=column
        )

    def parse(self, stream: IO[bytes]) -> Iterator[SheetItem]:
        """Yield RowStart and CellEvent items in document order.

        Row indices are strictly increasing and may skip fully empty rows;
        column indices never decrease within a row.

        Raises:
            MalformedSheetXmlError: On invalid XML or out-of-order content.
            UnknownCellTypeError: On an unknown type code in strict mode.
        """
        sheet_data: Element | None = None
        row_index = -1
        last_column = -1
        in_row = False

        for event, elem in iter_events(
            stream,
            part=self.part,
            error_factory=self._error,
            chunk_size=self.chunk_size,
        ):
            name = local_name(elem.tag)

            if event == "start":
                if name == "sheetData":
                    sheet_data = elem
                elif name == "row" and sheet_data is not None:
                    row_index = self._row_index(elem, row_index)
                    last_column = -1
                    in_row = True
                    yield RowStart(row_index, hidden=is_true(get_attr(elem, "hidden")))
                continue

            if sheet_data is None:
                continue
            if name == "c":
                if not in_row:
                    raise self._error("Cell outside of a row")
                cell = self._cell_event(elem, row_index, last_column)
                last_column = cell.ref.column
                yield cell
            elif name == "row":
                in_row = False
                sheet_data.clear()
            elif name == "sheetData":
                # Everything after the cell data is read by the metadata scan.
                return

    def _row_index(self, elem: Element, previous: int) -> int:
        declared = get_attr(elem, "r")
        if declared is None:
            return previous + 1
        try:
            index = int(declared) - 1
        except ValueError:
            raise self._error(f"Invalid row number {declared!r}") from None
        if index <= previous:
            raise self._error(
                f"Row {declared} appears after row {previous + 1}", row=index
            )
        return index

    def _cell_event(self, elem: Element, row_index: int, last_column: int) -> CellEvent:
        coordinate = get_attr(elem, "r")
        if coordinate is None:
            ref = CellRef(row_index, last_column + 1)
        else:
            try:
                ref = CellRef.parse(coordinate)
            except ValueError:
                raise self._error(
                    f"Invalid cell reference {coordinate!r}", row=row_index
                ) from None
            if ref.row != row_index:
                raise self._error(
                    f"Cell {coordinate} declared inside row {row_index + 1}",
                    row=row_index,
                    column=ref.column,
                )
            if ref.column < last_column:
                raise self._error(
                    f"Cell {coordinate} is out of column order",
                    row=ref.row,
                    column=ref.column,
                )

        type_code = get_attr(elem, "t") or "n"
        kind = CELL_TYPES.get(type_code)
        if kind is None:
            if self.strict:
                raise UnknownCellTypeError(
                    type_code, sheet=self.sheet_name, row=ref.row, column=ref.column
                )
            logger.warning(
                "Unknown cell type; using raw text", type_code=type_code, cell=str(ref)
            )
            kind = CellKind.INLINE_STRING

        style_id = None
        style = get_attr(elem, "s")
        if style is not None:
            try:
                style_id = int(style)
            except ValueError:
                raise self._error(
                    f"Invalid style id {style!r}", row=ref.row, column=ref.column
                ) from None

        raw: str | None = None
        for child in elem:
            child_name = local_name(child.tag)
            if child_name == "v":
                raw = child.text or ""
            elif child_name == "is":
                raw = rich_text(child)

        if raw is None:
            return CellEvent(ref, CellKind.EMPTY, "", style_id)
        return CellEvent(ref, kind, raw, style_id)


def scan_sheet_metadata(
    stream: IO[bytes],
    *,
    part: str = "<sheet>",
    sheet_name: str | None = None,
    relationships: dict[str, Relationship] | None = None,
    collect_merges: bool = True,
    collect_hyperlinks: bool = True,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> SheetMetadata:
    """Collect merge regions and hyperlinks from a sheet part.

    Row content is discarded as it is parsed. Hyperlink relationship ids
    are resolved through `relationships` (the sheet's relationship part);
    in-workbook links use their `location` as "#location".

    Raises:
        MalformedSheetXmlError: On invalid XML or an invalid range reference.
    """
    relationships = relationships or {}
    merges: list[MergeRegion] = []
    hyperlinks: list[Hyperlink] = []
    dimension: str | None = None
    sheet_data: Element | None = None

    def error(message: str) -> MalformedSheetXmlError:
        return MalformedSheetXmlError(message, part=part, sheet=sheet_name)

    for event, elem in iter_events(
        stream, part=part, error_factory=error, chunk_size=chunk_size
    ):
        name = local_name(elem.tag)
        if event == "start":
            if name == "sheetData":
                sheet_data = elem
            continue

        if name == "row" and sheet_data is not None:
            sheet_data.clear()
        elif name == "dimension":
            dimension = get_attr(elem, "ref")
        elif name == "mergeCell" and collect_merges:
            reference = get_attr(elem, "ref")
            if reference:
                merges.append(_parse_range(reference, error))
        elif name == "hyperlink" and collect_hyperlinks:
            link = _parse_hyperlink(elem, relationships, error)
            if link is not None:
                hyperlinks.append(link)

    logger.debug(
        "Sheet metadata scanned",
        part=part,
        merges=len(merges),
        hyperlinks=len(hyperlinks),
    )
    return SheetMetadata(
        merges=tuple(merges), hyperlinks=tuple(hyperlinks), dimension=dimension
    )


def _parse_range(
    reference: str, error: Callable[[str], MalformedSheetXmlError]
) -> MergeRegion:
    try:
        return MergeRegion.parse(reference)
    except ValueError:
        raise error(f"Invalid range reference {reference!r}") from None


def _parse_hyperlink(
    elem: Element,
    relationships: dict[str, Relationship],
    error: Callable[[str], MalformedSheetXmlError],
) -> Hyperlink | None:
    reference = get_attr(elem, "ref")
    if not reference:
        return None

    target = ""
    rel_id = get_namespaced_attr(elem, "id")
    if rel_id:
        rel = relationships.get(rel_id)
        if rel is None:
            logger.warning("Hyperlink relationship not found", rel_id=rel_id)
        else:
            target = rel.target
    location = get_attr(elem, "location")
    if location:
        target = f"{target}#{location}"
    if not target:
        return None
    return Hyperlink(region=_parse_range(reference, error), target=target)
