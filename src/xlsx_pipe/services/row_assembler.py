"""Dense row reconstruction from sparse cell events."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Protocol

from xlsx_pipe.models import ConversionOptions
from xlsx_pipe.workbook import (
    CellEvent,
    CellKind,
    CellRef,
    MergeRegion,
    RowStart,
    SheetMetadata,
)

AssembledRow = list[str]


class CellFormatter(Protocol):
    """Anything that renders a cell event to its final text."""

    def format(self, event: CellEvent, hyperlink: str | None = None) -> str: ...


class RowAssembler:
    """Rebuilds dense rows for one sheet.

    Every row index from 0 to the last one seen is produced in increasing
    order: rows the sheet omits come out empty, skipped columns are filled
    with empty strings up to the widest column seen so far in the sheet,
    and merge regions optionally repeat their top-left value. Rows may end
    up with different lengths (ragged rows); no padding is added for
    alignment.

    A hyperlink whose cell has no element in the sheet still renders its
    target in that column. For a range hyperlink this applies to the
    range's top-left cell only.
    """

    def __init__(
        self,
        formatter: CellFormatter,
        options: ConversionOptions,
        metadata: SheetMetadata | None = None,
    ) -> None:
        self._formatter = formatter
        self._skip_empty_rows = options.skip_empty_rows
        self._skip_empty_columns = options.skip_empty_columns
        self._include_hidden_rows = options.include_hidden_rows
        metadata = metadata or SheetMetadata()

        self._merges: tuple[MergeRegion, ...] = ()
        if options.merge_cells:
            self._merges = tuple(sorted(metadata.merges, key=lambda m: (m.top, m.left)))
        self._next_merge = 0
        self._active: list[MergeRegion] = []
        self._anchor_values: dict[MergeRegion, str] = {}

        self._cell_links: dict[tuple[int, int], str] = {}
        self._range_links: list[tuple[MergeRegion, str]] = []
        self._links_by_row: dict[int, list[tuple[int, str]]] = {}
        if options.hyperlinks:
            for link in metadata.hyperlinks:
                region = link.region
                if region.top == region.bottom and region.left == region.right:
                    self._cell_links[(region.top, region.left)] = link.target
                else:
                    self._range_links.append((region, link.target))
                self._links_by_row.setdefault(region.top, []).append(
                    (region.left, link.target)
                )

        self._max_column = -1
        self.cells_processed = 0

    def assemble(
        self, events: Iterable[RowStart | CellEvent]
    ) -> Iterator[AssembledRow]:
        """Consume one sheet's events and yield its rows lazily."""
        next_row = 0
        row_index = -1
        hidden = False
        cells: list[tuple[int, str]] | None = None

        for item in events:
            if isinstance(item, RowStart):
                if cells is not None:
                    row = self._build(row_index, cells, hidden)
                    if row is not None:
                        yield row
                yield from self._fill(next_row, item.index)
                row_index = item.index
                hidden = item.hidden
                cells = []
                next_row = row_index + 1
                continue

            if cells is None:
                # Cell events always follow a row marker from the parser;
                # tolerate hand-built sequences that start with a cell.
                row_index = item.ref.row
                cells = []
                next_row = row_index + 1
            self.cells_processed += 1
            column = item.ref.column
            if column > self._max_column:
                self._max_column = column
            cells.append((column, self._formatter.format(item, self._link_for(item))))

        if cells is not None:
            row = self._build(row_index, cells, hidden)
            if row is not None:
                yield row

        # Merge regions and hyperlinks may extend below the last row holding
        # cells.
        trailing = [m.bottom for m in self._merges] + list(self._links_by_row)
        if trailing:
            yield from self._fill(next_row, max(trailing) + 1)

    def _fill(self, start: int, stop: int) -> Iterator[AssembledRow]:
        """Yield rows the sheet omitted between two declared rows."""
        if start >= stop:
            return
        if self._skip_empty_rows and not (
            self._merge_touches(start, stop) or self._links_touch(start, stop)
        ):
            return
        for index in range(start, stop):
            row = self._build(index, [], False)
            if row is not None:
                yield row

    def _merge_touches(self, start: int, stop: int) -> bool:
        candidates = list(self._active) + list(self._merges[self._next_merge :])
        return any(m.top < stop and m.bottom >= start for m in candidates)

    def _links_touch(self, start: int, stop: int) -> bool:
        return any(start <= row < stop for row in self._links_by_row)

    def _build(
        self, index: int, cells: list[tuple[int, str]], hidden: bool
    ) -> AssembledRow | None:
        active = self._activate_merges(index) if self._merges else ()
        for region in active:
            if region.right > self._max_column:
                self._max_column = region.right

        orphan_links = self._orphan_links(index, cells)
        for column, _ in orphan_links:
            if column > self._max_column:
                self._max_column = column

        row = [""] * (self._max_column + 1)
        for column, value in cells:
            row[column] = value
        for column, target in orphan_links:
            empty = CellEvent(CellRef(index, column), CellKind.EMPTY, "")
            row[column] = self._formatter.format(empty, target)

        for region in active:
            if region.top == index:
                self._anchor_values[region] = row[region.left]
            value = self._anchor_values.get(region, "")
            for column in range(region.left, region.right + 1):
                if not region.is_anchor(index, column):
                    row[column] = value

        if hidden and not self._include_hidden_rows:
            return None
        return self._finish(row)

    def _finish(self, row: AssembledRow) -> AssembledRow | None:
        if self._skip_empty_columns:
            while row and not row[-1]:
                row.pop()
        if self._skip_empty_rows and not any(row):
            return None
        return row

    def _activate_merges(self, index: int) -> list[MergeRegion]:
        while (
            self._next_merge < len(self._merges)
            and self._merges[self._next_merge].top <= index
        ):
            self._active.append(self._merges[self._next_merge])
            self._next_merge += 1
        expired = [m for m in self._active if m.bottom < index]
        for region in expired:
            self._active.remove(region)
            self._anchor_values.pop(region, None)
        return self._active

    def _orphan_links(
        self, index: int, cells: list[tuple[int, str]]
    ) -> list[tuple[int, str]]:
        """Hyperlinks anchored in this row whose cell has no element."""
        links = self._links_by_row.get(index)
        if not links:
            return []
        present = {column for column, _ in cells}
        return [(column, target) for column, target in links if column not in present]

    def _link_for(self, event: CellEvent) -> str | None:
        if not (self._cell_links or self._range_links):
            return None
        row, column = event.ref.row, event.ref.column
        target = self._cell_links.get((row, column))
        if target is not None:
            return target
        for region, target in self._range_links:
            if region.contains(row, column):
                return target
        return None
