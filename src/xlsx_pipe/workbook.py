"""Dataclasses representing the streamed pieces of a workbook."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_REF_PATTERN = re.compile(r"^\$?([A-Za-z]{1,3})\$?([0-9]+)$")


class CellKind(str, Enum):
    """Value kind of a cell, derived from its type attribute."""

    SHARED_STRING = "shared_string"
    INLINE_STRING = "inline_string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ERROR = "error"
    EMPTY = "empty"


def column_index(letters: str) -> int:
    """Convert column letters ("A", "AB") to a 0-based index."""
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def column_letters(index: int) -> str:
    """Convert a 0-based column index back to letters."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(frozen=True, slots=True)
class CellRef:
    """0-based cell coordinate."""

    row: int
    column: int

    @classmethod
    def parse(cls, coordinate: str) -> CellRef:
        """Parse an A1-style coordinate such as "C12" or "$C$12".

        Raises:
            ValueError: If the coordinate is not a valid cell reference.
        """
        match = _REF_PATTERN.match(coordinate.strip())
        if match is None:
            raise ValueError(f"Invalid cell reference: {coordinate!r}")
        row = int(match.group(2)) - 1
        if row < 0:
            raise ValueError(f"Invalid cell reference: {coordinate!r}")
        return cls(row=row, column=column_index(match.group(1)))

    def __str__(self) -> str:
        return f"{column_letters(self.column)}{self.row + 1}"


@dataclass(frozen=True, slots=True)
class CellEvent:
    """One cell as it appears in document order.

    The raw payload is kept as text; numbers are not converted to floating
    point until the value formatter decides on a representation.
    """

    ref: CellRef
    kind: CellKind
    raw: str
    style_id: int | None = None


@dataclass(frozen=True, slots=True)
class RowStart:
    """Row boundary marker carrying the declared row index."""

    index: int
    hidden: bool = False


@dataclass(frozen=True, slots=True)
class MergeRegion:
    """Rectangular range whose value lives in the top-left cell."""

    top: int
    left: int
    bottom: int
    right: int

    @classmethod
    def parse(cls, reference: str) -> MergeRegion:
        """Parse a range such as "B2:D4". A single cell yields a 1x1 region."""
        first, _, last = reference.partition(":")
        start = CellRef.parse(first)
        end = CellRef.parse(last) if last else start
        return cls(
            top=min(start.row, end.row),
            left=min(start.column, end.column),
            bottom=max(start.row, end.row),
            right=max(start.column, end.column),
        )

    def contains(self, row: int, column: int) -> bool:
        return self.top <= row <= self.bottom and self.left <= column <= self.right

    def is_anchor(self, row: int, column: int) -> bool:
        return row == self.top and column == self.left


@dataclass(frozen=True, slots=True)
class Hyperlink:
    """A sheet-level hyperlink bound to a cell range."""

    region: MergeRegion
    target: str


@dataclass(frozen=True)
class SheetMetadata:
    """Side tables collected from a sheet part before its rows are streamed."""

    merges: tuple[MergeRegion, ...] = ()
    hyperlinks: tuple[Hyperlink, ...] = ()
    dimension: str | None = None


@dataclass(frozen=True)
class SheetDescriptor:
    """One physical sheet declared by the workbook manifest."""

    sheet_id: int
    """Internal id (the sheetId attribute)."""

    name: str
    hidden: bool
    part: str
    """Path of the sheet part inside the container."""

    position: int = 0
    """1-based position in declaration order."""

    state: str = field(default="visible", compare=False)
    """Raw visibility state: visible, hidden or veryHidden."""
