"""Pydantic models describing one conversion run.

`ConversionOptions` is the fully populated configuration value consumed by
the conversion core. It is built once at the boundary (the command-line
layer or a library caller) and never mutated afterwards.
"""

import codecs
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuotingPolicy(str, Enum):
    """Field quoting policy for CSV output."""

    NONE = "none"
    MINIMAL = "minimal"
    NONNUMERIC = "nonnumeric"
    ALL = "all"


class FormatKind(str, Enum):
    """Classification of a cell's number format."""

    GENERAL = "general"
    FLOAT = "float"
    PERCENTAGE = "percentage"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"


# Format kinds a user may ask to ignore; "time" also covers datetime.
IGNORABLE_FORMAT_KINDS = frozenset(
    {FormatKind.DATE, FormatKind.TIME, FormatKind.FLOAT, FormatKind.PERCENTAGE}
)


class SheetSelection(BaseModel):
    """Criteria deciding which sheets of the workbook are streamed."""

    model_config = ConfigDict(frozen=True)

    names: tuple[str, ...] = ()
    """Explicit sheet names; take precedence over every other criterion."""

    numbers: tuple[int, ...] = ()
    """Explicit 1-based sheet positions in declaration order."""

    include_patterns: tuple[str, ...] = ()
    """Glob patterns; a sheet must match at least one when given."""

    exclude_patterns: tuple[str, ...] = ()
    """Glob patterns; a sheet matching any of them is dropped."""

    exclude_hidden_sheets: bool = False
    """Drop hidden sheets from pattern-based and default selection."""

    all_sheets: bool = False
    """Select hidden sheets too when no other criterion is given."""

    @field_validator("numbers")
    @classmethod
    def validate_numbers(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        for number in v:
            if number < 1:
                raise ValueError(f"Sheet numbers start at 1, got {number}")
        return v

    @property
    def is_explicit(self) -> bool:
        """Whether the selection names sheets explicitly."""
        return bool(self.names or self.numbers)


class ConversionOptions(BaseModel):
    """Immutable configuration for one xlsx to CSV conversion.

    Example:
        options = ConversionOptions(
            delimiter=";",
            quoting=QuotingPolicy.ALL,
            selection=SheetSelection(names=("Data",)),
            date_format="%d/%m/%Y",
        )
    """

    model_config = ConfigDict(frozen=True)

    # =========================================================================
    # CSV Shape
    # =========================================================================

    delimiter: str = ","
    line_terminator: str = "\n"
    sheet_delimiter: str = "--------"
    """Separator line written between consecutive sheets; empty disables it."""

    sheet_delimiter_header: bool = False
    """Append "<number> - <name>" to each separator line."""

    quoting: QuotingPolicy = QuotingPolicy.MINIMAL
    quote_char: str = '"'
    output_encoding: str = "utf-8"

    # =========================================================================
    # Sheet and Row Selection
    # =========================================================================

    selection: SheetSelection = Field(default_factory=SheetSelection)
    skip_empty_rows: bool = False
    skip_empty_columns: bool = False
    """Drop trailing empty columns from each row independently."""

    include_hidden_rows: bool = False
    merge_cells: bool = False
    """Repeat a merge region's top-left value in every cell it spans."""

    # =========================================================================
    # Value Rendering
    # =========================================================================

    escape: bool = False
    """Backslash-escape line breaks, tabs, delimiter, quote and terminator
    characters. Under the minimal and nonnumeric policies escaped fields are
    written unquoted.
    """

    no_line_breaks: bool = False
    """Replace embedded line breaks and tabs with a single space."""

    hyperlinks: bool = False
    """Append hyperlink targets to cell text as "value (target)"."""

    date_format: str | None = None
    time_format: str | None = None
    datetime_format: str | None = None
    float_format: str | None = None
    """printf-style override such as "%.2f"."""

    sci_float: bool = False
    """Re-render scientific notation numbers as plain decimals."""

    ignore_formats: frozenset[FormatKind] = frozenset()
    true_value: str = "true"
    false_value: str = "false"

    # =========================================================================
    # Error Policy and Streaming
    # =========================================================================

    strict: bool = False
    """Escalate unknown cell types to a fatal error."""

    read_chunk_size: int = 64 * 1024

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("delimiter", "quote_char")
    @classmethod
    def validate_single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"Expected exactly one character, got {v!r}")
        return v

    @field_validator("line_terminator")
    @classmethod
    def validate_line_terminator(cls, v: str) -> str:
        if not v:
            raise ValueError("line_terminator must not be empty")
        return v

    @field_validator("output_encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown output encoding: {v}") from e
        return v

    @field_validator("ignore_formats")
    @classmethod
    def validate_ignore_formats(
        cls, v: frozenset[FormatKind]
    ) -> frozenset[FormatKind]:
        unsupported = v - IGNORABLE_FORMAT_KINDS
        if unsupported:
            names = ", ".join(sorted(kind.value for kind in unsupported))
            raise ValueError(f"Cannot ignore format kinds: {names}")
        return v

    @model_validator(mode="after")
    def validate_delimiter_quote(self) -> "ConversionOptions":
        """Validate the delimiter and quote character differ."""
        if self.delimiter == self.quote_char:
            raise ValueError("delimiter and quote_char must differ")
        return self

    def ignores(self, kind: FormatKind) -> bool:
        """Whether rendering for a format kind is suppressed."""
        if kind is FormatKind.DATETIME:
            return (
                FormatKind.DATE in self.ignore_formats
                or FormatKind.TIME in self.ignore_formats
            )
        return kind in self.ignore_formats


_ESCAPES = (
    ("\\r\\n", "\r\n"),
    ("\\n", "\n"),
    ("\\r", "\r"),
    ("\\t", "\t"),
    ("\\f", "\x0c"),
    ("x07", "\x07"),
    ("x09", "\t"),
)


def parse_escape_sequence(value: str) -> str:
    """Translate command-line escape spellings into control characters.

    Example:
        parse_escape_sequence("\\r\\n")  # "\r\n"
        parse_escape_sequence("x07")     # "\x07"
    """
    for spelling, char in _ESCAPES:
        value = value.replace(spelling, char)
    return value


def parse_delimiter(value: str) -> str:
    """Translate a delimiter argument into a single character.

    Accepts "tab", "\\t" and "x09" for a tab.

    Raises:
        ValueError: If the argument does not denote one character.
    """
    if value in {"tab", "\\t", "x09"}:
        return "\t"
    if value == "comma":
        return ","
    if value == "semicolon":
        return ";"
    if len(value) != 1:
        raise ValueError(f"Invalid delimiter: {value!r}")
    return value
