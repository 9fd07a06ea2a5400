"""Rendering of raw cell values into their final text.

Numbers arrive as the raw text stored in the sheet and are only converted
once the cell's number format is known, so values that need no special
rendering keep their exact source digits.
"""

import re
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from xlsx_pipe.models import ConversionOptions, FormatKind
from xlsx_pipe.services.shared_strings import SharedStringTable
from xlsx_pipe.services.styles import StyleTable, percentage_decimals
from xlsx_pipe.utils.exceptions import ErrorCode, FormatError
from xlsx_pipe.utils.logging import get_logger
from xlsx_pipe.workbook import CellEvent, CellKind, CellRef

logger = get_logger(__name__)

DEFAULT_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_TIME_FORMAT = "%H:%M:%S"
DEFAULT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_EPOCH_1900 = datetime(1899, 12, 31)
_EPOCH_1900_AFTER_LEAP_BUG = datetime(1899, 12, 30)
_EPOCH_1904 = datetime(1904, 1, 1)
_PHANTOM_LEAP_DAY = 60

_LINE_BREAKS = re.compile(r"\r\n|[\r\n\t]")
_EXPONENT = re.compile(r"[eE][+-]?\d+$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_TEMPORAL_KINDS = (FormatKind.DATE, FormatKind.TIME, FormatKind.DATETIME)


def serial_to_datetime(serial: float, date1904: bool = False) -> datetime:
    """Convert a spreadsheet serial day count to a datetime.

    In the 1900 date system serial 1 is 1900-01-01 and serial 60 is the
    non-existent 1900-02-29, which renders as 1900-02-28. Fractions are
    rounded to the nearest second.

    Example:
        serial_to_datetime(45000)        # datetime(2023, 3, 15)
        serial_to_datetime(0, True)      # datetime(1904, 1, 1)

    Raises:
        OverflowError: If the serial is outside the datetime range.
    """
    days = int(serial // 1)
    seconds = round((serial - days) * 86400)
    if date1904:
        base = _EPOCH_1904
    elif days < _PHANTOM_LEAP_DAY:
        base = _EPOCH_1900
    elif days == _PHANTOM_LEAP_DAY:
        base, days = _EPOCH_1900, days - 1
    else:
        base = _EPOCH_1900_AFTER_LEAP_BUG
    return base + timedelta(days=days, seconds=seconds)


class ValueFormatter:
    """Renders cell events to text for one conversion run.

    Override formats are validated on construction so a bad format string
    aborts the run before any output is written.
    """

    def __init__(
        self,
        options: ConversionOptions,
        shared_strings: SharedStringTable | None = None,
        styles: StyleTable | None = None,
        date1904: bool = False,
    ) -> None:
        """Initialize the formatter.

        Args:
            options: Conversion options supplying override formats.
            shared_strings: Table used to resolve shared-string cells.
            styles: Style table used to classify number formats.
            date1904: Whether the workbook uses the 1904 date system.

        Raises:
            FormatError: If an override format string is invalid.
        """
        self._options = options
        self._shared_strings = shared_strings or SharedStringTable.empty()
        self._styles = styles or StyleTable.empty()
        self._date1904 = date1904

        self._formats = {
            FormatKind.DATE: options.date_format or DEFAULT_DATE_FORMAT,
            FormatKind.TIME: options.time_format or DEFAULT_TIME_FORMAT,
            FormatKind.DATETIME: (
                options.datetime_format
                or options.date_format
                or DEFAULT_DATETIME_FORMAT
            ),
        }
        for kind, fmt in self._formats.items():
            self._validate_date_format(kind, fmt)
        if options.float_format is not None:
            self._validate_float_format(options.float_format)

        self._escape_table: dict[int, str] | None = None
        if options.escape:
            table = {"\r": "\\r", "\n": "\\n", "\t": "\\t"}
            table.setdefault(options.delimiter, "\\" + options.delimiter)
            table.setdefault(options.quote_char, "\\" + options.quote_char)
            for char in options.line_terminator:
                table.setdefault(char, "\\" + char)
            self._escape_table = str.maketrans(table)

    @staticmethod
    def _validate_date_format(kind: FormatKind, fmt: str) -> None:
        if "%" not in fmt:
            raise FormatError(
                f"{kind.value} format {fmt!r} contains no strftime directive"
            )
        try:
            datetime(2000, 1, 2, 3, 4, 5).strftime(fmt)
        except ValueError as e:
            raise FormatError(f"Invalid {kind.value} format {fmt!r}: {e}") from e

    @staticmethod
    def _validate_float_format(fmt: str) -> None:
        try:
            fmt % 1.5
        except (TypeError, ValueError) as e:
            raise FormatError(f"Invalid float format {fmt!r}: {e}") from e

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def format(self, event: CellEvent, hyperlink: str | None = None) -> str:
        """Render a cell event, then apply hyperlink and text options."""
        value = self.format_value(event.kind, event.raw, event.style_id, event.ref)
        if hyperlink:
            value = f"{value} ({hyperlink})" if value else hyperlink
        return self.postprocess(value)

    def format_value(
        self,
        kind: CellKind,
        raw: str,
        style_id: int | None = None,
        ref: CellRef | None = None,
    ) -> str:
        """Resolve a raw payload to text according to its kind and style.

        Raises:
            FormatError: If a shared-string index is invalid or out of range.
        """
        if kind is CellKind.SHARED_STRING:
            return self._shared_string(raw, ref)
        if kind is CellKind.NUMBER:
            return self._number(raw, style_id)
        if kind is CellKind.BOOLEAN:
            flag = raw.strip()
            if flag == "1":
                return self._options.true_value
            if flag == "0":
                return self._options.false_value
            return raw
        if kind is CellKind.EMPTY:
            return ""
        # Inline strings and error codes are rendered as-is.
        return raw

    def postprocess(self, text: str) -> str:
        """Apply line-break replacement and escaping to rendered text."""
        if self._options.no_line_breaks:
            text = _LINE_BREAKS.sub(" ", text)
        if self._escape_table is not None:
            text = text.translate(self._escape_table)
        return text

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _shared_string(self, raw: str, ref: CellRef | None) -> str:
        location = {"row": ref.row, "column": ref.column} if ref else {}
        try:
            index = int(raw.strip())
        except ValueError:
            raise FormatError(
                f"Shared string index {raw!r} is not an integer",
                ErrorCode.SHARED_STRING_INDEX,
                **location,
            ) from None
        if not 0 <= index < len(self._shared_strings):
            raise FormatError(
                f"Shared string index {index} out of range "
                f"(table has {len(self._shared_strings)} entries)",
                ErrorCode.SHARED_STRING_INDEX,
                **location,
            )
        return self._shared_strings[index]

    def _number(self, raw: str, style_id: int | None) -> str:
        text = raw.strip()
        if not text:
            return ""

        fmt = self._styles.format_for(style_id)
        kind = fmt.kind
        ignored = self._options.ignores(kind)

        if kind in _TEMPORAL_KINDS and not ignored:
            return self._temporal(text, kind)
        if kind is FormatKind.PERCENTAGE and not ignored:
            return self._percentage(text, fmt.code)

        if self._options.sci_float and _EXPONENT.search(text):
            try:
                return format(Decimal(text), "f")
            except InvalidOperation:
                return text

        float_format = self._options.float_format
        if (
            float_format is not None
            and not self._options.ignores(FormatKind.FLOAT)
            and (kind is FormatKind.FLOAT or not _INTEGER.match(text))
        ):
            try:
                return float_format % float(text)
            except ValueError:
                return text
        return text

    def _temporal(self, text: str, kind: FormatKind) -> str:
        try:
            moment = serial_to_datetime(float(text), self._date1904)
        except (ValueError, OverflowError):
            logger.warning(
                "Cannot convert serial to a date; keeping raw value", value=text
            )
            return text
        return moment.strftime(self._formats[kind])

    @staticmethod
    def _percentage(text: str, code: str) -> str:
        try:
            number = float(text)
        except ValueError:
            return text
        decimals = percentage_decimals(code)
        return f"{number * 100:.{decimals}f}%"
