"""Number-format lookup for cell styles.

Only the part of the styles part that affects value rendering is read:
the number format referenced by each cell format record (`cellXfs/xf`)
and the workbook's custom format codes (`numFmts/numFmt`).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import IO

from xlsx_pipe.models import FormatKind
from xlsx_pipe.services.xml_stream import (
    DEFAULT_CHUNK_SIZE,
    get_attr,
    iter_events,
    local_name,
)
from xlsx_pipe.utils.exceptions import MalformedWorkbookError
from xlsx_pipe.utils.logging import get_logger

logger = get_logger(__name__)

# Built-in number formats that are implied by id and never written out.
BUILTIN_FORMAT_CODES: dict[int, str] = {
    0: "General",
    1: "0",
    2: "0.00",
    3: "#,##0",
    4: "#,##0.00",
    9: "0%",
    10: "0.00%",
    11: "0.00E+00",
    12: "# ?/?",
    13: "# ??/??",
    14: "mm-dd-yy",
    15: "d-mmm-yy",
    16: "d-mmm",
    17: "mmm-yy",
    18: "h:mm AM/PM",
    19: "h:mm:ss AM/PM",
    20: "h:mm",
    21: "h:mm:ss",
    22: "m/d/yy h:mm",
    37: "#,##0 ;(#,##0)",
    38: "#,##0 ;[Red](#,##0)",
    39: "#,##0.00;(#,##0.00)",
    40: "#,##0.00;[Red](#,##0.00)",
    45: "mm:ss",
    46: "[h]:mm:ss",
    47: "mmss.0",
    48: "##0.0E+0",
    49: "@",
}

# Locale-specific built-ins (CJK calendars) are dates whose codes vary.
_LOCALE_DATE_IDS = frozenset(range(27, 37)) | frozenset(range(50, 59))

_QUOTED = re.compile(r'"[^"]*"')
_ESCAPED = re.compile(r"\\.|_.|\*.")
_ELAPSED = re.compile(r"\[(?:h+|m+|s+)\]", re.IGNORECASE)
_BRACKETS = re.compile(r"\[[^\]]*\]")
_AM_PM = re.compile(r"am/pm|a/p", re.IGNORECASE)
_DECIMALS = re.compile(r"[0#?]?\.[0#?]|e[+-]")


def classify_format_code(code: str | None) -> FormatKind:
    """Classify an Excel number-format code.

    Only the first section (positive numbers) is considered. Quoted
    literals, escaped characters and bracketed modifiers such as colours
    or locales are ignored; elapsed-time brackets ([h], [mm], [ss]) count
    as time tokens.

    Example:
        classify_format_code("yyyy-mm-dd")      # FormatKind.DATE
        classify_format_code("[h]:mm:ss")       # FormatKind.TIME
        classify_format_code("0.00%")           # FormatKind.PERCENTAGE
        classify_format_code("#,##0.00")        # FormatKind.FLOAT
    """
    if not code or code.lower() == "general":
        return FormatKind.GENERAL

    section = _ESCAPED.sub("", _QUOTED.sub("", code)).split(";")[0]
    has_time = bool(_ELAPSED.search(section) or _AM_PM.search(section))
    section = _AM_PM.sub("", _BRACKETS.sub("", section)).lower()

    has_date = "y" in section or "d" in section
    has_time = has_time or "h" in section or "s" in section
    if has_date and has_time:
        return FormatKind.DATETIME
    if has_date:
        return FormatKind.DATE
    if has_time:
        return FormatKind.TIME
    if "m" in section:
        # A lone month token ("mmm") is a date.
        return FormatKind.DATE
    if "%" in section:
        return FormatKind.PERCENTAGE
    if _DECIMALS.search(section):
        return FormatKind.FLOAT
    return FormatKind.GENERAL


def percentage_decimals(code: str) -> int:
    """Number of decimal places a percentage code displays."""
    section = _QUOTED.sub("", code).split(";")[0]
    _, dot, after = section.partition(".")
    if not dot:
        return 0
    decimals = 0
    for char in after:
        if char not in "0#?":
            break
        decimals += 1
    return decimals


@dataclass(frozen=True, slots=True)
class NumberFormat:
    """Resolved number format of a cell style."""

    kind: FormatKind
    code: str


GENERAL = NumberFormat(FormatKind.GENERAL, "General")


def resolve_number_format(num_fmt_id: int, custom: dict[int, str]) -> NumberFormat:
    """Resolve a numFmtId against custom and built-in formats."""
    code = custom.get(num_fmt_id)
    if code is not None:
        return NumberFormat(classify_format_code(code), code)
    code = BUILTIN_FORMAT_CODES.get(num_fmt_id)
    if code is not None:
        return NumberFormat(classify_format_code(code), code)
    if num_fmt_id in _LOCALE_DATE_IDS:
        return NumberFormat(FormatKind.DATE, f"builtin:{num_fmt_id}")
    return GENERAL


class StyleTable:
    """Maps a cell's style id (its `s` attribute) to a NumberFormat."""

    def __init__(self, formats: tuple[NumberFormat, ...] = ()) -> None:
        self._formats = formats
        self._warned: set[int] = set()

    @classmethod
    def empty(cls) -> StyleTable:
        """Table for documents without a styles part: everything is General."""
        return cls()

    @classmethod
    def load(
        cls,
        stream: IO[bytes],
        *,
        part: str = "xl/styles.xml",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> StyleTable:
        """Parse a styles part.

        Raises:
            MalformedWorkbookError: On invalid XML.
        """
        custom: dict[int, str] = {}
        xf_format_ids: list[int] = []
        in_cell_xfs = False

        for event, elem in iter_events(
            stream,
            part=part,
            error_factory=lambda msg: MalformedWorkbookError(msg, part),
            chunk_size=chunk_size,
        ):
            name = local_name(elem.tag)
            if name == "cellXfs":
                in_cell_xfs = event == "start"
                continue
            if event != "end":
                continue
            if name == "numFmt":
                fmt_id = _int_attr(get_attr(elem, "numFmtId"))
                code = get_attr(elem, "formatCode")
                if fmt_id is not None and code is not None:
                    custom[fmt_id] = code
            elif name == "xf" and in_cell_xfs:
                xf_format_ids.append(_int_attr(get_attr(elem, "numFmtId")) or 0)

        formats = tuple(resolve_number_format(i, custom) for i in xf_format_ids)
        logger.debug(
            "Styles loaded", part=part, cell_formats=len(formats), custom=len(custom)
        )
        return cls(formats)

    def format_for(self, style_id: int | None) -> NumberFormat:
        """Number format of a style id; General when absent or out of range."""
        if style_id is None:
            return GENERAL
        if 0 <= style_id < len(self._formats):
            return self._formats[style_id]
        if self._formats and style_id not in self._warned:
            self._warned.add(style_id)
            logger.warning("Style id out of range; using General", style_id=style_id)
        return GENERAL

    def __len__(self) -> int:
        return len(self._formats)


def _int_attr(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
