"""Delimited-text serialization of assembled rows.

The writer applies its own quoting rules instead of the standard `csv`
module's: the `nonnumeric` policy here inspects each field's text (every
value reaching the writer is already a string), and the `none` policy
writes fields unquoted without requiring an escape character. With
backslash escaping enabled, `minimal` and `nonnumeric` write fields as they
come, since escaping has already neutralized every special character.
"""

import errno
import io
import re
from collections.abc import Iterable, Sequence
from typing import BinaryIO, TextIO

from xlsx_pipe.models import ConversionOptions, QuotingPolicy
from xlsx_pipe.utils.exceptions import (
    OutputClosedError,
    OutputWriteError,
    XlsxPipeError,
)
from xlsx_pipe.utils.logging import get_logger

logger = get_logger(__name__)

# A syntactically plain number: optional sign, digits with an optional
# fraction, optional exponent. Thousands separators are not numbers.
_PLAIN_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

_CLOSED_ERRNOS = frozenset({errno.EPIPE, errno.ECONNRESET})


def is_plain_number(field: str) -> bool:
    """Whether a field's text is a syntactically plain number."""
    return bool(_PLAIN_NUMBER.match(field))


class CsvWriter:
    """Serializes rows to a text or binary sink, one record per row.

    Every record is handed to the sink as soon as it is built and the sink
    is flushed after each record, so no sheet is ever buffered. When the
    consumer has closed its end of the stream the writer raises
    `OutputClosedError`, which callers treat as a clean shutdown.

    Usage:
        writer = CsvWriter(sys.stdout.buffer, options)
        writer.write_row(["a", "b,c"])   # a,"b,c"
    """

    def __init__(
        self,
        sink: BinaryIO | TextIO,
        options: ConversionOptions | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            sink: Destination stream; text sinks receive str, binary sinks
                receive bytes encoded with `options.output_encoding`.
            options: Conversion options supplying delimiter, quoting and
                terminators. Defaults are used when omitted.
        """
        options = options or ConversionOptions()
        self._sink = sink
        self._binary = not isinstance(sink, io.TextIOBase)
        self._encoding = options.output_encoding
        self._delimiter = options.delimiter
        self._quote = options.quote_char
        self._doubled_quote = options.quote_char * 2
        self._terminator = options.line_terminator
        self._quoting = options.quoting
        if options.escape and self._quoting in (
            QuotingPolicy.MINIMAL,
            QuotingPolicy.NONNUMERIC,
        ):
            # Escaping replaces quoting under these policies.
            self._quoting = QuotingPolicy.NONE
        self._special = set(options.delimiter + options.quote_char + "\r\n")
        self._special.update(options.line_terminator)
        self.rows_written = 0

    def quote_field(self, field: str) -> str:
        """Apply the quoting policy to one field."""
        if self._quoting is QuotingPolicy.NONE:
            return field
        if self._quoting is QuotingPolicy.ALL:
            needs_quotes = True
        elif self._quoting is QuotingPolicy.NONNUMERIC:
            needs_quotes = not is_plain_number(field)
        else:
            needs_quotes = any(char in self._special for char in field)
        if not needs_quotes:
            return field
        escaped = field.replace(self._quote, self._doubled_quote)
        return f"{self._quote}{escaped}{self._quote}"

    def format_row(self, row: Sequence[str]) -> str:
        """Build one record including its line terminator."""
        return (
            self._delimiter.join(self.quote_field(field) for field in row)
            + self._terminator
        )

    def write_row(self, row: Sequence[str]) -> None:
        """Write and flush one record.

        Raises:
            OutputClosedError: If the consumer closed the stream.
            OutputWriteError: If writing fails for any other reason.
        """
        self._write(self.format_row(row))
        self.rows_written += 1

    def write_rows(self, rows: Iterable[Sequence[str]]) -> int:
        """Write records as they are produced; returns the number written."""
        count = 0
        for row in rows:
            self.write_row(row)
            count += 1
        return count

    def write_separator(
        self, separator: str, number: int | None = None, name: str | None = None
    ) -> None:
        """Write a sheet separator line, optionally naming the next sheet.

        The line is written verbatim, without quoting.
        """
        line = separator
        if number is not None and name is not None:
            line = f"{separator} {number} - {name}"
        self._write(line + self._terminator)

    def flush(self) -> None:
        """Flush the sink, mapping a closed consumer to OutputClosedError."""
        try:
            self._sink.flush()
        except (OSError, ValueError) as e:
            raise self._translate(e) from e

    def _write(self, text: str) -> None:
        try:
            if self._binary:
                self._sink.write(text.encode(self._encoding))  # type: ignore[arg-type]
            else:
                self._sink.write(text)  # type: ignore[arg-type]
            self._sink.flush()
        except (OSError, ValueError) as e:
            raise self._translate(e) from e

    @staticmethod
    def _translate(error: OSError | ValueError) -> XlsxPipeError:
        if isinstance(error, BrokenPipeError):
            return OutputClosedError()
        if isinstance(error, OSError) and error.errno in _CLOSED_ERRNOS:
            return OutputClosedError()
        if isinstance(error, ValueError) and "closed file" in str(error):
            return OutputClosedError()
        if isinstance(error, UnicodeEncodeError):
            return OutputWriteError(
                f"Cannot encode output: {error.reason} "
                f"(character {error.object[error.start:error.end]!r})"
            )
        logger.error("Writing output failed", error=str(error))
        return OutputWriteError(f"Cannot write output: {error}")
