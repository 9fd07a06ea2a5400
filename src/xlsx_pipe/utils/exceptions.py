"""Centralized exception classes for xlsx-pipe.

This module provides a hierarchy of custom exceptions with error codes,
process exit code mapping, and structured error details (sheet, row,
column, part) so an operator can locate the offending cell.

Exception Hierarchy:
    XlsxPipeError (base)
    ├── ArchiveError
    │   ├── ArchiveCorruptError
    │   └── EntryMissingError
    ├── MalformedXmlError
    │   ├── MalformedWorkbookError
    │   ├── MalformedSharedStringsError
    │   └── MalformedSheetXmlError
    ├── UnknownCellTypeError
    ├── FormatError
    ├── SelectionError
    ├── ConfigurationError
    ├── OutputWriteError
    └── OutputClosedError (not a failure, exit code 0)

Error Codes:
    All errors have a unique error code (e.g., "E1001") that is printed
    alongside the message by the command-line interface.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Enumeration of all error codes used in the application.

    Error codes are grouped by category:
    - E1xxx: Container/input errors
    - E2xxx: XML structure errors
    - E3xxx: Sheet selection errors
    - E4xxx: Value formatting errors
    - E5xxx: Output errors
    - E9xxx: Internal/unexpected errors
    """

    # Container errors (E1xxx)
    ARCHIVE_CORRUPT = "E1001"
    ENTRY_MISSING = "E1002"
    INPUT_READ_ERROR = "E1003"

    # XML errors (E2xxx)
    MALFORMED_WORKBOOK = "E2001"
    MALFORMED_SHARED_STRINGS = "E2002"
    MALFORMED_SHEET_XML = "E2003"
    UNKNOWN_CELL_TYPE = "E2004"

    # Selection errors (E3xxx)
    SHEET_NOT_FOUND = "E3001"
    SHEET_NUMBER_OUT_OF_RANGE = "E3002"

    # Formatting errors (E4xxx)
    INVALID_FORMAT_STRING = "E4001"
    SHARED_STRING_INDEX = "E4002"

    # Output errors (E5xxx)
    OUTPUT_CLOSED = "E5001"
    OUTPUT_WRITE_ERROR = "E5002"

    # Internal errors (E9xxx)
    INTERNAL_ERROR = "E9001"
    CONFIGURATION_ERROR = "E9002"


class ExitCodeMixin:
    """Mixin that provides a process exit code for exceptions.

    Subclasses set the `exit_code` class attribute; the command-line
    interface terminates with this code when the exception escapes a run.
    """

    exit_code: int = 1

    def get_exit_code(self) -> int:
        """Get the process exit code for this exception.

        Returns:
            Exit code appropriate for this error.
        """
        return self.exit_code


class XlsxPipeError(Exception, ExitCodeMixin):
    """Base exception for all xlsx-pipe errors.

    Attributes:
        message: Human-readable error message.
        error_code: Unique error code from ErrorCode enum.
        details: Optional dictionary with additional error details.
        exit_code: Process exit code (default 1).
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Error code from ErrorCode enum.
            details: Optional additional details about the error.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the exception to a dictionary for structured logging.

        Returns:
            Dictionary with error information.
        """
        result: dict[str, Any] = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code and location."""
        location = ", ".join(
            f"{key}={self.details[key]}"
            for key in ("part", "sheet", "row", "column")
            if self.details.get(key) is not None
        )
        if location:
            return f"[{self.error_code.value}] {self.message} ({location})"
        return f"[{self.error_code.value}] {self.message}"


def _location(
    sheet: str | None = None,
    row: int | None = None,
    column: int | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge cell location information into a details dictionary.

    Row and column are stored 1-based, the way spreadsheet users count.
    """
    details = details or {}
    if sheet is not None:
        details["sheet"] = sheet
    if row is not None:
        details["row"] = row + 1
    if column is not None:
        details["column"] = column + 1
    return details


# =============================================================================
# Container Errors (E1xxx)
# =============================================================================


class ArchiveError(XlsxPipeError):
    """Base class for container-level errors."""

    exit_code: int = 2

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.ARCHIVE_CORRUPT,
        part: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if part:
            details["part"] = part
        super().__init__(message, error_code, details)
        self.part = part


class ArchiveCorruptError(ArchiveError):
    """Raised when the container signature or central directory is invalid."""

    def __init__(
        self,
        message: str = "Input is not a valid xlsx container",
        part: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.ARCHIVE_CORRUPT, part, details)


class EntryMissingError(ArchiveError):
    """Raised when a required part is absent from the container."""

    def __init__(
        self,
        part: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message or f"Required part not found in container: {part}",
            ErrorCode.ENTRY_MISSING,
            part,
            details,
        )


# =============================================================================
# XML Errors (E2xxx)
# =============================================================================


class MalformedXmlError(XlsxPipeError):
    """Base class for structurally invalid XML parts."""

    exit_code: int = 3

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.MALFORMED_SHEET_XML,
        part: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if part:
            details["part"] = part
        super().__init__(message, error_code, details)
        self.part = part


class MalformedWorkbookError(MalformedXmlError):
    """Raised when the workbook manifest or a relationship part is invalid."""

    def __init__(self, message: str, part: str | None = None) -> None:
        super().__init__(message, ErrorCode.MALFORMED_WORKBOOK, part)


class MalformedSharedStringsError(MalformedXmlError):
    """Raised when the shared-strings part is truncated or invalid."""

    def __init__(self, message: str, part: str | None = None) -> None:
        super().__init__(message, ErrorCode.MALFORMED_SHARED_STRINGS, part)


class MalformedSheetXmlError(MalformedXmlError):
    """Raised on unexpected token structure inside a sheet part."""

    def __init__(
        self,
        message: str,
        part: str | None = None,
        sheet: str | None = None,
        row: int | None = None,
        column: int | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.MALFORMED_SHEET_XML,
            part,
            _location(sheet, row, column),
        )
        self.sheet = sheet


class UnknownCellTypeError(XlsxPipeError):
    """Raised in strict mode when a cell carries an unrecognized type code."""

    exit_code: int = 3

    def __init__(
        self,
        type_code: str,
        sheet: str | None = None,
        row: int | None = None,
        column: int | None = None,
    ) -> None:
        details = _location(sheet, row, column, {"type_code": type_code})
        super().__init__(
            f"Unknown cell type: {type_code!r}",
            ErrorCode.UNKNOWN_CELL_TYPE,
            details,
        )
        self.type_code = type_code


# =============================================================================
# Selection Errors (E3xxx)
# =============================================================================


class SelectionError(XlsxPipeError):
    """Raised when an explicitly requested sheet does not exist."""

    exit_code: int = 4

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SHEET_NOT_FOUND,
        available: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if available is not None:
            details["available_sheets"] = available
        super().__init__(message, error_code, details)


# =============================================================================
# Formatting Errors (E4xxx)
# =============================================================================


class FormatError(XlsxPipeError):
    """Raised for invalid override format strings or unresolvable values."""

    exit_code: int = 5

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INVALID_FORMAT_STRING,
        sheet: str | None = None,
        row: int | None = None,
        column: int | None = None,
    ) -> None:
        super().__init__(message, error_code, _location(sheet, row, column))


# =============================================================================
# Configuration / Output Errors
# =============================================================================


class ConfigurationError(XlsxPipeError):
    """Raised when conversion options cannot be honoured."""

    exit_code: int = 2

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else None
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class OutputWriteError(XlsxPipeError):
    """Raised when writing output fails for a reason other than a closed pipe."""

    exit_code: int = 6

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.OUTPUT_WRITE_ERROR)


class OutputClosedError(XlsxPipeError):
    """Raised by the writer when the consumer closed its end of the stream.

    This is a shutdown signal, not a failure: the pipeline catches it and
    finishes the run with the same success indication as normal completion.
    """

    exit_code: int = 0

    def __init__(self, message: str = "Output stream closed by consumer") -> None:
        super().__init__(message, ErrorCode.OUTPUT_CLOSED)
