"""Utilities package for xlsx-pipe.

This package provides:
- Centralized exception classes (exceptions.py)
- Structured logging utilities (logging.py)
"""

from xlsx_pipe.utils.exceptions import (
    ArchiveCorruptError,
    ArchiveError,
    ConfigurationError,
    EntryMissingError,
    ErrorCode,
    ExitCodeMixin,
    FormatError,
    MalformedSharedStringsError,
    MalformedSheetXmlError,
    MalformedWorkbookError,
    MalformedXmlError,
    OutputClosedError,
    OutputWriteError,
    SelectionError,
    UnknownCellTypeError,
    XlsxPipeError,
)
from xlsx_pipe.utils.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    current_context,
    get_logger,
    timed_operation,
)

__all__ = [
    # Exceptions
    "ArchiveCorruptError",
    "ArchiveError",
    "ConfigurationError",
    "EntryMissingError",
    "ErrorCode",
    "ExitCodeMixin",
    "FormatError",
    "MalformedSharedStringsError",
    "MalformedSheetXmlError",
    "MalformedWorkbookError",
    "MalformedXmlError",
    "OutputClosedError",
    "OutputWriteError",
    "SelectionError",
    "UnknownCellTypeError",
    "XlsxPipeError",
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "current_context",
    "get_logger",
    "timed_operation",
]
