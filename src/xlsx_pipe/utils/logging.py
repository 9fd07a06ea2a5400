"""Structured diagnostics for xlsx-pipe.

Diagnostics are written to stderr only; stdout carries the CSV records.
Every record is prefixed with the conversion context bound through
`LogContext` (run id, sheet, part) and structured fields are appended as
key=value pairs:

    [run_id=3f2a9c sheet=Data] Unknown cell type | type_code=x, cell=B7

Usage:
    from xlsx_pipe.utils.logging import LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(run_id="3f2a9c", sheet="Data"):
        logger.warning("Unknown cell type", type_code="x", cell="B7")
"""

import logging
import sys
import time
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# Context keys rendered first, in this order; other keys follow as bound.
_LEADING_KEYS = ("run_id", "sheet")

_context_var: ContextVar[Mapping[str, Any]] = ContextVar(
    "xlsx_pipe_log_context", default=MappingProxyType({})
)

_HANDLER_MARKER = "_xlsx_pipe_handler"


def current_context() -> dict[str, Any]:
    """Return a copy of the context bound to the running conversion."""
    return dict(_context_var.get())


def get_run_id() -> str | None:
    return _context_var.get().get("run_id")


def get_sheet() -> str | None:
    return _context_var.get().get("sheet")


def clear_context() -> None:
    _context_var.set(MappingProxyType({}))


@dataclass
class PerformanceMetrics:
    """Counters and wall-clock timing for one run or one sheet.

    Attributes:
        operation: What is being measured, e.g. "conversion" or "sheet".
        sheets_processed: Sheets fully streamed.
        rows_written: CSV records written.
        cells_processed: Cell events consumed by the row assembler.
    """

    operation: str
    sheets_processed: int = 0
    rows_written: int = 0
    cells_processed: int = 0
    started: float = field(default_factory=time.perf_counter)
    ended: float | None = None

    def finish(self) -> None:
        self.ended = time.perf_counter()

    @property
    def duration_seconds(self) -> float:
        end = self.ended if self.ended is not None else time.perf_counter()
        return end - self.started

    def fields(self) -> dict[str, Any]:
        """Key-value fields for a log line; zero counters are left out."""
        counters = {
            "sheets": self.sheets_processed,
            "rows": self.rows_written,
            "cells": self.cells_processed,
        }
        result: dict[str, Any] = {k: v for k, v in counters.items() if v}
        result["seconds"] = f"{self.duration_seconds:.3f}"
        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes each message with the bound context."""

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get()
        keys = [k for k in _LEADING_KEYS if context.get(k) is not None]
        keys += [k for k in context if k not in _LEADING_KEYS]
        if not keys:
            return super().format(record)

        prefix = " ".join(f"{k}={context[k]}" for k in keys)
        original = record.msg
        record.msg = f"[{prefix}] {original}"
        try:
            return super().format(record)
        finally:
            record.msg = original


class StructuredLogger:
    """Wraps a standard logger with key-value call sites.

    `logger.warning("Style id out of range", style_id=99)` logs
    `Style id out of range | style_id=99`.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @staticmethod
    def _build_message(message: str, **fields: Any) -> str:
        if not fields:
            return message
        return message + " | " + ", ".join(f"{k}={v}" for k, v in fields.items())

    def isEnabledFor(self, level: int) -> bool:  # noqa: N802
        """Mirror logging.Logger.isEnabledFor for hot-path guards."""
        return self._logger.isEnabledFor(level)

    def debug(self, message: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(self._build_message(message, **fields))

    def info(self, message: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(logging.INFO):
            self._logger.info(self._build_message(message, **fields))

    def warning(self, message: str, **fields: Any) -> None:
        self._logger.warning(self._build_message(message, **fields))

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._logger.error(self._build_message(message, **fields), exc_info=exc_info)

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        """Log timing and counters of a finished operation at debug level."""
        self.debug(f"Timing: {metrics.operation}", **metrics.fields())

    def log_conversion_result(
        self,
        sheets: int,
        rows: int,
        duration_seconds: float,
        output_closed: bool,
    ) -> None:
        """Log the summary line of a conversion run.

        Args:
            sheets: Number of sheets converted.
            rows: Number of records written.
            duration_seconds: Total processing time.
            output_closed: Whether the consumer closed the output early.
        """
        self.info(
            "Conversion completed",
            sheets=sheets,
            rows=rows,
            duration_seconds=f"{duration_seconds:.2f}",
            output_closed=output_closed,
        )


class LogContext:
    """Bind context keys to every log line emitted inside the block.

    Nested blocks add to the enclosing context; leaving a block restores
    exactly what was bound before it. Keys bound to None are dropped.

    Usage:
        with LogContext(run_id="3f2a9c"):
            with LogContext(sheet="Data"):
                logger.warning("...")  # prefixed with run_id and sheet
    """

    def __init__(self, **values: Any) -> None:
        self._values = values
        self._token: Token[Mapping[str, Any]] | None = None

    def __enter__(self) -> "LogContext":
        merged = {**_context_var.get(), **self._values}
        bound = {k: v for k, v in merged.items() if v is not None}
        self._token = _context_var.set(MappingProxyType(bound))
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _context_var.reset(self._token)
            self._token = None


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Time a block and log its metrics when it ends, even on error.

    Usage:
        with timed_operation(logger, "sheet") as metrics:
            metrics.rows_written = writer.write_rows(rows)
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.WARNING,
    format_string: str | None = None,
) -> logging.Handler:
    """Install the stderr handler on the root logger.

    Calling this again replaces the handler installed by the previous call;
    handlers installed by anything else are left alone.

    Args:
        level: Log level (int or name like "INFO").
        format_string: Record format; defaults to time, logger, level, message.

    Returns:
        The installed handler.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        if getattr(existing, _HANDLER_MARKER, False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    setattr(handler, _HANDLER_MARKER, True)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredLogFormatter(
            format_string or "%(asctime)s %(levelname)s %(name)s: %(message)s"
        )
    )
    root.addHandler(handler)
    root.setLevel(level)
    return handler


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for a module (typically `__name__`)."""
    return StructuredLogger(name)
