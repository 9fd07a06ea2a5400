"""Configuration management for xlsx-pipe.

This module provides process-level settings using pydantic-settings.
All options can be set via environment variables with the XLSX_PIPE_
prefix, or via a .env file in the working directory. Per-conversion
options (delimiter, quoting, sheet selection, ...) live in
`xlsx_pipe.models.ConversionOptions` and are built by the command-line
layer; the conversion core never reads this module implicitly.

Environment Variables:
    XLSX_PIPE_LOG_LEVEL: Logging level (default: WARNING)
    XLSX_PIPE_DEBUG: Print tracebacks for fatal errors (default: false)
    XLSX_PIPE_READ_CHUNK_SIZE: Bytes fed to the XML pull parser per read
        (default: 65536)
    XLSX_PIPE_STDIN_SPOOL_MAX_MB: In-memory limit when buffering stdin
        before spilling to a temporary file (default: 64)
    XLSX_PIPE_STRICT: Treat unknown cell types as fatal (default: false)
"""

import logging
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        XLSX_PIPE_LOG_LEVEL=DEBUG
        XLSX_PIPE_READ_CHUNK_SIZE=1048576
    """

    model_config = SettingsConfigDict(
        env_prefix="XLSX_PIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "WARNING"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Print full tracebacks when a run aborts."""

    # =========================================================================
    # Streaming Settings
    # =========================================================================

    read_chunk_size: int = 64 * 1024
    """Number of decompressed bytes handed to the XML pull parser per read."""

    stdin_spool_max_mb: int = 64
    """Megabytes of stdin kept in memory before spilling to a temp file."""

    strict: bool = False
    """Default for ConversionOptions.strict."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. "
                f"Must be one of: {', '.join(sorted(valid_levels))}"
            )
        return upper_v

    @field_validator("read_chunk_size")
    @classmethod
    def validate_read_chunk_size(cls, v: int) -> int:
        """Validate chunk size is between 1 KiB and 16 MiB."""
        if not 1024 <= v <= 16 * 1024 * 1024:
            raise ValueError(
                f"read_chunk_size must be between 1024 and 16777216, got {v}"
            )
        return v

    @field_validator("stdin_spool_max_mb")
    @classmethod
    def validate_spool_size(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"stdin_spool_max_mb must not be negative, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    @property
    def stdin_spool_max_bytes(self) -> int:
        return self.stdin_spool_max_mb * 1024 * 1024

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to a dictionary suitable for logging."""
        return {
            "log_level": self.log_level,
            "debug": self.debug,
            "read_chunk_size": self.read_chunk_size,
            "stdin_spool_max_mb": self.stdin_spool_max_mb,
            "strict": self.strict,
        }


# Create the global settings instance
settings = Settings()
