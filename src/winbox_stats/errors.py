"""
Error types for winbox-stats.

All domain failures are expressed as StatsError subclasses carrying a stable
error code. The capture and graph pipelines decide per error type whether a
failure is skipped (per metric or per file) or fatal for the invocation.
"""

from __future__ import annotations

from typing import Any


class StatsError(Exception):
    """
    Base exception class for winbox-stats errors.

    Attributes:
        error_code: Internal error code string (e.g., "store_corrupt",
            "store_write_failure", "path_parse_failure").
        message: Human-readable error message.
        details: Optional structured details (e.g., file path, metric tag).

    Example:
        >>> raise StatsError(
        ...     error_code="store_corrupt",
        ...     message="file is not a database",
        ...     details={"path": "2024-01@HOST@CPU.sqlite"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a StatsError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class SampleUnavailableError(StatsError):
    """
    Error raised when a single metric value cannot be read from the host.

    The sampler logs and skips the metric; the rest of the snapshot is kept.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a SampleUnavailableError."""
        super().__init__(
            error_code="sample_unavailable", message=message, details=details
        )


class StoreCorruptError(StatsError):
    """
    Error raised when a store file cannot be opened or read.

    Graph mode skips the affected file and keeps processing the others.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a StoreCorruptError."""
        super().__init__(error_code="store_corrupt", message=message, details=details)


class StoreWriteError(StatsError):
    """
    Error raised when a sample cannot be appended to a store.

    This is fatal for the current capture invocation.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a StoreWriteError."""
        super().__init__(
            error_code="store_write_failure", message=message, details=details
        )


class PathParseError(StatsError):
    """
    Error raised when a file name does not follow the store naming convention.

    Never fatal; discovered files that fail to parse are skipped.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a PathParseError."""
        super().__init__(
            error_code="path_parse_failure", message=message, details=details
        )


class ConfigError(StatsError):
    """Error raised when the configuration cannot be loaded or is invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a ConfigError."""
        super().__init__(error_code="invalid_config", message=message, details=details)
