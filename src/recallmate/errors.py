"""Recall error hierarchy.

- RecallError: Base exception for all application errors
- RecordAccessError: Record store read failures
- ValidationError: Bad input when building domain objects
- ConfigurationError: Invalid environment configuration

Record access failures never reach callers of the public operations:
call sites degrade them to empty results (see records.fetch_records).
"""

from __future__ import annotations

from typing import Any


class RecallError(Exception):
    """Base exception for all recall errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured dictionary."""
        return {
            "type": type(self).__name__.lower().replace("error", ""),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


class RecordAccessError(RecallError):
    """A record store could not serve a read."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message, recoverable=True, context={"operation": operation})
        self.operation = operation


class ValidationError(RecallError):
    """Input validation failed."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, context={"field": field})
        self.field = field


class ConfigurationError(RecallError):
    """Configuration is invalid or incomplete."""
