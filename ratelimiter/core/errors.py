"""Application-level exception types.

This module defines the domain errors raised by the limiter and its HTTP
integration, enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    min_value: float
    actual_value: Any
    http_status: int
    retry_after: float
    key_hash: str
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when caller input validation fails."""


class ConfigurationError(AppError):
    """Raised when the limiter is constructed with invalid settings.

    Fatal: raised at construction time, before the store is ever contacted.
    """


class UnavailableError(AppError):
    """Raised when the shared store cannot produce a decision.

    Covers connection failures, timeouts, script execution errors and
    malformed replies. The caller receives no result and owns the
    fail-open/fail-closed decision.
    """


class CorruptStateError(UnavailableError):
    """Raised when a stored bucket record exists but is malformed."""
