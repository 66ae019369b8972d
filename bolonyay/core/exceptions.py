"""Custom exception hierarchy for the case-filing core.

Every service-layer error inherits from BoloNyayError, giving the workflow
seam a single base class to catch and translate into a named error state
with a human-readable message. Subclasses carry domain-specific context
(retry_after for rate limits, the missing element for parse failures).
"""

from __future__ import annotations

from typing import Any


class BoloNyayError(Exception):
    """Base exception for all case-filing errors."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)


class ConfigurationError(BoloNyayError):
    """Raised when a required credential or endpoint is not configured."""


class TranscriptionError(BoloNyayError):
    """Raised when speech capture or recognition fails."""


class AnalysisError(BoloNyayError):
    """Raised when the language model cannot produce an analysis."""


class LLMProviderError(AnalysisError):
    """Raised when an LLM provider returns an error or times out."""


class RateLimitError(LLMProviderError):
    """Raised when an external rate limit is hit."""

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retry_after = retry_after


class CaseParseError(BoloNyayError):
    """Raised when filing analysis text lacks a case type or questions."""

    def __init__(
        self,
        message: str,
        *,
        missing: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details={"missing": missing, **(details or {})})
        self.missing = missing


class PersistenceError(BoloNyayError):
    """Raised when the record store rejects or fails an operation."""


class UserNotFoundError(PersistenceError):
    """Raised when a store operation needs a current user and none exists."""


class DuplicateCaseNumberError(PersistenceError):
    """Raised when a case number is already taken in the store."""


class InvalidStateError(BoloNyayError):
    """Raised when an operation is invoked from a state that forbids it."""


class ExportError(BoloNyayError):
    """Raised when a case document cannot be rendered."""
