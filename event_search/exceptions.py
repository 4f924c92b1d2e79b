"""Application exception hierarchy.

All custom exceptions inherit from EventSearchError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from event_search.backfill.models import BackfillReport


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "ES-1000"
    CONFIGURATION_ERROR = "ES-1001"
    INVALID_QUERY = "ES-1002"

    # Embedding errors (3xxx)
    EMBEDDING_UNAVAILABLE = "ES-3000"
    EMBEDDING_DIMENSION_MISMATCH = "ES-3001"

    # Vector index errors (4xxx)
    INDEX_UNAVAILABLE = "ES-4000"
    COLLECTION_NOT_FOUND = "ES-4001"

    # Document store errors (5xxx)
    STORE_ERROR = "ES-5000"
    EVENT_NOT_FOUND = "ES-5001"

    # Backfill errors (6xxx)
    PARTIAL_BACKFILL_FAILURE = "ES-6000"


class EventSearchError(Exception):
    """Base exception for all event search errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(EventSearchError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class InvalidQuery(EventSearchError):
    """Malformed search parameters, rejected before any embedding work."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVALID_QUERY, details)


class EmbeddingUnavailable(EventSearchError):
    """Embedding model could not be loaded or failed during inference."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class IndexUnavailable(EventSearchError):
    """Vector index is missing, misconfigured or unreachable."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INDEX_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class StoreError(EventSearchError):
    """Document store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EventNotFound(StoreError):
    """Requested event does not exist."""

    def __init__(self, event_id: str) -> None:
        super().__init__(
            f"Event not found: {event_id}",
            code=ErrorCode.EVENT_NOT_FOUND,
            details={"event_id": event_id},
        )


class PartialBackfillFailure(EventSearchError):
    """One or more events in a backfill batch could not be updated.

    Attributes:
        report: The full per-id backfill report.
    """

    def __init__(self, report: "BackfillReport") -> None:
        self.report = report
        super().__init__(
            f"Backfill failed for {len(report.failed)} of {len(report.items)} events",
            code=ErrorCode.PARTIAL_BACKFILL_FAILURE,
            details={"failed": {item.event_id: item.error for item in report.failures()}},
        )
