"""
Structured Error Handling
Provides error hierarchy with categorization, error codes, and structured context.
"""

from typing import Dict, Any, Optional, Tuple
from enum import Enum

from google.api_core import exceptions as google_exceptions


class ErrorCategory(str, Enum):
    """Error categories for classification and handling."""
    TRANSIENT = "TRANSIENT"  # Temporary errors that may succeed on a later run
    PERMANENT = "PERMANENT"  # Errors that won't succeed without a change
    QUOTA = "QUOTA"  # Rate limiting and quota errors
    TIMEOUT = "TIMEOUT"  # Job did not complete within the polling budget
    VALIDATION = "VALIDATION"  # Check definition errors


class ErrorCode(str, Enum):
    """Standardized error codes for monitoring and debugging."""
    BIGQUERY_UNAVAILABLE = "BQ_UNAVAILABLE"
    BIGQUERY_TIMEOUT = "BQ_TIMEOUT"
    BIGQUERY_INVALID_QUERY = "BQ_INVALID_QUERY"
    BIGQUERY_NOT_FOUND = "BQ_NOT_FOUND"
    BIGQUERY_QUOTA_EXCEEDED = "BQ_QUOTA_EXCEEDED"
    BIGQUERY_JOB_FAILED = "BQ_JOB_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    INVALID_CHECK_CONFIG = "INVALID_CHECK_CONFIG"


class WarehouseWatchException(Exception):
    """
    Base exception for all warehouse-watch errors.

    Provides structured error information for monitoring and the run log.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        error_code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize structured exception.

        Args:
            message: Human-readable error message
            category: Error category for classification
            error_code: Standardized error code
            context: Additional context (job_id, path, etc.)
            original_error: Original exception if wrapped
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_code = error_code
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for structured logging."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "category": self.category.value,
        }

        if self.context:
            result["context"] = self.context

        if self.original_error:
            result["original_error"] = str(self.original_error)

        return result

    def is_retryable(self) -> bool:
        """Check if a later run could succeed without a change."""
        return self.category in [ErrorCategory.TRANSIENT, ErrorCategory.QUOTA, ErrorCategory.TIMEOUT]


# ============================================
# Query Execution Errors
# ============================================

class QueryExecutionError(WarehouseWatchException):
    """
    A query job could not be submitted, polled or read.

    Carries the job identifier (None when submission itself failed) and the
    underlying cause.
    """

    def __init__(
        self,
        job_id: Optional[str],
        cause: Exception,
        message: Optional[str] = None
    ):
        category, error_code = classify_error(cause)
        super().__init__(
            message=message or f"Query job {job_id or '<unsubmitted>'} failed: {cause}",
            category=category,
            error_code=error_code,
            context={"job_id": job_id},
            original_error=cause
        )
        self.job_id = job_id
        self.cause = cause


class QueryTimeoutError(QueryExecutionError):
    """A job did not complete within the configured wait budget or attempt cap."""

    def __init__(
        self,
        job_id: Optional[str],
        waited_seconds: float,
        attempts: int
    ):
        cause = TimeoutError(
            f"job still running after {attempts} polls and {waited_seconds:.1f}s of backoff"
        )
        super().__init__(job_id, cause)
        self.waited_seconds = waited_seconds
        self.attempts = attempts
        self.context.update({"waited_seconds": waited_seconds, "attempts": attempts})


class JobFailedError(Exception):
    """The warehouse reported a terminal error for a job (job.error_result)."""

    def __init__(self, job_id: str, reason: Optional[str], message: str):
        super().__init__(f"{reason}: {message}" if reason else message)
        self.job_id = job_id
        self.reason = reason


# ============================================
# Configuration Errors
# ============================================

class CheckConfigError(WarehouseWatchException):
    """The check definitions source is missing or malformed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.INVALID_CHECK_CONFIG,
            context={"path": path} if path else None,
            original_error=original_error
        )


# ============================================
# Error Classification Helper
# ============================================

_JOB_REASON_CODES = {
    "invalidQuery": (ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_INVALID_QUERY),
    "notFound": (ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_NOT_FOUND),
    "quotaExceeded": (ErrorCategory.QUOTA, ErrorCode.BIGQUERY_QUOTA_EXCEEDED),
    "rateLimitExceeded": (ErrorCategory.QUOTA, ErrorCode.BIGQUERY_QUOTA_EXCEEDED),
    "backendError": (ErrorCategory.TRANSIENT, ErrorCode.BIGQUERY_UNAVAILABLE),
    "internalError": (ErrorCategory.TRANSIENT, ErrorCode.BIGQUERY_UNAVAILABLE),
}


def classify_error(exc: Exception) -> Tuple[ErrorCategory, ErrorCode]:
    """
    Classify a raw exception from the BigQuery client.

    Args:
        exc: Original exception

    Returns:
        Tuple of (ErrorCategory, ErrorCode)
    """
    if isinstance(exc, JobFailedError):
        return _JOB_REASON_CODES.get(
            exc.reason or "",
            (ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_JOB_FAILED)
        )

    if isinstance(exc, (TimeoutError, google_exceptions.DeadlineExceeded)):
        return ErrorCategory.TIMEOUT, ErrorCode.BIGQUERY_TIMEOUT

    if isinstance(exc, (google_exceptions.ServiceUnavailable, google_exceptions.InternalServerError)):
        return ErrorCategory.TRANSIENT, ErrorCode.BIGQUERY_UNAVAILABLE

    if isinstance(exc, google_exceptions.TooManyRequests):
        return ErrorCategory.QUOTA, ErrorCode.BIGQUERY_QUOTA_EXCEEDED

    if isinstance(exc, google_exceptions.NotFound):
        return ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_NOT_FOUND

    if isinstance(exc, google_exceptions.BadRequest):
        return ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_INVALID_QUERY

    if isinstance(exc, ConnectionError):
        return ErrorCategory.TRANSIENT, ErrorCode.NETWORK_ERROR

    # Unknown exceptions are treated as permanent so they surface in the run log
    return ErrorCategory.PERMANENT, ErrorCode.BIGQUERY_JOB_FAILED
