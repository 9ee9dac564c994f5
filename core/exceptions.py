"""
Custom exceptions for the weather ETL pipeline with structured error context.

Each exception carries context information for debugging and for the
failure notifications sent by the stage runner.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError
    ├── ExtractionError
    │   ├── APIExtractionError
    │   │   ├── NetworkError / RateLimitError          (retryable)
    │   │   └── AuthenticationError                    (non-retryable)
    │   ├── ResourceNotFoundError                      (non-retryable)
    │   └── ExtractionFailedError
    ├── StagingLoadError
    │   └── InputFileMissingError
    ├── TransformationError
    ├── LoadError
    │   └── DatabaseError
    │       └── DatabaseConnectionError                (non-retryable)
    ├── TrackingError                                  (non-retryable)
    ├── RetryExhaustedError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (execution id, location, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that the retry orchestrator should retry.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - A failed stage-level transaction
    """
    pass


class NonRetryableError(ETLException):
    """
    Mixin for errors that end the process without another attempt.

    Use this for permanent errors like:
    - Invalid or missing configuration
    - Authentication failures (HTTP 401, 403)
    - Resource not found (HTTP 404)
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Raised when required configuration is missing or invalid.

    Context should include:
        - setting: Name of the offending setting
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class APIExtractionError(ExtractionError):
    """
    Exception raised when fetching one location from the weather API fails.

    Context should include:
        - location: Location name
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
    """
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Timeouts, connection errors and HTTP 5xx."""
    pass


class RateLimitError(RetryableError, APIExtractionError):
    """Rate limiting errors (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class AuthenticationError(NonRetryableError, APIExtractionError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class ResourceNotFoundError(NonRetryableError, ExtractionError):
    """Resource not found errors (HTTP 404)."""
    pass


class ExtractionFailedError(ExtractionError):
    """
    Raised by the extract stage when the extraction outcome is a failure
    under the configured policy.

    Context should include:
        - execution_id
        - failed: number of failed locations
        - total: number of locations attempted
    """
    pass


# ============================================================================
# Staging Load Errors
# ============================================================================

class StagingLoadError(ETLException):
    """
    Exception raised when loading the extract file into raw tables fails.

    Context should include:
        - file_path: Path to the extract file
        - execution_id: Load execution id
    """
    pass


class InputFileMissingError(StagingLoadError):
    """Today's extract file does not exist."""
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for raw-to-staging transformation failures."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for warehouse loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, DELETE)
        - table_name: Name of the table
    """
    pass


class DatabaseConnectionError(NonRetryableError, DatabaseError):
    """Database connection errors."""
    pass


# ============================================================================
# Tracking / Orchestration Errors
# ============================================================================

class TrackingError(NonRetryableError):
    """
    Raised when the control store cannot record an execution.

    Context should include:
        - process_name
        - execution_id (if one was minted)
        - operation: check, config, begin or complete
    """
    pass


class RetryExhaustedError(ETLException):
    """
    Raised when every attempt of a stage has failed.

    Context should include:
        - stage: Stage name
        - attempts: Number of attempts made
    """
    pass
