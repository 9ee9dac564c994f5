"""
Core utilities and configuration for the weather ETL system.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Per-stage engine and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    notifications: Notification collaborator for stage reports

Usage:
    from core.config import settings
    from core.database import Databases, session_scope
    from core.exceptions import ExtractionFailedError, DatabaseConnectionError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Open a session scoped to one stage
    databases = Databases.from_settings()
    async with session_scope(databases.control) as session:
        # Perform database operations
        pass
    await databases.dispose()
"""

__all__ = [
    "settings",
    "Databases",
    "session_scope",
    "setup_logging",
    "Notifier",
    "LogNotifier",
    # Exceptions
    "ETLException",
    "ConfigurationError",
    "ExtractionError",
    "APIExtractionError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "ExtractionFailedError",
    "StagingLoadError",
    "InputFileMissingError",
    "TransformationError",
    "LoadError",
    "DatabaseError",
    "DatabaseConnectionError",
    "TrackingError",
    "RetryExhaustedError",
    "RetryableError",
    "NonRetryableError",
]
