"""Custom exceptions and error handling utilities."""
from fastapi import HTTPException, status


class InpWatchError(Exception):
    """Base exception for application errors."""
    pass


class StorageUnavailableError(InpWatchError):
    """Raised when a batch run is interrupted by a storage failure.

    The run has been rolled back; retrying the same run is safe.
    """
    pass


class PercentileError(InpWatchError, ValueError):
    """Raised for an empty sample or a percentile outside [0, 1]."""
    pass


def handle_database_error(error: Exception, operation: str) -> HTTPException:
    """
    Convert database errors to HTTP exceptions.

    Args:
        error: The database error
        operation: Description of the operation that failed

    Returns:
        HTTPException with appropriate status code
    """
    error_message = str(error)

    if "timeout" in error_message.lower() or "canceling statement" in error_message.lower():
        return HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Query timed out during {operation}",
        )

    # Default to 500 for unknown database errors
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Database error during {operation}: {error_message}",
    )
