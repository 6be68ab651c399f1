"""
Connection Pool Exception Types.

Custom exceptions for session pool management errors.
"""

from pubsub_gateway.core.exceptions.base import GatewayBaseError


class ConnectionPoolError(GatewayBaseError):
    """Base exception for connection pool errors."""

    def __init__(
        self,
        message: str = "Connection pool error",
        request_id: str | None = None,
        details: dict | None = None
    ):
        super().__init__(message=message, request_id=request_id, details=details)


class PoolExhaustedError(ConnectionPoolError):
    """
    Raised when no session became available within the borrow timeout.

    Retriable: callers may back off and try again.
    """

    retriable = True

    def __init__(self, message: str | None = None, request_id: str | None = None, details: dict | None = None):
        super().__init__(
            message=message or "Session pool exhausted - no session available",
            request_id=request_id,
            details=details
        )


class PoolClosedError(ConnectionPoolError):
    """Raised when borrowing from a pool that has been closed."""

    def __init__(self, message: str | None = None, request_id: str | None = None, details: dict | None = None):
        super().__init__(
            message=message or "Session pool is closed",
            request_id=request_id,
            details=details
        )
