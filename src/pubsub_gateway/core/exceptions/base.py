"""
Base Exception Class

GatewayBaseError is the root of every error the gateway raises on purpose.
Broker, pool and delivery errors live in their own modules; only
ConfigurationError sits here because settings code raises it before any
other layer exists.

Author: System Architect
Date: 2025-12-08
"""

from typing import Any


class GatewayBaseError(Exception):
    """
    Root gateway error.

    Carries a human-readable message, the id of the HTTP request being served
    (when there is one) and a dict of structured details that end up in log
    events and, for broker errors, in the API error body.

    Attributes:
        message: Error message
        request_id: Correlation id of the current request, if any
        details: Structured context (destination, pool name, host, ...)

    Example:
        raise BrokerConnectionError(
            "Failed to connect to broker",
            details={"host": "redis://broker:6379", "tenant": "default"}
        )
    """

    #: Whether a caller may reasonably retry the same operation later.
    retriable: bool = False

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = dict(details or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Structured form for log events."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "request_id": self.request_id,
            "retriable": self.retriable,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "GatewayBaseError":
        """Attach an operator hint (for example which setting to fix)."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "GatewayBaseError":
        """Merge extra keys into ``details``; returns self for chaining."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [f"message={self.message!r}"]
        if self.request_id:
            parts.append(f"request_id={self.request_id!r}")
        if self.details:
            parts.append(f"details={self.details!r}")
        return f"{type(self).__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "GatewayBaseError":
        """
        Wrap a third-party exception (redis-py, OSError, ...).

        The wrapped error's class and text are kept under
        ``original_error`` / ``original_message``.

        Example:
            >>> try:
            ...     client.ping()
            ... except redis.ConnectionError as e:
            ...     raise BrokerConnectionError.from_exception(
            ...         e, host="redis://localhost:6379"
            ...     ) from e
        """
        return cls(
            message or str(exc),
            request_id=request_id,
            details={
                "original_error": type(exc).__name__,
                "original_message": str(exc),
                **details,
            },
        )


class ConfigurationError(GatewayBaseError):
    """Raised when settings are missing or inconsistent."""
