"""
Error Handling Middleware - Educational Documentation
======================================================

WHAT IS CENTRALIZED ERROR HANDLING?
------------------------------------
Broker, pool and file errors each have an exception handler registered in
app.py that turns them into a structured {error, message} body. Anything
those handlers do not recognise would otherwise escape as a bare 500 from
the server. This middleware is the last line of defense for that case.

WHAT THE CLIENT SEES:
---------------------
    500 {"error": "Internal Server Error",
         "message": "An unexpected error occurred."}

The exception itself is only logged server-side. In development the
response also carries the error detail and traceback.
"""

import traceback
from collections.abc import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

INTERNAL_ERROR_BODY = {
    "error": "Internal Server Error",
    "message": "An unexpected error occurred.",
}


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Catch-all for exceptions no exception handler claimed.

    Logs with the full stack trace, records an error metric and answers 500.
    """

    def __init__(self, app, include_traceback: bool = False):
        """
        Args:
            app: The ASGI application
            include_traceback: Whether to include stack traces in error responses
                              (should be False in production)
        """
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            method = request.method
            path = request.url.path
            error_type = type(e).__name__

            logger.error(
                f"Unhandled exception in request: {method} {path}",
                stage="HTTP.9",
                method=method,
                path=path,
                error_type=error_type,
                error_message=str(e),
                exc_info=True,
            )

            get_metrics_collector().record_error(error_type, "unhandled_exception")

            error_response = dict(INTERNAL_ERROR_BODY)
            if self.include_traceback:
                error_response["detail"] = str(e)
                error_response["traceback"] = traceback.format_exc()

            return JSONResponse(status_code=500, content=error_response)
