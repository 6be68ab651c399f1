"""Structured logging helpers."""

from pubsub_gateway.core.logging.logger import (
    clear_request_id,
    get_logger,
    get_request_id,
    set_request_id,
    setup_logging,
)

__all__ = ["clear_request_id", "get_logger", "get_request_id", "set_request_id", "setup_logging"]
