"""Attachment storage."""

from pubsub_gateway.infrastructure.storage.file_store import LocalFileStore

__all__ = ["LocalFileStore"]
