"""
File Store Protocol

Persistence collaborator used by the message handler to write received
attachments.

Author: System Architect
Date: 2025-12-08
"""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FileStore(Protocol):
    """
    Protocol for attachment storage.

    Both operations raise OSError on failure.
    """

    def ensure_directory(self, path: Path) -> None:
        """Create the directory and any missing parents."""
        ...

    def write_file(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path``, replacing any existing content."""
        ...
