"""
Local File Store

Writes received attachments to the local filesystem.

Author: System Architect
Date: 2025-12-10
"""

from pathlib import Path


class LocalFileStore:
    """FileStore on the local filesystem. Errors surface as OSError."""

    def ensure_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def write_file(self, path: Path, data: bytes) -> None:
        Path(path).write_bytes(data)
