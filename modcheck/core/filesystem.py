"""
Filesystem collaborator.

All disk access made by the probe, the scanners and the auto-fix applier
goes through a FileSystem so it can be swapped out in tests. Paths are
plain strings; implementations decide how to interpret them.
"""

import os
import shutil
from abc import ABC, abstractmethod
from typing import List, Optional


class FileSystem(ABC):
    """
    Abstract filesystem interface.

    Read operations are used by the probe and scanner; write operations
    are only used by the auto-fix applier.
    """

    # ─────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a file or directory exists."""
        ...

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Check if the path is a directory."""
        ...

    @abstractmethod
    def is_file(self, path: str) -> bool:
        """Check if the path is a regular file."""
        ...

    @abstractmethod
    def list_dir(self, path: str) -> List[str]:
        """Return entry names in a directory, sorted."""
        ...

    @abstractmethod
    def size(self, path: str) -> int:
        """Return file size in bytes."""
        ...

    # ─────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────

    @abstractmethod
    def read_bytes(self, path: str, limit: Optional[int] = None) -> bytes:
        """Read a file, optionally only the first `limit` bytes."""
        ...

    def read_text(self, path: str, limit: Optional[int] = None) -> str:
        """Read a file as UTF-8 text, replacing undecodable bytes."""
        return self.read_bytes(path, limit).decode("utf-8", errors="replace")

    # ─────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────

    @abstractmethod
    def write_bytes(self, path: str, data: bytes) -> None:
        """Write a file, creating parent directories."""
        ...

    def write_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    @abstractmethod
    def make_dirs(self, path: str) -> None:
        """Create a directory and any missing parents."""
        ...

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Delete a file."""
        ...

    @abstractmethod
    def remove_dir(self, path: str) -> None:
        """Delete an empty directory."""
        ...

    @abstractmethod
    def copy_file(self, source: str, destination: str) -> None:
        """Copy file bytes and metadata."""
        ...


class LocalFileSystem(FileSystem):
    """FileSystem backed by the local disk."""

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def is_file(self, path: str) -> bool:
        return os.path.isfile(path)

    def list_dir(self, path: str) -> List[str]:
        return sorted(os.listdir(path))

    def size(self, path: str) -> int:
        return os.path.getsize(path)

    def read_bytes(self, path: str, limit: Optional[int] = None) -> bytes:
        with open(path, "rb") as f:
            return f.read() if limit is None else f.read(limit)

    def write_bytes(self, path: str, data: bytes) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def make_dirs(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def remove_file(self, path: str) -> None:
        os.remove(path)

    def remove_dir(self, path: str) -> None:
        os.rmdir(path)

    def copy_file(self, source: str, destination: str) -> None:
        parent = os.path.dirname(destination)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.copy2(source, destination)
