from __future__ import annotations

import dataclasses
import os


@dataclasses.dataclass(frozen=True)
class Folder:
    """A folder row in the database."""

    name: str
    path: str
    parent_id: int | None = None
    id: int | None = None

    def __str__(self) -> str:
        """Return a string representation of the folder."""
        parent = "root" if self.parent_id is None else f"parent {self.parent_id}"
        return f"{self.path} ({parent})"

    @classmethod
    def from_path(cls, path: str, parent_id: int | None = None) -> Folder:
        """Build an uninserted folder from a directory path."""
        return cls(name=folder_name(path), path=path, parent_id=parent_id)


@dataclasses.dataclass(frozen=True)
class File:
    """A file row in the database."""

    name: str
    path: str
    extension: str
    size: int
    parent_id: int
    id: int | None = None

    def __str__(self) -> str:
        """Return a string representation of the file."""
        return f"{self.path} ({self.size} bytes)"


def folder_name(path: str) -> str:
    """
    Return the base name of a directory path.

    Filesystem roots (`/`, `C:\\`) have no base name and are named by their
    full path instead.
    """
    return os.path.basename(os.path.normpath(path)) or path


def file_extension(filename: str) -> str:
    """Return the extension of a filename with its leading dot, or ""."""
    return os.path.splitext(filename)[1]
