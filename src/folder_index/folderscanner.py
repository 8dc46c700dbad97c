from __future__ import annotations

import logging
import os
import threading

from .foldermodel import File
from .foldermodel import Folder
from .foldermodel import file_extension
from .folderstore import FolderNotFoundError
from .folderstore import FolderStore


class ScanCancelledError(Exception):
    """The scan was cancelled before it completed."""


class FolderScanner:
    """Recursively record the folders and files below a directory."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        store: FolderStore,
        max_depth: int = 0,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Initialize a new FolderScanner writing to the given store.

        Args:
            store: The store receiving the folder and file rows. The caller
                owns the transaction.
            max_depth: Stop before listing folders at this depth. Scan roots
                are depth 1. Defaults to 0 (unlimited).

        Keyword Args:
            cancel_event: When set, the scan raises ScanCancelledError at the
                next directory.
        """
        self._store = store
        self._max_depth = max_depth
        self._cancel_event = cancel_event

        self.folder_count = 0
        self.file_count = 0
        self.skipped_count = 0

    def scan(self, path: str, folder_id: int, depth: int = 1) -> None:
        """
        Record the contents of an already indexed folder, then recurse.

        Args:
            path: The directory to scan.
            folder_id: The id of the folder row for `path`.
            depth: The depth of `path` below the scan roots.

        Raises:
            ScanCancelledError: The cancel event was set.
            FolderNotFoundError: A child folder row was not readable after insert.
        """
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise ScanCancelledError(f"Scan cancelled at {path}")

        if self._max_depth > 0 and depth >= self._max_depth:
            self.logger.debug("Depth limit reached at '%s'", path)
            return

        try:
            directories, filepaths = self._list_directory(path)

        except PermissionError:
            self.logger.warning("Access denied: '%s'", path)
            self.skipped_count += 1
            return

        except (FileNotFoundError, NotADirectoryError):
            self.logger.warning("Could not find: '%s'", path)
            self.skipped_count += 1
            return

        files = [self._build_file_model(filepath, folder_id) for filepath in filepaths]
        self._store.insert_files(files)
        self.file_count += len(files)

        folder_ids = self._store.insert_folders(
            Folder.from_path(directory, folder_id) for directory in directories
        )
        self.folder_count += len(folder_ids)

        for directory in directories:
            child_id = folder_ids.get(directory)
            if child_id is None:
                raise FolderNotFoundError(f"No folder row after insert: {directory}")

            self.scan(directory, child_id, depth + 1)

    def _list_directory(self, path: str) -> tuple[list[str], list[str]]:
        """
        Return the child directory paths and file paths of a directory.

        Symlinked directories are not followed.

        Raises:
            PermissionError
            FileNotFoundError
            NotADirectoryError
        """
        directories: list[str] = []
        filepaths: list[str] = []

        with os.scandir(path) as entries:
            for entry in sorted(entries, key=lambda entry: entry.name):
                try:
                    # Undecodable names carry lone surrogates sqlite cannot bind
                    entry.path.encode("utf-8")

                    if entry.is_dir(follow_symlinks=False):
                        directories.append(entry.path)
                    elif entry.is_file():
                        filepaths.append(entry.path)

                except UnicodeEncodeError:
                    self.logger.warning("Skipping undecodable name %r", entry.path)
                    self.skipped_count += 1

                except OSError:
                    # The entry vanished or is unreadable after the listing
                    self.logger.debug("Skipping unreadable entry '%s'", entry.path)

        return directories, filepaths

    def _build_file_model(self, filepath: str, folder_id: int) -> File:
        """Build a File for the path. A failed stat records a size of 0."""
        filename = os.path.basename(filepath)

        return File(
            name=filename,
            path=filepath,
            extension=file_extension(filename),
            size=self._get_file_size_in_bytes(filepath),
            parent_id=folder_id,
        )

    def _get_file_size_in_bytes(self, filepath: str) -> int:
        """Return the reported size of the file, or 0 if it cannot be read."""
        try:
            return os.path.getsize(filepath)

        except OSError:
            # The file has been moved or removed after the listing
            self.logger.debug("Could not read size of '%s'", filepath)
            return 0
