from __future__ import annotations

import logging
import os
import threading
import time
from typing import TYPE_CHECKING

from .folderconfig import FolderConfig
from .foldermodel import File
from .foldermodel import Folder
from .folderscanner import FolderScanner
from .folderstore import FolderNotFoundError
from .folderstore import FolderStore

if TYPE_CHECKING:
    from collections.abc import Generator
    from collections.abc import Iterable
    from types import TracebackType


class FolderIndexer:
    """Keep an index of folders and files in sync with the filesystem."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        database_path: str = ":memory:",
        *,
        compact_after_remove: bool = True,
    ) -> None:
        """
        Open the index at the given path, creating the schema when needed.

        The schema is created when the database file did not exist before, or
        when it exists without the folders and files tables.

        Args:
            database_path: The path to the database file. Defaults to an
                in-memory database.

        Keyword Args:
            compact_after_remove: Compact the database after remove_folder().
                Defaults to True.
        """
        existed = database_path != ":memory:" and os.path.exists(database_path)

        self._store = FolderStore(database_path)
        self._compact_after_remove = compact_after_remove

        if not existed or not self._store.has_schema():
            self.logger.info("Creating schema in %s", database_path)
            self._store.create_schema()

    @classmethod
    def from_config(cls, config: FolderConfig) -> FolderIndexer:
        """Build a FolderIndexer from the given configuration."""
        return cls(
            config.database_path,
            compact_after_remove=config.compact_after_remove,
        )

    def __enter__(self) -> FolderIndexer:
        """Enter a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Exit a context manager, closing the store."""
        self.close()

    @property
    def store(self) -> FolderStore:
        """The store holding the index."""
        return self._store

    def close(self) -> None:
        """Close the underlying store."""
        self._store.close()

    def run_from_config(self, config: FolderConfig) -> None:
        """Rebuild the index from the configured root directories."""
        self.full_rescan(config.root_directories, config.max_depth)

    def full_rescan(
        self,
        roots: Iterable[str],
        max_depth: int = 0,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Replace the whole index with a fresh scan of the given roots.

        Any folder not reachable from the roots is removed from the index.

        Args:
            roots: The directories to scan. Duplicates are ignored.
            max_depth: Depth limit of the scan, roots being depth 1. Defaults
                to 0 (unlimited).

        Keyword Args:
            cancel_event: Abort the scan and roll back when set.

        Raises:
            DuplicateFolderError: The roots overlap.
            ScanCancelledError: The scan was cancelled.
        """
        root_paths = list(dict.fromkeys(os.path.abspath(root) for root in roots))
        self.logger.info("Rescanning %s root directories...", len(root_paths))
        tic = time.perf_counter()

        scanner = FolderScanner(self._store, max_depth, cancel_event=cancel_event)

        with self._store.transaction():
            self._store.delete_all()
            root_ids = self._store.insert_folders(
                Folder.from_path(root) for root in root_paths
            )

            for root in root_paths:
                self.logger.debug("Scanning root directory: %s", root)
                scanner.scan(root, root_ids[root])

        self._store.compact()

        toc = time.perf_counter()
        self.logger.info("Rescan finished in %s seconds", toc - tic)
        self._log_scan_summary(scanner)

    def add_folder(
        self,
        path: str,
        max_depth: int = 0,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Add a folder and its contents to the index.

        The folder is attached to its filesystem parent when the parent is
        indexed. Otherwise it becomes a root; missing ancestors are not added.

        Args:
            path: The directory to add.
            max_depth: Depth limit of the scan, `path` being depth 1. Defaults
                to 0 (unlimited).

        Keyword Args:
            cancel_event: Abort the scan and roll back when set.

        Raises:
            FileNotFoundError: The path does not exist.
            NotADirectoryError: The path is not a directory.
            DuplicateFolderError: The folder is already indexed.
            ScanCancelledError: The scan was cancelled.
        """
        path = os.path.abspath(path)
        if not os.path.exists(path):
            raise FileNotFoundError(f"No such directory: {path}")
        if not os.path.isdir(path):
            raise NotADirectoryError(f"Not a directory: {path}")

        self.logger.info("Adding folder %s...", path)
        tic = time.perf_counter()

        parent_id = self._find_parent_id(path)
        scanner = FolderScanner(self._store, max_depth, cancel_event=cancel_event)

        with self._store.transaction():
            folder_ids = self._store.insert_folders([Folder.from_path(path, parent_id)])
            scanner.scan(path, folder_ids[path])

        toc = time.perf_counter()
        self.logger.info("Add finished in %s seconds", toc - tic)
        self._log_scan_summary(scanner)

    def remove_folder(self, path: str) -> tuple[int, int]:
        """
        Remove a folder, its subfolders, and their files from the index.

        Returns:
            A tuple of the number of folder rows and file rows removed.

        Raises:
            FolderNotFoundError: The folder is not indexed.
        """
        path = os.path.abspath(path)
        self.logger.info("Removing folder %s...", path)

        folder_id = self._store.resolve_folder_id(path)
        if folder_id is None:
            raise FolderNotFoundError(f"Folder is not indexed: {path}")

        with self._store.transaction():
            removed = self._store.delete_subtree(folder_id)

        if self._compact_after_remove:
            self._store.compact()

        self.logger.info("Removed %s folders and %s files", *removed)
        return removed

    def files_with_extension(self, extension: str) -> list[File]:
        """Return every indexed file with the exact extension, e.g. ".zip"."""
        return self._store.files_with_extension(extension)

    def iter_subtree(self, path: str) -> Generator[tuple[int, Folder, list[File]], None, None]:
        """
        Walk an indexed folder and its descendants, parents before children.

        Yields:
            Tuples of the depth below `path` (0 for `path` itself), the folder,
            and the files directly inside it.

        Raises:
            FolderNotFoundError: The folder is not indexed.
        """
        path = os.path.abspath(path)
        root = self._store.get_folder(path)
        if root is None:
            raise FolderNotFoundError(f"Folder is not indexed: {path}")

        stack = [(0, root)]
        while stack:
            depth, folder = stack.pop()
            # Rows read back from the store always carry an id
            folder_id: int = folder.id  # type: ignore[assignment]
            yield depth, folder, self._store.get_folder_files(folder_id)

            children = self._store.get_child_folders(folder_id)
            stack.extend((depth + 1, child) for child in reversed(children))

    def _find_parent_id(self, path: str) -> int | None:
        """Return the id of the indexed filesystem parent of path, or None."""
        parent_path = os.path.dirname(path)
        if parent_path == path:
            return None

        parent_id = self._store.resolve_folder_id(parent_path)
        if parent_id is None:
            self.logger.info("Parent '%s' is not indexed, adding as root", parent_path)

        return parent_id

    def _log_scan_summary(self, scanner: FolderScanner) -> None:
        self.logger.info(
            "Detected %s folders and %s files, skipped %s directories",
            scanner.folder_count,
            scanner.file_count,
            scanner.skipped_count,
        )
