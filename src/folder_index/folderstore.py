from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator
from collections.abc import Iterable
from contextlib import closing
from contextlib import contextmanager
from typing import TYPE_CHECKING

from .foldermodel import File
from .foldermodel import Folder

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Protocol

    class _FolderConfig(Protocol):
        @property
        def database_path(self) -> str:
            ...


# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds (999).
MAX_BOUND_PARAMETERS = 500


class FolderStoreError(Exception):
    """Base class for errors raised by the folder store."""


class SchemaError(FolderStoreError):
    """The schema could not be created."""


class DuplicateFolderError(FolderStoreError):
    """A folder with the same path is already indexed."""


class FolderNotFoundError(FolderStoreError):
    """A folder expected to be indexed has no row."""


def _chunked(items: list) -> Generator[list, None, None]:
    """Yield consecutive slices of items that fit in one statement."""
    size = MAX_BOUND_PARAMETERS
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _placeholders(count: int) -> str:
    return ",".join("?" * count)


class FolderStore:
    """Database of indexed folders and files."""

    logger = logging.getLogger(__name__)

    def __init__(self, database_path: str = ":memory:") -> None:
        """
        Initialize a new FolderStore connected to the given path.

        The connection runs in autocommit mode; all writes are expected to
        happen inside `transaction()`. The schema is not created here, see
        `create_schema()`.

        Args:
            database_path: The path to the database file. Defaults to an
                in-memory database.
        """
        self.logger.debug("Initializing FolderStore at %s", database_path)
        self._connection = sqlite3.connect(database_path, isolation_level=None)

    @classmethod
    def from_config(cls, config: _FolderConfig) -> FolderStore:
        """Build a FolderStore from the given configuration."""
        return cls(config.database_path)

    def __enter__(self) -> FolderStore:
        """Enter a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Exit a context manager, closing the connection."""
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Run the enclosed block in one transaction.

        Commits when the block exits cleanly, rolls back and re-raises on any
        exception. A transaction opened while another is active joins the
        outer one.
        """
        if self._connection.in_transaction:
            yield
            return

        self._connection.execute("BEGIN")
        try:
            yield
        except BaseException:
            # sqlite may already have rolled back on some errors
            if self._connection.in_transaction:
                self.logger.debug("Rolling back transaction")
                self._connection.execute("ROLLBACK")
            raise

        self._connection.execute("COMMIT")

    def has_schema(self) -> bool:
        """Return True if both the folders and files tables exist."""
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) FROM sqlite_master
                WHERE type = 'table' AND name IN ('folders', 'files')
                """
            )
            return cursor.fetchone()[0] == 2

    def create_schema(self) -> None:
        """
        Drop and recreate the folders and files tables.

        Raises:
            SchemaError: The database rejected the DDL.
        """
        try:
            with self.transaction():
                self._connection.execute("DROP INDEX IF EXISTS folder_path")
                self._connection.execute("DROP INDEX IF EXISTS file_extension")
                self._connection.execute("DROP TABLE IF EXISTS files")
                self._connection.execute("DROP TABLE IF EXISTS folders")
                self._create_folder_table()
                self._create_file_table()

        except sqlite3.Error as error:
            raise SchemaError(f"Could not create schema: {error}") from error

        self.logger.debug("Created schema")

    def _create_folder_table(self) -> None:
        """Create the folder table and its unique path index."""
        # parent_id is NULL for scan roots.
        self._connection.execute(
            """
            CREATE TABLE folders (
                id INTEGER PRIMARY KEY,
                name TEXT,
                path TEXT,
                parent_id INTEGER NULL
            )
            """
        )
        self._connection.execute("CREATE UNIQUE INDEX folder_path ON folders(path)")
        self.logger.debug("Created folder table")

    def _create_file_table(self) -> None:
        """Create the file table and its extension index."""
        self._connection.execute(
            """
            CREATE TABLE files (
                id INTEGER PRIMARY KEY,
                name TEXT,
                path TEXT,
                extension TEXT,
                size INTEGER,
                parent_id INTEGER
            )
            """
        )
        self._connection.execute("CREATE INDEX file_extension ON files(extension)")
        self.logger.debug("Created file table")

    def insert_folders(self, folders: Iterable[Folder]) -> dict[str, int]:
        """
        Insert the given folders and return their generated ids by path.

        Raises:
            DuplicateFolderError: A folder path is already indexed.
        """
        ids: dict[str, int] = {}
        with closing(self._connection.cursor()) as cursor:
            for folder in folders:
                try:
                    cursor.execute(
                        "INSERT INTO folders (name, path, parent_id) VALUES (?, ?, ?)",
                        (folder.name, folder.path, folder.parent_id),
                    )

                except sqlite3.IntegrityError as error:
                    raise DuplicateFolderError(
                        f"Folder already indexed: {folder.path}"
                    ) from error

                # lastrowid is always set after a successful single-row INSERT
                ids[folder.path] = cursor.lastrowid  # type: ignore[assignment]

        self.logger.debug("Inserted %s folders", len(ids))
        return ids

    def insert_files(self, files: list[File]) -> None:
        """Insert the given files."""
        self.logger.debug("Inserting %s files", len(files))
        with closing(self._connection.cursor()) as cursor:
            cursor.executemany(
                """
                INSERT INTO files (name, path, extension, size, parent_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (file.name, file.path, file.extension, file.size, file.parent_id)
                    for file in files
                ],
            )

    def resolve_folder_ids(self, paths: Iterable[str]) -> dict[str, int]:
        """Return the ids of the given folder paths. Unknown paths are omitted."""
        ids: dict[str, int] = {}
        with closing(self._connection.cursor()) as cursor:
            for chunk in _chunked(list(dict.fromkeys(paths))):
                cursor.execute(
                    f"SELECT path, id FROM folders WHERE path IN ({_placeholders(len(chunk))})",
                    chunk,
                )
                ids.update(cursor.fetchall())

        return ids

    def resolve_folder_id(self, path: str) -> int | None:
        """Return the id of the folder path, or None if it is not indexed."""
        return self.resolve_folder_ids([path]).get(path)

    def collect_subtree_ids(self, root_id: int) -> set[int]:
        """
        Return the id of the folder and all of its descendant folders.

        Expands one level of children per query round until a round finds no
        new ids. Terminates because parent references only point at rows
        inserted earlier.
        """
        subtree = {root_id}
        frontier = [root_id]
        with closing(self._connection.cursor()) as cursor:
            while frontier:
                children: list[int] = []
                for chunk in _chunked(frontier):
                    cursor.execute(
                        f"SELECT id FROM folders WHERE parent_id IN ({_placeholders(len(chunk))})",
                        chunk,
                    )
                    children.extend(row[0] for row in cursor.fetchall())

                frontier = [child for child in children if child not in subtree]
                subtree.update(frontier)

        self.logger.debug("Collected %s folder ids under %s", len(subtree), root_id)
        return subtree

    def delete_subtree(self, root_id: int) -> tuple[int, int]:
        """
        Delete the folder, its descendant folders, and the files they contain.

        Returns:
            A tuple of the number of folder rows and file rows removed.
        """
        subtree = sorted(self.collect_subtree_ids(root_id))
        folders_removed = 0
        files_removed = 0

        with closing(self._connection.cursor()) as cursor:
            for chunk in _chunked(subtree):
                placeholders = _placeholders(len(chunk))
                cursor.execute(
                    f"DELETE FROM files WHERE parent_id IN ({placeholders})", chunk
                )
                files_removed += cursor.rowcount
                cursor.execute(f"DELETE FROM folders WHERE id IN ({placeholders})", chunk)
                folders_removed += cursor.rowcount

        self.logger.debug(
            "Deleted %s folders and %s files", folders_removed, files_removed
        )
        return folders_removed, files_removed

    def delete_all(self) -> None:
        """Remove every folder and file row."""
        self.logger.debug("Deleting all folders and files")
        self._connection.execute("DELETE FROM files")
        self._connection.execute("DELETE FROM folders")

    def compact(self) -> None:
        """Reclaim free space in the database file. Not allowed in a transaction."""
        self.logger.debug("Compacting database")
        self._connection.execute("VACUUM")

    def files_with_extension(self, extension: str) -> list[File]:
        """Return every file whose extension matches exactly, e.g. ".zip"."""
        self.logger.debug("Getting files with extension '%s'", extension)
        return self._select_files("WHERE extension = ?", (extension,))

    def get_files(self) -> list[File]:
        """Return every indexed file."""
        return self._select_files()

    def get_folder_files(self, folder_id: int) -> list[File]:
        """Return the files directly inside the folder."""
        return self._select_files("WHERE parent_id = ?", (folder_id,))

    def get_folder(self, path: str) -> Folder | None:
        """Return the folder with the given path, or None."""
        folders = self._select_folders("WHERE path = ?", (path,))
        return folders[0] if folders else None

    def get_folders(self) -> list[Folder]:
        """Return every indexed folder."""
        return self._select_folders()

    def get_child_folders(self, folder_id: int) -> list[Folder]:
        """Return the folders directly inside the folder."""
        return self._select_folders("WHERE parent_id = ?", (folder_id,))

    def count_rows(self) -> tuple[int, int]:
        """Return the number of folder rows and file rows."""
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                "SELECT (SELECT COUNT(*) FROM folders), (SELECT COUNT(*) FROM files)"
            )
            folder_count, file_count = cursor.fetchone()

        return folder_count, file_count

    def _select_folders(self, where: str = "", params: tuple = ()) -> list[Folder]:
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                f"SELECT id, name, path, parent_id FROM folders {where} ORDER BY path",
                params,
            )
            return [
                Folder(name=name, path=path, parent_id=parent_id, id=id_)
                for id_, name, path, parent_id in cursor.fetchall()
            ]

    def _select_files(self, where: str = "", params: tuple = ()) -> list[File]:
        with closing(self._connection.cursor()) as cursor:
            cursor.execute(
                f"""
                SELECT id, name, path, extension, size, parent_id
                FROM files {where} ORDER BY path
                """,
                params,
            )
            return [
                File(
                    name=name,
                    path=path,
                    extension=extension,
                    size=size,
                    parent_id=parent_id,
                    id=id_,
                )
                for id_, name, path, extension, size, parent_id in cursor.fetchall()
            ]
