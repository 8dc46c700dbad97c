from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock

import pytest

from folder_index import folderstore
from folder_index.foldermodel import File
from folder_index.foldermodel import Folder
from folder_index.folderstore import DuplicateFolderError
from folder_index.folderstore import FolderStore
from folder_index.folderstore import SchemaError

# Predefine a small tree for testing, ids follow insert order.
#   1 /home
#   2 /home/obiwan
#   3 /home/obiwan/saber
#   4 /home/luke
#   5 /srv (separate root)
FOLDER_ROWS = [
    [1, "home", "/home", None],
    [2, "obiwan", "/home/obiwan", 1],
    [3, "saber", "/home/obiwan/saber", 2],
    [4, "luke", "/home/luke", 1],
    [5, "srv", "/srv", None],
]
FILE_ROWS = [
    [1, "notes.txt", "/home/notes.txt", ".txt", 10, 1],
    [2, "hilt.zip", "/home/obiwan/saber/hilt.zip", ".zip", 20, 3],
    [3, "robe.ZIP", "/home/obiwan/robe.ZIP", ".ZIP", 30, 2],
    [4, "x-wing.zip", "/home/luke/x-wing.zip", ".zip", 40, 4],
    [5, "backup.zip", "/srv/backup.zip", ".zip", 50, 5],
]


@pytest.fixture
def store() -> FolderStore:
    store = FolderStore(":memory:")
    store.create_schema()
    return store


@pytest.fixture
def store_full(store: FolderStore) -> FolderStore:
    store._connection.executemany("INSERT INTO folders VALUES (?, ?, ?, ?)", FOLDER_ROWS)
    store._connection.executemany("INSERT INTO files VALUES (?, ?, ?, ?, ?, ?)", FILE_ROWS)
    return store


def test_store_built_from_config() -> None:
    config = MagicMock(database_path=":memory:")
    store = FolderStore.from_config(config)

    assert store.has_schema() is False


def test_store_closes_with_context_manager() -> None:
    with FolderStore(":memory:") as store:
        store.create_schema()

    with pytest.raises(sqlite3.ProgrammingError):
        store.count_rows()


def test_create_schema(store: FolderStore) -> None:
    cursor = store._connection.cursor()
    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    tables = [name[0] for name in cursor.fetchall()]
    cursor.execute("SELECT name FROM sqlite_master WHERE type='index'")
    indexes = [name[0] for name in cursor.fetchall()]

    assert "folders" in tables
    assert "files" in tables
    assert "folder_path" in indexes
    assert store.has_schema() is True


def test_create_schema_drops_existing_rows(store_full: FolderStore) -> None:
    store_full.create_schema()

    assert store_full.count_rows() == (0, 0)


def test_create_schema_raises_schema_error(store: FolderStore) -> None:
    store._connection.close()

    with pytest.raises(SchemaError):
        store.create_schema()


def test_transaction_commits(store: FolderStore) -> None:
    with store.transaction():
        store.insert_folders([Folder.from_path("/home")])

    assert store._connection.in_transaction is False
    assert store.count_rows() == (1, 0)


def test_transaction_rolls_back_on_error(store: FolderStore) -> None:
    with pytest.raises(ValueError):
        with store.transaction():
            store.insert_folders([Folder.from_path("/home")])
            raise ValueError("boom")

    assert store._connection.in_transaction is False
    assert store.count_rows() == (0, 0)


def test_nested_transaction_joins_outer(store: FolderStore) -> None:
    with pytest.raises(ValueError):
        with store.transaction():
            with store.transaction():
                store.insert_folders([Folder.from_path("/home")])
            raise ValueError("boom")

    assert store.count_rows() == (0, 0)


def test_insert_folders_returns_ids_by_path(store: FolderStore) -> None:
    with store.transaction():
        root_ids = store.insert_folders([Folder.from_path("/home")])
        child_ids = store.insert_folders(
            [
                Folder.from_path("/home/obiwan", root_ids["/home"]),
                Folder.from_path("/home/luke", root_ids["/home"]),
            ]
        )

    assert set(child_ids) == {"/home/obiwan", "/home/luke"}
    assert store.resolve_folder_ids(["/home", "/home/obiwan", "/home/luke"]) == {
        **root_ids,
        **child_ids,
    }
    luke = store.get_folder("/home/luke")
    assert luke is not None
    assert luke.parent_id == root_ids["/home"]
    assert luke.name == "luke"


def test_insert_duplicate_folder_raises(store_full: FolderStore) -> None:
    with pytest.raises(DuplicateFolderError):
        with store_full.transaction():
            store_full.insert_folders([Folder.from_path("/home/luke", 1)])

    assert store_full.count_rows() == (5, 5)


def test_insert_files(store: FolderStore) -> None:
    files = [
        File("a.txt", "/home/a.txt", ".txt", 3, 1),
        File("b", "/home/b", "", 0, 1),
    ]
    with store.transaction():
        store.insert_files(files)

    rows = store.get_files()

    assert [(row.name, row.path, row.extension, row.size, row.parent_id) for row in rows] == [
        ("a.txt", "/home/a.txt", ".txt", 3, 1),
        ("b", "/home/b", "", 0, 1),
    ]
    assert all(row.id is not None for row in rows)


def test_insert_empty_batches(store: FolderStore) -> None:
    with store.transaction():
        store.insert_files([])
        ids = store.insert_folders([])

    assert ids == {}
    assert store.count_rows() == (0, 0)


def test_resolve_folder_ids_omits_missing(store_full: FolderStore) -> None:
    result = store_full.resolve_folder_ids(["/home/luke", "/nowhere", "/srv"])

    assert result == {"/home/luke": 4, "/srv": 5}


def test_resolve_folder_ids_chunks_large_batches(
    store_full: FolderStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(folderstore, "MAX_BOUND_PARAMETERS", 2)
    paths = [row[2] for row in FOLDER_ROWS]

    result = store_full.resolve_folder_ids(paths)

    assert result == {row[2]: row[0] for row in FOLDER_ROWS}


def test_resolve_folder_id(store_full: FolderStore) -> None:
    assert store_full.resolve_folder_id("/home/obiwan") == 2
    assert store_full.resolve_folder_id("/home/leia") is None


def test_collect_subtree_ids(store_full: FolderStore) -> None:
    assert store_full.collect_subtree_ids(1) == {1, 2, 3, 4}
    assert store_full.collect_subtree_ids(2) == {2, 3}
    assert store_full.collect_subtree_ids(3) == {3}


def test_delete_subtree_removes_folders_and_files(store_full: FolderStore) -> None:
    with store_full.transaction():
        removed = store_full.delete_subtree(2)

    assert removed == (2, 2)
    assert [folder.path for folder in store_full.get_folders()] == [
        "/home",
        "/home/luke",
        "/srv",
    ]
    assert [file.path for file in store_full.get_files()] == [
        "/home/luke/x-wing.zip",
        "/home/notes.txt",
        "/srv/backup.zip",
    ]


def test_delete_subtree_leaves_other_roots(store_full: FolderStore) -> None:
    with store_full.transaction():
        removed = store_full.delete_subtree(1)

    assert removed == (4, 4)
    assert store_full.count_rows() == (1, 1)
    assert store_full.get_folder("/srv") is not None


def test_delete_all(store_full: FolderStore) -> None:
    with store_full.transaction():
        store_full.delete_all()

    assert store_full.count_rows() == (0, 0)


def test_compact_outside_transaction(store_full: FolderStore) -> None:
    store_full.compact()

    assert store_full.count_rows() == (5, 5)


def test_files_with_extension_is_exact(store_full: FolderStore) -> None:
    zips = store_full.files_with_extension(".zip")
    upper = store_full.files_with_extension(".ZIP")

    assert [file.path for file in zips] == [
        "/home/luke/x-wing.zip",
        "/home/obiwan/saber/hilt.zip",
        "/srv/backup.zip",
    ]
    assert [file.path for file in upper] == ["/home/obiwan/robe.ZIP"]
    assert store_full.files_with_extension("zip") == []


def test_get_child_folders_and_files(store_full: FolderStore) -> None:
    children = store_full.get_child_folders(1)
    files = store_full.get_folder_files(1)

    assert [folder.path for folder in children] == ["/home/luke", "/home/obiwan"]
    assert [file.name for file in files] == ["notes.txt"]


def test_get_folder_missing(store_full: FolderStore) -> None:
    assert store_full.get_folder("/home/leia") is None
