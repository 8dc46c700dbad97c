from __future__ import annotations

from .folderconfig import FolderConfig
from .folderindexer import FolderIndexer
from .foldermodel import File
from .foldermodel import Folder
from .folderscanner import ScanCancelledError
from .folderstore import DuplicateFolderError
from .folderstore import FolderNotFoundError
from .folderstore import FolderStoreError
from .folderstore import SchemaError

__all__ = [
    "DuplicateFolderError",
    "File",
    "Folder",
    "FolderConfig",
    "FolderIndexer",
    "FolderNotFoundError",
    "FolderStoreError",
    "ScanCancelledError",
    "SchemaError",
]
