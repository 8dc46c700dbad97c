from __future__ import annotations

import logging
import os
from configparser import ConfigParser

NEW_CONFIG = """\
[system]
database_path = {filename}
# Reclaim free space in the database file after folders are removed.
compact_after_remove = true

[indexer]
# One directory per line. Every full rescan replaces the whole index.
root_directories =
    .

# Folders at this depth are recorded but not listed. Roots are depth 1.
# 0 scans without limit.
max_depth = 0

[query]
# Default extension for --extension queries, including the leading dot.
extension = .txt
"""


class FolderConfig:
    """Configuration for the FolderIndexer."""

    logger = logging.getLogger(__name__)

    def __init__(self, filepath: str) -> None:
        """Load the configuration from the given file."""
        self._config = ConfigParser()
        success = self._config.read(filepath)

        if not success:
            raise ValueError(f"Could not read config file at {filepath}")

        self.logger.debug("Loaded config from %s", filepath)

    @property
    def database_path(self) -> str:
        """Return the path to the database file, or ":memory:" if not set."""
        return self._config.get("system", "database_path", fallback=":memory:")

    @property
    def compact_after_remove(self) -> bool:
        """Return whether to compact the database after removing folders."""
        return self._config.getboolean("system", "compact_after_remove", fallback=True)

    @property
    def root_directories(self) -> list[str]:
        """Return the directories to index. Will raise if not set."""
        config_line = self._config.get("indexer", "root_directories")
        return [line.strip() for line in config_line.splitlines() if line.strip()]

    @property
    def max_depth(self) -> int:
        """Return the depth limit of a scan, 0 meaning unlimited."""
        return self._config.getint("indexer", "max_depth", fallback=0)

    @property
    def extension(self) -> str | None:
        """Return the default extension to query for."""
        return self._config.get("query", "extension", fallback=None) or None


def write_new_config(filename: str) -> None:
    """Write a new config file if one does not exist."""
    if os.path.exists(filename):
        return

    database_name = os.path.splitext(filename)[0] + ".db"
    config = NEW_CONFIG.format(filename=database_name)

    with open(filename, "w") as config_file:
        config_file.write(config)
