from __future__ import annotations

import argparse
import logging
from pathlib import Path

from folder_index.folderconfig import FolderConfig
from folder_index.folderconfig import write_new_config
from folder_index.folderindexer import FolderIndexer

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Index folders and files into a database. Rescans the configured roots by default.",
    )
    parser.add_argument(
        "config",
        type=str,
        help="The path to the configuration file.",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--rescan",
        help="Rebuild the whole index from the configured roots (default action).",
        default=False,
        action="store_true",
    )
    action.add_argument(
        "--add",
        help="Add a folder and its contents to the index.",
        metavar="PATH",
        default=None,
    )
    action.add_argument(
        "--remove",
        help="Remove a folder and its contents from the index.",
        metavar="PATH",
        default=None,
    )
    action.add_argument(
        "--tree",
        help="List an indexed folder with its subfolders and files.",
        metavar="PATH",
        default=None,
    )
    action.add_argument(
        "--extension",
        help="List indexed files with the extension (e.g. .zip). Uses the configured extension if none is given.",
        metavar="EXT",
        nargs="?",
        const="",
        default=None,
    )
    parser.add_argument(
        "--debug",
        help="Enable debug logging.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--log-file",
        help="Enable logging to a file next to the config file.",
        default=False,
        action="store_true",
    )
    parser.add_argument(
        "--make-config",
        help="Create a default configuration file.",
        default=False,
        action="store_true",
    )
    return parser.parse_args(args)


def add_file_handler_to_logging(config_filepath: str) -> None:
    """Add a file handler to the root logger next to the config file provided."""
    filepath = Path(config_filepath).absolute()
    log_filepath = filepath.parent / f"{filepath.stem}.log"
    file_handler = logging.FileHandler(log_filepath)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logging.getLogger().addHandler(file_handler)


def main(*, cli_args: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(cli_args)

    if args.make_config:
        write_new_config(args.config)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    if args.log_file:
        add_file_handler_to_logging(args.config)

    config = FolderConfig(args.config)

    with FolderIndexer.from_config(config) as indexer:
        if args.add:
            indexer.add_folder(args.add, config.max_depth)

        elif args.remove:
            indexer.remove_folder(args.remove)

        elif args.tree:
            for depth, folder, files in indexer.iter_subtree(args.tree):
                indent = "    " * depth
                print(f"{indent}{folder.name}/")
                for file in files:
                    print(f"{indent}    {file.name}\t{file.size}")

        elif args.extension is not None:
            extension = args.extension or config.extension
            if not extension:
                raise ValueError("No extension given and none configured")

            for file in indexer.files_with_extension(extension):
                print(f"{file.path}\t{file.size}")

        else:
            indexer.run_from_config(config)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
