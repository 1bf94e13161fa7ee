# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command line front end: build, inspect and query a class index."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from class_locator.cache_store import PersistenceError
from class_locator.config import Config, ConfigurationError
from class_locator.file_enumerator import DirectoryNotFoundError
from class_locator.index_builder import AmbiguousTypeError
from class_locator.loader import ClassLoader
from class_locator.logging_setup import setup_logging
from class_locator.tokenizer import ParseError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="class_locator",
        description="Index the types declared under a set of source directories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m class_locator --scan app --temp-dir temp/cache
    python -m class_locator --config .class_locator.yml --rebuild
    python -m class_locator --scan app --temp-dir temp/cache --resolve 'App\\Model\\User'
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file (default: ./.class_locator.yml)",
    )
    parser.add_argument(
        "--temp-dir",
        type=Path,
        default=None,
        help="Directory holding the cache files (overrides the configuration)",
    )
    parser.add_argument(
        "--scan",
        nargs="+",
        default=[],
        metavar="PATH",
        help="Directories or files to scan, in addition to the configured ones",
    )
    parser.add_argument(
        "--exclude",
        nargs="+",
        default=[],
        metavar="PATH",
        help="Directories to exclude, in addition to the configured ones",
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Discard the cache and rescan everything",
    )
    parser.add_argument(
        "--resolve",
        metavar="NAME",
        default=None,
        help="Print the file declaring NAME instead of the whole index",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Write JSON logs to this directory",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error or an unresolved name).
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    if args.log_dir is not None or args.verbose:
        setup_logging(log_dir=args.log_dir, log_level=log_level, console_output=args.verbose)
    else:
        logging.basicConfig(level=logging.WARNING)

    config = Config(args.config)
    loader = ClassLoader.from_config(config)
    if args.scan:
        loader.add_directory(*args.scan)
    if args.exclude:
        loader.exclude_directory(*args.exclude)
    if args.temp_dir is not None:
        loader.set_temp_directory(args.temp_dir)

    try:
        if args.rebuild:
            loader.rebuild()

        if args.resolve is not None:
            path = loader.resolve(args.resolve)
            print(json.dumps({"name": args.resolve, "file": path}, indent=2))
            return 0 if path is not None else 1

        print(json.dumps(loader.get_indexed_classes(), indent=2, sort_keys=True))
        return 0

    except (
        AmbiguousTypeError,
        ConfigurationError,
        DirectoryNotFoundError,
        ParseError,
        PersistenceError,
    ) as e:
        logger.debug(f"Command failed: {e!r}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
