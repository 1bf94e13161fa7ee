# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Depth-first discovery of candidate source files under a scan root.

Filtering rules, applied during traversal:
- Files must match one of the accepted globs (matched against the file name)
- Directories whose name matches an ignore glob are not descended into
- Excluded directories (absolute paths, or glob patterns over absolute
  paths) are skipped together with everything below them
- A netterobots.txt file in a directory lists further disallowed paths
  relative to that directory, one per line, optionally prefixed with
  "Disallow:"

netterobots.txt example:

    # generated code
    Disallow: /cache
    vendor/legacy
"""

import fnmatch
import logging
import os
import re
from typing import Iterator, List, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

ROBOTS_FILE = "netterobots.txt"

_ROBOTS_LINE_RE = re.compile(r"^(?:disallow\s*:)?\s*(\S+)", re.IGNORECASE)
_GLOB_CHARS = frozenset("*?[")


class DirectoryNotFoundError(FileNotFoundError):
    """Raised when a configured scan root does not exist."""

    pass


def _real(path: str) -> str:
    return os.path.realpath(path).replace("\\", "/")


class FileEnumerator:
    """Yields candidate files for one scan root.

    Usage:
        enumerator = FileEnumerator(["*.php"], [".*", "temp"], ["/app/cache"])
        for path in enumerator.enumerate("/app/src"):
            ...
    """

    def __init__(
        self,
        accept_globs: Sequence[str],
        ignore_globs: Sequence[str] = (),
        exclude_dirs: Sequence[str] = (),
    ):
        """Initialize enumerator.

        Args:
            accept_globs: Glob patterns for file names to yield.
            ignore_globs: Glob patterns for directory names to skip.
            exclude_dirs: Directory paths (or glob patterns over absolute
                paths) to skip.
        """
        self.accept_globs = list(accept_globs)
        self.ignore_globs = list(ignore_globs)
        self.exclude_dirs = list(exclude_dirs)

    def enumerate(self, root: str) -> Iterator[str]:
        """Lazily yield absolute paths of accepted files under root.

        Args:
            root: Directory to traverse.

        Raises:
            DirectoryNotFoundError: If root is not a directory.
        """
        if not os.path.isdir(root):
            raise DirectoryNotFoundError(f"File or directory '{root}' not found.")

        disallow, patterns = self._initial_disallow()
        root = os.path.abspath(root)
        if not self._enter_directory(root, disallow, patterns):
            logger.debug(f"Scan root {root} is disallowed")
            return
        yield from self._walk(root, disallow, patterns, {_real(root)})

    def _initial_disallow(self) -> Tuple[Set[str], List[str]]:
        """Split exclude entries into concrete real paths and glob patterns.

        Ignore entries that happen to name existing paths are disallowed too.
        """
        disallow: Set[str] = set()
        patterns: List[str] = []
        for item in self.ignore_globs + self.exclude_dirs:
            if os.path.exists(item):
                disallow.add(_real(item))
        for item in self.exclude_dirs:
            if _GLOB_CHARS.intersection(item):
                patterns.append(os.path.abspath(item).replace("\\", "/"))
        return disallow, patterns

    def _walk(
        self, directory: str, disallow: Set[str], patterns: List[str], visited: Set[str]
    ) -> Iterator[str]:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list directory {directory}: {e}")
            return

        for entry in entries:
            path = os.path.join(directory, entry.name)
            if entry.is_dir():
                if self._is_ignored_name(entry.name):
                    continue
                real = _real(path)
                if real in visited:
                    continue
                if not self._enter_directory(path, disallow, patterns):
                    continue
                visited.add(real)
                yield from self._walk(path, disallow, patterns, visited)
            elif entry.is_file():
                if not self._is_accepted(entry.name):
                    continue
                if self._is_disallowed(_real(path), disallow, patterns):
                    continue
                yield path

    def _enter_directory(self, path: str, disallow: Set[str], patterns: List[str]) -> bool:
        """Read the directory's robots file and report whether it may be traversed."""
        real = _real(path)
        disallow.update(self._read_robots(real))
        return not self._is_disallowed(real, disallow, patterns)

    def _read_robots(self, real_dir: str) -> Set[str]:
        robots = os.path.join(real_dir, ROBOTS_FILE)
        if not os.path.isfile(robots):
            return set()

        entries: Set[str] = set()
        try:
            with open(robots, encoding="utf-8", errors="replace") as f:
                for line in f:
                    if line.lstrip().startswith("#"):
                        continue
                    match = _ROBOTS_LINE_RE.match(line)
                    if match:
                        relative = "/" + match.group(1).strip("/")
                        entries.add((real_dir + relative).rstrip("/"))
        except OSError as e:
            logger.warning(f"Failed to read {robots}: {e}")
            return set()

        logger.debug(f"Loaded {len(entries)} disallowed paths from {robots}")
        return entries

    def _is_disallowed(self, real: str, disallow: Set[str], patterns: List[str]) -> bool:
        if real in disallow:
            return True
        return any(fnmatch.fnmatch(real, pattern) for pattern in patterns)

    def _is_ignored_name(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.ignore_globs)

    def _is_accepted(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in self.accept_globs)


def enumerate_files(
    root: str,
    accept_globs: Sequence[str],
    ignore_globs: Sequence[str] = (),
    exclude_dirs: Sequence[str] = (),
) -> Iterator[str]:
    """Functional form of FileEnumerator(...).enumerate(root)."""
    return FileEnumerator(accept_globs, ignore_globs, exclude_dirs).enumerate(root)

