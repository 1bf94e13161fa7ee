# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Single-file differential update of an Index.

Re-scans one changed file and patches the index in place: all records of the
file are removed, then the file (if it still exists) is scanned and its types
inserted again.

When a newly found type is still claimed by a *different* file that is itself
stale (mtime changed or file gone), that other file is refreshed first. This
resolves chains of out-of-date files, e.g. a class moved from A.php to B.php
where A.php was edited too, without reporting a false conflict.

The chain is processed with an explicit stack rather than recursion. A file
already on the stack is never re-entered, and a chain deeper than
max_depth is reported as an AmbiguousTypeError.
"""

import logging
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Set

from class_locator.index_builder import AmbiguousTypeError
from class_locator.models import Index, ScanConfiguration, TypeRecord, file_mtime
from class_locator.scanner import TypeScanner

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


@dataclass
class _Frame:
    """A file being refreshed and the names still to insert."""

    file: str
    mtime: int
    pending: Deque[str] = field(default_factory=deque)


class IncrementalRefresher:
    """Patches an Index after a single file changed.

    Usage:
        refresher = IncrementalRefresher(configuration, TypeScanner())
        refresher.update_file(index, "/app/src/User.php")
    """

    def __init__(
        self,
        configuration: ScanConfiguration,
        scanner: TypeScanner,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        """Initialize refresher.

        Args:
            configuration: Supplies the key policy.
            scanner: Scanner used to re-read changed files.
            max_depth: Longest chain of stale files refreshed for one update.
        """
        self.configuration = configuration
        self.scanner = scanner
        self.max_depth = max_depth

    def update_file(self, index: Index, filepath: str) -> List[str]:
        """Refresh one file in the index.

        Args:
            index: Index to patch in place.
            filepath: Changed (or deleted) file.

        Returns:
            Every file that was refreshed, starting with filepath.

        Raises:
            AmbiguousTypeError: If a current file and the refreshed file declare
                the same type, or the chain of stale files is too deep.
            ParseError: If a file is malformed and reporting is enabled.
        """
        refreshed: List[str] = []
        stack: List[_Frame] = [self._open(index, filepath, refreshed)]
        active: Set[str] = {stack[0].file}

        while stack:
            frame = stack[-1]
            if not frame.pending:
                stack.pop()
                active.discard(frame.file)
                continue

            name = frame.pending[0]
            key = self.configuration.key_for(name)
            existing = index.records.get(key)

            if (
                existing is not None
                and existing.file != frame.file
                and existing.file not in active
                and existing.is_stale()
            ):
                if len(stack) >= self.max_depth:
                    raise AmbiguousTypeError(name, existing.file, frame.file)
                logger.debug(f"{existing.file} is stale too, refreshing it before {frame.file}")
                stack.append(self._open(index, existing.file, refreshed))
                active.add(existing.file)
                continue

            if existing is not None:
                raise AmbiguousTypeError(name, existing.file, frame.file)

            index.records[key] = TypeRecord(name=name, key=key, file=frame.file, mtime=frame.mtime)
            index.missing.pop(key, None)
            frame.pending.popleft()

        return refreshed

    def _open(self, index: Index, filepath: str, refreshed: List[str]) -> _Frame:
        """Drop the file's records and scan it again."""
        filepath = os.path.abspath(filepath)
        removed = index.remove_file(filepath)
        refreshed.append(filepath)

        mtime = file_mtime(filepath)
        if mtime is None or not os.path.isfile(filepath):
            logger.debug(f"{filepath} no longer exists, dropped {len(removed)} types")
            return _Frame(file=filepath, mtime=0)

        names = self.scanner.scan_file(filepath)
        logger.debug(f"Refreshed {filepath}: {len(removed)} types removed, {len(names)} found")
        return _Frame(file=filepath, mtime=mtime, pending=deque(names))
