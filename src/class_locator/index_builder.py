# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Full rescan of all scan roots into a fresh Index.

Files whose mtime matches the previous index reuse their previously known
type list instead of being tokenized again; only new or modified files go
through the TypeScanner. Records for files that are no longer observed are
dropped by omission, since the new index is built only from this pass.
"""

import logging
import os
import time
from typing import Dict, Iterator, List, Optional, Set, Tuple

from class_locator.file_enumerator import FileEnumerator
from class_locator.models import Index, ScanConfiguration, TypeRecord, file_mtime
from class_locator.scanner import TypeScanner

logger = logging.getLogger(__name__)


class AmbiguousTypeError(Exception):
    """Raised when two declarations resolve to the same type key."""

    def __init__(self, type_name: str, first_file: str, second_file: str):
        self.type_name = type_name
        self.first_file = first_file
        self.second_file = second_file
        super().__init__(
            f"Ambiguous class {type_name} resolution; defined in {first_file} and in {second_file}."
        )


class IndexBuilder:
    """Builds an Index from a ScanConfiguration.

    Usage:
        builder = IndexBuilder(configuration, TypeScanner())
        index = builder.build(previous_index)
    """

    def __init__(self, configuration: ScanConfiguration, scanner: TypeScanner):
        """Initialize builder.

        Args:
            configuration: Scan roots and filtering rules.
            scanner: Scanner used for files that cannot be reused.
        """
        self.configuration = configuration
        self.scanner = scanner
        self.enumerator = FileEnumerator(
            accept_globs=configuration.accept_files,
            ignore_globs=configuration.ignore_dirs,
            exclude_dirs=configuration.exclude_dirs,
        )

    def iter_files(self) -> Iterator[str]:
        """Yield every candidate file across all scan roots, once each.

        A scan root that is a file is yielded directly.

        Raises:
            DirectoryNotFoundError: If a scan root does not exist.
        """
        seen: Set[str] = set()
        for root in self.configuration.scan_paths:
            if os.path.isfile(root):
                candidates: Iterator[str] = iter([root])
            else:
                candidates = self.enumerator.enumerate(root)
            for candidate in candidates:
                path = os.path.abspath(candidate)
                if path not in seen:
                    seen.add(path)
                    yield path

    def build(self, previous: Optional[Index] = None) -> Index:
        """Rescan all roots and return a new Index.

        Missing entries from previous are carried over, except for names this
        pass resolved.

        Args:
            previous: Index whose unchanged files may be reused.

        Raises:
            AmbiguousTypeError: If two files declare the same type key.
            DirectoryNotFoundError: If a scan root does not exist.
            ParseError: If a file is malformed and reporting is enabled.
        """
        start = time.time()
        snapshot: Dict[str, Tuple[int, List[str]]] = previous.files() if previous else {}
        index = Index(missing=previous.copy().missing if previous else {})
        scanned = 0
        reused = 0

        for path in self.iter_files():
            mtime = file_mtime(path)
            if mtime is None:
                # Vanished between enumeration and stat
                continue

            known = snapshot.get(path)
            if known is not None and known[0] == mtime:
                names = known[1]
                reused += 1
            else:
                names = self.scanner.scan_file(path)
                scanned += 1

            for name in names:
                self._insert(index, name, path, mtime)

        logger.info(
            f"Indexed {len(index.records)} types from {scanned + reused} files "
            f"({scanned} scanned, {reused} reused) in {time.time() - start:.3f}s"
        )
        return index

    def _insert(self, index: Index, name: str, path: str, mtime: int) -> None:
        key = self.configuration.key_for(name)
        existing = index.records.get(key)
        if existing is not None:
            raise AmbiguousTypeError(name, existing.file, path)
        index.records[key] = TypeRecord(name=name, key=key, file=path, mtime=mtime)
        index.missing.pop(key, None)
