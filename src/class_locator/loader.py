# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""ClassLoader - resolves type names to the files that declare them.

This module owns one Index per loader instance and decides, for every
requested type name, whether the cached record can be trusted or the source
tree has to be looked at again:

- FRESH: record present, file exists, mtime matches. Use it as is.
- STALE: record present, file exists, mtime differs. Re-scan that one file;
  if the type moved away, fall through to ABSENT once.
- ABSENT: no record, or its file is gone. Increment the persisted retry
  counter; while it is within RETRY_LIMIT and no full rescan happened in this
  process yet, rescan every root. A name that is still unresolved is
  confirmed missing and not looked for again by this loader.

Every transition that changes the Index is persisted through the CacheStore
before returning. With auto-rebuild disabled lookups are pure cache reads.

Usage:
    loader = ClassLoader(file_loader=runtime.load_file)
    loader.add_directory("app")
    loader.exclude_directory("app/cache")
    loader.set_temp_directory("temp")
    loader.register(registry)
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

from class_locator.autoload import AutoloadRegistry
from class_locator.cache_store import CacheStore, PersistenceError
from class_locator.config import Config, ConfigurationError
from class_locator.index_builder import IndexBuilder
from class_locator.models import Index, MissingEntry, ScanConfiguration, TypeRecord
from class_locator.refresher import DEFAULT_MAX_DEPTH, IncrementalRefresher
from class_locator.scanner import TypeScanner

logger = logging.getLogger(__name__)

RETRY_LIMIT = 3

PathLike = Union[str, "os.PathLike[str]"]


class ClassLoader:
    """Directory-scanning class index with a persistent, shared cache.

    Thread Safety:
        NOT thread-safe. One loader instance owns its Index exclusively;
        concurrency is only expected between processes sharing a cache file.
    """

    def __init__(self, file_loader: Optional[Callable[[str], None]] = None):
        """Initialize an unconfigured loader.

        Args:
            file_loader: Called with the path of the file declaring a resolved
                type when try_load() succeeds.
        """
        defaults = ScanConfiguration()
        self._scan_paths: List[str] = []
        self._exclude_dirs: List[str] = []
        self._accept_files: List[str] = list(defaults.accept_files)
        self._ignore_dirs: List[str] = list(defaults.ignore_dirs)
        self._case_sensitive = defaults.case_sensitive
        self._temp_directory: Optional[Path] = None
        self._lock_timeout: Optional[float] = None
        self._max_refresh_depth = DEFAULT_MAX_DEPTH
        self._auto_rebuild = True
        self._report_parse_errors = True
        self._file_loader = file_loader

        # Set once the configuration is frozen
        self._configuration: Optional[ScanConfiguration] = None
        self._scanner: Optional[TypeScanner] = None
        self._builder: Optional[IndexBuilder] = None
        self._refresher: Optional[IncrementalRefresher] = None
        self._store: Optional[CacheStore] = None

        self._index = Index()
        self._loaded = False
        self._refreshed = False
        self._confirmed_missing: Set[str] = set()

    @classmethod
    def from_config(
        cls, config: Config, file_loader: Optional[Callable[[str], None]] = None
    ) -> "ClassLoader":
        """Create a loader from a Config file."""
        loader = cls(file_loader=file_loader)
        if config.scan_dirs:
            loader.add_directory(*config.scan_dirs)
        if config.exclude_dirs:
            loader.exclude_directory(*config.exclude_dirs)
        loader.set_accept_files(*config.accept_files)
        loader.set_ignore_dirs(*config.ignore_dirs)
        loader.set_case_sensitive(config.case_sensitive)
        loader.set_auto_rebuild(config.auto_rebuild)
        loader.report_parse_errors(config.report_parse_errors)
        loader.set_lock_timeout(config.lock_timeout_seconds)
        loader.set_max_refresh_depth(config.max_refresh_depth)
        if config.temp_directory is not None:
            loader.set_temp_directory(config.temp_directory)
        return loader

    # Configuration surface

    def add_directory(self, *paths: PathLike) -> "ClassLoader":
        """Add directories (or single files) to scan."""
        self._check_mutable()
        self._scan_paths.extend(os.path.abspath(os.fspath(p)) for p in paths)
        return self

    def exclude_directory(self, *paths: PathLike) -> "ClassLoader":
        """Exclude directories (or glob patterns over absolute paths) from scanning."""
        self._check_mutable()
        self._exclude_dirs.extend(os.path.abspath(os.fspath(p)) for p in paths)
        return self

    def set_accept_files(self, *patterns: str) -> "ClassLoader":
        """Replace the glob patterns of files to scan."""
        self._check_mutable()
        self._accept_files = list(patterns)
        return self

    def set_ignore_dirs(self, *patterns: str) -> "ClassLoader":
        """Replace the glob patterns of directory names to skip."""
        self._check_mutable()
        self._ignore_dirs = list(patterns)
        return self

    def set_case_sensitive(self, on: bool = True) -> "ClassLoader":
        """Key type names case-sensitively instead of case-folded."""
        self._check_mutable()
        self._case_sensitive = bool(on)
        return self

    def set_temp_directory(self, directory: PathLike) -> "ClassLoader":
        """Set (and create) the directory holding the cache files."""
        self._check_mutable()
        path = Path(directory)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Unable to create temp directory '{path}': {e}") from e
        self._temp_directory = path
        return self

    def set_lock_timeout(self, seconds: Optional[float]) -> "ClassLoader":
        """Seconds to wait for the cache lock; None waits indefinitely."""
        self._check_mutable()
        self._lock_timeout = seconds
        return self

    def set_max_refresh_depth(self, depth: int) -> "ClassLoader":
        """Longest chain of stale files refreshed while updating one file."""
        self._check_mutable()
        self._max_refresh_depth = depth
        return self

    def set_auto_rebuild(self, on: bool = True) -> "ClassLoader":
        """Allow lookups to rescan the source tree."""
        self._auto_rebuild = bool(on)
        return self

    def report_parse_errors(self, on: bool = True) -> "ClassLoader":
        """Raise ParseError for malformed files instead of skipping them."""
        self._report_parse_errors = bool(on)
        if self._scanner is not None:
            self._scanner.report_parse_errors = self._report_parse_errors
        return self

    @property
    def scan_configuration(self) -> ScanConfiguration:
        """The frozen configuration, or a snapshot of the current settings."""
        if self._configuration is not None:
            return self._configuration
        return ScanConfiguration(
            scan_paths=tuple(self._scan_paths),
            exclude_dirs=tuple(self._exclude_dirs),
            ignore_dirs=tuple(self._ignore_dirs),
            accept_files=tuple(self._accept_files),
            case_sensitive=self._case_sensitive,
        )

    @property
    def cache_file(self) -> Path:
        """Path of the cache file for this configuration."""
        return self._require_store().cache_file

    @property
    def index(self) -> Index:
        """The in-memory Index (not forced to load)."""
        return self._index

    # Runtime hook

    def register(self, registry: AutoloadRegistry, prepend: bool = False) -> "ClassLoader":
        """Load the cache and install try_load() in the host's registry."""
        self._load_cache()
        registry.register(self.try_load, prepend=prepend)
        return self

    def try_load(self, type_name: str) -> None:
        """Resolution callback: hand the declaring file to the file loader."""
        path = self.resolve(type_name)
        if path is not None and self._file_loader is not None:
            self._file_loader(path)

    def resolve(self, type_name: str) -> Optional[str]:
        """Find the file declaring type_name.

        Returns:
            Absolute path of the declaring file, or None if unresolved.

        Raises:
            AmbiguousTypeError: If a rescan finds two declarations of one type.
            DirectoryNotFoundError: If a scan root does not exist.
            ParseError: If a scanned file is malformed and reporting is enabled.
            PersistenceError: If the cache cannot be written.
            ConfigurationError: If no temp directory is set.
        """
        self._load_cache()
        assert self._configuration is not None
        name = type_name.lstrip("\\")
        key = self._configuration.key_for(name)

        if self._auto_rebuild:
            self._update_for(key)

        record = self._index.lookup(key)
        if not isinstance(record, TypeRecord):
            return None
        if record.name != name:
            logger.warning(
                f"Case mismatch: requested {name} but {record.file} declares {record.name}"
            )
        return record.file

    def _update_for(self, key: str) -> None:
        """Bring the record for key up to date, persisting any change."""
        if key in self._confirmed_missing:
            return

        assert self._refresher is not None
        resolution = self._index.lookup(key)
        record = resolution if isinstance(resolution, TypeRecord) else None

        if record is not None and os.path.isfile(record.file):
            if not record.is_stale():
                return
            logger.debug(f"{record.file} changed since it was indexed")
            self._refresher.update_file(self._index, record.file)
            if isinstance(self._index.lookup(key), TypeRecord):
                self._save()
                return
            # The type moved away; restore its retry budget and look for it once
            self._index.missing[key] = MissingEntry(retries=0)
            record = None

        entry = self._index.missing.setdefault(key, MissingEntry())
        entry.retries += 1
        if not self._refreshed and entry.retries <= RETRY_LIMIT:
            self._refresh_classes()
        elif record is not None:
            del self._index.records[key]
        self._save()

        if key not in self._index.records:
            logger.debug(f"{key} not found, not looking for it again")
            self._confirmed_missing.add(key)

    # Query and control surface

    def get_indexed_classes(self) -> Dict[str, str]:
        """Map of every indexed type name to its file. Loads, never rescans."""
        self._load_cache()
        return self._index.type_map()

    def rebuild(self) -> None:
        """Rescan everything from scratch, discarding the negative cache.

        Persists the result when a temp directory is configured.
        """
        self._freeze()
        self._index = Index()
        self._confirmed_missing.clear()
        self._refresh_classes()
        self._loaded = True
        if self._temp_directory is not None:
            self._save()

    def refresh(self) -> None:
        """Rescan all roots unless this loader already did so."""
        self._load_cache()
        if not self._refreshed:
            self._refresh_classes()
            self._save()

    # Internals

    def _check_mutable(self) -> None:
        if self._configuration is not None:
            raise ConfigurationError("Configuration cannot change after the index has been loaded.")

    def _freeze(self) -> ScanConfiguration:
        if self._configuration is None:
            self._configuration = self.scan_configuration
            self._scanner = TypeScanner(report_parse_errors=self._report_parse_errors)
            self._builder = IndexBuilder(self._configuration, self._scanner)
            self._refresher = IncrementalRefresher(
                self._configuration, self._scanner, max_depth=self._max_refresh_depth
            )
        return self._configuration

    def _require_store(self) -> CacheStore:
        if self._temp_directory is None:
            raise ConfigurationError("Set path to temporary directory using set_temp_directory().")
        if self._store is None:
            self._store = CacheStore(
                self._temp_directory, self._freeze(), lock_timeout=self._lock_timeout
            )
        return self._store

    def _load_cache(self) -> None:
        """Load the index once per loader, rebuilding under the lock if needed."""
        if self._loaded:
            return

        store = self._require_store()
        index = store.load()
        if index is None:
            with store.locked():
                # Another process may have written it while we waited
                index = store.load()
                if index is None:
                    logger.info(f"No usable cache at {store.cache_file}, rebuilding")
                    self.rebuild()
                    return

        self._index = index
        self._loaded = True

    def _refresh_classes(self) -> None:
        assert self._builder is not None
        # Set first so a failing rescan is not retried within this process
        self._refreshed = True
        self._index = self._builder.build(self._index)

    def _save(self) -> None:
        self._require_store().save(self._index)
