# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Durable, multi-process safe persistence of the Index.

The cache file lives at <temp_directory>/<configuration hash>.json, so
distinct scan configurations never share a file and the same configuration
always maps to the same one.

Protocol:
- Reads are attempted without a lock first; a well-formed file is used as is
- Writers hold an exclusive advisory lock on <cache file>.lock
- Writes go to a uniquely named temporary file in the same directory which is
  then renamed over the cache file, so readers never observe partial content
- Any failure to lock, write or rename raises PersistenceError; there is no
  fallback to running without a cache

Locking uses fcntl.flock on POSIX and msvcrt.locking on Windows. The lock is
reentrant within one CacheStore so that a load that has to rebuild can save
while still holding it.
"""

import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Optional

from class_locator.models import Index, ScanConfiguration

try:
    import fcntl  # POSIX systems

    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False

try:
    import msvcrt  # Windows systems

    HAS_MSVCRT = True
except ImportError:
    HAS_MSVCRT = False

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1
CACHE_EXTENSION = ".json"
LOCK_POLL_INTERVAL_SECONDS = 0.05


class PersistenceError(OSError):
    """Raised when the cache or its lock file cannot be created, locked, written or renamed."""

    pass


class CacheStore:
    """Loads and saves one Index for one ScanConfiguration.

    Usage:
        store = CacheStore(Path("/tmp/cache"), configuration)
        index = store.load()          # None if absent or malformed
        with store.locked():
            store.save(index)
    """

    def __init__(
        self,
        temp_directory: Path,
        configuration: ScanConfiguration,
        lock_timeout: Optional[float] = None,
    ):
        """Initialize store.

        Args:
            temp_directory: Directory holding cache and lock files.
            configuration: Scan configuration the cache belongs to.
            lock_timeout: Seconds to wait for the lock; None blocks forever.
        """
        self.temp_directory = Path(temp_directory)
        self.configuration = configuration
        self.lock_timeout = lock_timeout
        self.cache_file = self.temp_directory / f"{configuration.cache_key()}{CACHE_EXTENSION}"
        self.lock_file = self.cache_file.with_name(self.cache_file.name + ".lock")

        self._lock_depth = 0

    def load(self) -> Optional[Index]:
        """Read the cache file without locking.

        Returns:
            The stored Index, or None if the file is absent or malformed.
        """
        try:
            with open(self.cache_file, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Unreadable cache file {self.cache_file}: {e}")
            return None

        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            logger.debug(f"Ignoring cache file {self.cache_file} with unknown format")
            return None

        try:
            index = Index.from_dict(data)
        except ValueError as e:
            logger.debug(f"Malformed cache file {self.cache_file}: {e}")
            return None

        logger.debug(f"Loaded {len(index.records)} types from {self.cache_file}")
        return index

    def save(self, index: Index) -> None:
        """Atomically replace the cache file with index.

        Acquires the lock unless this store already holds it.

        Raises:
            PersistenceError: If the temporary file cannot be written or renamed.
        """
        data: Dict[str, Any] = {"version": CACHE_FORMAT_VERSION}
        data.update(index.to_dict())

        with self.locked():
            tmp_path: Optional[str] = None
            try:
                fd, tmp_path = tempfile.mkstemp(
                    dir=str(self.temp_directory),
                    prefix=self.cache_file.name + ".",
                    suffix=".tmp",
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.cache_file)
            except OSError as e:
                if tmp_path is not None:
                    try:
                        os.unlink(tmp_path)
                    except OSError:
                        pass
                raise PersistenceError(f"Unable to create '{self.cache_file}': {e}") from e

        logger.debug(f"Saved {len(index.records)} types to {self.cache_file}")

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the exclusive cross-process lock for the duration of the block.

        Reentrant within this store. The lock is released and its handle
        closed on every exit path.

        Raises:
            PersistenceError: If the lock file cannot be created or locked.
        """
        if self._lock_depth > 0:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
            return

        handle = self._acquire()
        self._lock_depth = 1
        try:
            yield
        finally:
            self._lock_depth = 0
            self._release(handle)

    def _acquire(self) -> IO[str]:
        try:
            self.temp_directory.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_file, "a+", encoding="utf-8")
        except OSError as e:
            raise PersistenceError(
                f"Unable to create or acquire exclusive lock on file '{self.lock_file}': {e}"
            ) from e

        try:
            self._lock(handle)
        except BaseException:
            handle.close()
            raise

        logger.debug(f"Acquired lock {self.lock_file}")
        return handle

    def _lock(self, handle: IO[str]) -> None:
        if not HAS_FCNTL and not HAS_MSVCRT:
            raise PersistenceError("File locking is not available on this platform")
        deadline = None if self.lock_timeout is None else time.monotonic() + self.lock_timeout
        while True:
            try:
                if HAS_FCNTL:
                    flags = fcntl.LOCK_EX if deadline is None else fcntl.LOCK_EX | fcntl.LOCK_NB
                    fcntl.flock(handle.fileno(), flags)
                else:
                    handle.seek(0)
                    mode = msvcrt.LK_LOCK if deadline is None else msvcrt.LK_NBLCK
                    msvcrt.locking(handle.fileno(), mode, 1)
                return
            except (BlockingIOError, PermissionError):
                if deadline is None or time.monotonic() >= deadline:
                    raise PersistenceError(
                        f"Timed out waiting for exclusive lock on file '{self.lock_file}'"
                    ) from None
                time.sleep(LOCK_POLL_INTERVAL_SECONDS)
            except OSError as e:
                raise PersistenceError(
                    f"Unable to create or acquire exclusive lock on file '{self.lock_file}': {e}"
                ) from e

    def _release(self, handle: IO[str]) -> None:
        try:
            if HAS_FCNTL:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            elif HAS_MSVCRT:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        finally:
            handle.close()
            logger.debug(f"Released lock {self.lock_file}")
