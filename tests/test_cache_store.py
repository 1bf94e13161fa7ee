# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for CacheStore persistence and locking."""

import json
import os
from pathlib import Path
from unittest import mock

import pytest

from class_locator import cache_store
from class_locator.cache_store import CACHE_FORMAT_VERSION, CacheStore, PersistenceError
from class_locator.models import Index, MissingEntry, ScanConfiguration, TypeRecord

requires_fcntl = pytest.mark.skipif(not cache_store.HAS_FCNTL, reason="requires fcntl")


def _index() -> Index:
    index = Index()
    index.records["app\\user"] = TypeRecord(
        name="App\\User", key="app\\user", file="/src/User.php", mtime=123
    )
    index.missing["app\\ghost"] = MissingEntry(retries=2)
    return index


@pytest.fixture
def store(cache_dir: Path) -> CacheStore:
    return CacheStore(cache_dir, ScanConfiguration(scan_paths=("/src",)))


class TestCacheFile:
    def test_name_derives_from_configuration(self, cache_dir: Path) -> None:
        configuration = ScanConfiguration(scan_paths=("/src",))
        store = CacheStore(cache_dir, configuration)

        assert store.cache_file == cache_dir / f"{configuration.cache_key()}.json"
        assert store.lock_file.name == store.cache_file.name + ".lock"

    def test_distinct_configurations_never_share_a_file(self, cache_dir: Path) -> None:
        first = CacheStore(cache_dir, ScanConfiguration(scan_paths=("/src",)))
        second = CacheStore(cache_dir, ScanConfiguration(scan_paths=("/lib",)))

        assert first.cache_file != second.cache_file


class TestLoad:
    """Reads never fail; anything unusable is reported as absent."""

    def test_absent(self, store: CacheStore) -> None:
        assert store.load() is None

    def test_round_trip(self, store: CacheStore) -> None:
        index = _index()

        store.save(index)
        fresh = CacheStore(store.temp_directory, store.configuration)

        assert fresh.load() == index

    def test_file_format(self, store: CacheStore) -> None:
        store.save(_index())

        data = json.loads(store.cache_file.read_text())
        assert data["version"] == CACHE_FORMAT_VERSION
        assert data["records"]["app\\user"] == {
            "name": "App\\User",
            "file": "/src/User.php",
            "mtime": 123,
        }
        assert data["missing"] == {"app\\ghost": {"retries": 2}}

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "{not json",
            "[]",
            json.dumps({"version": 999, "records": {}, "missing": {}}),
            json.dumps({"version": CACHE_FORMAT_VERSION, "records": {"a": 1}, "missing": {}}),
        ],
    )
    def test_malformed_file_is_absent(self, store: CacheStore, content: str) -> None:
        store.temp_directory.mkdir(parents=True)
        store.cache_file.write_text(content)

        assert store.load() is None


class TestSave:
    def test_no_temporary_files_remain(self, store: CacheStore) -> None:
        store.save(_index())
        store.save(Index())

        names = sorted(p.name for p in store.temp_directory.iterdir())
        assert names == sorted([store.cache_file.name, store.lock_file.name])

    def test_lock_file_is_kept(self, store: CacheStore) -> None:
        store.save(_index())

        assert store.lock_file.exists()

    def test_failed_rename_raises_and_cleans_up(self, store: CacheStore) -> None:
        with mock.patch("class_locator.cache_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="Unable to create"):
                store.save(_index())

        assert not store.cache_file.exists()
        assert [p.name for p in store.temp_directory.iterdir()] == [store.lock_file.name]

    def test_unusable_temp_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        store = CacheStore(blocker, ScanConfiguration())

        with pytest.raises(PersistenceError):
            store.save(Index())

    def test_persistence_error_is_an_os_error(self) -> None:
        assert issubclass(PersistenceError, OSError)


@requires_fcntl
class TestLocking:
    """Exclusive advisory lock on the companion lock file."""

    def _try_lock(self, path: Path) -> bool:
        import fcntl

        with open(path, "a+") as handle:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                return False
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            return True

    def test_lock_is_held_inside_block(self, store: CacheStore) -> None:
        with store.locked():
            assert not self._try_lock(store.lock_file)

        assert self._try_lock(store.lock_file)

    def test_lock_is_released_on_error(self, store: CacheStore) -> None:
        with pytest.raises(RuntimeError):
            with store.locked():
                raise RuntimeError("boom")

        assert self._try_lock(store.lock_file)

    def test_reentrant(self, store: CacheStore) -> None:
        with store.locked():
            with store.locked():
                store.save(_index())
            assert not self._try_lock(store.lock_file)

        assert store.load() == _index()

    def test_timeout(self, store: CacheStore) -> None:
        other = CacheStore(store.temp_directory, store.configuration, lock_timeout=0.1)

        with store.locked():
            with pytest.raises(PersistenceError, match="Timed out"):
                with other.locked():
                    pass

    def test_readers_do_not_lock(self, store: CacheStore) -> None:
        store.save(_index())
        reader = CacheStore(store.temp_directory, store.configuration)

        with store.locked():
            assert reader.load() == _index()


def test_save_uses_atomic_replace(store: CacheStore) -> None:
    """The canonical file is only ever written by rename."""
    with mock.patch("class_locator.cache_store.os.replace", wraps=os.replace) as replace:
        store.save(_index())

    (source, target), _ = replace.call_args
    assert Path(target) == store.cache_file
    assert Path(source).parent == store.temp_directory
    assert not Path(source).exists()
