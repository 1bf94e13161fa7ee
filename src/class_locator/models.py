# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the class index.

This module defines the structures shared by the builder, refresher, resolver
and cache store:
- TypeRecord: A resolved type name and the file that declares it
- MissingEntry: Retry state for a type name that could not be resolved
- Index: The (records, missing) pair that is persisted as one unit
- ScanConfiguration: Immutable scan settings, also used as cache-key material

All models use JSON-compatible primitives for serialization.
"""

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


def normalize_key(type_name: str, case_sensitive: bool = False) -> str:
    """Return the map key used for a type name.

    Args:
        type_name: Fully-qualified type name as declared or requested.
        case_sensitive: When False, keys are case-folded so that names
            differing only in case collide.

    Returns:
        Key for Index.records / Index.missing.
    """
    return type_name if case_sensitive else type_name.casefold()


def file_mtime(path: str) -> Optional[int]:
    """Modification time of a file in whole seconds, or None if it is gone."""
    try:
        return int(os.stat(path).st_mtime)
    except OSError:
        return None


@dataclass(frozen=True)
class TypeRecord:
    """A type name resolved to the file that declares it.

    mtime is a cheap staleness fingerprint, not a content hash.
    """

    name: str  # Declared spelling, e.g. "App\Model\User"
    key: str  # normalize_key(name)
    file: str  # Absolute path of the declaring file
    mtime: int  # Whole-second mtime observed when the file was scanned

    def is_stale(self) -> bool:
        """True if the file is gone or its mtime no longer matches."""
        return file_mtime(self.file) != self.mtime

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {"name": self.name, "file": self.file, "mtime": self.mtime}

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "TypeRecord":
        """Deserialize from JSON-compatible dict."""
        name = data["name"]
        file = data["file"]
        mtime = data["mtime"]
        if not isinstance(name, str) or not isinstance(file, str) or not isinstance(mtime, int):
            raise ValueError(f"Malformed record for {key!r}: {data!r}")
        return cls(name=name, key=key, file=file, mtime=mtime)


@dataclass
class MissingEntry:
    """Retry state for a type name with no resolved record."""

    retries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {"retries": self.retries}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MissingEntry":
        """Deserialize from JSON-compatible dict."""
        retries = data["retries"]
        if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
            raise ValueError(f"Malformed retry counter: {data!r}")
        return cls(retries=retries)


# A lookup yields one of the two shapes, never an untyped mapping
Resolution = Union[TypeRecord, MissingEntry]


@dataclass
class Index:
    """The persisted unit: resolved records plus negative-cache entries.

    Invariant: at most one TypeRecord per key.
    """

    records: Dict[str, TypeRecord] = field(default_factory=dict)
    missing: Dict[str, MissingEntry] = field(default_factory=dict)

    def lookup(self, key: str) -> Optional[Resolution]:
        """Return the record or the retry state for a key, if any."""
        record = self.records.get(key)
        if record is not None:
            return record
        return self.missing.get(key)

    def files(self) -> Dict[str, Tuple[int, List[str]]]:
        """Group records by file: file -> (mtime, [declared names])."""
        grouped: Dict[str, Tuple[int, List[str]]] = {}
        for record in self.records.values():
            if record.file not in grouped:
                grouped[record.file] = (record.mtime, [])
            grouped[record.file][1].append(record.name)
        return grouped

    def remove_file(self, file: str) -> List[TypeRecord]:
        """Drop every record declared by file and return them."""
        removed = [r for r in self.records.values() if r.file == file]
        for record in removed:
            del self.records[record.key]
        return removed

    def type_map(self) -> Dict[str, str]:
        """Map of declared type name -> file path."""
        return {record.name: record.file for record in self.records.values()}

    def copy(self) -> "Index":
        """Shallow copy; records are immutable, retry entries are duplicated."""
        return Index(
            records=dict(self.records),
            missing={k: MissingEntry(v.retries) for k, v in self.missing.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "records": {key: record.to_dict() for key, record in self.records.items()},
            "missing": {key: entry.to_dict() for key, entry in self.missing.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Index":
        """Deserialize from JSON-compatible dict.

        Raises:
            ValueError: If the data is not a well-formed index.
        """
        records = data.get("records")
        missing = data.get("missing")
        if not isinstance(records, dict) or not isinstance(missing, dict):
            raise ValueError("Index must contain 'records' and 'missing' mappings")

        index = cls()
        try:
            for key, record_data in records.items():
                index.records[key] = TypeRecord.from_dict(key, record_data)
            for key, entry_data in missing.items():
                index.missing[key] = MissingEntry.from_dict(entry_data)
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed index entry: {e}") from e
        return index


@dataclass(frozen=True)
class ScanConfiguration:
    """Scan settings for one loader instance.

    Two configurations that differ in any field map to distinct cache files.
    """

    scan_paths: Tuple[str, ...] = ()
    exclude_dirs: Tuple[str, ...] = ()
    ignore_dirs: Tuple[str, ...] = (".*", "*.old", "*.bak", "*.tmp", "temp")
    accept_files: Tuple[str, ...] = ("*.php",)
    case_sensitive: bool = False

    def cache_key(self) -> str:
        """Deterministic hash of every field, used as the cache file stem."""
        payload = json.dumps(
            [
                list(self.ignore_dirs),
                list(self.accept_files),
                list(self.scan_paths),
                list(self.exclude_dirs),
                self.case_sensitive,
            ],
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def key_for(self, type_name: str) -> str:
        """Key for a type name under this configuration's case policy."""
        return normalize_key(type_name, self.case_sensitive)
