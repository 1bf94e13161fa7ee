# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Class Locator: a persistent, self-refreshing index of declared types."""

from .autoload import AutoloadRegistry
from .cache_store import CacheStore, PersistenceError
from .config import Config, ConfigurationError
from .file_enumerator import DirectoryNotFoundError, FileEnumerator, enumerate_files
from .index_builder import AmbiguousTypeError, IndexBuilder
from .loader import RETRY_LIMIT, ClassLoader
from .models import Index, MissingEntry, ScanConfiguration, TypeRecord, normalize_key
from .refresher import IncrementalRefresher
from .scanner import TypeScanner, extract_type_names
from .tokenizer import ParseError, Token, TokenKind, tokenize

__version__ = "0.1.0"

__all__ = [
    "ClassLoader",
    "RETRY_LIMIT",
    "AutoloadRegistry",
    "Config",
    "ConfigurationError",
    "CacheStore",
    "PersistenceError",
    "FileEnumerator",
    "enumerate_files",
    "DirectoryNotFoundError",
    "IndexBuilder",
    "AmbiguousTypeError",
    "IncrementalRefresher",
    "TypeScanner",
    "extract_type_names",
    "Index",
    "MissingEntry",
    "ScanConfiguration",
    "TypeRecord",
    "normalize_key",
    "ParseError",
    "Token",
    "TokenKind",
    "tokenize",
]
