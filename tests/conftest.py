# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for class locator tests."""

import logging
import os
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

from class_locator.logging_setup import CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME

# Whole-second timestamps; staleness is detected on integer mtimes
OLD_MTIME = 1_600_000_000
NEW_MTIME = 1_600_000_100


def write_source(path: Path, code: str, mtime: Optional[int] = OLD_MTIME) -> Path:
    """Write a source file and pin its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(code, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def write_php() -> Callable[..., Path]:
    """Return a helper writing PHP sources with a fixed mtime."""
    return write_source


@pytest.fixture
def src_dir(tmp_path: Path) -> Path:
    """Empty scan root."""
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Cache directory outside the scan root."""
    return tmp_path / "cache"


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Undo handlers installed by setup_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler.get_name() in (FILE_HANDLER_NAME, CONSOLE_HANDLER_NAME) and handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
