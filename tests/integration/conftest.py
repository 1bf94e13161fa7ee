# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a representative PHP project tree and a minimal host runtime that
"includes" files by recording the types they declare.
"""

from pathlib import Path
from typing import List, Set

import pytest

from class_locator.scanner import TypeScanner


@pytest.fixture
def sample_project(tmp_path: Path, write_php) -> Path:
    """Create a representative project structure.

    Creates:
    - Namespaced classes, interfaces and traits across nested directories
    - A file with braced namespaces and a global namespace block
    - Nested/anonymous classes and interpolated strings
    - A non-accepted template, an excluded cache directory, an ignored
      .git directory and a directory disallowed by netterobots.txt

    Returns:
        Path to the project root directory
    """
    root = tmp_path / "project"
    app = root / "app"

    write_php(
        app / "Model" / "Entity.php",
        """<?php
namespace App\\Model;

abstract class Entity
{
    protected $id;
}
""",
    )
    write_php(
        app / "Model" / "User.php",
        """<?php
namespace App\\Model;

use App\\Traits\\Timestamps;

/**
 * class NotThis {}
 */
final class User extends Entity implements Repository
{
    use Timestamps;

    public function label(): string
    {
        return "user {$this->id} of $tenant";
    }
}
""",
    )
    write_php(
        app / "Model" / "Repository.php",
        "<?php\nnamespace App\\Model;\n\ninterface Repository\n{\n}\n",
    )
    write_php(
        app / "Traits" / "Timestamps.php",
        "<?php\nnamespace App\\Traits;\n\ntrait Timestamps\n{\n}\n",
    )
    write_php(
        app / "Service" / "Mailer.php",
        """<?php
namespace App\\Service;

class Mailer
{
    public function transport()
    {
        $body = <<<EOT
Hello {$name}
class Fake {
EOT;
        return new class {
            public function send() {}
        };
    }
}
""",
    )
    write_php(
        app / "bootstrap.php",
        """<?php
namespace App {
    class Kernel {}
}

namespace {
    class GlobalHelper {}
}
""",
    )
    write_php(app / "templates" / "layout.phtml", "<?php class Layout {} ?>")
    write_php(app / "cache" / "Proxy.php", "<?php class Proxy {}")
    write_php(app / ".git" / "hooks" / "Hook.php", "<?php class Hook {}")
    write_php(app / "legacy" / "Old.php", "<?php class Old {}")
    (app / "netterobots.txt").write_text("# not maintained\nDisallow: /legacy\n")

    return root


@pytest.fixture
def expected_types(sample_project: Path) -> dict:
    """Type map the sample project should produce."""
    app = sample_project / "app"
    return {
        "App\\Model\\Entity": str(app / "Model" / "Entity.php"),
        "App\\Model\\User": str(app / "Model" / "User.php"),
        "App\\Model\\Repository": str(app / "Model" / "Repository.php"),
        "App\\Traits\\Timestamps": str(app / "Traits" / "Timestamps.php"),
        "App\\Service\\Mailer": str(app / "Service" / "Mailer.php"),
        "App\\Kernel": str(app / "bootstrap.php"),
        "GlobalHelper": str(app / "bootstrap.php"),
    }


class FakeRuntime:
    """Host runtime stand-in: including a file defines the types it declares."""

    def __init__(self) -> None:
        self.included: List[str] = []
        self.defined: Set[str] = set()
        self._scanner = TypeScanner()

    def include(self, path: str) -> None:
        self.included.append(path)
        self.defined.update(name.casefold() for name in self._scanner.scan_file(path))

    def is_defined(self, type_name: str) -> bool:
        return type_name.lstrip("\\").casefold() in self.defined


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()
