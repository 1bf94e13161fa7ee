# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Type scanner: extracts declared type names from a source file.

Walks the token stream of one file and reports the fully-qualified names of
top-level classes, interfaces and traits, in declaration order. Types nested
inside other types (deeper brace levels) are not reported.

A file may bypass token scanning with a directive comment listing the names
it declares:

    //netteloader=App\\Foo,App\\Bar
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

from class_locator.tokenizer import TRIVIA_KINDS, ParseError, Token, TokenKind, tokenize

logger = logging.getLogger(__name__)

_DIRECTIVE_RE = re.compile(r"//netteloader=(\S*)")

_TYPE_KINDS = frozenset({TokenKind.CLASS, TokenKind.INTERFACE, TokenKind.TRAIT})
_NAME_KINDS = frozenset({TokenKind.IDENTIFIER, TokenKind.NS_SEPARATOR})


def extract_type_names(tokens: Iterable[Token]) -> List[str]:
    """Return fully-qualified type names declared at the namespace top level.

    Args:
        tokens: Token stream of one file.

    Returns:
        Type names in declaration order, e.g. ["App\\Model\\User"].
    """
    expected: Optional[str] = None
    name = ""
    namespace = ""
    level = 0
    min_level = 0
    found: List[str] = []

    for token in tokens:
        kind = token.kind
        if kind in TRIVIA_KINDS:
            continue

        if kind in _NAME_KINDS:
            if expected:
                name += token.text
            continue

        if kind == TokenKind.NAMESPACE or kind in _TYPE_KINDS:
            expected = kind
            name = ""
            continue

        if kind == TokenKind.CURLY_OPEN:
            level += 1

        # First structural token after a declaration keyword closes the name
        if expected:
            if expected in _TYPE_KINDS:
                if name and level == min_level:
                    found.append(namespace + name)
            else:
                namespace = name + "\\" if name else ""
                min_level = 1 if kind == TokenKind.OPEN_BRACE else 0
            expected = None

        if kind == TokenKind.OPEN_BRACE:
            level += 1
        elif kind == TokenKind.CLOSE_BRACE:
            level -= 1

    return found


class TypeScanner:
    """Reads source files and extracts their declared type names.

    Parse errors either propagate with the file path attached (default) or
    are logged and treated as "no types in this file".
    """

    def __init__(self, report_parse_errors: bool = True):
        """Initialize scanner.

        Args:
            report_parse_errors: Raise ParseError for malformed files when True;
                log and return an empty list when False.
        """
        self.report_parse_errors = report_parse_errors

    def scan_file(self, filepath: str) -> List[str]:
        """Scan one file.

        Args:
            filepath: Path to the source file.

        Returns:
            Declared type names in order.

        Raises:
            ParseError: If the file is malformed and reporting is enabled.
            OSError: If the file cannot be read.
        """
        code = self._read_file(filepath)
        logger.debug(f"Scanning {filepath}")
        return self.scan_source(code, filepath)

    def scan_source(self, code: str, filepath: Optional[str] = None) -> List[str]:
        """Scan source text; filepath is only used for error reporting."""
        directive = _DIRECTIVE_RE.search(code)
        if directive:
            return [name for name in directive.group(1).split(",") if name]

        try:
            tokens = tokenize(code)
        except ParseError as e:
            if filepath:
                e.with_file(filepath)
            if self.report_parse_errors:
                raise
            logger.warning(f"Ignoring unparseable file: {e}")
            return []

        return extract_type_names(tokens)

    def _read_file(self, filepath: str) -> str:
        """Read file as UTF-8, falling back to latin-1."""
        raw = Path(filepath).read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"{filepath} is not valid UTF-8, decoding as latin-1")
            return raw.decode("latin-1")
