# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Token stream for PHP-style source files, built on a tree-sitter parse.

The source is parsed with the tree-sitter PHP grammar and the leaves of the
syntax tree are flattened, in document order, into Token objects tagged
with a kind. Only the structure needed to locate namespace and type
declarations is kept apart; everything else becomes a generic keyword,
literal or operator token.

Notable behaviour:
- Text outside <?php ... ?> is an INLINE_HTML token
- Qualified names are split into IDENTIFIER and NS_SEPARATOR fragments;
  reserved words used as name segments (App\\List) stay identifiers
- namespace/class/interface/trait are declaration kinds only where they
  introduce a declaration, so Foo::class or namespace\\foo() are keywords
- "{" opening an interpolation inside a string or heredoc is CURLY_OPEN,
  closed by a regular CLOSE_BRACE token
- Single-quoted strings, nowdocs, comments and variables are one token each
- A tree containing syntax errors raises ParseError
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from tree_sitter import Node, Parser
from tree_sitter_language_pack import get_parser

logger = logging.getLogger(__name__)

LANGUAGE = "php"


class TokenKind:
    """Kinds of tokens produced by the tokenizer.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    INLINE_HTML = "inline_html"
    OPEN_TAG = "open_tag"
    CLOSE_TAG = "close_tag"
    COMMENT = "comment"
    DOC_COMMENT = "doc_comment"
    STRING = "string"
    VARIABLE = "variable"
    LITERAL = "literal"  # numbers, booleans, null
    IDENTIFIER = "identifier"
    NS_SEPARATOR = "ns_separator"
    NAMESPACE = "namespace"  # namespace Foo;
    CLASS = "class"  # class Foo
    INTERFACE = "interface"  # interface Foo
    TRAIT = "trait"  # trait Foo
    KEYWORD = "keyword"  # any other reserved word
    OPEN_BRACE = "open_brace"
    CLOSE_BRACE = "close_brace"
    CURLY_OPEN = "curly_open"  # "{$" in an interpolated string
    OPERATOR = "operator"


# Tokens that carry no structure
TRIVIA_KINDS = frozenset({TokenKind.COMMENT, TokenKind.DOC_COMMENT})

# (leaf type, parent node type) pairs that introduce a declaration
_DECLARATIONS = {
    ("namespace", "namespace_definition"): TokenKind.NAMESPACE,
    ("class", "class_declaration"): TokenKind.CLASS,
    ("interface", "interface_declaration"): TokenKind.INTERFACE,
    ("trait", "trait_declaration"): TokenKind.TRAIT,
}

# Nodes emitted as a single token without descending
_ATOMIC_KINDS = {
    "comment": TokenKind.COMMENT,
    "text": TokenKind.INLINE_HTML,
    "php_tag": TokenKind.OPEN_TAG,
    "variable_name": TokenKind.VARIABLE,
    "string": TokenKind.STRING,
    "nowdoc": TokenKind.STRING,
}

# Parents whose literal pieces are string text
_STRING_PARENTS = frozenset(
    {"encapsed_string", "heredoc", "heredoc_body", "shell_command_expression"}
)

_parser: Optional[Parser] = None


class ParseError(Exception):
    """Raised when source text cannot be tokenized.

    Attributes:
        file: Path of the offending file, when known.
        line: 1-based line where the problem starts.
    """

    def __init__(self, message: str, line: int, file: Optional[str] = None):
        self.message = message
        self.line = line
        self.file = file
        super().__init__(self._format())

    def _format(self) -> str:
        location = f"{self.file}:{self.line}" if self.file else f"line {self.line}"
        return f"{self.message} ({location})"

    def with_file(self, file: str) -> "ParseError":
        """Attach the path of the file being scanned."""
        self.file = file
        self.args = (self._format(),)
        return self


@dataclass(frozen=True)
class Token:
    """One lexical token with its 1-based starting line."""

    kind: str
    text: str
    line: int


def _php_parser() -> Parser:
    """Return the shared PHP parser, loading the grammar on first use."""
    global _parser
    if _parser is None:
        _parser = get_parser(LANGUAGE)
        logger.debug(f"Loaded tree-sitter {LANGUAGE} grammar")
    return _parser


def _first_error(root: Node) -> Node:
    """Return the first ERROR or MISSING node in document order."""
    node = root
    while True:
        if node.type == "ERROR" or node.is_missing:
            return node
        child = next((c for c in node.children if c.has_error or c.is_missing), None)
        if child is None:
            return node
        node = child


def _classify(node: Node, parent_type: str, text: str) -> str:
    node_type = node.type

    if node_type == "comment":
        is_doc = text.startswith("/**") and text[3:4].isspace()
        return TokenKind.DOC_COMMENT if is_doc else TokenKind.COMMENT
    if node_type in _ATOMIC_KINDS:
        return _ATOMIC_KINDS[node_type]
    if node_type == "?>":
        return TokenKind.CLOSE_TAG
    if node_type == "{":
        return TokenKind.CURLY_OPEN if parent_type in _STRING_PARENTS else TokenKind.OPEN_BRACE
    if node_type == "}":
        return TokenKind.CLOSE_BRACE
    if parent_type in _STRING_PARENTS:
        return TokenKind.STRING
    if node_type == "name":
        return TokenKind.IDENTIFIER
    if node_type == "\\":
        return TokenKind.NS_SEPARATOR

    declaration = _DECLARATIONS.get((node_type, parent_type))
    if declaration:
        return declaration
    if node.is_named:
        return TokenKind.LITERAL
    # Anonymous leaves are keywords (lowercased type) or punctuation
    return TokenKind.KEYWORD if node_type[:1].isalpha() else TokenKind.OPERATOR


def _leaves(root: Node) -> Iterator[Tuple[Node, str]]:
    """Yield (leaf, parent type) pairs in document order."""
    stack: List[Tuple[Node, str]] = [(child, root.type) for child in reversed(root.children)]
    while stack:
        node, parent_type = stack.pop()
        if node.child_count == 0 or node.type in _ATOMIC_KINDS:
            yield node, parent_type
            continue
        stack.extend((child, node.type) for child in reversed(node.children))


def tokenize(code: str) -> List[Token]:
    """Tokenize source text.

    Raises:
        ParseError: On malformed source.
    """
    source = code.encode("utf-8")
    tree = _php_parser().parse(source)
    root = tree.root_node

    if root.has_error:
        error = _first_error(root)
        line = error.start_point[0] + 1
        if error.is_missing:
            raise ParseError(f"Missing '{error.type}'", line)
        raise ParseError("Syntax error", line)

    tokens: List[Token] = []
    for node, parent_type in _leaves(root):
        if node.start_byte == node.end_byte:
            continue
        text = source[node.start_byte : node.end_byte].decode("utf-8")
        tokens.append(
            Token(kind=_classify(node, parent_type, text), text=text, line=node.start_point[0] + 1)
        )
    return tokens
