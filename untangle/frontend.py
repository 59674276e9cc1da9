"""
Java source frontend built on tree-sitter.

The frontend parses one file into a ParsedUnit and offers the
structural queries the extractor and graph builder need: line to byte
offset translation, covered-node search for a byte span, classification
of nodes into imports, statements and declarations, and qualified-name
computation for declarations nested in named types.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

import tree_sitter_java as tsjava
from tree_sitter import Language, Parser

from .errors import ParseError

LOG = logging.getLogger(__name__)

JAVA_LANGUAGE = Language(tsjava.language())

TYPE_DECLARATIONS = frozenset(
    {
        "class_declaration",
        "interface_declaration",
        "enum_declaration",
        "record_declaration",
        "annotation_type_declaration",
    }
)
INTERFACE_DECLARATIONS = frozenset({"interface_declaration", "annotation_type_declaration"})
FIELD_DECLARATIONS = frozenset({"field_declaration", "constant_declaration"})
METHOD_DECLARATIONS = frozenset({"method_declaration", "constructor_declaration"})
MEMBER_DECLARATIONS = FIELD_DECLARATIONS | METHOD_DECLARATIONS | frozenset({"enum_constant"})
TYPE_BODIES = frozenset(
    {
        "class_body",
        "interface_body",
        "enum_body",
        "enum_body_declarations",
        "annotation_type_body",
    }
)
STATEMENTS = frozenset(
    {
        "block",
        "expression_statement",
        "local_variable_declaration",
        "explicit_constructor_invocation",
        "if_statement",
        "while_statement",
        "for_statement",
        "enhanced_for_statement",
        "do_statement",
        "return_statement",
        "throw_statement",
        "try_statement",
        "try_with_resources_statement",
        "switch_statement",
        "switch_expression",
        "synchronized_statement",
        "labeled_statement",
        "assert_statement",
        "break_statement",
        "continue_statement",
        "yield_statement",
    }
)
COMMENTS = frozenset({"comment", "line_comment", "block_comment"})


@dataclass
class ParsedUnit:
    """
    One parsed compilation unit.

    Offsets are byte offsets into `source`, which is what tree-sitter
    reports for every node.
    """

    path: str
    source: bytes
    root: Any
    package: str = ""
    line_starts: List[int] = field(default_factory=list)

    def line_span(self, start_line: int, end_line: int) -> Tuple[int, int]:
        """
        Translate 1-based inclusive lines into a [start, end) byte span.

        The span starts at the first column of `start_line` and stops at
        the end of `end_line`, excluding its line terminator.
        """

        if start_line < 1 or start_line > len(self.line_starts):
            return 0, 0
        end_line = min(max(end_line, start_line), len(self.line_starts))
        start = self.line_starts[start_line - 1]
        if end_line < len(self.line_starts):
            end = self.line_starts[end_line] - 1
        else:
            end = len(self.source)
        while end > start and self.source[end - 1:end] in (b"\n", b"\r"):
            end -= 1
        return start, end

    def covered_nodes(self, start: int, end: int) -> List[Any]:
        """
        Return the outermost named nodes lying entirely inside [start, end).

        Comments never count as covered, so a comment-only span covers
        nothing.
        """

        covered: List[Any] = []
        if end <= start:
            return covered

        stack = [self.root]
        while stack:
            node = stack.pop()
            inside: List[Any] = []
            for child in node.named_children:
                if child.type in COMMENTS:
                    continue
                if start <= child.start_byte and child.end_byte <= end:
                    covered.append(child)
                elif child.start_byte < end and child.end_byte > start:
                    inside.append(child)
            stack.extend(reversed(inside))

        covered.sort(key=lambda n: (n.start_byte, -n.end_byte))
        return covered


class JavaFrontend:
    """Parse Java files with tree-sitter."""

    def parse_file(self, path: Path) -> ParsedUnit:
        try:
            source = path.read_bytes()
        except OSError as exc:
            raise ParseError(str(path), str(exc)) from exc
        return self.parse(source, str(path))

    def parse(self, source: bytes, path: str = "<memory>") -> ParsedUnit:
        try:
            source.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(path, f"not valid UTF-8 ({exc.reason})") from exc

        # Parsers are cheap and not shareable across threads.
        parser = Parser()
        parser.language = JAVA_LANGUAGE
        tree = parser.parse(source)
        root = tree.root_node
        if root.has_error:
            raise ParseError(path, "syntax errors in source")

        unit = ParsedUnit(path=path, source=source, root=root)
        unit.line_starts = _line_starts(source)
        unit.package = _package_name(root)
        LOG.debug("Parsed %s (package %r)", path, unit.package)
        return unit


def _line_starts(source: bytes) -> List[int]:
    starts = [0]
    for offset, byte in enumerate(source):
        if byte == 0x0A and offset + 1 < len(source):
            starts.append(offset + 1)
    return starts


def _package_name(root: Any) -> str:
    for child in root.named_children:
        if child.type == "package_declaration":
            for part in child.named_children:
                if part.type in ("scoped_identifier", "identifier"):
                    return node_text(part)
    return ""


def node_text(node: Any) -> str:
    return node.text.decode("utf-8") if node is not None else ""


def same_node(a: Optional[Any], b: Optional[Any]) -> bool:
    if a is None or b is None:
        return False
    return a.type == b.type and a.start_byte == b.start_byte and a.end_byte == b.end_byte


def declared_name(node: Any) -> str:
    return node_text(node.child_by_field_name("name"))


def field_names(node: Any) -> List[str]:
    """
    Names declared by a field, constant or enum constant declaration.
    """

    if node.type == "enum_constant":
        return [declared_name(node)]
    return [
        declared_name(declarator)
        for declarator in node.children_by_field_name("declarator")
    ]


def modifiers(node: Any) -> List[str]:
    for child in node.children:
        if child.type == "modifiers":
            return [part.type for part in child.children if not part.is_named]
    return []


def is_named_member(node: Any) -> bool:
    """
    True for type and member declarations reachable through named types.

    Members of anonymous classes and local classes are not entities of
    their own; their code belongs to the enclosing member.
    """

    if node.type not in TYPE_DECLARATIONS and node.type not in MEMBER_DECLARATIONS:
        return False
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "program":
        return node.type in TYPE_DECLARATIONS
    if parent.type == "enum_body_declarations":
        parent = parent.parent
    if parent is None or parent.type not in TYPE_BODIES:
        return False
    owner = parent.parent
    return owner is not None and owner.type in TYPE_DECLARATIONS and is_named_member(owner)


def enclosing_members(node: Any) -> List[Any]:
    """
    Named declarations enclosing `node` (itself included), innermost first.
    """

    chain: List[Any] = []
    current = node
    while current is not None:
        if is_named_member(current):
            chain.append(current)
        current = current.parent
    return chain


def anchor_candidate(node: Any) -> Optional[Any]:
    """
    Walk up from a covered node to an import, a statement or a named
    declaration.
    """

    current = node
    while current is not None:
        if current.type == "import_declaration":
            return current
        if current.type in STATEMENTS or is_named_member(current):
            return current
        current = current.parent
    return None


def type_qualified_name(unit: ParsedUnit, type_node: Any) -> str:
    """
    Fully qualified name of a named type, e.g. ``some.pkg.Outer.Inner``.
    """

    names = [
        declared_name(member)
        for member in enclosing_members(type_node)
        if member.type in TYPE_DECLARATIONS
    ]
    name = ".".join(reversed(names))
    return f"{unit.package}.{name}" if unit.package else name


def iter_type_declarations(unit: ParsedUnit) -> Iterator[Any]:
    """
    Yield every named type declaration of the unit in document order.
    """

    stack = [child for child in reversed(unit.root.named_children) if child.type in TYPE_DECLARATIONS]
    while stack:
        type_node = stack.pop()
        yield type_node
        nested = [member for member in type_members(type_node) if member.type in TYPE_DECLARATIONS]
        stack.extend(reversed(nested))


def type_members(type_node: Any) -> List[Any]:
    """
    Direct member declarations found in the body of a type declaration.
    """

    body = type_node.child_by_field_name("body")
    if body is None:
        return []
    members: List[Any] = []
    for child in body.named_children:
        if child.type == "enum_body_declarations":
            members.extend(
                grandchild
                for grandchild in child.named_children
                if grandchild.type in MEMBER_DECLARATIONS or grandchild.type in TYPE_DECLARATIONS
            )
        elif child.type in MEMBER_DECLARATIONS or child.type in TYPE_DECLARATIONS:
            members.append(child)
    return members
