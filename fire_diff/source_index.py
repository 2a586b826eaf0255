"""Top-level declaration extraction for TypeScript sources.

Every declaration is recorded with the character offset where its statement
starts. Offsets are what the rest of the engine works with: a declaration's
*block* runs from its own offset up to the next declaration's offset, so the
list returned here is always sorted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

TS_LANGUAGE = Language(tree_sitter_typescript.language_typescript())
TSX_LANGUAGE = Language(tree_sitter_typescript.language_tsx())

TSX_SUFFIXES = frozenset({".tsx", ".jsx"})

FUNCTION_NODES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_signature",
})
VARIABLE_NODES = frozenset({"lexical_declaration", "variable_declaration"})
NAMED_TYPE_NODES = frozenset({
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
})
CLASS_NODES = frozenset({"class_declaration", "abstract_class_declaration"})
MEMBER_NODES = frozenset({"method_definition", "public_field_definition"})


@dataclass(frozen=True)
class Declaration:
    name: str
    file: str
    start: int


@dataclass(frozen=True)
class FileIndex:
    path: str
    declarations: tuple[Declaration, ...] = field(default_factory=tuple)

    def names(self) -> set[str]:
        return {d.name for d in self.declarations}

    def find(self, name: str) -> Declaration | None:
        return next((d for d in self.declarations if d.name == name), None)

    def block_end(self, position: int, content: str) -> int:
        """End of the block for the declaration at ``position``."""
        nxt = self.declarations[position + 1] if position + 1 < len(self.declarations) else None
        return nxt.start if nxt else len(content)

    def blocks(self, content: str) -> Iterator[tuple[Declaration, str]]:
        for i, decl in enumerate(self.declarations):
            yield decl, content[decl.start:self.block_end(i, content)]

    def blocks_named(self, name: str, content: str) -> list[str]:
        return [text for decl, text in self.blocks(content) if decl.name == name]

    def find_at(self, offset: int) -> Declaration | None:
        """
        Declaration enclosing ``offset``.

        An exact start match wins, which covers a declaration inserted right at
        a hunk start; otherwise the declaration whose span contains the offset.
        """
        for decl in self.declarations:
            if decl.start == offset:
                return decl
        for i, decl in enumerate(self.declarations):
            nxt = self.declarations[i + 1] if i + 1 < len(self.declarations) else None
            if decl.start <= offset and (nxt is None or offset < nxt.start):
                return decl
        return None


def parser_for(path: str | Path) -> Parser:
    language = TSX_LANGUAGE if Path(path).suffix in TSX_SUFFIXES else TS_LANGUAGE
    return Parser(language)


def parse_source(path: str | Path, source: str):
    return parser_for(path).parse(source.encode("utf-8"))


def node_text(node: Node) -> str:
    return node.text.decode("utf-8") if node.text is not None else ""


class _OffsetMap:
    """Converts tree-sitter byte offsets into ``str`` indices."""

    def __init__(self, source: str) -> None:
        self._data = source.encode("utf-8")
        self._ascii = len(self._data) == len(source)

    def __call__(self, byte_offset: int) -> int:
        if self._ascii:
            return byte_offset
        return len(self._data[:byte_offset].decode("utf-8", errors="replace"))


def _name_of(node: Node) -> str | None:
    name = node.child_by_field_name("name")
    return node_text(name) if name is not None else None


def _exports_assignment_name(node: Node) -> str | None:
    # exports.NAME = ...
    expr = node.named_children[0] if node.named_children else None
    if expr is None or expr.type != "assignment_expression":
        return None
    left = expr.child_by_field_name("left")
    if left is None or left.type != "member_expression":
        return None
    obj = left.child_by_field_name("object")
    prop = left.child_by_field_name("property")
    if obj is None or prop is None or obj.type != "identifier" or node_text(obj) != "exports":
        return None
    return node_text(prop)


def _collect(node: Node, stmt_start: int, offset: _OffsetMap, path: str) -> list[Declaration]:
    found: list[Declaration] = []

    def add(name: str | None, byte_start: int) -> None:
        if name:
            found.append(Declaration(name=name, file=path, start=offset(byte_start)))

    if node.type in FUNCTION_NODES or node.type in NAMED_TYPE_NODES:
        add(_name_of(node), stmt_start)

    elif node.type in VARIABLE_NODES:
        first = True
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            if name is None or name.type != "identifier":
                continue
            if declarator.child_by_field_name("value") is None:
                continue
            add(node_text(name), stmt_start if first else declarator.start_byte)
            first = False

    elif node.type in CLASS_NODES:
        class_name = _name_of(node)
        if not class_name:
            return found
        add(class_name, stmt_start)
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else ():
            if member.type not in MEMBER_NODES:
                continue
            name = member.child_by_field_name("name")
            if name is not None and name.type == "property_identifier":
                add(node_text(name), member.start_byte)

    elif node.type == "expression_statement":
        add(_exports_assignment_name(node), stmt_start)

    return found


def extract_declarations(path: str, source: str) -> list[Declaration]:
    tree = parse_source(path, source)
    if tree.root_node.has_error:
        logger.debug("Syntax errors in %s; extracting what parsed", path)

    offset = _OffsetMap(source)
    declarations: list[Declaration] = []
    for node in tree.root_node.named_children:
        target = node
        if node.type == "export_statement":
            target = node.child_by_field_name("declaration")
            if target is None:
                continue
        declarations.extend(_collect(target, node.start_byte, offset, path))

    seen: set[tuple[int, str]] = set()
    unique: list[Declaration] = []
    for decl in sorted(declarations, key=lambda d: d.start):
        if (decl.start, decl.name) not in seen:
            seen.add((decl.start, decl.name))
            unique.append(decl)
    return unique
