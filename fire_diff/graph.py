from __future__ import annotations

import fnmatch
import hashlib
import logging
import posixpath
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from tree_sitter import Node

from fire_diff.source_index import node_text, parse_source

if TYPE_CHECKING:
    from fire_diff.context import RunContext

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({
    "node_modules",
    "dist",
    "coverage",
    "__tests__",
})

SOURCE_SUFFIXES = frozenset({".ts", ".tsx"})
MODULE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")
TEST_FILE_PATTERNS = ("*.test.ts", "*.spec.ts", "*.test.tsx", "*.spec.tsx")


class EdgeKind(str, Enum):
    STATIC_IMPORT = "static_import"
    REQUIRE = "require"
    DYNAMIC_IMPORT = "dynamic_import"
    RE_EXPORT_STAR = "re_export_star"
    RE_EXPORT_NAMED = "re_export_named"


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    kind: EdgeKind
    # (local, exported) pairs of ``export { local as exported } from``
    names: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ReExportInfo:
    """
    What a re-exporting file exposes of its target.

    ``export * from`` exposes every name under its own name. ``export { a as b }
    from`` exposes only the listed local names, each under its exported name.
    """

    wildcard: bool = False
    names: frozenset[tuple[str, str]] = frozenset()

    def exported_as(self, name: str) -> list[str]:
        """Names under which ``name`` (or ``Object.key``) is visible in the barrel."""
        root, dot, rest = name.partition(".")
        aliases = {exported for local, exported in self.names if local == root}
        if self.wildcard:
            aliases.add(root)
        return sorted(alias + dot + rest for alias in aliases)


@dataclass(frozen=True)
class Referrer:
    file: str
    imports_target: bool
    re_export: ReExportInfo | None = None


def compute_content_hash(data: bytes) -> str:
    h = hashlib.sha256(data)
    return h.hexdigest()[:16]


def _is_test_file(rel_path: str) -> bool:
    name = posixpath.basename(rel_path)
    return any(fnmatch.fnmatch(name, pattern) for pattern in TEST_FILE_PATTERNS)


def discover_source_files(root: Path, source_dirs: tuple[str, ...] = (".",)) -> list[str]:
    root = root.resolve()
    result: set[str] = set()
    for source_dir in source_dirs:
        base = (root / source_dir).resolve()
        if not base.is_dir():
            logger.warning("Source directory %s does not exist. Skipping.", base)
            continue
        for path in base.rglob("*"):
            if path.suffix not in SOURCE_SUFFIXES or path.name.endswith(".d.ts"):
                continue
            try:
                parts = path.relative_to(root).parts
            except ValueError:
                continue
            # Skip files in excluded directories
            if any(part in SKIP_DIRS or part.startswith(".") for part in parts[:-1]):
                continue
            rel = path.relative_to(root).as_posix()
            if _is_test_file(rel) or not path.is_file():
                continue
            result.add(rel)
    return sorted(result)


def module_key(rel_path: str) -> str:
    """
    Normalize a project-relative path into the key used for comparisons.

    ``src/x``, ``src/x.ts`` and ``src/x/index.ts`` all become ``src/x``.
    """
    key = posixpath.normpath(rel_path.replace("\\", "/"))
    for suffix in MODULE_SUFFIXES:
        if key.endswith(suffix):
            key = key[: -len(suffix)]
            break
    if key == "index":
        return "."
    if key.endswith("/index"):
        key = key[: -len("/index")]
    return key


def resolve_specifier(importer: str, specifier: str) -> str:
    importer_dir = posixpath.dirname(importer)
    return module_key(posixpath.join(importer_dir, specifier))


def _string_value(node: Node | None) -> str | None:
    if node is None or node.type != "string":
        return None
    text = node_text(node)
    return text[1:-1] if len(text) >= 2 else None


def _call_reference(node: Node) -> tuple[EdgeKind, str] | None:
    function = node.child_by_field_name("function")
    arguments = node.child_by_field_name("arguments")
    if function is None or arguments is None or not arguments.named_children:
        return None
    if function.type == "import":
        kind = EdgeKind.DYNAMIC_IMPORT
    elif function.type == "identifier" and node_text(function) == "require":
        kind = EdgeKind.REQUIRE
    else:
        return None
    specifier = _string_value(arguments.named_children[0])
    return (kind, specifier) if specifier is not None else None


def _export_names(node: Node) -> tuple[tuple[str, str], ...] | None:
    clause = next((c for c in node.named_children if c.type == "export_clause"), None)
    if clause is None:
        return None
    names = []
    for spec in clause.named_children:
        if spec.type != "export_specifier":
            continue
        # export { local as alias }: the target declares local, importers see alias
        name = spec.child_by_field_name("name")
        if name is None:
            continue
        alias = spec.child_by_field_name("alias")
        local = node_text(name).strip("'\"")
        names.append((local, node_text(alias).strip("'\"") if alias is not None else local))
    return tuple(names)


def extract_references(rel_path: str, source: str) -> list[Edge]:
    """Every module reference made by one file, in source order."""
    tree = parse_source(rel_path, source)
    edges: list[Edge] = []

    def add(
        kind: EdgeKind, specifier: str | None, names: tuple[tuple[str, str], ...] = ()
    ) -> None:
        if specifier:
            edges.append(Edge(rel_path, resolve_specifier(rel_path, specifier), kind, names))

    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "import_statement":
            source_node = node.child_by_field_name("source")
            if source_node is not None:
                add(EdgeKind.STATIC_IMPORT, _string_value(source_node))
            else:
                # import x = require('./y')
                for child in node.named_children:
                    if child.type == "import_require_clause":
                        add(EdgeKind.REQUIRE, _string_value(child.child_by_field_name("source")))
            continue
        if node.type == "export_statement":
            source_node = node.child_by_field_name("source")
            if source_node is not None:
                names = _export_names(node)
                if names is None:
                    add(EdgeKind.RE_EXPORT_STAR, _string_value(source_node))
                else:
                    add(EdgeKind.RE_EXPORT_NAMED, _string_value(source_node), names)
                continue
        if node.type == "call_expression":
            reference = _call_reference(node)
            if reference is not None:
                add(*reference)
        stack.extend(reversed(node.children))
    return edges


def find_referencing_files(target: str, context: RunContext) -> list[Referrer]:
    """
    Files whose text references ``target`` through an import, ``require``,
    dynamic ``import()`` or a re-export. Each referrer appears once.
    """
    wanted = module_key(target)
    result: list[Referrer] = []
    for candidate in context.files:
        if candidate == target:
            continue
        imports_target = False
        star = False
        named: set[tuple[str, str]] = set()
        matched = False
        for edge in context.references(candidate):
            if edge.target != wanted:
                continue
            matched = True
            if edge.kind is EdgeKind.RE_EXPORT_STAR:
                star = True
            elif edge.kind is EdgeKind.RE_EXPORT_NAMED:
                named.update(edge.names)
            else:
                imports_target = True
        if not matched:
            continue
        re_export = None
        if star or named or not imports_target:
            # ``export {} from`` yields an empty ReExportInfo that exposes nothing
            re_export = ReExportInfo(star, frozenset(named))
        result.append(Referrer(candidate, imports_target, re_export))
    return result
