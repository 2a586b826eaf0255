from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Iterable

from fire_diff.graph import module_key, resolve_specifier
from fire_diff.models import Endpoint
from fire_diff.source_index import node_text, parse_source

logger = logging.getLogger(__name__)


def _group_export(node) -> tuple[str, str] | None:
    # exports.GROUP = require('./path')
    expr = node.named_children[0] if node.named_children else None
    if expr is None or expr.type != "assignment_expression":
        return None
    left = expr.child_by_field_name("left")
    right = expr.child_by_field_name("right")
    if left is None or right is None or left.type != "member_expression":
        return None
    obj = left.child_by_field_name("object")
    prop = left.child_by_field_name("property")
    if obj is None or prop is None or node_text(obj) != "exports":
        return None
    if right.type != "call_expression":
        return None
    function = right.child_by_field_name("function")
    arguments = right.child_by_field_name("arguments")
    if function is None or node_text(function) != "require" or arguments is None:
        return None
    arg = arguments.named_children[0] if arguments.named_children else None
    if arg is None or arg.type != "string":
        return None
    return node_text(prop), node_text(arg)[1:-1]


def build_group_map(entrypoint_rel: str, source: str) -> dict[str, str]:
    """
    Map each module grouped by the entrypoint to its group prefix.

    Only ``exports.GROUP = require(path)`` registers a group; ``export * from``
    exposes functions under their own names and is ignored here.
    """
    groups: dict[str, str] = {}
    tree = parse_source(entrypoint_rel, source)
    for node in tree.root_node.named_children:
        if node.type != "expression_statement":
            continue
        found = _group_export(node)
        if found is not None:
            group, specifier = found
            groups[resolve_specifier(entrypoint_rel, specifier)] = group
    return groups


class DeploymentNamer:
    def __init__(self, project_root: Path, entrypoint: Path) -> None:
        self.project_root = project_root
        try:
            self.entrypoint = entrypoint.resolve().relative_to(project_root).as_posix()
        except ValueError:
            self.entrypoint = posixpath.normpath(entrypoint.as_posix())
        self.groups = self._scan_entrypoint(entrypoint)

    def _scan_entrypoint(self, entrypoint: Path) -> dict[str, str]:
        try:
            source = entrypoint.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.warning(
                "Could not read entry point file: %s. Group names may be missing.", entrypoint
            )
            return {}
        return build_group_map(self.entrypoint, source)

    def resolve(self, endpoint: Endpoint) -> str:
        if endpoint.file == self.entrypoint:
            return endpoint.name
        group = self.groups.get(module_key(endpoint.file))
        if group:
            return f"{group}-{endpoint.name}"
        return endpoint.name

    def apply(self, endpoints: Iterable[Endpoint]) -> list[Endpoint]:
        named = []
        for endpoint in endpoints:
            endpoint.deploy_name = self.resolve(endpoint)
            named.append(endpoint)
        return named


def deploy_names(endpoints: Iterable[Endpoint], version: str | None = None) -> list[str]:
    """Unique deploy names in first-seen order, optionally for one version."""
    names: dict[str, None] = {}
    for endpoint in endpoints:
        if version is not None and endpoint.version != version:
            continue
        names.setdefault(endpoint.deploy_name or endpoint.name, None)
    return list(names)
