"""Map working-tree changes onto the declarations they touch.

Three sources feed the seed set:

* every diff hunk is mapped to the declaration enclosing its first new-file
  line;
* ``+`` lines of a hunk are scanned for freshly written declaration headers
  and for edited ``key: value`` lines of top-level object literals, which
  become ``Object.key`` seeds;
* untracked files are new in full, so each of their declarations is a seed.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from fire_diff.config import AnalyzerConfig
from fire_diff.context import RunContext
from fire_diff.git import get_diff, get_repo_root, get_status
from fire_diff.graph import SOURCE_SUFFIXES
from fire_diff.models import Seed, unique_seeds
from fire_diff.source_index import FileIndex

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

# Lines that may appear between hunks of a git unified diff.
HEADER_PREFIXES = (
    "diff --git ",
    "index ",
    "--- ",
    "+++ ",
    "new file mode ",
    "deleted file mode ",
    "old mode ",
    "new mode ",
    "similarity index ",
    "dissimilarity index ",
    "rename from ",
    "rename to ",
    "copy from ",
    "copy to ",
    "Binary files ",
)

# Number of hunk body lines inspected for added declarations and properties.
HUNK_LOOKAHEAD = 50

_IDENT = r"[A-Za-z_$][\w$]*"

DECLARATION_HEADER_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("variable", re.compile(
        rf"^(?:export\s+)?(?:declare\s+)?(?:const|let|var)\s+(?P<name>{_IDENT})\s*(?::[^=]+)?="
    )),
    ("function", re.compile(
        rf"^(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(?P<name>{_IDENT})\s*[<(]"
    )),
    ("class", re.compile(
        rf"^(?:export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+(?P<name>{_IDENT})"
    )),
    ("interface", re.compile(rf"^(?:export\s+)?interface\s+(?P<name>{_IDENT})")),
    ("type", re.compile(rf"^(?:export\s+)?type\s+(?P<name>{_IDENT})\s*(?:<[^=]*>)?\s*=")),
    ("enum", re.compile(rf"^(?:export\s+)?(?:const\s+)?enum\s+(?P<name>{_IDENT})")),
    ("exports", re.compile(rf"^exports\.(?P<name>{_IDENT})\s*=")),
)

PROPERTY_LINE_RE = re.compile(rf"^(?P<key>{_IDENT})\s*:")
OBJECT_DECLARATION_RE = re.compile(
    rf"(?:export\s+)?(?:const|let|var)\s+(?P<name>{_IDENT})\s*(?::[^=]*)?=\s*\{{"
)
# String literals and comments, whose brackets do not nest.
STRING_OR_COMMENT_RE = re.compile(
    r"""'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*"|`(?:\\.|[^`\\])*`|//[^\n]*|/\*.*?\*/""",
    re.DOTALL,
)


class DiffFormatError(ValueError):
    pass


@dataclass(frozen=True)
class Hunk:
    path: str | None
    new_start: int
    new_count: int
    lines: tuple[str, ...]


def _diff_path(token: str, prefix: str) -> str | None:
    token = token.rstrip("\t").strip()
    if len(token) >= 2 and token[0] == token[-1] == '"':
        token = token[1:-1]
    if token == "/dev/null":
        return None
    return token[len(prefix):] if token.startswith(prefix) else token


def parse_unified_diff(diff_text: str) -> list[Hunk]:
    """
    Parse git's unified diff output into hunks.

    Anything outside the unified grammar raises DiffFormatError instead of
    being skipped, so a format change can never silently drop changes.
    """
    hunks: list[Hunk] = []
    lines = diff_text.splitlines()
    current_path: str | None = None
    seen_file_header = False
    i = 0
    while i < len(lines):
        line = lines[i]
        header = HUNK_HEADER_RE.match(line)
        if header:
            if not seen_file_header:
                raise DiffFormatError(f"Hunk header without a file header at line {i + 1}")
            old_left = int(header.group(2) or 1)
            new_left = int(header.group(4) or 1)
            new_start, new_count = int(header.group(3)), new_left
            body: list[str] = []
            i += 1
            while i < len(lines) and (old_left > 0 or new_left > 0):
                body_line = lines[i]
                tag = body_line[:1]
                if tag == "+":
                    new_left -= 1
                elif tag == "-":
                    old_left -= 1
                elif tag in (" ", ""):
                    old_left -= 1
                    new_left -= 1
                elif tag != "\\":
                    raise DiffFormatError(f"Unexpected hunk line {i + 1}: {body_line!r}")
                body.append(body_line)
                i += 1
            if old_left > 0 or new_left > 0:
                raise DiffFormatError(f"Truncated hunk for {current_path}")
            # "\ No newline at end of file" after the last line
            while i < len(lines) and lines[i].startswith("\\"):
                i += 1
            hunks.append(Hunk(current_path, new_start, new_count, tuple(body)))
            continue

        if line.startswith("+++ "):
            seen_file_header = True
            current_path = _diff_path(line[4:], "b/")
        elif line.startswith("diff --git "):
            current_path = None
        elif line.startswith("@@"):
            raise DiffFormatError(f"Malformed hunk header at line {i + 1}: {line!r}")
        elif line.strip() and not line.startswith(HEADER_PREFIXES):
            raise DiffFormatError(f"Unexpected line {i + 1} in diff: {line!r}")
        i += 1
    return hunks


def parse_untracked(status_text: str) -> list[str]:
    paths: list[str] = []
    for line in status_text.splitlines():
        if not line.startswith("?? "):
            continue
        path = line[3:].strip()
        if len(path) >= 2 and path[0] == path[-1] == '"':
            path = path[1:-1]
        if path:
            paths.append(path)
    return paths


def line_to_offset(content: str, line_number: int) -> int:
    """Character offset of a 1-based line number."""
    lines = content.split("\n")
    return sum(len(line) + 1 for line in lines[: max(line_number - 1, 0)])


def declared_name(line: str) -> str | None:
    """Name introduced by a declaration header line, if it is one."""
    trimmed = line.strip()
    for _, pattern in DECLARATION_HEADER_RULES:
        m = pattern.match(trimmed)
        if m:
            return m.group("name")
    return None


def _nesting_depth(text: str) -> int:
    text = STRING_OR_COMMENT_RE.sub("", text)
    return text.count("{") + text.count("[") - text.count("}") - text.count("]")


def property_change(line: str, content: str, line_number: int, index: FileIndex) -> str | None:
    """
    ``Object.key`` for an edited ``key: value`` line of a top-level object
    literal; the object name alone when the line sits deeper inside it.
    """
    m = PROPERTY_LINE_RE.match(line.strip())
    if not m:
        return None

    line_offset = line_to_offset(content, line_number)
    decl = index.find_at(line_offset)
    if decl is None:
        return None
    position = index.declarations.index(decl)
    block = content[decl.start:index.block_end(position, content)]

    obj = OBJECT_DECLARATION_RE.match(block)
    if not obj or obj.group("name") != decl.name:
        return None
    brace = obj.end() - 1
    relative = line_offset - decl.start
    if relative <= brace:
        return None
    if _nesting_depth(block[brace:relative]) != 1:
        return decl.name
    return f"{decl.name}.{m.group('key')}"


class ChangeLocator:
    def __init__(self, context: RunContext, config: AnalyzerConfig) -> None:
        self.context = context
        self.config = config

    def compute_changed_seeds(
        self, diff_text: str | None = None, status_text: str | None = None
    ) -> list[Seed]:
        root = self.config.project_root
        repo_root = None
        if diff_text is None:
            diff_text = get_diff(
                root,
                self.config.pathspecs,
                base=self.config.base_ref,
                context_lines=self.config.diff_context_lines,
            )
        if status_text is None:
            status_text = get_status(root, self.config.pathspecs)
            repo_root = get_repo_root(root)

        seeds = self.seeds_from_diff(diff_text)
        seeds += self.seeds_from_status(status_text, repo_root=repo_root)
        seeds = unique_seeds(seeds)
        self.config.debug_print(f"Changed declarations: {len(seeds)}")
        return seeds

    def seeds_from_diff(self, diff_text: str) -> list[Seed]:
        seeds: list[Seed] = []
        for hunk in parse_unified_diff(diff_text):
            seeds.extend(self.seeds_from_hunk(hunk))
        return unique_seeds(seeds)

    def seeds_from_hunk(self, hunk: Hunk) -> list[Seed]:
        path = hunk.path
        if path is None or path not in self.context.files:
            logger.debug("Skipping hunk for untracked path %s", path)
            return []
        content = self.context.read_text(path)
        if content is None:
            return []
        index = self.context.index(path)

        seeds = list(self._scan_added_lines(hunk, content, index))
        if not seeds:
            decl = index.find_at(line_to_offset(content, hunk.new_start))
            if decl is not None:
                seeds.append(Seed(decl.name, path))
        return seeds

    def _scan_added_lines(self, hunk: Hunk, content: str, index: FileIndex) -> Iterable[Seed]:
        names = index.names()
        line_number = hunk.new_start
        for body_line in hunk.lines[:HUNK_LOOKAHEAD]:
            if body_line.startswith("+"):
                added = body_line[1:]
                prop = property_change(added, content, line_number, index)
                if prop is not None:
                    yield Seed(prop, index.path)
                name = declared_name(added)
                if name is not None and name in names:
                    yield Seed(name, index.path)
                line_number += 1
            elif not body_line.startswith(("-", "\\")):
                line_number += 1

    def seeds_from_status(self, status_text: str, repo_root: Path | None = None) -> list[Seed]:
        seeds: list[Seed] = []
        for path in parse_untracked(status_text):
            rel = self._project_relative(path, repo_root)
            if rel is None or posixpath.splitext(rel)[1] not in SOURCE_SUFFIXES:
                continue
            index = self.context.add_file(rel)
            seeds.extend(Seed(decl.name, rel) for decl in index.declarations)
        return unique_seeds(seeds)

    def _project_relative(self, path: str, repo_root: Path | None) -> str | None:
        root = self.config.project_root
        if repo_root is not None:
            try:
                return (repo_root / path).resolve().relative_to(root).as_posix()
            except ValueError:
                logger.debug("Untracked path %s is outside the project", path)
                return None
        # porcelain paths are repository-relative; strip the project folder
        prefix = f"{root.name}/"
        if path.startswith(prefix) and not (root / path).exists():
            path = path[len(prefix):]
        return posixpath.normpath(path)
