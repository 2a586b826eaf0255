from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from fire_diff.config import AnalyzerConfig
from fire_diff.graph import (
    Edge,
    Referrer,
    compute_content_hash,
    discover_source_files,
    extract_references,
    find_referencing_files,
)
from fire_diff.index_cache import IndexCacheData
from fire_diff.source_index import Declaration, FileIndex, extract_declarations

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """
    State shared by every component during one run.

    Holds the snapshot of the working tree the run operates on: file contents
    are read lazily and never invalidated, declaration indexes and reference
    edges are computed once per file.
    """

    root: Path
    files: list[str] = field(default_factory=list)
    index_cache: IndexCacheData | None = None
    _contents: dict[str, str | None] = field(default_factory=dict, repr=False)
    _indexes: dict[str, FileIndex] = field(default_factory=dict, repr=False)
    _references: dict[str, list[Edge]] = field(default_factory=dict, repr=False)
    _referrers: dict[str, list[Referrer]] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(
        cls, config: AnalyzerConfig, index_cache: IndexCacheData | None = None
    ) -> RunContext:
        files = discover_source_files(config.project_root, config.source_dirs)
        context = cls(root=config.project_root, files=files, index_cache=index_cache)
        for rel in files:
            context.index(rel)
        config.debug_print(f"Indexed {len(files)} source files")
        return context

    def read_text(self, rel_path: str) -> str | None:
        if rel_path in self._contents:
            return self._contents[rel_path]
        try:
            content: str | None = (self.root / rel_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.warning("Could not read file: %s. Skipping.", rel_path)
            content = None
        self._contents[rel_path] = content
        return content

    def index(self, rel_path: str) -> FileIndex:
        """Declaration index for a file, built on first use."""
        cached = self._indexes.get(rel_path)
        if cached is not None:
            return cached

        content = self.read_text(rel_path)
        if content is None:
            declarations: list[Declaration] = []
        else:
            declarations = self._declarations(rel_path, content)
        index = FileIndex(path=rel_path, declarations=tuple(declarations))
        self._indexes[rel_path] = index
        return index

    def _declarations(self, rel_path: str, content: str) -> list[Declaration]:
        if self.index_cache is None:
            return extract_declarations(rel_path, content)
        digest = compute_content_hash(content.encode("utf-8"))
        stored = self.index_cache.get(digest)
        if stored is not None:
            return [Declaration(name=name, file=rel_path, start=start) for name, start in stored]
        declarations = extract_declarations(rel_path, content)
        self.index_cache.put(digest, [(d.name, d.start) for d in declarations])
        return declarations

    @property
    def indexes(self) -> list[FileIndex]:
        return [self.index(rel) for rel in self.files]

    def add_file(self, rel_path: str) -> FileIndex:
        """Register a file discovered after startup (e.g. untracked)."""
        if rel_path not in self.files:
            self.files.append(rel_path)
            self._referrers.clear()
        return self.index(rel_path)

    def references(self, rel_path: str) -> list[Edge]:
        cached = self._references.get(rel_path)
        if cached is not None:
            return cached
        content = self.read_text(rel_path)
        edges = extract_references(rel_path, content) if content is not None else []
        self._references[rel_path] = edges
        return edges

    def referrers(self, rel_path: str) -> list[Referrer]:
        cached = self._referrers.get(rel_path)
        if cached is None:
            cached = find_referencing_files(rel_path, self)
            self._referrers[rel_path] = cached
        return cached
