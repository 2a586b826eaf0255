from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import msgpack

SCHEMA_VERSION = 1


class IndexCacheError(Exception):
    pass


@dataclass
class IndexCacheData:
    """Declarations keyed by file content hash: ``{hash: [(name, start), ...]}``."""

    version: int = SCHEMA_VERSION
    entries: dict[str, list[tuple[str, int]]] = field(default_factory=dict)
    dirty: bool = field(default=False, compare=False)

    def get(self, digest: str) -> list[tuple[str, int]] | None:
        return self.entries.get(digest)

    def put(self, digest: str, declarations: list[tuple[str, int]]) -> None:
        self.entries[digest] = list(declarations)
        self.dirty = True

    def prune(self, keep: set[str]) -> None:
        stale = set(self.entries) - keep
        for digest in stale:
            del self.entries[digest]
        if stale:
            self.dirty = True

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "entries": {k: [[name, start] for name, start in v] for k, v in self.entries.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> IndexCacheData:
        version = data.get("version", 0)
        if version > SCHEMA_VERSION:
            raise IndexCacheError(
                f"Index cache version {version} is newer than supported version {SCHEMA_VERSION}. "
                "Please update fire-diff."
            )
        return cls(
            version=version,
            entries={
                k: [(str(name), int(start)) for name, start in v]
                for k, v in data.get("entries", {}).items()
            },
        )


def load_index_cache(path: Path) -> IndexCacheData | None:
    if not path.exists():
        return None
    try:
        with open(path, "rb") as f:
            data = msgpack.unpack(f, raw=False)
        return IndexCacheData.from_dict(data)
    except (msgpack.UnpackException, msgpack.ExtraData, TypeError, ValueError, KeyError, AttributeError) as e:
        raise IndexCacheError(f"Failed to load index cache: {e}") from e


def save_index_cache(path: Path, data: IndexCacheData) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            msgpack.pack(data.to_dict(), f, use_bin_type=True)
    except (OSError, msgpack.PackException) as e:
        raise IndexCacheError(f"Failed to save index cache: {e}") from e
