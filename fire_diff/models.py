from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Seed:
    """A declaration (or ``Object.property``) to propagate impact from."""

    name: str
    file: str
    version: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.file, self.name)


@dataclass
class Endpoint:
    file: str
    name: str
    kind: str | None
    version: str | None
    deploy_name: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.file, self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "file": self.file,
            "deploy_name": self.deploy_name or self.name,
            "kind": self.kind,
            "version": self.version,
        }


def unique_seeds(seeds) -> list[Seed]:
    seen: set[tuple[str, str]] = set()
    result: list[Seed] = []
    for seed in seeds:
        if seed.key not in seen:
            seen.add(seed.key)
            result.append(seed)
    return result
