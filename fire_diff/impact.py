"""Impact propagation from changed declarations to deployable endpoints.

A declaration depends on a seed when its block text contains the seed's name
and its file is the seed's own file or references the seed's file. The match
is purely textual and errs on the side of reporting too much.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from fire_diff.context import RunContext
from fire_diff.models import Endpoint, Seed, unique_seeds
from fire_diff.triggers import TriggerInfo, classify

logger = logging.getLogger(__name__)


class State(Enum):
    UNVISITED = "unvisited"
    IN_PROGRESS = "in_progress"
    DONE = "done"


@dataclass
class AnalysisRecord:
    seed: Seed
    state: State = State.UNVISITED
    dependents: list[Seed] = field(default_factory=list)


class ImpactEngine:
    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.records: dict[tuple[str, str], AnalysisRecord] = {}
        self._endpoints: dict[tuple[str, str], Endpoint] = {}

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints.values())

    def run(self, seeds: Iterable[Seed]) -> list[Endpoint]:
        for seed in seeds:
            self.analyze(seed)
        logger.debug(
            "Analysed %d declarations, %d endpoints", len(self.records), len(self._endpoints)
        )
        return self.endpoints

    def state(self, seed: Seed) -> State:
        record = self.records.get(seed.key)
        return record.state if record else State.UNVISITED

    def analyze(self, seed: Seed) -> None:
        """
        Depth-first propagation from ``seed``.

        Each (file, name) is entered once. Reaching an entry that is still
        IN_PROGRESS means the walk closed a cycle, which simply ends that path.
        """
        stack: list[tuple[Seed, bool]] = [(seed, False)]
        while stack:
            current, leaving = stack.pop()
            record = self.records.get(current.key)
            if leaving:
                record.state = State.DONE
                continue
            if record is not None:
                continue

            record = AnalysisRecord(current, State.IN_PROGRESS)
            self.records[current.key] = record
            self._record_endpoint(current)
            record.dependents = self.direct_dependents(current)

            stack.append((current, True))
            for dependent in reversed(record.dependents):
                if dependent.key not in self.records:
                    stack.append((dependent, False))

    def affected(self) -> list[Seed]:
        return [record.seed for record in self.records.values()]

    def direct_dependents(self, seed: Seed) -> list[Seed]:
        dependents: list[Seed] = []
        for referrer in self.context.referrers(seed.file):
            if referrer.re_export is not None:
                # the barrel exposes the seed under its own path, possibly renamed
                for name in referrer.re_export.exported_as(seed.name):
                    dependents.append(Seed(name, referrer.file, seed.version))
            if referrer.imports_target:
                dependents.extend(self._matching_declarations(seed, referrer.file))
        dependents.extend(self._matching_declarations(seed, seed.file))
        return unique_seeds(d for d in dependents if d.key != seed.key)

    def _matching_declarations(self, seed: Seed, path: str) -> list[Seed]:
        content = self.context.read_text(path)
        if content is None:
            return []
        matches = []
        for decl, block in self.context.index(path).blocks(content):
            if path == seed.file and decl.name == seed.name:
                continue
            if seed.name in block:
                matches.append(Seed(decl.name, path))
        return matches

    def _trigger_for(self, seed: Seed) -> TriggerInfo | None:
        content = self.context.read_text(seed.file)
        if content is None:
            return None
        for block in self.context.index(seed.file).blocks_named(seed.name, content):
            info = classify(block)
            if info.is_endpoint:
                return info
        return None

    def _record_endpoint(self, seed: Seed) -> None:
        if seed.key in self._endpoints:
            return
        info = self._trigger_for(seed)
        if info is None:
            return
        self._endpoints[seed.key] = Endpoint(
            file=seed.file, name=seed.name, kind=info.kind, version=info.version
        )
