from __future__ import annotations

import logging

from fire_diff.changes import ChangeLocator
from fire_diff.config import AnalyzerConfig
from fire_diff.context import RunContext
from fire_diff.deploy import DeploymentNamer
from fire_diff.git import GitError, is_git_repository
from fire_diff.graph import compute_content_hash
from fire_diff.impact import ImpactEngine
from fire_diff.index_cache import (
    IndexCacheData,
    IndexCacheError,
    load_index_cache,
    save_index_cache,
)
from fire_diff.models import Endpoint, Seed
from fire_diff.triggers import classify

logger = logging.getLogger(__name__)


def _open_index_cache(config: AnalyzerConfig) -> IndexCacheData | None:
    if config.index_file is None:
        return None
    try:
        stored = load_index_cache(config.index_file)
    except IndexCacheError as e:
        logger.warning("%s. Rebuilding the declaration index.", e)
        stored = None
    if stored is not None:
        config.debug_print(f"Loaded index cache: {len(stored.entries)} entries")
    return stored or IndexCacheData()


def _close_index_cache(config: AnalyzerConfig, context: RunContext) -> None:
    cache = context.index_cache
    if cache is None or config.index_file is None:
        return
    live = set()
    for rel in context.files:
        content = context.read_text(rel)
        if content is not None:
            live.add(compute_content_hash(content.encode("utf-8")))
    cache.prune(live)
    if not cache.dirty:
        return
    try:
        save_index_cache(config.index_file, cache)
        config.debug_print(f"Saved index cache: {len(cache.entries)} entries")
    except IndexCacheError as e:
        logger.warning("%s", e)


def build_context(config: AnalyzerConfig) -> RunContext:
    return RunContext.from_config(config, index_cache=_open_index_cache(config))


def analyze_seeds(
    config: AnalyzerConfig, context: RunContext, seeds: list[Seed]
) -> list[Endpoint]:
    engine = ImpactEngine(context)
    endpoints = engine.run(seeds)
    config.debug_print(
        f"Affected declarations: {len(engine.records)}, endpoints: {len(endpoints)}"
    )
    return DeploymentNamer(config.project_root, config.entrypoint).apply(endpoints)


def analyze_changes(
    config: AnalyzerConfig,
    diff_text: str | None = None,
    status_text: str | None = None,
) -> list[Endpoint]:
    """
    Endpoints that must be redeployed for the current working-tree changes.

    Git failures propagate as GitError and no partial result is returned.
    """
    if (diff_text is None or status_text is None) and not is_git_repository(
        config.project_root
    ):
        raise GitError(f"Not a git repository: {config.project_root}")
    context = build_context(config)
    seeds = ChangeLocator(context, config).compute_changed_seeds(diff_text, status_text)
    if not seeds:
        config.debug_print("No relevant source changes detected")
        _close_index_cache(config, context)
        return []
    endpoints = analyze_seeds(config, context, seeds)
    _close_index_cache(config, context)
    return endpoints


def list_endpoints(config: AnalyzerConfig) -> list[Endpoint]:
    """Every endpoint in the project, independent of git changes."""
    context = build_context(config)
    endpoints: dict[tuple[str, str], Endpoint] = {}
    for index in context.indexes:
        content = context.read_text(index.path)
        if content is None:
            continue
        for decl, block in index.blocks(content):
            info = classify(block)
            if info.is_endpoint:
                endpoints.setdefault(
                    (decl.file, decl.name),
                    Endpoint(file=decl.file, name=decl.name, kind=info.kind, version=info.version),
                )
    _close_index_cache(config, context)
    return DeploymentNamer(config.project_root, config.entrypoint).apply(endpoints.values())
