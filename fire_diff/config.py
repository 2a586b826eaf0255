from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from fire_diff.graph import SOURCE_SUFFIXES, TEST_FILE_PATTERNS

logger = logging.getLogger(__name__)

DEFAULT_ENTRYPOINT = Path("src/index.ts")
DEFAULT_INDEX_FILE = Path(".fire-diff.msgpack")

INCLUDE_PATTERNS = tuple(f"*{suffix}" for suffix in sorted(SOURCE_SUFFIXES))
EXCLUDE_PATTERNS = ("src/__tests__", *TEST_FILE_PATTERNS)


@dataclass
class AnalyzerConfig:
    project_root: Path = field(default_factory=Path.cwd)
    source_dirs: tuple[str, ...] = (".",)
    entrypoint: Path = DEFAULT_ENTRYPOINT
    index_file: Path | None = None
    include_patterns: tuple[str, ...] = INCLUDE_PATTERNS
    exclude_patterns: tuple[str, ...] = EXCLUDE_PATTERNS
    base_ref: str = "HEAD"
    # 0 makes every hunk start at its first changed line
    diff_context_lines: int = 0
    debug: bool = False

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root).resolve()
        if not Path(self.entrypoint).is_absolute():
            self.entrypoint = self.project_root / self.entrypoint
        if self.index_file is not None and not Path(self.index_file).is_absolute():
            self.index_file = self.project_root / self.index_file

    @classmethod
    def discover(cls, project_root: Path, **overrides) -> AnalyzerConfig:
        root = Path(project_root).resolve()
        entrypoint = overrides.pop("entrypoint", None) or find_entrypoint(root)
        return cls(project_root=root, entrypoint=entrypoint, **overrides)

    @property
    def pathspecs(self) -> list[str]:
        """Git pathspecs matching the analysed sources."""
        return [*self.include_patterns, *(f":(exclude){p}" for p in self.exclude_patterns)]

    def debug_print(self, msg: str) -> None:
        if self.debug:
            logger.info("[fire-diff] %s", msg)


def find_entrypoint(project_root: Path) -> Path:
    """
    Locate the TypeScript entry file through firebase.json's ``main`` field.

    firebase.json normally lives one level above the functions directory; the
    compiled ``lib/index.js`` (or ``dist/``) is mapped back to ``src/index.ts``.
    Falls back to ``src/index.ts`` when nothing usable is found.
    """
    default = project_root / DEFAULT_ENTRYPOINT
    candidates = [project_root.parent / "firebase.json", project_root / "firebase.json"]
    config_path = next((p for p in candidates if p.is_file()), None)
    if config_path is None:
        logger.warning("Could not find firebase.json. Assuming '%s'.", DEFAULT_ENTRYPOINT)
        return default

    try:
        firebase_config = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(
            "Could not read %s (%s). Assuming '%s'.", config_path, e, DEFAULT_ENTRYPOINT
        )
        return default

    functions = firebase_config.get("functions") if isinstance(firebase_config, dict) else None
    if isinstance(functions, list):
        functions = next(
            (f for f in functions if isinstance(f, dict) and f.get("source") == project_root.name),
            None,
        )
    main = functions.get("main") if isinstance(functions, dict) else None
    if not main:
        return default

    main_ts = str(main)
    for build_dir in ("lib/", "dist/"):
        if main_ts.startswith(build_dir):
            main_ts = "src/" + main_ts[len(build_dir):]
            break
    if main_ts.endswith(".js"):
        main_ts = main_ts[: -len(".js")] + ".ts"
    return project_root / main_ts
