from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

import pytest

from fire_diff.config import AnalyzerConfig
from fire_diff.context import RunContext


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def git(root: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=root, capture_output=True, check=True)


@pytest.fixture
def make_context(tmp_path: Path) -> Callable[[dict[str, str]], RunContext]:
    """Write a project into tmp_path and index it."""

    def _make(files: dict[str, str]) -> RunContext:
        write_files(tmp_path, files)
        return RunContext.from_config(AnalyzerConfig(project_root=tmp_path))

    return _make


@pytest.fixture
def git_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Create a git repository with one commit holding ``files``."""

    def _make(files: dict[str, str]) -> Path:
        git(tmp_path, "init")
        git(tmp_path, "config", "user.email", "test@test.com")
        git(tmp_path, "config", "user.name", "Test")
        write_files(tmp_path, files)
        git(tmp_path, "add", ".")
        git(tmp_path, "commit", "-m", "initial")
        return tmp_path

    return _make
