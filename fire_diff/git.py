from __future__ import annotations

import subprocess
from pathlib import Path


class GitError(Exception):
    pass


def run_git_command(*args: str, cwd: Path | None = None) -> str:
    """Run git and return stdout. A non-zero exit raises with git's stderr."""
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise GitError("Git is not installed or not on PATH") from e
    if completed.returncode != 0:
        raise GitError(
            f"Git command failed: git {' '.join(args)}\n{completed.stderr.strip()}"
        )
    return completed.stdout


def is_git_repository(path: Path) -> bool:
    try:
        run_git_command("rev-parse", "--git-dir", cwd=path)
    except GitError:
        return False
    return True


def get_repo_root(path: Path) -> Path:
    return Path(run_git_command("rev-parse", "--show-toplevel", cwd=path).strip()).resolve()


def get_diff(cwd: Path, pathspecs: list[str], base: str = "HEAD", context_lines: int = 3) -> str:
    """Unified diff of the working tree against ``base``, paths relative to ``cwd``."""
    return run_git_command(
        "-c", "core.quotePath=false",
        "diff", base, "--relative", "--no-color", "--no-ext-diff",
        "--src-prefix=a/", "--dst-prefix=b/", f"--unified={context_lines}",
        "--", *pathspecs,
        cwd=cwd,
    )


def get_status(cwd: Path, pathspecs: list[str]) -> str:
    return run_git_command(
        "-c", "core.quotePath=false",
        "status", "--porcelain", "--untracked-files=all", "--", *pathspecs,
        cwd=cwd,
    )
