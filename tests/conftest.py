from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from agentloop.tools.vcs import GitRepository  # noqa: E402


def run_git(root: Path, *cmd: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *cmd],
        cwd=root,
        check=True,
        capture_output=True,
        text=True,
    )


@pytest.fixture()
def git_repo(tmp_path: Path) -> GitRepository:
    """Create a tiny git repository on ``main`` with one commit."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()

    run_git(repo_root, "init")
    run_git(repo_root, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo_root, "config", "user.email", "loop@example.com")
    run_git(repo_root, "config", "user.name", "Agent Loop")
    run_git(repo_root, "config", "commit.gpgsign", "false")

    (repo_root / "src").mkdir()
    (repo_root / "src" / "app.py").write_text("VALUE = 1\n", encoding="utf-8")
    (repo_root / "README.md").write_text("# demo\n", encoding="utf-8")

    run_git(repo_root, "add", ".")
    run_git(repo_root, "commit", "-m", "Initial commit")

    return GitRepository(repo_root)
