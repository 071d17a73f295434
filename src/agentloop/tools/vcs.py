"""Minimal git helpers for the loop controller.

The controller needs only a handful of queries (branch, clean tree, changed
files) and two side effects (create a branch, commit).  They are described by
:class:`VersionControl` so tests can substitute an in-memory fake.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Protocol, Sequence, Set

LOGGER = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class VersionControl(Protocol):
    """Capabilities the controller consumes from version control."""

    root: Path

    def current_branch(self) -> str | None: ...

    def is_clean(self) -> bool: ...

    def changed_files(self) -> List[str]: ...

    def create_branch(self, name: str) -> None: ...

    def commit(self, message: str) -> str | None: ...


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Return the repository containing ``start``.

        Falls back to ``start`` itself when it is not inside a work tree; the
        queries below then fail (or report no changes) instead of raising here.
        """

        path = Path(start or Path.cwd()).resolve()
        candidate = cls(path)
        result = candidate._run_git(["rev-parse", "--show-toplevel"], check=False)
        toplevel = result.stdout.strip()
        if result.returncode == 0 and toplevel:
            return cls(toplevel)
        LOGGER.debug("No git work tree found from %s; using it as the root", path)
        return candidate

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            process = subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=False,
                check=False,
            )
        except OSError as error:
            if check:
                raise GitError(f"git {' '.join(args)} could not start: {error}") from error
            return subprocess.CompletedProcess(command, 127, "", str(error))
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    # -------------------------------------------------------------- branches
    def current_branch(self) -> str | None:
        """Return the current branch name or ``None`` when detached."""

        result = self._run_git(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        branch = result.stdout.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    def create_branch(self, name: str) -> None:
        """Create ``name`` from the current ``HEAD`` and check it out."""

        self._run_git(["checkout", "-b", name], check=True)

    # ------------------------------------------------------------- repo status
    def _status_entries(self) -> List[tuple[str, str]]:
        result = self._run_git(["status", "--porcelain", "-z", "--untracked-files=all"], check=True)
        tokens = result.stdout.split("\0")
        entries: List[tuple[str, str]] = []
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if len(token) < 4:
                continue
            status = token[:2]
            # Renames and copies carry the original path as the next NUL-separated field.
            if status[0] in {"R", "C"}:
                index += 1
            entries.append((status.strip() or status, token[3:]))
        return entries

    def is_clean(self) -> bool:
        """Return ``True`` only when there are no pending changes of any kind."""

        return not self._status_entries()

    def changed_files(self) -> List[str]:
        """Return paths changed since the last commit, untracked files included.

        Query failures are reported as "no changes".
        """

        try:
            entries = self._status_entries()
        except GitError as error:
            LOGGER.warning("Unable to list changed files: %s", error)
            return []
        paths: Set[str] = {path for _, path in entries if path}
        return sorted(paths)

    # ----------------------------------------------------------------- commits
    def commit(self, message: str) -> str | None:
        """Stage all changes and commit them.

        Returns the new commit SHA, or ``None`` when there was nothing to commit.
        """

        self._run_git(["add", "--all"], check=True)

        commit = self._run_git(["commit", "-m", message], check=False)
        if commit.returncode != 0:
            output = commit.stderr.strip() or commit.stdout.strip() or ""
            if "nothing to commit" in output.lower():
                return None
            raise GitError(f"git commit failed: {output}")

        rev = self._run_git(["rev-parse", "HEAD"], check=True)
        return rev.stdout.strip()


__all__ = ["GitError", "GitRepository", "VersionControl"]
