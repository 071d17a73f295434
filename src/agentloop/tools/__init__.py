"""Tool integrations consumed by the loop controller."""

from .process import SPAWN_FAILURE_STATUS, ProcessRunner, SubprocessRunner
from .vcs import GitError, GitRepository, VersionControl

__all__ = [
    "GitError",
    "GitRepository",
    "ProcessRunner",
    "SPAWN_FAILURE_STATUS",
    "SubprocessRunner",
    "VersionControl",
]
