"""Blocking execution of the generating process and verification commands.

Both operations inherit the caller's stdout/stderr so their output streams
straight to the operator's terminal.  Only the exit status is returned.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Protocol, Sequence

LOGGER = logging.getLogger(__name__)

SPAWN_FAILURE_STATUS = 127


class ProcessRunner(Protocol):
    """Capabilities the controller consumes to run external commands."""

    def run_process(self, command: str, args: Sequence[str], stdin_payload: str | None = None) -> int: ...

    def run_verification(self, command: str) -> int: ...


def _merge_env(extra: Mapping[str, str] | None) -> Dict[str, str]:
    """Merge provided environment overrides with the current process state."""
    env: Dict[str, str] = os.environ.copy()
    if extra:
        env.update({str(key): str(value) for key, value in extra.items()})
    return env


def split_command(command: str) -> List[str]:
    """Split a runner command such as ``"codex exec"`` into argv words.

    A command naming an existing file is kept whole so paths containing
    spaces still run.
    """
    if Path(command).is_file():
        return [command]
    return shlex.split(command)


def _normalise_status(returncode: int | None) -> int:
    # Killed-by-signal shows up as a negative return code; keep it non-zero.
    if returncode is None:
        return 1
    return returncode


class SubprocessRunner:
    """:class:`ProcessRunner` backed by :mod:`subprocess`."""

    def __init__(self, cwd: Path | str, *, env: Mapping[str, str] | None = None) -> None:
        self.cwd = Path(cwd)
        self.env = _merge_env(env)

    def run_process(self, command: str, args: Sequence[str], stdin_payload: str | None = None) -> int:
        """Run ``command`` with ``args`` feeding ``stdin_payload`` on stdin.

        ``command`` may carry its own leading arguments; it is split with
        shell quoting rules but never run through a shell.
        """

        try:
            argv = [*split_command(command), *args]
            process = subprocess.run(  # noqa: S603  # command is sourced from loop config
                argv,
                cwd=self.cwd,
                env=self.env,
                input=stdin_payload if stdin_payload is not None else "",
                text=True,
                check=False,
            )
        except (OSError, ValueError) as error:
            LOGGER.error("Unable to start %s: %s", command, error)
            return SPAWN_FAILURE_STATUS
        return _normalise_status(process.returncode)

    def run_verification(self, command: str) -> int:
        """Run one verification command through the shell."""

        try:
            process = subprocess.run(  # noqa: S602  # verification commands are shell snippets from loop config
                command,
                cwd=self.cwd,
                env=self.env,
                shell=True,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except OSError as error:
            LOGGER.error("Unable to start verification command %r: %s", command, error)
            return SPAWN_FAILURE_STATUS
        return _normalise_status(process.returncode)


__all__ = ["SPAWN_FAILURE_STATUS", "ProcessRunner", "SubprocessRunner"]
