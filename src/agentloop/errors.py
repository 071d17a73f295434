"""Exception hierarchy shared by the loop runner and its CLI."""

from __future__ import annotations

from typing import Sequence


class LoopError(RuntimeError):
    """Base class for errors raised by the loop runner."""


class SetupError(LoopError):
    """Raised when the run cannot start (or must abort) because of bad setup.

    Setup errors are reported on stderr and map to exit code ``2``.  They are
    distinct from policy violations, which end a run in the ``failed`` state.
    """


class ConfigError(SetupError):
    """Raised when the configuration document is missing or invalid."""


class BranchPolicyError(SetupError):
    """Raised when branch enforcement preconditions do not hold."""


class PromptRenderError(SetupError):
    """Raised when a rendered prompt still contains placeholders."""

    def __init__(self, unresolved: Sequence[str]) -> None:
        self.unresolved = tuple(unresolved)
        names = ", ".join(self.unresolved) or "(unknown)"
        super().__init__(f"prompt placeholders unresolved: {names}")


__all__ = [
    "BranchPolicyError",
    "ConfigError",
    "LoopError",
    "PromptRenderError",
    "SetupError",
]
