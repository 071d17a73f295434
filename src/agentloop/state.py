"""Mutable per-run bookkeeping owned by the iteration controller."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence


class FailureKind(str, Enum):
    """Classification of an attempt's failure."""

    NONE = "none"
    PROCESS = "process-failure"
    VERIFICATION = "verification-failure"


def classify_failure(runner_status: int, verify_statuses: Sequence[int]) -> FailureKind:
    """Classify an attempt from its process and verification exit statuses."""
    if runner_status != 0:
        return FailureKind.PROCESS
    if any(status != 0 for status in verify_statuses):
        return FailureKind.VERIFICATION
    return FailureKind.NONE


@dataclass(slots=True)
class IterationState:
    """Counters the controller updates once per iteration.

    ``no_diff_count`` is zero whenever the latest attempt changed at least one
    file.  ``repeated_failure_count`` is zero after a passing attempt, one
    after a failure whose kind differs from the previous failure, and grows by
    one while the same kind keeps failing.
    """

    iteration: int = 0
    elapsed_seconds: float = 0.0
    no_diff_count: int = 0
    repeated_failure_count: int = 0
    failure_count: int = 0
    last_failure: FailureKind = FailureKind.NONE

    @property
    def elapsed_minutes(self) -> float:
        return self.elapsed_seconds / 60.0

    def begin_iteration(self, iteration: int, elapsed_seconds: float) -> None:
        if iteration != self.iteration + 1:
            raise ValueError(f"iteration {iteration} does not follow {self.iteration}")
        self.iteration = iteration
        self.elapsed_seconds = elapsed_seconds

    def record_changes(self, changed_count: int) -> None:
        if changed_count > 0:
            self.no_diff_count = 0
        else:
            self.no_diff_count += 1

    def record_outcome(self, kind: FailureKind) -> None:
        if kind is FailureKind.NONE:
            self.repeated_failure_count = 0
            self.last_failure = FailureKind.NONE
            return

        self.failure_count += 1
        if kind is self.last_failure:
            self.repeated_failure_count += 1
        else:
            self.repeated_failure_count = 1
            self.last_failure = kind


__all__ = ["FailureKind", "IterationState", "classify_failure"]
