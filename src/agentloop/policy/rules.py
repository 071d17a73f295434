"""Loop policy rules.

Every check the controller applies between steps of an iteration is a small
rule handler with the signature ``(config, state, observation) ->
PolicyDecision``.  Handlers never touch the filesystem or version control;
the controller gathers what they need into an :class:`IterationObservation`.

Rules are grouped into ordered stages:

``PRE_ITERATION``
    evaluated before the prompt is rendered (stop sentinel, time budget).
``POST_PROCESS``
    evaluated after the generating process ran and changed files were
    collected (allow-list).
``POST_DIFF``
    evaluated after the no-diff counter was updated (per-iteration diff,
    no-progress threshold).
``POST_RECORD``
    evaluated after the attempt was persisted (failure budgets).

Within a stage the first terminating decision wins.
"""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence

from agentloop.config import RunConfiguration
from agentloop.reports.schema import AttemptStatus, RunStatus
from agentloop.state import IterationState
from agentloop.utils.globs import AllowList


@dataclass(slots=True, frozen=True)
class IterationObservation:
    """What the controller observed so far in the current iteration."""

    stop_file_present: bool = False
    changed_files: Sequence[str] = ()


@dataclass(slots=True, frozen=True)
class PolicyDecision:
    """Result of a rule: continue, or terminate the run with a reason."""

    rule: str | None = None
    run_status: RunStatus | None = None
    reason: str | None = None
    attempt_status: AttemptStatus | None = None

    @property
    def terminal(self) -> bool:
        return self.run_status is not None


CONTINUE = PolicyDecision()


class PolicyStage(str, Enum):
    PRE_ITERATION = "pre-iteration"
    POST_PROCESS = "post-process"
    POST_DIFF = "post-diff"
    POST_RECORD = "post-record"


@dataclass(slots=True)
class RuleDefinition:
    """Metadata describing a policy rule."""

    code: str
    title: str
    detail: str
    stage: PolicyStage
    handler: "RuleHandler"


RuleHandler = Callable[[RunConfiguration, IterationState, IterationObservation], PolicyDecision]


def _stop(rule: str, reason: str) -> PolicyDecision:
    return PolicyDecision(rule=rule, run_status=RunStatus.STOPPED, reason=reason)


def _fail(rule: str, reason: str, attempt_status: AttemptStatus | None = None) -> PolicyDecision:
    return PolicyDecision(rule=rule, run_status=RunStatus.FAILED, reason=reason, attempt_status=attempt_status)


def check_stop_file(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    if observation.stop_file_present:
        return _stop("STOP001", "stop file detected")
    return CONTINUE


def check_time_budget(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    if state.elapsed_minutes > config.budgets.max_minutes:
        return _stop("BUD001", "time budget exceeded")
    return CONTINUE


def check_allowlist(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    if not config.diff_policy.enforce_allowlist:
        return CONTINUE
    _, outside = AllowList.from_patterns(config.allowlist).partition(list(observation.changed_files))
    if outside:
        return _fail("ALW001", "changes outside allowlist: " + ", ".join(outside), AttemptStatus.FAILED)
    return CONTINUE


def check_diff_required(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    if config.diff_policy.require_diff_each_iteration and not observation.changed_files:
        return _fail("DIF001", "no changes produced", AttemptStatus.BLOCKED)
    return CONTINUE


def check_no_progress(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    threshold = config.no_progress.max_iterations_without_diff
    if threshold > 0 and state.no_diff_count >= threshold:
        return _fail("PRG001", "no-progress threshold exceeded", AttemptStatus.BLOCKED)
    return CONTINUE


def check_failure_budget(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    if state.failure_count >= config.budgets.max_failures:
        return _fail("BUD002", "failure budget exceeded")
    return CONTINUE


def check_repeated_failure(config: RunConfiguration, state: IterationState, observation: IterationObservation) -> PolicyDecision:
    threshold = config.no_progress.max_repeated_failure
    if threshold > 0 and state.repeated_failure_count >= threshold:
        return _fail("BUD003", "repeated failure threshold exceeded")
    return CONTINUE


POLICY_RULES: Dict[str, RuleDefinition] = {
    rule.code: rule
    for rule in (
        RuleDefinition(
            code="STOP001",
            title="Stop sentinel",
            detail="Stop the run before the next iteration when the configured stop file exists.",
            stage=PolicyStage.PRE_ITERATION,
            handler=check_stop_file,
        ),
        RuleDefinition(
            code="BUD001",
            title="Time budget",
            detail="Stop the run before the next iteration once elapsed wall-clock time exceeds "
            "budgets.maxMinutes.",
            stage=PolicyStage.PRE_ITERATION,
            handler=check_time_budget,
        ),
        RuleDefinition(
            code="ALW001",
            title="Allow-list",
            detail="Fail the run when a changed file matches none of the allowlist patterns. "
            "Enabled unless diffPolicy.enforceAllowlist is false; an empty allowlist allows nothing.",
            stage=PolicyStage.POST_PROCESS,
            handler=check_allowlist,
        ),
        RuleDefinition(
            code="DIF001",
            title="Diff every iteration",
            detail="Fail the run when an iteration changes no files and "
            "diffPolicy.requireDiffEachIteration is true.",
            stage=PolicyStage.POST_DIFF,
            handler=check_diff_required,
        ),
        RuleDefinition(
            code="PRG001",
            title="No-progress threshold",
            detail="Fail the run after noProgress.maxIterationsWithoutDiff consecutive iterations "
            "without changed files.",
            stage=PolicyStage.POST_DIFF,
            handler=check_no_progress,
        ),
        RuleDefinition(
            code="BUD002",
            title="Failure budget",
            detail="Fail the run once budgets.maxFailures attempts have failed.",
            stage=PolicyStage.POST_RECORD,
            handler=check_failure_budget,
        ),
        RuleDefinition(
            code="BUD003",
            title="Repeated failure threshold",
            detail="Fail the run after noProgress.maxRepeatedFailure consecutive failures of the same kind.",
            stage=PolicyStage.POST_RECORD,
            handler=check_repeated_failure,
        ),
    )
}


def rules_for(stage: PolicyStage) -> List[RuleDefinition]:
    """Return the rules of ``stage`` in evaluation order."""
    return [rule for rule in POLICY_RULES.values() if rule.stage is stage]


def evaluate(
    stage: PolicyStage,
    config: RunConfiguration,
    state: IterationState,
    observation: IterationObservation,
) -> PolicyDecision:
    """Evaluate ``stage`` and return the first terminating decision."""
    for rule in rules_for(stage):
        decision = rule.handler(config, state, observation)
        if decision.terminal:
            return decision
    return CONTINUE


def describe_rules() -> str:
    """Return a formatted description of the loop policy rules."""
    lines = ["Loop Policy Rules:"]
    for rule in POLICY_RULES.values():
        detail = textwrap.fill(rule.detail, width=88, subsequent_indent="  ")
        lines.append(f"- {rule.code} [{rule.stage.value}] :: {rule.title}")
        lines.append(f"  {detail}")
    return "\n".join(lines)


__all__ = [
    "CONTINUE",
    "POLICY_RULES",
    "IterationObservation",
    "PolicyDecision",
    "PolicyStage",
    "RuleDefinition",
    "describe_rules",
    "evaluate",
    "rules_for",
]
