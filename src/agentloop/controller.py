"""Bounded iteration controller.

The controller drives the invoke-verify-commit cycle: it renders the prompt,
runs the generating process, inspects what changed, runs every verification
command, records the attempt and decides whether another attempt may start.
Policy decisions are delegated to :mod:`agentloop.policy.rules`; the other
collaborators (version control, process runner, report writer) only supply
data and never influence ordering.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Sequence

from .config import RunConfiguration
from .errors import BranchPolicyError, SetupError
from .policy.rules import IterationObservation, PolicyDecision, PolicyStage, evaluate
from .prompts import PromptContext, load_prompt_template, render_prompt
from .reports.schema import (
    AttemptRecord,
    AttemptStatus,
    BudgetSnapshot,
    RunMeta,
    RunReport,
    RunStatus,
    VerificationResult,
)
from .reports.writer import ReportWriter
from .state import FailureKind, IterationState, classify_failure
from .tools.process import ProcessRunner
from .tools.vcs import GitError, VersionControl

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], None]


def format_commit_message(template: str, *, slug: str, iteration: int) -> str:
    """Fill ``{slug}`` and ``{iteration}`` in a commit message template."""
    return template.replace("{slug}", slug).replace("{iteration}", str(iteration))


class IterationController:
    """Run one bounded loop for ``slug`` under ``config``."""

    def __init__(
        self,
        config: RunConfiguration,
        *,
        slug: str,
        repo: VersionControl,
        runner: ProcessRunner,
        config_path: str = "",
        writer: ReportWriter | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self.config = config
        self.slug = slug
        self.repo = repo
        self.runner = runner
        self.config_path = config_path
        self.root = Path(repo.root)
        self.report_dir = config.resolve(self.root, config.report_dir)
        self.stop_path = config.resolve(self.root, config.stop_file)
        self.prompt_path = config.resolve(self.root, config.prompt_file)
        self.writer = writer or ReportWriter(self.report_dir)
        self.state = IterationState()
        self._clock = clock
        self._sleep = sleep
        self._template: str | None = None

    # ---------------------------------------------------------------- setup
    def initialize(self) -> str:
        """Validate preconditions and return the prompt template.

        Raises :class:`SetupError` when a precondition fails.
        """

        if not self.slug or not self.slug.strip():
            raise SetupError("--slug <slug> is required.")
        if not self.config.verify_commands:
            raise SetupError("verify.commands must contain at least one command.")
        if self.config.branch.enforced:
            self._enforce_branch()
        self._template = load_prompt_template(self.prompt_path)
        return self._template

    def _enforce_branch(self) -> None:
        prefix = self.config.branch.prefix
        expected = f"{prefix}{self.slug}"

        current = self.repo.current_branch()
        if not current:
            raise BranchPolicyError("unable to determine git branch.")
        try:
            clean = self.repo.is_clean()
        except GitError as error:
            raise BranchPolicyError(f"unable to inspect working tree: {error}") from error
        if not clean:
            raise BranchPolicyError("working tree must be clean before starting the loop.")

        if not current.startswith(prefix):
            try:
                self.repo.create_branch(expected)
            except GitError as error:
                raise BranchPolicyError(f"failed to create loop branch: {error}") from error
            LOGGER.info("Created loop branch %s (was on %s)", expected, current)
        elif current != expected:
            raise BranchPolicyError(f"loop branch must be {expected} (currently {current}).")

    # ------------------------------------------------------------------ run
    def run(self) -> RunReport:
        """Execute the loop and return the final report.

        Setup errors (including unresolved prompt placeholders) propagate
        without writing a summary; every other ending writes one.
        """

        template = self._template if self._template is not None else self.initialize()

        budgets = self.config.budgets
        started = self._clock()
        report = RunReport(
            meta=RunMeta(slug=self.slug, root=self.root.as_posix(), config=self.config_path),
            budgets=BudgetSnapshot(
                max_iterations=budgets.max_iterations,
                max_minutes=budgets.max_minutes,
                max_failures=budgets.max_failures,
            ),
        )

        for iteration in range(1, budgets.max_iterations + 1):
            self.state.begin_iteration(iteration, self._clock() - started)
            if self._run_iteration(report, iteration, template):
                break

        if report.status is RunStatus.RUNNING:
            report.finish(RunStatus.COMPLETED)
        self.writer.write_summary(self.slug, report)
        LOGGER.info("Run %s finished: %s%s", self.slug, report.status.value, f" ({report.reason})" if report.reason else "")
        return report

    def _run_iteration(self, report: RunReport, iteration: int, template: str) -> bool:
        """Run one iteration; return ``True`` when the run has terminated."""

        decision = self._evaluate(
            PolicyStage.PRE_ITERATION,
            IterationObservation(stop_file_present=self.stop_path.exists()),
        )
        if decision.terminal:
            self._terminate(report, decision)
            return True

        LOGGER.info("Starting iteration %d/%d for %s", iteration, self.config.budgets.max_iterations, self.slug)
        prompt = render_prompt(template, self._prompt_context(iteration))

        runner_cfg = self.config.runner
        runner_status = self.runner.run_process(runner_cfg.command, runner_cfg.args, prompt)
        changed = self._collect_changes()
        observation = IterationObservation(changed_files=tuple(changed))

        decision = self._evaluate(PolicyStage.POST_PROCESS, observation)
        if decision.terminal:
            self._record_violation(report, iteration, runner_status, changed, decision)
            return True

        self.state.record_changes(len(changed))
        decision = self._evaluate(PolicyStage.POST_DIFF, observation)
        if decision.terminal:
            self._record_violation(report, iteration, runner_status, changed, decision)
            return True

        verify_results = [
            VerificationResult(command=command, status=self.runner.run_verification(command))
            for command in self.config.verify_commands
        ]
        kind = classify_failure(runner_status, [result.status for result in verify_results])
        self.state.record_outcome(kind)

        record = AttemptRecord(
            iteration=iteration,
            runner_status=runner_status,
            verify=verify_results,
            changed_files=changed,
            status=AttemptStatus.PASS if kind is FailureKind.NONE else AttemptStatus.FAIL,
        )
        passed = record.passed
        self._persist(report, record)

        if passed and self.config.commit_policy.enabled and changed:
            self._commit(iteration)

        decision = self._evaluate(PolicyStage.POST_RECORD, observation)
        if decision.terminal:
            self._terminate(report, decision)
            return True

        if not passed or not changed:
            self._backoff()
        return False

    # -------------------------------------------------------------- helpers
    def _evaluate(self, stage: PolicyStage, observation: IterationObservation) -> PolicyDecision:
        return evaluate(stage, self.config, self.state, observation)

    def _prompt_context(self, iteration: int) -> PromptContext:
        return PromptContext(
            slug=self.slug,
            iteration=iteration,
            max_iterations=self.config.budgets.max_iterations,
            allowlist=self.config.allowlist,
            verify_commands=self.config.verify_commands,
        )

    def _collect_changes(self) -> List[str]:
        """Return changed files, minus the loop's own reports and stop file."""

        ignored_dir = self._relative(self.report_dir)
        ignored_file = self._relative(self.stop_path)
        changed: List[str] = []
        for path in self.repo.changed_files():
            if ignored_dir and (path == ignored_dir or path.startswith(ignored_dir + "/")):
                continue
            if ignored_file and path == ignored_file:
                continue
            changed.append(path)
        return changed

    def _relative(self, path: Path) -> str | None:
        try:
            return path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return None

    def _record_violation(
        self,
        report: RunReport,
        iteration: int,
        runner_status: int,
        changed: Sequence[str],
        decision: PolicyDecision,
    ) -> None:
        record = AttemptRecord(
            iteration=iteration,
            runner_status=runner_status,
            verify=[],
            changed_files=list(changed),
            status=decision.attempt_status or AttemptStatus.FAILED,
            reason=decision.reason,
        )
        self._persist(report, record)
        self._terminate(report, decision)

    def _persist(self, report: RunReport, record: AttemptRecord) -> None:
        self.writer.write_attempt(self.slug, record)
        report.append(record)

    def _terminate(self, report: RunReport, decision: PolicyDecision) -> None:
        if decision.run_status is None:
            raise ValueError(f"policy decision from {decision.rule} does not end the run")
        LOGGER.warning("%s: %s", decision.rule, decision.reason)
        report.finish(decision.run_status, decision.reason)

    def _commit(self, iteration: int) -> None:
        message = format_commit_message(
            self.config.commit_policy.message_template,
            slug=self.slug,
            iteration=iteration,
        )
        try:
            sha = self.repo.commit(message)
        except GitError as error:
            LOGGER.warning("Commit for iteration %d failed; continuing: %s", iteration, error)
            return
        if sha:
            LOGGER.info("Committed iteration %d as %s", iteration, sha[:7])

    def _backoff(self) -> None:
        delay_ms = self.config.backoff_ms
        if delay_ms <= 0:
            return
        LOGGER.debug("Backing off for %d ms", delay_ms)
        self._sleep(delay_ms / 1000.0)


__all__ = ["IterationController", "format_commit_message"]
