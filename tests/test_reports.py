from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from agentloop.reports.schema import (
    REPORT_SCHEMA,
    AttemptRecord,
    AttemptStatus,
    BudgetSnapshot,
    RunMeta,
    RunReport,
    RunStatus,
    VerificationResult,
)
from agentloop.reports.writer import ReportWriter, attempt_filename, load_report, summary_filename


def _report() -> RunReport:
    return RunReport(
        meta=RunMeta(slug="demo", root="/repo", config="loop.json"),
        budgets=BudgetSnapshot(max_iterations=3, max_minutes=10, max_failures=1),
    )


def test_filenames_are_deterministic() -> None:
    assert attempt_filename("demo", 3) == "iteration-demo-03.json"
    assert attempt_filename("demo", 12) == "iteration-demo-12.json"
    assert attempt_filename("feature/login", 1) == "iteration-feature-login-01.json"

    stamp = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert summary_filename("demo", stamp) == "agent-loop-demo-2026-01-02T03-04-05-678Z.json"


def test_write_attempt_creates_directory_and_omits_empty_reason(tmp_path: Path) -> None:
    writer = ReportWriter(tmp_path / "reports" / "loop")
    record = AttemptRecord(
        iteration=1,
        runner_status=0,
        verify=[VerificationResult(command="make test", status=0)],
        changed_files=["src/a.py"],
        status=AttemptStatus.PASS,
    )

    path = writer.write_attempt("demo", record)

    assert path == tmp_path / "reports" / "loop" / "iteration-demo-01.json"
    assert path.read_text(encoding="utf-8").endswith("}\n")
    assert load_report(path) == {
        "iteration": 1,
        "runner_status": 0,
        "verify": [{"command": "make test", "status": 0}],
        "changed_files": ["src/a.py"],
        "status": "pass",
    }
    assert [entry.name for entry in path.parent.iterdir()] == ["iteration-demo-01.json"]


def test_write_summary_includes_every_attempt(tmp_path: Path) -> None:
    writer = ReportWriter(tmp_path)
    report = _report()
    report.append(AttemptRecord(iteration=1, runner_status=1, status=AttemptStatus.FAIL))
    report.append(
        AttemptRecord(
            iteration=2,
            runner_status=0,
            changed_files=["docs/x.md"],
            status=AttemptStatus.FAILED,
            reason="changes outside allowlist: docs/x.md",
        )
    )
    report.finish(RunStatus.FAILED, "changes outside allowlist: docs/x.md")

    payload = load_report(writer.write_summary("demo", report))

    assert payload["schema"] == REPORT_SCHEMA
    assert payload["status"] == "failed"
    assert payload["reason"] == "changes outside allowlist: docs/x.md"
    assert payload["meta"]["slug"] == "demo"
    assert payload["meta"]["completed_at"]
    assert payload["budgets"] == {"maxIterations": 3, "maxMinutes": 10.0, "maxFailures": 1}
    assert [entry["status"] for entry in payload["iterations"]] == ["fail", "failed"]
    assert "reason" not in payload["iterations"][0]


def test_report_rejects_out_of_order_attempts() -> None:
    report = _report()
    with pytest.raises(ValueError):
        report.append(AttemptRecord(iteration=2, runner_status=0, status=AttemptStatus.PASS))


def test_attempt_records_are_immutable() -> None:
    record = AttemptRecord(iteration=1, runner_status=0, status=AttemptStatus.PASS)
    with pytest.raises(Exception):
        record.status = AttemptStatus.FAIL  # type: ignore[misc]
