"""Typed records persisted by the loop's report writer."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

REPORT_SCHEMA = "brainwav.governance.agent-loop.v1"


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False, populate_by_name=True)


class RunStatus(str, Enum):
    """Lifecycle states for a run."""

    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class AttemptStatus(str, Enum):
    """Outcome tag of a single attempt."""

    PASS = "pass"
    FAIL = "fail"
    BLOCKED = "blocked"
    FAILED = "failed"


class VerificationResult(RecordModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    command: str
    status: int


class AttemptRecord(RecordModel):
    """Outcome of one iteration.  Never modified once written."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    iteration: int = Field(ge=1)
    runner_status: int
    verify: List[VerificationResult] = Field(default_factory=list)
    changed_files: List[str] = Field(default_factory=list)
    status: AttemptStatus
    reason: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == AttemptStatus.PASS

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class RunMeta(RecordModel):
    slug: str
    root: str
    config: str
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class BudgetSnapshot(RecordModel):
    max_iterations: int = Field(alias="maxIterations")
    max_minutes: float = Field(alias="maxMinutes")
    max_failures: int = Field(alias="maxFailures")


class RunReport(RecordModel):
    """Whole-run summary owned by the controller until the run ends."""

    schema_id: str = Field(default=REPORT_SCHEMA, alias="schema")
    meta: RunMeta
    budgets: BudgetSnapshot
    iterations: List[AttemptRecord] = Field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    reason: Optional[str] = None

    def append(self, record: AttemptRecord) -> None:
        expected = len(self.iterations) + 1
        if record.iteration != expected:
            raise ValueError(f"attempt {record.iteration} recorded out of order (expected {expected})")
        self.iterations.append(record)

    def finish(self, status: RunStatus, reason: str | None = None) -> None:
        self.status = status
        self.reason = reason
        self.meta.completed_at = utc_now()

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True)
        payload["iterations"] = [record.to_payload() for record in self.iterations]
        if payload.get("reason") is None:
            payload.pop("reason", None)
        return payload


__all__ = [
    "REPORT_SCHEMA",
    "AttemptRecord",
    "AttemptStatus",
    "BudgetSnapshot",
    "RunMeta",
    "RunReport",
    "RunStatus",
    "VerificationResult",
    "utc_now",
]
