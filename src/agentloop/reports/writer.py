"""Durable JSON artifacts for loop attempts and run summaries."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from agentloop.utils.slug import file_component

from .schema import AttemptRecord, RunReport, utc_now

LOGGER = logging.getLogger(__name__)


def attempt_filename(slug: str, iteration: int) -> str:
    return f"iteration-{file_component(slug)}-{iteration:02d}.json"


def summary_filename(slug: str, timestamp: datetime) -> str:
    stamp = timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"agent-loop-{file_component(slug)}-{stamp}.json"


def _write_json_atomic(path: Path, payload: Mapping[str, Any]) -> None:
    """Write ``payload`` to ``path`` so readers never observe a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(handle.name, path)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


class ReportWriter:
    """Persist attempt and summary artifacts under ``report_dir``."""

    def __init__(self, report_dir: Path | str) -> None:
        self.report_dir = Path(report_dir)

    def write_attempt(self, slug: str, record: AttemptRecord) -> Path:
        path = self.report_dir / attempt_filename(slug, record.iteration)
        _write_json_atomic(path, record.to_payload())
        LOGGER.debug("Wrote attempt %d report to %s", record.iteration, path)
        return path

    def write_summary(self, slug: str, report: RunReport) -> Path:
        timestamp = report.meta.completed_at or utc_now()
        path = self.report_dir / summary_filename(slug, timestamp)
        _write_json_atomic(path, report.to_payload())
        LOGGER.debug("Wrote run summary to %s", path)
        return path


def load_report(path: Path | str) -> dict[str, Any]:
    """Load a previously written artifact."""
    with Path(path).open("r", encoding="utf-8") as handle:
        return json.load(handle)


__all__ = ["ReportWriter", "attempt_filename", "load_report", "summary_filename"]
