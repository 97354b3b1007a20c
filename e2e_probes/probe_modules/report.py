"""Run reports: immutable entries accumulated by a ReportBuilder.

A builder is created at the start of a probe and passed to each step. Steps
record checks, notes and screenshots; ``finalize`` produces a ``ProbeReport``
that is printed and written to ``report.json`` in the run directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from .utils import slugify

NoteLevel = Literal["info", "warning", "error"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CheckEntry:
    name: str
    passed: bool
    detail: Optional[str]
    timestamp: datetime


@dataclass(frozen=True)
class ScreenshotEntry:
    sequence: int
    name: str
    filename: str
    timestamp: datetime


@dataclass(frozen=True)
class NoteEntry:
    level: NoteLevel
    message: str
    timestamp: datetime


class CheckRecord(BaseModel):
    name: str
    passed: bool
    detail: Optional[str] = None
    timestamp: datetime


class ScreenshotRecord(BaseModel):
    sequence: int
    name: str
    filename: str
    timestamp: datetime


class NoteRecord(BaseModel):
    level: NoteLevel
    message: str
    timestamp: datetime


class ReportSummary(BaseModel):
    total: int
    passed: int
    failed: int
    pass_rate: float
    screenshots: int
    duration_seconds: float


class ProbeReport(BaseModel):
    name: str
    run_id: str
    description: str = ""
    started_at: datetime
    finished_at: datetime
    success: bool
    summary: ReportSummary
    checks: List[CheckRecord] = []
    screenshots: List[ScreenshotRecord] = []
    notes: List[NoteRecord] = []
    details: Dict[str, Any] = {}


class ReportBuilder:
    """Accumulates the observations of a single probe run."""

    def __init__(self, name: str, run_id: str, run_dir: Path, description: str = "") -> None:
        self.name = name
        self.run_id = run_id
        self.run_dir = run_dir
        self.description = description
        self.started_at = _now()
        self._checks: Tuple[CheckEntry, ...] = ()
        self._screenshots: Tuple[ScreenshotEntry, ...] = ()
        self._notes: Tuple[NoteEntry, ...] = ()
        self._details: Dict[str, Any] = {}

    @property
    def checks(self) -> Tuple[CheckEntry, ...]:
        return self._checks

    @property
    def screenshots(self) -> Tuple[ScreenshotEntry, ...]:
        return self._screenshots

    @property
    def notes(self) -> Tuple[NoteEntry, ...]:
        return self._notes

    @property
    def failed(self) -> bool:
        return any(not entry.passed for entry in self._checks)

    def check(self, name: str, passed: bool, detail: Optional[str] = None) -> bool:
        """Record a named pass/fail observation and return ``passed``."""
        self._checks += (CheckEntry(name, bool(passed), detail, _now()),)
        return bool(passed)

    def note(self, message: str, level: NoteLevel = "info") -> None:
        self._notes += (NoteEntry(level, message, _now()),)

    def detail(self, key: str, value: Any) -> None:
        """Attach free-form data (task id, event summary) to the final report."""
        self._details[key] = value

    def next_screenshot_path(self, name: str) -> Path:
        """Reserve the next numbered screenshot file (``001-name.png``) and return its path."""
        sequence = len(self._screenshots) + 1
        filename = f"{sequence:03d}-{slugify(name)}.png"
        self._screenshots += (ScreenshotEntry(sequence, name, filename, _now()),)
        return self.run_dir / filename

    def finalize(self) -> ProbeReport:
        finished_at = _now()
        total = len(self._checks)
        passed = sum(1 for entry in self._checks if entry.passed)
        summary = ReportSummary(
            total=total,
            passed=passed,
            failed=total - passed,
            pass_rate=round(passed / total * 100, 1) if total else 0.0,
            screenshots=len(self._screenshots),
            duration_seconds=round((finished_at - self.started_at).total_seconds(), 2),
        )
        return ProbeReport(
            name=self.name,
            run_id=self.run_id,
            description=self.description,
            started_at=self.started_at,
            finished_at=finished_at,
            success=total > 0 and passed == total,
            summary=summary,
            checks=[CheckRecord(**vars(entry)) for entry in self._checks],
            screenshots=[ScreenshotRecord(**vars(entry)) for entry in self._screenshots],
            notes=[NoteRecord(**vars(entry)) for entry in self._notes],
            details=dict(self._details),
        )


def write_report(report: ProbeReport, run_dir: Path) -> Path:
    """Write ``report.json`` into the run directory and return its path."""

    run_dir.mkdir(parents=True, exist_ok=True)
    report_path = run_dir / "report.json"
    report_path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    return report_path


def render_summary(report: ProbeReport, console: Optional[Console] = None) -> None:
    console = console or Console()

    table = Table(title=f"{report.name} ({report.run_id})")
    table.add_column("Check")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")
    for check in report.checks:
        result = "[green]PASS[/green]" if check.passed else "[red]FAIL[/red]"
        table.add_row(check.name, result, check.detail or "")
    console.print(table)

    summary = report.summary
    status = "[green]SUCCESS[/green]" if report.success else "[red]FAILED[/red]"
    console.print(
        f"{status}: {summary.passed}/{summary.total} checks passed "
        f"({summary.pass_rate}%), {summary.screenshots} screenshot(s), {summary.duration_seconds}s"
    )


__all__ = [
    "CheckEntry",
    "NoteEntry",
    "ProbeReport",
    "ReportBuilder",
    "ReportSummary",
    "ScreenshotEntry",
    "render_summary",
    "write_report",
]
