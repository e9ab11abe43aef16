"""Migration report data structure and JSON artifact."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from catalog_migrator.models.migration import ErrorEntry, SyncResult

logger = structlog.get_logger()


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    PAUSED = "paused"
    ABORTED = "aborted"


@dataclass
class VerificationSummary:
    """Result of re-querying a sample of migrated products"""

    sampled: int = 0
    verified: int = 0
    mismatches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sampled": self.sampled,
            "verified": self.verified,
            "mismatches": self.mismatches,
        }


@dataclass
class MigrationReport:
    """Summary of a migration run.

    Lists every per-record failure and every SyncResult; `errors` holds
    only the first N failures for quick reading.
    """

    run_id: str
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime
    dry_run: bool = False
    total_records: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[ErrorEntry] = field(default_factory=list)
    failures: List[ErrorEntry] = field(default_factory=list)
    results: List[SyncResult] = field(default_factory=list)
    verification: Optional[VerificationSummary] = None
    rate_limiters: Dict[str, Dict] = field(default_factory=dict)
    circuit_breakers: Dict[str, Dict] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    backup_path: Optional[str] = None
    health_warnings: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None
    report_path: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        if self.processed == 0:
            return 0.0
        return self.succeeded / self.processed

    @property
    def is_clean(self) -> bool:
        """Completed with zero failures"""
        return self.outcome == RunOutcome.COMPLETED and self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "runId": self.run_id,
            "outcome": self.outcome.value,
            "dryRun": self.dry_run,
            "timestamp": self.finished_at.isoformat(),
            "summary": {
                "totalRecords": self.total_records,
                "processed": self.processed,
                "succeeded": self.succeeded,
                "failed": self.failed,
                "skipped": self.skipped,
                "successRate": round(self.success_rate * 100, 2),
                "startedAt": self.started_at.isoformat(),
                "finishedAt": self.finished_at.isoformat(),
                "durationSeconds": round(self.duration_seconds, 3),
            },
            "fatalError": self.fatal_error,
            "errors": [e.to_json_dict() for e in self.errors],
            "failures": [e.to_json_dict() for e in self.failures],
            "verification": self.verification.to_dict() if self.verification else None,
            "backupPath": self.backup_path,
            "healthWarnings": self.health_warnings,
            "rateLimiters": self.rate_limiters,
            "circuitBreakers": self.circuit_breakers,
            "options": self.options,
            "results": [r.to_json_dict() for r in self.results],
        }

    def write(self, report_dir: Path) -> Optional[Path]:
        """Write the report as JSON; failures are logged, not raised.

        Returns:
            Path of the written report, or None on I/O error
        """
        report_dir = Path(report_dir)
        stamp = self.finished_at.strftime("%Y%m%dT%H%M%SZ")
        path = report_dir / f"migration-report-{stamp}-{self.run_id}.json"
        try:
            report_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("report_write_failed", path=str(path), error=str(e))
            return None

        self.report_path = str(path)
        logger.info("report_written", path=str(path))
        return path
