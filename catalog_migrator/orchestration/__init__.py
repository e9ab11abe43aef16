"""Orchestration of migration runs."""

from catalog_migrator.orchestration.engine import (
    InvalidTransitionError,
    MigrationEngine,
    MigrationPhase,
)
from catalog_migrator.orchestration.report import (
    MigrationReport,
    RunOutcome,
    VerificationSummary,
)

__all__ = [
    "MigrationEngine",
    "MigrationPhase",
    "InvalidTransitionError",
    "MigrationReport",
    "RunOutcome",
    "VerificationSummary",
]
