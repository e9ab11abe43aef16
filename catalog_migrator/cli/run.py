"""Run command for the migration engine.

Handles flag overrides, engine execution and result display.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from catalog_migrator.cli.utils import (
    DEFAULT_CONFIG_PATH,
    apply_logging,
    display_error,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    logger,
)
from catalog_migrator.observability.context import correlation_id_context, new_run_id
from catalog_migrator.observability.metrics import write_metrics
from catalog_migrator.orchestration import MigrationEngine, MigrationReport, RunOutcome
from catalog_migrator.utils.exceptions import PreflightError


@handle_errors
def run_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to migration config YAML",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Read and validate, but write nothing anywhere"
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", min=1, max=100, help="Records per batch"
    ),
    skip_validation: bool = typer.Option(
        False,
        "--skip-validation",
        help="Enforce structural rules only (no price range checks)",
    ),
    force_resync: bool = typer.Option(
        False, "--force-resync", help="Also select records already synced"
    ),
    resume: bool = typer.Option(
        True,
        "--resume/--fresh",
        help="Resume from a valid checkpoint, or discard it and start fresh",
    ),
    no_checkpoint: bool = typer.Option(
        False, "--no-checkpoint", help="Neither load nor save checkpoints"
    ),
    metrics_file: Optional[Path] = typer.Option(
        None, "--metrics-file", help="Write Prometheus metrics here after the run"
    ),
):
    """Migrate pending source records to the remote platform."""
    overrides: Dict[str, Any] = {}
    if dry_run:
        overrides["dry_run"] = True
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if skip_validation:
        overrides["skip_validation"] = True
    if force_resync:
        overrides["filter.skip_synced"] = False
    if no_checkpoint:
        overrides["checkpoint.enabled"] = False

    config = load_config(config_path, overrides=overrides or None)
    apply_logging(config)

    run_id = new_run_id()
    display_info(f"Starting migration run {run_id}...")
    if config.dry_run:
        display_warning("DRY RUN: no remote or source writes will be made")

    with correlation_id_context(run_id):
        engine = MigrationEngine.from_config(config, run_id=run_id, resume=resume)
        try:
            report = asyncio.run(engine.run(handle_signals=True))
        except PreflightError as e:
            display_error(f"Preflight failed: {e}")
            raise typer.Exit(code=1)
        finally:
            if metrics_file is not None:
                path = write_metrics(metrics_file)
                logger.info("metrics_written", path=str(path))

    _display_results(report)

    if not report.is_clean:
        raise typer.Exit(code=1)


def _display_results(report: MigrationReport) -> None:
    typer.echo("")
    if report.outcome == RunOutcome.COMPLETED:
        typer.secho("Migration completed!", fg=typer.colors.GREEN, bold=True)
    elif report.outcome == RunOutcome.PAUSED:
        typer.secho(
            "Migration paused; rerun to resume.", fg=typer.colors.YELLOW, bold=True
        )
    else:
        typer.secho("Migration aborted!", fg=typer.colors.RED, bold=True)
        typer.echo(f"  Reason: {report.fatal_error}")

    typer.echo(f"  Total records: {report.total_records}")
    typer.echo(f"  Processed: {report.processed}")
    typer.echo(f"  Succeeded: {report.succeeded}")
    typer.echo(f"  Failed: {report.failed}")
    typer.echo(f"  Skipped: {report.skipped}")
    typer.echo(f"  Success rate: {report.success_rate:.1%}")
    typer.echo(f"  Duration: {report.duration_seconds:.1f}s")

    if report.verification is not None:
        v = report.verification
        typer.echo(f"  Verified: {v.verified}/{v.sampled}")

    if report.report_path:
        typer.echo(f"\nReport: {report.report_path}")
    if report.backup_path:
        typer.echo(f"Backup: {report.backup_path}")

    if report.health_warnings:
        display_warning(f"\nHealth warnings: {len(report.health_warnings)}")
        for warning in report.health_warnings:
            typer.echo(f"  - {warning}")

    if report.failures:
        display_warning(f"\nFailures: {len(report.failures)}")
        for entry in report.errors:
            typer.echo(f"  - {entry.source_id}: {entry.message}")
        hidden = len(report.failures) - len(report.errors)
        if hidden > 0:
            typer.echo(f"  ... and {hidden} more (see report)")
    elif report.is_clean:
        display_success("No failures.")
