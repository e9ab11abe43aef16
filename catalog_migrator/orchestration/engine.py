"""Migration engine.

Top-level state machine of a migration run:

    IDLE → PREFLIGHT → (RESUMING | FRESH) → BATCH_LOOP → VERIFYING → REPORTING → DONE

PAUSED is reachable from BATCH_LOOP on a stop request and only leads to
REPORTING. A critical error aborts BATCH_LOOP straight to REPORTING after
a final checkpoint save.

Features:
- Keyset-paginated batch iteration resumable from a checkpoint
- Bounded per-record concurrency (semaphore)
- Per-record failures recorded without interrupting the batch
- Periodic checkpointing at batch boundaries
- Progress logging with throughput and ETA
- Pre-run backup of the selected source rows
- Periodic health checks of both systems and the error rate
- Optional verification of a sample of migrated products
"""

import asyncio
import random
import signal
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Set

import structlog

from catalog_migrator.models.config import MigrationConfig, RateLimitConfig
from catalog_migrator.models.migration import ErrorEntry, MigrationState, SyncResult
from catalog_migrator.models.product import SourceRecord, ValidatedProduct
from catalog_migrator.observability.logging import bind_context, clear_context
from catalog_migrator.observability.metrics import (
    ACTIVE_RECORDS,
    BATCH_DURATION,
    MIGRATION_PROGRESS,
    RECORD_DURATION,
    RECORDS_PROCESSED,
)
from catalog_migrator.orchestration.report import (
    MigrationReport,
    RunOutcome,
    VerificationSummary,
)
from catalog_migrator.services.checkpoint_service import CheckpointService
from catalog_migrator.services.postgrest_client import PostgrestClient
from catalog_migrator.services.remote_sync_service import (
    DRY_RUN_PRODUCT_PREFIX,
    RemoteSyncService,
)
from catalog_migrator.services.source_store_service import (
    SourceStoreService,
    StoreFilter,
    WriteBack,
)
from catalog_migrator.services.stripe_client import StripeClient
from catalog_migrator.services.validator import DataValidator
from catalog_migrator.utils.circuit_breaker import (
    CircuitBreakerRegistry,
    OperationContext,
)
from catalog_migrator.utils.exceptions import (
    CircuitOpenError,
    MigrationError,
    PreflightError,
    Severity,
    classify_error,
)
from catalog_migrator.utils.hash import calculate_config_hash
from catalog_migrator.utils.rate_limiter import RateLimiter
from catalog_migrator.utils.retry import RetryContext, RetryHandler

logger = structlog.get_logger()


class MigrationPhase(str, Enum):
    IDLE = "idle"
    PREFLIGHT = "preflight"
    RESUMING = "resuming"
    FRESH = "fresh"
    BATCH_LOOP = "batch_loop"
    PAUSED = "paused"
    VERIFYING = "verifying"
    REPORTING = "reporting"
    DONE = "done"


_TRANSITIONS: Dict[MigrationPhase, Set[MigrationPhase]] = {
    MigrationPhase.IDLE: {MigrationPhase.PREFLIGHT},
    MigrationPhase.PREFLIGHT: {MigrationPhase.RESUMING, MigrationPhase.FRESH},
    MigrationPhase.RESUMING: {MigrationPhase.BATCH_LOOP},
    MigrationPhase.FRESH: {MigrationPhase.BATCH_LOOP},
    MigrationPhase.BATCH_LOOP: {
        MigrationPhase.PAUSED,
        MigrationPhase.VERIFYING,
        MigrationPhase.REPORTING,
    },
    MigrationPhase.PAUSED: {MigrationPhase.REPORTING},
    MigrationPhase.VERIFYING: {MigrationPhase.REPORTING},
    MigrationPhase.REPORTING: {MigrationPhase.DONE},
    MigrationPhase.DONE: set(),
}

# Operation classes every record pipeline depends on
RECORD_OPERATIONS = (
    OperationContext.FIND_PRODUCT_BY_METADATA,
    OperationContext.CREATE_PRODUCT,
    OperationContext.FIND_PRICE,
    OperationContext.CREATE_PRICE,
    OperationContext.STORE_WRITE_RESULT,
)


class InvalidTransitionError(RuntimeError):
    pass


class MigrationEngine:
    """Migrate pending source records to the remote platform.

    The engine is the single writer of MigrationState. Record pipelines
    run concurrently on one event loop, bounded by max_concurrency.
    """

    def __init__(
        self,
        config: MigrationConfig,
        store: SourceStoreService,
        remote: RemoteSyncService,
        validator: DataValidator,
        checkpoints: CheckpointService,
        breakers: CircuitBreakerRegistry,
        rate_limiters: Optional[Dict[str, RateLimiter]] = None,
        run_id: str = "local",
        resume: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the engine.

        Args:
            config: Effective configuration of the run
            store: Source store service
            remote: Remote sync service
            validator: Record validator/transformer
            checkpoints: Checkpoint service
            breakers: Circuit breaker registry shared with the retry handlers
            rate_limiters: Limiters to include in progress logs and the report
            run_id: Identifier of this run
            resume: Resume from a valid checkpoint if one exists
            sleep: Inter-batch sleep (injectable for tests)
        """
        self.config = config
        self.store = store
        self.remote = remote
        self.validator = validator
        self.checkpoints = checkpoints
        self.breakers = breakers
        self.rate_limiters = rate_limiters or {}
        self.run_id = run_id
        self.resume = resume
        self._sleep = sleep

        self.config_hash = calculate_config_hash(config)
        self.base_filter = StoreFilter.from_config(config.filter)
        self.phase = MigrationPhase.IDLE
        self.state = MigrationState()
        self.results: List[SyncResult] = []
        self.total_batches = 0
        # A dry run never reads or replaces the checkpoint of real runs
        self.persist_checkpoints = checkpoints.enabled and not config.dry_run
        self.backup_path: Optional[Path] = None
        self.health_warnings: List[str] = []

        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._fatal_error: Optional[MigrationError] = None
        self._stop_requested = False
        self._run_started = time.monotonic()
        self._started_at = datetime.now(timezone.utc)

    @classmethod
    def from_config(
        cls, config: MigrationConfig, run_id: str = "local", resume: bool = True
    ) -> "MigrationEngine":
        """Wire the engine and its collaborators from configuration."""
        breakers = CircuitBreakerRegistry(config.circuit_breaker)

        remote_limiter = RateLimiter(config.rate_limit, name="remote")
        store_limiter = RateLimiter(
            RateLimitConfig(
                requests_per_window=config.source.requests_per_window,
                window_seconds=config.rate_limit.window_seconds,
            ),
            name="store",
        )

        remote = RemoteSyncService(
            StripeClient(config.remote),
            RetryHandler(config.retry, remote_limiter, breakers),
            metadata_key=config.remote.idempotency_metadata_key,
            name_fallback=config.remote.name_fallback,
            name_search_limit=config.remote.name_search_limit,
            dry_run=config.dry_run,
            run_id=run_id,
        )
        store = SourceStoreService(
            PostgrestClient(config.source),
            RetryHandler(config.retry, store_limiter, breakers),
            table=config.source.table,
            dry_run=config.dry_run,
        )
        validator = DataValidator(
            config.validation,
            idempotency_key=config.remote.idempotency_metadata_key,
            default_currency=config.remote.default_currency,
            lenient=config.skip_validation,
        )

        return cls(
            config=config,
            store=store,
            remote=remote,
            validator=validator,
            checkpoints=CheckpointService(config.checkpoint),
            breakers=breakers,
            rate_limiters={"remote": remote_limiter, "store": store_limiter},
            run_id=run_id,
            resume=resume,
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: MigrationPhase) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"Invalid transition {self.phase.value} -> {target.value}"
            )
        logger.debug("phase_changed", from_phase=self.phase.value, to_phase=target.value)
        self.phase = target

    def request_stop(self) -> None:
        """Ask the engine to pause at the next batch boundary.

        A request made before the batch loop starts (during preflight or
        state initialization) is honored before the first batch.
        """
        if not self._stop_requested:
            logger.warning("stop_requested", phase=self.phase.value)
        self._stop_requested = True
        self.state.is_paused = True

    def _install_signal_handlers(self) -> List[int]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.debug("signal_handler_unavailable", signal=int(sig))
        return installed

    def _remove_signal_handlers(self, installed: List[int]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, handle_signals: bool = False) -> MigrationReport:
        """Execute the migration.

        Args:
            handle_signals: Pause on SIGINT/SIGTERM instead of dying

        Returns:
            Report of the run (also written to report_dir)

        Raises:
            PreflightError: If either system is unreachable
        """
        installed = self._install_signal_handlers() if handle_signals else []
        bind_context(run_id=self.run_id, dry_run=self.config.dry_run)
        try:
            return await self._run()
        finally:
            clear_context()
            self._remove_signal_handlers(installed)

    async def _run(self) -> MigrationReport:
        self._started_at = datetime.now(timezone.utc)
        self._run_started = time.monotonic()

        logger.info(
            "migration_started",
            batch_size=self.config.batch_size,
            max_concurrency=self.config.max_concurrency,
            strategy=self.base_filter.strategy.value,
            config_hash=self.config_hash,
        )

        total_pending = await self._preflight()
        await self._initialize_state(total_pending)

        outcome = RunOutcome.COMPLETED
        self._transition(MigrationPhase.BATCH_LOOP)
        try:
            await self._batch_loop()
        except MigrationError as e:
            outcome = RunOutcome.ABORTED
            self._fatal_error = e
            logger.error(
                "migration_aborted",
                error_kind=e.kind.value,
                error=str(e),
                processed=self.state.processed_count,
            )
            self._save_checkpoint()

        verification = None
        if outcome == RunOutcome.COMPLETED and self._stop_requested:
            outcome = RunOutcome.PAUSED
            self._transition(MigrationPhase.PAUSED)
            self._save_checkpoint()
            logger.warning("migration_paused", processed=self.state.processed_count)
        elif outcome == RunOutcome.COMPLETED and self._should_verify():
            self._transition(MigrationPhase.VERIFYING)
            verification = await self._verify()

        self._transition(MigrationPhase.REPORTING)
        self.state.is_running = False
        report = self._build_report(outcome, verification)
        self._finalize_checkpoint(report)
        report.write(Path(self.config.report_dir))

        self._transition(MigrationPhase.DONE)
        logger.info(
            "migration_finished",
            outcome=outcome.value,
            processed=report.processed,
            succeeded=report.succeeded,
            failed=report.failed,
            skipped=report.skipped,
            success_rate=f"{report.success_rate:.1%}",
            duration_seconds=round(report.duration_seconds, 2),
        )
        return report

    async def _preflight(self) -> int:
        self._transition(MigrationPhase.PREFLIGHT)

        checks = (
            ("source_store", self.store.ping),
            ("remote_platform", self.remote.ping),
        )
        for name, check in checks:
            try:
                await check()
            except Exception as e:
                logger.error("preflight_failed", system=name, error=str(e))
                raise PreflightError(f"{name} is unreachable: {e}") from e
            logger.info("preflight_ok", system=name)

        try:
            total = await self.store.count_pending(self.base_filter)
        except Exception as e:
            logger.error("preflight_failed", system="source_store", error=str(e))
            raise PreflightError(f"Cannot count pending records: {e}") from e
        return total

    async def _initialize_state(self, total_pending: int) -> None:
        if self.config.dry_run and self.checkpoints.enabled:
            logger.info("dry_run_checkpoint_disabled", path=str(self.checkpoints.path))

        resumed = None
        if self.resume and self.persist_checkpoints:
            resumed = self.checkpoints.load(self.config_hash)

        if resumed is not None:
            self._transition(MigrationPhase.RESUMING)
            remaining = total_pending
            if resumed.last_processed_id is not None:
                remaining = await self.store.count_pending(
                    self.base_filter.after(resumed.last_processed_id)
                )
            self.state = resumed
            self.state.total_records = resumed.processed_count + remaining
            self.state.current_batch = resumed.processed_count // self.config.batch_size
            logger.info(
                "migration_resumed",
                processed=resumed.processed_count,
                last_processed_id=resumed.last_processed_id,
                remaining=remaining,
            )
        else:
            self._transition(MigrationPhase.FRESH)
            await self._create_backup()
            if self.persist_checkpoints and self.checkpoints.exists():
                # Invalid, stale, completed or explicitly ignored checkpoint
                self.checkpoints.clear()
            self.state = MigrationState(total_records=total_pending)
            self._save_checkpoint()

        self.state.is_running = True
        self.state.is_paused = self._stop_requested
        batch_size = self.config.batch_size
        self.total_batches = -(-self.state.total_records // batch_size)
        logger.info(
            "migration_planned",
            total_records=self.state.total_records,
            total_batches=self.total_batches,
        )

    async def _create_backup(self) -> None:
        """Snapshot the selected rows before a fresh run touches them."""
        backup = self.config.backup
        if not backup.enabled or self.config.dry_run:
            return
        try:
            self.backup_path = await self.store.create_backup(
                self.base_filter, Path(backup.directory), page_size=backup.page_size
            )
        except (MigrationError, OSError) as e:
            logger.error("backup_failed", directory=backup.directory, error=str(e))
            raise PreflightError(f"Cannot back up source rows: {e}") from e

    async def _batch_loop(self) -> None:
        consecutive_failures = 0

        while not self._stop_requested:
            batch_filter = self.base_filter.after(self.state.last_processed_id)
            try:
                records = await self.store.get_batch(
                    0, self.config.batch_size, batch_filter
                )
            except Exception as e:
                error = classify_error(e)
                if error.is_critical:
                    raise error
                consecutive_failures += 1
                logger.error(
                    "batch_fetch_failed",
                    after_id=batch_filter.after_id,
                    attempt=consecutive_failures,
                    error=str(error),
                )
                if consecutive_failures >= self.config.max_consecutive_batch_failures:
                    raise error
                await self._sleep(self.config.inter_batch_delay_seconds)
                continue

            consecutive_failures = 0
            if not records:
                break

            self.state.current_batch += 1
            with BATCH_DURATION.time():
                await self._process_batch(records)

            if self._fatal_error is not None:
                raise self._fatal_error

            if self.checkpoints.should_save(self.state.processed_count):
                self._save_checkpoint()
            self._log_progress()

            health = self.config.health_check
            due = self.state.current_batch % health.interval_batches == 0
            if health.enabled and due:
                await self._health_check()

            await self._sleep(self.config.inter_batch_delay_seconds)

    async def _process_batch(self, records: List[SourceRecord]) -> None:
        completed: Set[str] = set()
        to_validate = []

        for record in records:
            if self.base_filter.skip_synced and record.is_synced:
                self._record_result(
                    SyncResult(
                        success=True,
                        skipped=True,
                        source_id=record.id,
                        remote_product_id=record.stripe_product_id,
                        remote_price_id=record.stripe_price_id,
                    )
                )
                completed.add(record.id)
            else:
                to_validate.append(record)

        validation = self.validator.validate_batch(to_validate)

        for invalid in validation.invalid:
            message = invalid.message
            await self._mark_failed(invalid.record.id, message)
            self._record_result(
                SyncResult(
                    success=False,
                    source_id=invalid.record.id,
                    error=message,
                    error_kind="validation",
                ),
                severity=Severity.LOW,
            )
            completed.add(invalid.record.id)

        for source_id, warnings in validation.warnings.items():
            logger.info("record_warnings", record_id=source_id, warnings=warnings)

        results = await asyncio.gather(
            *(self._process_record(product) for product in validation.valid)
        )
        completed.update(r.source_id for r in results if r is not None)

        # Only advance past a contiguous prefix of fully resolved records
        for record in records:
            if record.id not in completed:
                break
            self.state.last_processed_id = record.id

        logger.info(
            "batch_completed",
            batch=self.state.current_batch,
            records=len(records),
            invalid=len(validation.invalid),
            succeeded=sum(1 for r in results if r is not None and r.success),
            failed=sum(1 for r in results if r is not None and not r.success),
        )

    async def _process_record(self, product: ValidatedProduct) -> Optional[SyncResult]:
        async with self._semaphore:
            if self._fatal_error is not None:
                return None

            started = time.monotonic()
            ACTIVE_RECORDS.inc()
            severity = Severity.LOW
            with RetryContext.activate() as retry_ctx:
                try:
                    self._check_breakers()
                    ids = await self.remote.find_or_create(product)
                    await self.store.write_sync_result(
                        product.source_id,
                        WriteBack(
                            remote_product_id=ids.product_id,
                            remote_price_id=ids.price_id,
                        ),
                    )
                    result = SyncResult(
                        success=True,
                        source_id=product.source_id,
                        remote_product_id=ids.product_id,
                        remote_price_id=ids.price_id,
                    )
                except Exception as e:
                    error = classify_error(e)
                    severity = error.severity
                    if error.is_critical:
                        # Left unprocessed so a resumed run picks the record up again
                        if self._fatal_error is None:
                            self._fatal_error = error
                        logger.error(
                            "record_critical_error",
                            record_id=product.source_id,
                            error_kind=error.kind.value,
                            error=str(error),
                        )
                        return None
                    await self._mark_failed(product.source_id, str(error))
                    result = SyncResult(
                        success=False,
                        source_id=product.source_id,
                        error=str(error),
                        error_kind=error.kind.value,
                    )
                finally:
                    ACTIVE_RECORDS.dec()

            elapsed = time.monotonic() - started
            result.attempts = retry_ctx.total_attempts
            result.retries = retry_ctx.total_retries
            result.retry_delay_seconds = round(retry_ctx.total_delay_seconds, 3)
            result.processing_time_ms = round(elapsed * 1000, 2)
            RECORD_DURATION.observe(elapsed)
            self._record_result(result, severity=severity)
            return result

    def _check_breakers(self) -> None:
        for context in RECORD_OPERATIONS:
            breaker = self.breakers.get(context)
            if breaker.is_open():
                raise CircuitOpenError(context.value, breaker.cooldown_remaining())

    async def _mark_failed(self, source_id: str, reason: str) -> None:
        try:
            await self.store.mark_failed(source_id, reason)
        except MigrationError as e:
            # mark_failed only lets critical errors through
            if self._fatal_error is None:
                self._fatal_error = e

    def _record_result(
        self, result: SyncResult, severity: Severity = Severity.LOW
    ) -> None:
        self.results.append(result)
        if result.skipped:
            self.state.record_skip()
            RECORDS_PROCESSED.labels(status="skipped").inc()
        elif result.success:
            self.state.record_success()
            RECORDS_PROCESSED.labels(status="success").inc()
        else:
            self.state.record_failure(
                ErrorEntry(
                    source_id=result.source_id,
                    message=result.error or "unknown error",
                    kind=result.error_kind or "unknown",
                    severity=severity.value,
                )
            )
            RECORDS_PROCESSED.labels(status="failed").inc()
            logger.warning(
                "record_failed",
                record_id=result.source_id,
                error_kind=result.error_kind,
                error=result.error,
            )

    # ------------------------------------------------------------------
    # Progress, checkpoints, verification, report
    # ------------------------------------------------------------------

    def _log_progress(self) -> None:
        state = self.state
        total = max(state.total_records, state.processed_count)
        ratio = state.processed_count / total if total else 1.0
        elapsed = time.monotonic() - self._run_started
        rate = state.processed_count / elapsed if elapsed > 0 else 0.0
        remaining = total - state.processed_count
        eta = remaining / rate if rate > 0 else None

        MIGRATION_PROGRESS.set(ratio)
        logger.info(
            "progress_update",
            batch=state.current_batch,
            total_batches=self.total_batches,
            processed=state.processed_count,
            total=total,
            progress=f"{ratio:.1%}",
            succeeded=state.success_count,
            failed=state.error_count,
            skipped=state.skipped_count,
            records_per_second=round(rate, 2),
            eta_seconds=round(eta, 1) if eta is not None else None,
            rate_limiter=(
                self.rate_limiters["remote"].get_stats()
                if "remote" in self.rate_limiters
                else None
            ),
        )

    async def _health_check(self) -> List[str]:
        """Re-check both systems mid-run; issues are logged, never fatal.

        Returns:
            Issues found by this check (also kept for the report)
        """
        issues: List[str] = []
        checks = (
            ("source_store", self.store.ping),
            ("remote_platform", self.remote.ping),
        )
        for name, check in checks:
            try:
                await check()
            except Exception as e:
                logger.warning("health_check_failed", system=name, error=str(e))
                issues.append(f"{name} unreachable: {e}")

        state = self.state
        threshold = self.config.health_check.error_rate_threshold
        if state.processed_count:
            error_rate = state.error_count / state.processed_count
            if error_rate > threshold:
                logger.warning(
                    "high_error_rate",
                    error_rate=f"{error_rate:.1%}",
                    threshold=f"{threshold:.1%}",
                    failed=state.error_count,
                    processed=state.processed_count,
                )
                issues.append(f"error rate {error_rate:.1%} above {threshold:.1%}")

        open_circuits = [c.value for c in self.breakers.open_contexts()]
        if open_circuits:
            logger.warning("circuits_open", operations=open_circuits)
            issues.append(f"open circuits: {', '.join(open_circuits)}")

        if not issues:
            logger.debug("health_check_ok", batch=state.current_batch)
        self.health_warnings.extend(
            f"batch {state.current_batch}: {issue}" for issue in issues
        )
        return issues

    def _save_checkpoint(self, completed: bool = False) -> None:
        if not self.persist_checkpoints:
            return
        self.checkpoints.save(self.state, self.config_hash, completed=completed)

    def _finalize_checkpoint(self, report: MigrationReport) -> None:
        if report.outcome != RunOutcome.COMPLETED or not self.persist_checkpoints:
            return
        if report.failed == 0:
            self.checkpoints.clear()
        else:
            self._save_checkpoint(completed=True)

    def _should_verify(self) -> bool:
        return (
            self.config.verify_after_migration
            and not self.config.dry_run
            and self.config.verification_sample_size > 0
        )

    async def _verify(self) -> VerificationSummary:
        candidates = [
            (r.source_id, r.remote_product_id)
            for r in self.results
            if r.success
            and not r.skipped
            and r.remote_product_id
            and not r.remote_product_id.startswith(DRY_RUN_PRODUCT_PREFIX)
        ]
        size = min(self.config.verification_sample_size, len(candidates))
        sample = random.sample(candidates, size)
        summary = VerificationSummary(sampled=size)

        for source_id, remote_product_id in sample:
            try:
                ok = await self.remote.verify_product(remote_product_id)
            except MigrationError as e:
                logger.warning(
                    "verification_error", record_id=source_id, error=str(e)
                )
                ok = False
            if ok:
                summary.verified += 1
            else:
                summary.mismatches.append(source_id)
                logger.warning(
                    "verification_mismatch",
                    record_id=source_id,
                    remote_product_id=remote_product_id,
                )

        logger.info(
            "verification_completed",
            sampled=summary.sampled,
            verified=summary.verified,
            mismatches=len(summary.mismatches),
        )
        return summary

    def _build_report(
        self, outcome: RunOutcome, verification: Optional[VerificationSummary]
    ) -> MigrationReport:
        state = self.state
        return MigrationReport(
            run_id=self.run_id,
            outcome=outcome,
            started_at=self._started_at,
            finished_at=datetime.now(timezone.utc),
            dry_run=self.config.dry_run,
            total_records=state.total_records,
            processed=state.processed_count,
            succeeded=state.success_count,
            failed=state.error_count,
            skipped=state.skipped_count,
            errors=list(state.errors[: self.config.report_error_limit]),
            failures=list(state.errors),
            results=list(self.results),
            verification=verification,
            rate_limiters={n: rl.get_stats() for n, rl in self.rate_limiters.items()},
            circuit_breakers=self.breakers.get_all_stats(),
            options={
                "dryRun": self.config.dry_run,
                "batchSize": self.config.batch_size,
                "maxConcurrency": self.config.max_concurrency,
                "skipValidation": self.config.skip_validation,
                "strategy": self.base_filter.strategy.value,
                "skipSynced": self.base_filter.skip_synced,
                "resume": self.resume,
                "checkpointEnabled": self.persist_checkpoints,
                "backupEnabled": self.config.backup.enabled,
                "configHash": self.config_hash,
            },
            backup_path=str(self.backup_path) if self.backup_path else None,
            health_warnings=list(self.health_warnings),
            fatal_error=str(self._fatal_error) if self._fatal_error else None,
        )
