"""
Checkpoint service for resumable migration runs.

Saves a CheckpointRecord after every N processed records. The previous
file is copied to a `.backup` sibling before each overwrite, and the
overwrite itself is atomic (temp file + rename). Checkpoint I/O errors
are logged and never fatal to the run.
"""

import json
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import structlog

from catalog_migrator.models.config import CheckpointConfig
from catalog_migrator.models.migration import CheckpointRecord, MigrationState
from catalog_migrator.observability.metrics import CHECKPOINT_SAVES

logger = structlog.get_logger()


class CheckpointService:
    """
    Persist and reload migration progress.

    A checkpoint is only trusted when its config hash matches the current
    run, it is younger than max_age_hours and it is not flagged completed.
    """

    def __init__(
        self,
        config: CheckpointConfig,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize checkpoint service.

        Args:
            config: Checkpoint configuration
            clock: Source of the current time (injectable for tests)
        """
        self.config = config
        self.path = Path(config.path)
        self.backup_path = self.path.with_name(self.path.name + ".backup")
        self.max_age = timedelta(hours=config.max_age_hours)
        self._clock = clock
        self._last_saved_count = 0

        if not config.enabled:
            logger.info("checkpoint_service_disabled")
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                "checkpoint_dir_unavailable", path=str(self.path.parent), error=str(e)
            )

        logger.info(
            "checkpoint_service_initialized",
            path=str(self.path),
            interval=config.checkpoint_interval,
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def should_save(self, processed_count: int) -> bool:
        """True once checkpoint_interval records were processed since the last save"""
        if not self.config.enabled:
            return False
        return processed_count - self._last_saved_count >= self.config.checkpoint_interval

    def save(
        self, state: MigrationState, config_hash: str, completed: bool = False
    ) -> bool:
        """
        Save a checkpoint atomically, keeping the previous one as backup.

        Args:
            state: Current migration state (copied, not retained)
            config_hash: Hash of the run-shaping configuration
            completed: Whether the run finished

        Returns:
            True if saved successfully
        """
        if not self.config.enabled:
            return True

        try:
            record = CheckpointRecord(
                timestamp=self._clock(),
                state=state.model_copy(deep=True),
                config_hash=config_hash,
                completed=completed,
            )

            if self.path.exists():
                try:
                    shutil.copy2(self.path, self.backup_path)
                except OSError as e:
                    logger.warning("checkpoint_backup_failed", error=str(e))

            # Atomic write: write to temp file, then rename
            temp_file = self.path.with_name(self.path.name + ".tmp")
            with open(temp_file, "w") as f:
                json.dump(record.to_json_dict(), f, indent=2)
            temp_file.replace(self.path)

        except (OSError, ValueError) as e:
            CHECKPOINT_SAVES.labels(status="failed").inc()
            logger.error("checkpoint_save_error", path=str(self.path), error=str(e))
            return False

        self._last_saved_count = state.processed_count
        CHECKPOINT_SAVES.labels(status="success").inc()
        logger.debug(
            "checkpoint_saved",
            processed=state.processed_count,
            last_processed_id=state.last_processed_id,
            completed=completed,
        )
        return True

    def _read(self, path: Path) -> Optional[CheckpointRecord]:
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return CheckpointRecord.model_validate(data)
        except (OSError, ValueError) as e:
            logger.warning("checkpoint_unreadable", path=str(path), error=str(e))
            return None

    def load_record(self) -> Optional[CheckpointRecord]:
        """
        Read the checkpoint file, falling back to the backup.

        Returns:
            The first parseable record, or None if neither file is usable
        """
        record = self._read(self.path)
        if record is None and self.backup_path.exists():
            record = self._read(self.backup_path)
            if record is not None:
                logger.warning("checkpoint_recovered_from_backup")
        return record

    def load(self, config_hash: str) -> Optional[MigrationState]:
        """
        Load resumable state for a run with the given config hash.

        Returns:
            MigrationState to resume from, or None to start fresh
        """
        if not self.config.enabled:
            return None

        record = self.load_record()
        if record is None:
            logger.debug("no_checkpoint_found", path=str(self.path))
            return None

        reason = self._rejection_reason(record, config_hash)
        if reason is not None:
            logger.warning(
                "checkpoint_discarded",
                reason=reason,
                checkpoint_hash=record.config_hash,
                config_hash=config_hash,
            )
            return None

        state = record.state.model_copy(deep=True)
        self._last_saved_count = state.processed_count
        logger.info(
            "checkpoint_loaded",
            processed=state.processed_count,
            last_processed_id=state.last_processed_id,
            saved_at=record.timestamp.isoformat(),
        )
        return state

    def _rejection_reason(
        self, record: CheckpointRecord, config_hash: str
    ) -> Optional[str]:
        if record.config_hash != config_hash:
            return "config_hash_mismatch"
        if record.completed:
            return "run_completed"
        timestamp = record.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        if self._clock() - timestamp > self.max_age:
            return "stale"
        return None

    def exists(self) -> bool:
        return self.path.exists() or self.backup_path.exists()

    def clear(self) -> bool:
        """
        Delete the checkpoint and its backup.

        Returns:
            True if no checkpoint file remains
        """
        ok = True
        for path in (self.path, self.backup_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("checkpoint_clear_error", path=str(path), error=str(e))
                ok = False
        self._last_saved_count = 0
        if ok:
            logger.info("checkpoint_cleared", path=str(self.path))
        return ok
