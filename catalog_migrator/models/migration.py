"""Data models for migration progress, results and checkpoints."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

CHECKPOINT_FORMAT_VERSION = "1.0"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """Serialized with camelCase keys, accepts either spelling on input"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ErrorEntry(_CamelModel):
    """One per-record failure kept in MigrationState.errors"""

    source_id: str
    message: str
    kind: str = "unknown"
    severity: str = "medium"
    timestamp: datetime = Field(default_factory=utc_now)


class MigrationState(_CamelModel):
    """Progress of a migration run.

    Owned and mutated only by the engine. The counters move together
    through record_success/record_failure/record_skip so that
    processed_count == success_count + error_count + skipped_count.
    """

    processed_count: int = Field(0, ge=0)
    success_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)
    skipped_count: int = Field(0, ge=0)
    last_processed_id: Optional[str] = None
    total_records: int = Field(0, ge=0)
    current_batch: int = Field(0, ge=0)
    errors: List[ErrorEntry] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    is_running: bool = False
    is_paused: bool = False

    @model_validator(mode="after")
    def check_counts(self) -> "MigrationState":
        expected = self.success_count + self.error_count + self.skipped_count
        if self.processed_count != expected:
            raise ValueError(
                f"processed_count ({self.processed_count}) must equal "
                f"success + error + skipped ({expected})"
            )
        return self

    def record_success(self) -> None:
        self.processed_count += 1
        self.success_count += 1

    def record_skip(self) -> None:
        self.processed_count += 1
        self.skipped_count += 1

    def record_failure(self, entry: ErrorEntry) -> None:
        self.processed_count += 1
        self.error_count += 1
        self.errors.append(entry)

    @property
    def success_rate(self) -> float:
        if self.processed_count == 0:
            return 0.0
        return self.success_count / self.processed_count


class SyncResult(_CamelModel):
    """Outcome of processing one source record"""

    success: bool
    source_id: str
    remote_product_id: Optional[str] = None
    remote_price_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    skipped: bool = False
    attempts: int = 0
    retries: int = 0
    retry_delay_seconds: float = 0.0
    processing_time_ms: float = 0.0


class CheckpointRecord(_CamelModel):
    """Snapshot written by the checkpoint service; immutable once written"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    timestamp: datetime = Field(default_factory=utc_now)
    format_version: str = CHECKPOINT_FORMAT_VERSION
    state: MigrationState
    config_hash: str = Field(..., min_length=1)
    completed: bool = False
