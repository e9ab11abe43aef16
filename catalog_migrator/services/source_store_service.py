"""
Source store access for the migration engine.

Pending rows are read in id order, keyset-paginated with `after_id`, so
rows flipped to "synced" during a run never shift the following pages.
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from catalog_migrator.models.config import FilterConfig, FilterStrategy
from catalog_migrator.models.product import SourceRecord, SyncStatus
from catalog_migrator.services.postgrest_client import PostgrestClient
from catalog_migrator.utils.circuit_breaker import OperationContext
from catalog_migrator.utils.exceptions import MigrationError, NotFoundError
from catalog_migrator.utils.retry import RetryHandler

logger = structlog.get_logger()

SYNC_ERROR_MAX_LENGTH = 500
BACKUP_FORMAT_VERSION = "1.0"


@dataclass(frozen=True)
class StoreFilter:
    """Selection criteria for pending source rows"""

    strategy: FilterStrategy = FilterStrategy.FULL
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    product_ids: Tuple[str, ...] = field(default_factory=tuple)
    skip_synced: bool = True
    after_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: FilterConfig) -> "StoreFilter":
        return cls(
            strategy=FilterStrategy(config.strategy),
            start_date=config.start_date,
            end_date=config.end_date,
            product_ids=tuple(config.product_ids),
            skip_synced=config.skip_synced,
        )

    def after(self, record_id: Optional[str]) -> "StoreFilter":
        return replace(self, after_id=record_id)

    def to_params(self) -> List[Tuple[str, str]]:
        """PostgREST query parameters for this filter (without paging)"""
        params: List[Tuple[str, str]] = []

        if self.skip_synced:
            params.append(
                (
                    "or",
                    "(stripe_product_id.is.null,sync_status.is.null,"
                    f"sync_status.neq.{SyncStatus.SYNCED.value})",
                )
            )

        if self.strategy == FilterStrategy.INCREMENTAL:
            if self.start_date is not None:
                params.append(("created_at", f"gte.{self.start_date.isoformat()}"))
            if self.end_date is not None:
                params.append(("created_at", f"lte.{self.end_date.isoformat()}"))
        elif self.strategy == FilterStrategy.SELECTIVE:
            quoted = ",".join(_quote(pid) for pid in self.product_ids)
            params.append(("id", f"in.({quoted})"))

        if self.after_id is not None:
            params.append(("id", f"gt.{_quote(self.after_id)}"))

        return params


def _quote(value: str) -> str:
    """Quote a value for PostgREST list/comparison operators when needed"""
    if any(ch in value for ch in ',.:()" '):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


@dataclass
class WriteBack:
    """Remote identifiers written back for a synced record"""

    remote_product_id: str
    remote_price_id: str
    status: SyncStatus = SyncStatus.SYNCED
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        return {
            "stripe_product_id": self.remote_product_id,
            "stripe_price_id": self.remote_price_id,
            "sync_status": self.status.value,
            "last_synced_at": self.timestamp.isoformat(),
            "sync_error": None,
        }


class SourceStoreService:
    """
    Paginated reads of pending records and point writes of sync status.

    Every call goes through the store RetryHandler. In dry-run mode
    reads still hit the store but writes are skipped.
    """

    def __init__(
        self,
        client: PostgrestClient,
        retry_handler: RetryHandler,
        table: str,
        dry_run: bool = False,
    ):
        self.client = client
        self.retry = retry_handler
        self.table = table
        self.dry_run = dry_run

    async def ping(self) -> None:
        """Preflight check of store connectivity, credentials and table"""
        await self.client.ping(self.table)

    async def count_pending(self, store_filter: StoreFilter) -> int:
        params = store_filter.to_params()
        total = await self.retry.execute_with_retry(
            lambda: self.client.count(self.table, params),
            OperationContext.STORE_COUNT,
        )
        logger.info(
            "pending_records_counted",
            table=self.table,
            strategy=store_filter.strategy.value,
            total=total,
        )
        return total

    async def get_batch(
        self, offset: int, limit: int, store_filter: StoreFilter
    ) -> List[SourceRecord]:
        """
        Fetch one page of pending records ordered by id.

        Args:
            offset: Rows to skip after the keyset position (0 with after_id)
            limit: Page size
            store_filter: Selection criteria, including the keyset position

        Returns:
            Parsed records, possibly empty when no rows remain
        """
        params = store_filter.to_params() + [
            ("select", "*"),
            ("order", "id.asc"),
            ("limit", str(limit)),
            ("offset", str(offset)),
        ]
        rows = await self.retry.execute_with_retry(
            lambda: self.client.select(self.table, params),
            OperationContext.STORE_FETCH_BATCH,
        )
        records = [self._parse_row(row) for row in rows]
        logger.debug(
            "batch_fetched",
            after_id=store_filter.after_id,
            offset=offset,
            count=len(records),
        )
        return records

    @staticmethod
    def _parse_row(row: Dict[str, Any]) -> SourceRecord:
        try:
            return SourceRecord.model_validate(row)
        except PydanticValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            logger.warning(
                "source_row_fields_ignored",
                record_id=row.get("id"),
                fields=sorted(bad_fields),
            )
            cleaned = {k: v for k, v in row.items() if k not in bad_fields}
            return SourceRecord.model_validate(cleaned)

    async def write_sync_result(self, record_id: str, result: WriteBack) -> None:
        """
        Record remote identifiers on the source row.

        Raises:
            NotFoundError: If no row was updated
        """
        if self.dry_run:
            logger.info(
                "dry_run_write_skipped",
                record_id=record_id,
                remote_product_id=result.remote_product_id,
            )
            return

        params = [("id", f"eq.{_quote(record_id)}")]
        rows = await self.retry.execute_with_retry(
            lambda: self.client.update(self.table, params, result.to_row()),
            OperationContext.STORE_WRITE_RESULT,
        )
        if not rows:
            raise NotFoundError(
                f"Write-back updated no rows for record {record_id}",
                context={"record_id": record_id},
            )

    async def mark_failed(self, record_id: str, reason: str) -> bool:
        """
        Best-effort failure marker.

        Only critical errors propagate; anything else is logged.

        Returns:
            True if the row was updated
        """
        if self.dry_run:
            return False

        values = {
            "sync_status": SyncStatus.FAILED.value,
            "sync_error": reason[:SYNC_ERROR_MAX_LENGTH],
            "last_synced_at": datetime.now(timezone.utc).isoformat(),
        }
        params = [("id", f"eq.{_quote(record_id)}")]
        try:
            rows = await self.retry.execute_with_retry(
                lambda: self.client.update(self.table, params, values),
                OperationContext.STORE_MARK_FAILED,
                max_retries=1,
            )
        except MigrationError as e:
            if e.is_critical:
                raise
            logger.warning("mark_failed_error", record_id=record_id, error=str(e))
            return False
        return bool(rows)

    async def create_backup(
        self, store_filter: StoreFilter, directory: Path, page_size: int = 500
    ) -> Optional[Path]:
        """
        Snapshot every row the filter selects into a checksummed JSON file.

        The checksum is the SHA-256 of the rows serialized with sorted keys.

        Args:
            store_filter: Selection criteria of the run
            directory: Destination directory, created if missing
            page_size: Rows fetched per request

        Returns:
            Path of the backup file, or None in dry-run mode
        """
        if self.dry_run:
            logger.info("dry_run_backup_skipped", table=self.table)
            return None

        rows: List[Dict[str, Any]] = []
        page_filter = store_filter
        while True:
            params = page_filter.to_params() + [
                ("select", "*"),
                ("order", "id.asc"),
                ("limit", str(page_size)),
            ]
            page = await self.retry.execute_with_retry(
                lambda: self.client.select(self.table, params),
                OperationContext.STORE_FETCH_BATCH,
            )
            rows.extend(page)
            if len(page) < page_size:
                break
            page_filter = store_filter.after(str(page[-1]["id"]))

        timestamp = datetime.now(timezone.utc)
        checksum = hashlib.sha256(
            json.dumps(rows, sort_keys=True, default=str).encode("utf-8")
        ).hexdigest()
        payload = {
            "timestamp": timestamp.isoformat(),
            "version": BACKUP_FORMAT_VERSION,
            "table": self.table,
            "recordCount": len(rows),
            "checksum": checksum,
            "products": rows,
        }

        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = timestamp.strftime("%Y%m%dT%H%M%S%fZ")
        path = directory / f"{self.table}-backup-{stamp}.json"
        temp_file = path.with_name(path.name + ".tmp")
        with open(temp_file, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        temp_file.replace(path)

        logger.info(
            "backup_created", path=str(path), records=len(rows), checksum=checksum
        )
        return path
