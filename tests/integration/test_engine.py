"""End-to-end tests of the migration engine against in-memory fakes.

The fakes stand in for the two HTTP clients only; the real services,
retry handler, validator and checkpoint service run unchanged.
"""

import json
import re
from collections import Counter
from unittest.mock import AsyncMock

import pytest

from catalog_migrator.models.config import MigrationConfig, RateLimitConfig
from catalog_migrator.models.migration import MigrationState
from catalog_migrator.orchestration import (
    InvalidTransitionError,
    MigrationEngine,
    MigrationPhase,
    RunOutcome,
)
from catalog_migrator.services.checkpoint_service import CheckpointService
from catalog_migrator.services.remote_sync_service import (
    DRY_RUN_PRODUCT_PREFIX,
    RemoteSyncService,
)
from catalog_migrator.services.source_store_service import SourceStoreService
from catalog_migrator.services.validator import DataValidator
from catalog_migrator.utils.circuit_breaker import (
    CircuitBreakerRegistry,
    OperationContext,
)
from catalog_migrator.utils.exceptions import (
    AuthenticationError,
    NotFoundError,
    PreflightError,
    TransientNetworkError,
)
from catalog_migrator.utils.rate_limiter import RateLimiter
from catalog_migrator.utils.retry import RetryHandler

METADATA_QUERY = re.compile(r'^metadata\["(.+?)"\]:"(.*)"$')
NAME_QUERY = re.compile(r'^name:"(.*)"$')


class FakePostgrest:
    """In-memory PostgREST table understanding the filters the store sends."""

    def __init__(self, rows, honor_pending_filter=True):
        self.rows = {r["id"]: dict(r) for r in rows}
        self.honor_pending_filter = honor_pending_filter
        self.select_params = []
        self.select_errors = []
        self.updates = []
        self.on_select = None
        self.ping_error = None
        self.on_ping = None

    def _filter(self, params):
        rows = sorted(self.rows.values(), key=lambda r: r["id"])
        for key, value in params:
            if key == "or" and self.honor_pending_filter:
                rows = [
                    r
                    for r in rows
                    if not (r.get("sync_status") == "synced" and r.get("stripe_product_id"))
                ]
            elif key == "id" and value.startswith("gt."):
                rows = [r for r in rows if r["id"] > value[3:]]
            elif key == "id" and value.startswith("eq."):
                rows = [r for r in rows if r["id"] == value[3:]]
            elif key == "id" and value.startswith("in.("):
                ids = value[4:-1].split(",")
                rows = [r for r in rows if r["id"] in ids]
        return rows

    async def ping(self, table):
        if self.on_ping is not None:
            self.on_ping()
        if self.ping_error is not None:
            raise self.ping_error

    async def select(self, table, params):
        self.select_params.append(list(params))
        if self.on_select is not None:
            self.on_select(len(self.select_params))
        if self.select_errors:
            raise self.select_errors.pop(0)
        rows = self._filter(params)
        options = dict(params)
        offset = int(options.get("offset", 0))
        limit = int(options.get("limit", len(rows)))
        return [dict(r) for r in rows[offset : offset + limit]]

    async def count(self, table, params):
        return len(self._filter(params))

    async def update(self, table, params, values):
        updated = []
        for row in self._filter(params):
            self.rows[row["id"]].update(values)
            self.updates.append((row["id"], dict(values)))
            updated.append(dict(self.rows[row["id"]]))
        return updated


class FakeStripe:
    """In-memory Stripe products and prices."""

    def __init__(self):
        self.products = {}
        self.prices = {}
        self.create_errors = {}
        self.created_for = []
        self.metadata_searches = Counter()
        self.ping_error = None

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error
        return {"id": "acct_test"}

    async def search_products(self, query, limit=10):
        match = METADATA_QUERY.match(query)
        if match:
            key, value = match.groups()
            self.metadata_searches[value] += 1
            found = [p for p in self.products.values() if p["metadata"].get(key) == value]
        else:
            name = NAME_QUERY.match(query).group(1)
            found = [p for p in self.products.values() if p["name"] == name]
        return [dict(p) for p in found[:limit]]

    async def create_product(self, payload, idempotency_key=None):
        source_id = payload["metadata"]["supabase_id"]
        if source_id in self.create_errors:
            raise self.create_errors[source_id]
        product_id = f"prod_{len(self.products) + 1}"
        self.products[product_id] = {
            "id": product_id,
            "name": payload["name"],
            "metadata": dict(payload["metadata"]),
        }
        self.created_for.append(source_id)
        return dict(self.products[product_id])

    async def update_product(self, product_id, payload):
        self.products[product_id]["metadata"].update(payload.get("metadata", {}))
        return dict(self.products[product_id])

    async def retrieve_product(self, product_id):
        if product_id not in self.products:
            raise NotFoundError(f"No such product: {product_id}", status=404)
        return dict(self.products[product_id])

    async def list_prices(self, product_id, active=True, limit=10):
        return [p for p in self.prices.values() if p["product"] == product_id][:limit]

    async def create_price(self, payload, idempotency_key=None):
        price_id = f"price_{len(self.prices) + 1}"
        self.prices[price_id] = {"id": price_id, **payload}
        return dict(self.prices[price_id])


def row(i, **fields):
    data = {
        "id": f"p-{i:02d}",
        "title": f"Product {i}",
        "price": "10.00",
        "currency": "eur",
    }
    data.update(fields)
    return data


def make_config(tmp_path, **overrides):
    data = {
        "remote": {"api_key": "sk_test"},
        "source": {"url": "https://db.test", "service_key": "service"},
        "batch_size": 2,
        "inter_batch_delay_seconds": 0,
        "verify_after_migration": False,
        "report_dir": str(tmp_path / "reports"),
        "checkpoint": {
            "path": str(tmp_path / "checkpoints" / "checkpoint.json"),
            "checkpoint_interval": 1,
        },
        "retry": {"max_retries": 1, "base_delay_seconds": 0.0},
        "backup": {"enabled": False, "directory": str(tmp_path / "backups")},
    }
    data.update(overrides)
    return MigrationConfig(**data)


def build_engine(config, postgrest, stripe, resume=True, run_id="mig-test"):
    breakers = CircuitBreakerRegistry(config.circuit_breaker)
    remote_limiter = RateLimiter(RateLimitConfig(requests_per_window=1000), name="remote")
    store_limiter = RateLimiter(RateLimitConfig(requests_per_window=1000), name="store")

    remote = RemoteSyncService(
        stripe,
        RetryHandler(config.retry, remote_limiter, breakers, sleep=AsyncMock()),
        dry_run=config.dry_run,
        run_id=run_id,
    )
    store = SourceStoreService(
        postgrest,
        RetryHandler(config.retry, store_limiter, breakers, sleep=AsyncMock()),
        table=config.source.table,
        dry_run=config.dry_run,
    )
    return MigrationEngine(
        config=config,
        store=store,
        remote=remote,
        validator=DataValidator(config.validation, lenient=config.skip_validation),
        checkpoints=CheckpointService(config.checkpoint),
        breakers=breakers,
        rate_limiters={"remote": remote_limiter, "store": store_limiter},
        run_id=run_id,
        resume=resume,
        sleep=AsyncMock(),
    )


class TestBatchOutcomes:
    @pytest.mark.asyncio
    async def test_two_invalid_one_valid(self, tmp_path):
        """Empty title and zero price fail validation; the valid record is written back."""
        postgrest = FakePostgrest([row(1, title=""), row(2, price="0"), row(3)])
        stripe = FakeStripe()
        engine = build_engine(make_config(tmp_path, batch_size=3), postgrest, stripe)

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.processed == 3
        assert report.succeeded == 1
        assert report.failed == 2
        assert {e.source_id for e in report.failures} == {"p-01", "p-02"}
        assert all(e.kind == "validation" for e in report.failures)
        assert report.is_clean is False

        synced = postgrest.rows["p-03"]
        assert synced["sync_status"] == "synced"
        assert synced["stripe_product_id"] in stripe.products
        assert synced["stripe_price_id"] in stripe.prices
        assert postgrest.rows["p-01"]["sync_status"] == "failed"
        assert postgrest.rows["p-02"]["sync_status"] == "failed"
        assert stripe.created_for == ["p-03"]

    @pytest.mark.asyncio
    async def test_report_written_and_failed_run_keeps_completed_checkpoint(
        self, tmp_path
    ):
        postgrest = FakePostgrest([row(1, title=""), row(2)])
        engine = build_engine(make_config(tmp_path), postgrest, FakeStripe())

        report = await engine.run()

        assert report.report_path is not None
        assert (tmp_path / "reports").exists()
        record = engine.checkpoints.load_record()
        assert record is not None and record.completed is True
        # A completed checkpoint is never resumed
        assert engine.checkpoints.load(engine.config_hash) is None

    @pytest.mark.asyncio
    async def test_clean_run_clears_checkpoint(self, tmp_path):
        postgrest = FakePostgrest([row(i) for i in range(1, 6)])
        stripe = FakeStripe()
        engine = build_engine(make_config(tmp_path), postgrest, stripe)

        report = await engine.run()

        assert report.is_clean
        assert report.succeeded == 5
        assert report.total_records == 5
        assert sorted(stripe.created_for) == [f"p-{i:02d}" for i in range(1, 6)]
        assert engine.checkpoints.exists() is False
        assert engine.phase == MigrationPhase.DONE

    @pytest.mark.asyncio
    async def test_transient_record_failure_does_not_stop_batch(self, tmp_path):
        postgrest = FakePostgrest([row(1), row(2), row(3)])
        stripe = FakeStripe()
        stripe.create_errors["p-02"] = TransientNetworkError("connection reset")
        engine = build_engine(make_config(tmp_path), postgrest, stripe)

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures[0].source_id == "p-02"
        assert report.failures[0].kind == "transient_network"
        assert postgrest.rows["p-02"]["sync_status"] == "failed"
        assert postgrest.rows["p-03"]["sync_status"] == "synced"

    @pytest.mark.asyncio
    async def test_result_counts_retries(self, tmp_path):
        postgrest = FakePostgrest([row(1)])
        stripe = FakeStripe()
        create = stripe.create_product
        failures = [TransientNetworkError("connection reset")]

        async def flaky_create(payload, idempotency_key=None):
            if failures:
                raise failures.pop()
            return await create(payload, idempotency_key=idempotency_key)

        stripe.create_product = flaky_create
        engine = build_engine(make_config(tmp_path), postgrest, stripe)

        report = await engine.run()

        result = report.results[0]
        assert result.success is True
        assert result.retries == 1
        assert result.attempts > result.retries
        assert result.retry_delay_seconds == 0.0
        assert stripe.created_for == ["p-01"]

    @pytest.mark.asyncio
    async def test_already_synced_rows_skipped(self, tmp_path):
        postgrest = FakePostgrest(
            [
                row(1, sync_status="synced", stripe_product_id="prod_old"),
                row(2),
            ],
            honor_pending_filter=False,
        )
        stripe = FakeStripe()
        engine = build_engine(make_config(tmp_path), postgrest, stripe)

        report = await engine.run()

        assert report.skipped == 1
        assert report.succeeded == 1
        assert stripe.created_for == ["p-02"]


class TestResume:
    @pytest.mark.asyncio
    async def test_resume_processes_no_record_twice(self, tmp_path):
        config = make_config(tmp_path, filter={"skip_synced": False})
        postgrest = FakePostgrest([row(i) for i in range(1, 6)])
        stripe = FakeStripe()

        first = build_engine(config, postgrest, stripe, run_id="mig-1")
        postgrest.on_select = lambda n: first.request_stop() if n == 1 else None
        paused = await first.run()

        assert paused.outcome == RunOutcome.PAUSED
        assert paused.processed == 2
        state = first.checkpoints.load(first.config_hash)
        assert state is not None and state.last_processed_id == "p-02"

        postgrest.on_select = None
        postgrest.select_params.clear()
        second = build_engine(config, postgrest, stripe, run_id="mig-2")
        report = await second.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.processed == 5
        assert report.succeeded == 5
        assert ("id", "gt.p-02") in postgrest.select_params[0]
        assert sorted(stripe.created_for) == [f"p-{i:02d}" for i in range(1, 6)]
        assert all(count == 1 for count in stripe.metadata_searches.values())

    @pytest.mark.asyncio
    async def test_fresh_flag_ignores_checkpoint(self, tmp_path):
        config = make_config(tmp_path, filter={"skip_synced": False})
        postgrest = FakePostgrest([row(i) for i in range(1, 4)])
        stripe = FakeStripe()

        first = build_engine(config, postgrest, stripe)
        postgrest.on_select = lambda n: first.request_stop() if n == 1 else None
        await first.run()

        postgrest.on_select = None
        postgrest.select_params.clear()
        second = build_engine(config, postgrest, stripe, resume=False)
        report = await second.run()

        assert report.processed == 3
        assert all(key != "id" for key, _ in postgrest.select_params[0])
        # Existing products are found by metadata, never created twice
        assert len(stripe.created_for) == 3

    @pytest.mark.asyncio
    async def test_stop_during_preflight_pauses_before_first_batch(self, tmp_path):
        postgrest = FakePostgrest([row(i) for i in range(1, 4)])
        stripe = FakeStripe()
        engine = build_engine(make_config(tmp_path), postgrest, stripe)
        postgrest.on_ping = engine.request_stop

        report = await engine.run()

        assert report.outcome == RunOutcome.PAUSED
        assert report.processed == 0
        assert stripe.created_for == []
        assert postgrest.select_params == []
        state = engine.checkpoints.load(engine.config_hash)
        assert state is not None
        assert state.last_processed_id is None
        assert state.total_records == 3

    @pytest.mark.asyncio
    async def test_dry_run_leaves_real_checkpoint_untouched(self, tmp_path):
        config = make_config(tmp_path, filter={"skip_synced": False})
        postgrest = FakePostgrest([row(i) for i in range(1, 6)])
        stripe = FakeStripe()

        first = build_engine(config, postgrest, stripe, run_id="mig-1")
        postgrest.on_select = lambda n: first.request_stop() if n == 1 else None
        await first.run()
        postgrest.on_select = None

        dry = build_engine(
            make_config(tmp_path, filter={"skip_synced": False}, dry_run=True),
            postgrest,
            stripe,
            run_id="mig-dry",
        )
        dry_report = await dry.run()

        assert dry_report.outcome == RunOutcome.COMPLETED
        assert dry_report.processed == 5
        assert dry_report.options["checkpointEnabled"] is False
        state = first.checkpoints.load(first.config_hash)
        assert state is not None
        assert state.last_processed_id == "p-02"

        postgrest.select_params.clear()
        resumed = await build_engine(config, postgrest, stripe, run_id="mig-2").run()

        assert resumed.processed == 5
        assert ("id", "gt.p-02") in postgrest.select_params[0]

    @pytest.mark.asyncio
    async def test_config_hash_mismatch_starts_fresh(self, tmp_path):
        config = make_config(tmp_path)
        stale_state = MigrationState(last_processed_id="p-03", total_records=5)
        for _ in range(3):
            stale_state.record_success()
        CheckpointService(config.checkpoint).save(stale_state, "0000000000000000")

        postgrest = FakePostgrest([row(i) for i in range(1, 6)])
        engine = build_engine(config, postgrest, FakeStripe())
        postgrest.on_select = lambda n: engine.request_stop() if n == 1 else None

        report = await engine.run()

        assert report.outcome == RunOutcome.PAUSED
        assert all(key != "id" for key, _ in postgrest.select_params[0])
        record = engine.checkpoints.load_record()
        assert record.config_hash == engine.config_hash
        assert record.state.processed_count == 2
        assert record.state.last_processed_id == "p-02"


class TestAbort:
    @pytest.mark.asyncio
    async def test_critical_error_aborts_with_report_and_checkpoint(self, tmp_path):
        postgrest = FakePostgrest([row(i) for i in range(1, 5)])
        stripe = FakeStripe()
        stripe.create_errors["p-02"] = AuthenticationError("Invalid API key", status=401)
        engine = build_engine(make_config(tmp_path), postgrest, stripe)

        report = await engine.run()

        assert report.outcome == RunOutcome.ABORTED
        assert "Invalid API key" in report.fatal_error
        assert report.report_path is not None
        assert report.succeeded == 1
        assert "p-03" not in stripe.created_for

        state = engine.checkpoints.load(engine.config_hash)
        assert state is not None
        assert state.last_processed_id == "p-01"

    @pytest.mark.asyncio
    async def test_repeated_batch_fetch_failures_abort(self, tmp_path):
        postgrest = FakePostgrest([row(1)])
        postgrest.select_errors = [TransientNetworkError("down")] * 10
        engine = build_engine(make_config(tmp_path), postgrest, FakeStripe())

        report = await engine.run()

        assert report.outcome == RunOutcome.ABORTED
        assert report.processed == 0

    @pytest.mark.asyncio
    async def test_single_batch_fetch_failure_recovers(self, tmp_path):
        postgrest = FakePostgrest([row(1)])
        # Two errors exhaust one get_batch call (one retry)
        postgrest.select_errors = [TransientNetworkError("down")] * 2
        engine = build_engine(make_config(tmp_path), postgrest, FakeStripe())

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.succeeded == 1

    @pytest.mark.asyncio
    async def test_unreachable_store_fails_preflight(self, tmp_path):
        postgrest = FakePostgrest([row(1)])
        postgrest.ping_error = TransientNetworkError("connection refused")
        engine = build_engine(make_config(tmp_path), postgrest, FakeStripe())

        with pytest.raises(PreflightError, match="source_store"):
            await engine.run()


class TestDryRunAndVerification:
    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, tmp_path):
        postgrest = FakePostgrest([row(1), row(2)])
        stripe = FakeStripe()
        engine = build_engine(
            make_config(tmp_path, dry_run=True, verify_after_migration=True),
            postgrest,
            stripe,
        )

        report = await engine.run()

        assert report.succeeded == 2
        assert stripe.products == {}
        assert postgrest.updates == []
        assert all(
            r.remote_product_id.startswith(DRY_RUN_PRODUCT_PREFIX) for r in report.results
        )
        assert report.verification is None

    @pytest.mark.asyncio
    async def test_verification_samples_migrated_products(self, tmp_path):
        postgrest = FakePostgrest([row(1), row(2), row(3)])
        engine = build_engine(
            make_config(tmp_path, verify_after_migration=True), postgrest, FakeStripe()
        )

        report = await engine.run()

        assert report.verification is not None
        assert report.verification.sampled == 3
        assert report.verification.verified == 3
        assert report.verification.mismatches == []

    @pytest.mark.asyncio
    async def test_verification_reports_missing_product(self, tmp_path):
        postgrest = FakePostgrest([row(1), row(2), row(3)])
        stripe = FakeStripe()

        def delete_p02(n):
            # The second select is the empty page that ends the batch loop
            if n == 2:
                product_id = next(
                    pid
                    for pid, p in stripe.products.items()
                    if p["metadata"]["supabase_id"] == "p-02"
                )
                del stripe.products[product_id]

        postgrest.on_select = delete_p02
        engine = build_engine(
            make_config(tmp_path, batch_size=3, verify_after_migration=True),
            postgrest,
            stripe,
        )

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.succeeded == 3
        assert report.verification.sampled == 3
        assert report.verification.verified == 2
        assert report.verification.mismatches == ["p-02"]


class TestBackupAndHealth:
    @pytest.mark.asyncio
    async def test_fresh_run_backs_up_selected_rows(self, tmp_path):
        backup_dir = tmp_path / "backups"
        postgrest = FakePostgrest([row(i) for i in range(1, 4)])
        engine = build_engine(
            make_config(tmp_path, backup={"directory": str(backup_dir)}),
            postgrest,
            FakeStripe(),
        )

        report = await engine.run()

        assert report.is_clean
        assert report.backup_path is not None
        data = json.loads(open(report.backup_path).read())
        assert data["recordCount"] == 3
        assert [p["id"] for p in data["products"]] == ["p-01", "p-02", "p-03"]
        assert len(data["checksum"]) == 64
        # Snapshot precedes any write-back
        assert "sync_status" not in data["products"][0]

    @pytest.mark.asyncio
    async def test_resumed_run_takes_no_new_backup(self, tmp_path):
        backup_dir = tmp_path / "backups"
        config = make_config(
            tmp_path,
            filter={"skip_synced": False},
            backup={"directory": str(backup_dir)},
        )
        postgrest = FakePostgrest([row(i) for i in range(1, 6)])
        stripe = FakeStripe()

        first = build_engine(config, postgrest, stripe, run_id="mig-1")
        # Select 1 is the backup page, select 2 the first batch
        postgrest.on_select = lambda n: first.request_stop() if n == 2 else None
        paused = await first.run()
        postgrest.on_select = None

        assert paused.outcome == RunOutcome.PAUSED
        assert paused.backup_path is not None

        report = await build_engine(config, postgrest, stripe, run_id="mig-2").run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.backup_path is None
        assert len(list(backup_dir.glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_dry_run_takes_no_backup(self, tmp_path):
        backup_dir = tmp_path / "backups"
        engine = build_engine(
            make_config(tmp_path, dry_run=True, backup={"directory": str(backup_dir)}),
            FakePostgrest([row(1)]),
            FakeStripe(),
        )

        report = await engine.run()

        assert report.backup_path is None
        assert not backup_dir.exists()

    @pytest.mark.asyncio
    async def test_failed_backup_stops_run(self, tmp_path):
        postgrest = FakePostgrest([row(1)])
        # Two errors exhaust the backup page fetch (one retry)
        postgrest.select_errors = [TransientNetworkError("down")] * 2
        stripe = FakeStripe()
        engine = build_engine(
            make_config(tmp_path, backup={"directory": str(tmp_path / "backups")}),
            postgrest,
            stripe,
        )

        with pytest.raises(PreflightError, match="back up"):
            await engine.run()
        assert stripe.created_for == []
        assert engine.checkpoints.exists() is False

    @pytest.mark.asyncio
    async def test_health_check_warns_on_high_error_rate(self, tmp_path):
        postgrest = FakePostgrest([row(1, title=""), row(2, title=""), row(3)])
        engine = build_engine(
            make_config(tmp_path, health_check={"interval_batches": 1}),
            postgrest,
            FakeStripe(),
        )

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert len(report.health_warnings) == 2
        assert report.health_warnings[0].startswith("batch 1: error rate 100.0%")
        assert report.health_warnings[1].startswith("batch 2: error rate 66.7%")

    @pytest.mark.asyncio
    async def test_health_check_reports_unreachable_system_and_open_circuit(
        self, tmp_path
    ):
        stripe = FakeStripe()
        engine = build_engine(make_config(tmp_path), FakePostgrest([]), stripe)
        stripe.ping_error = TransientNetworkError("connection reset")
        breaker = engine.breakers.get(OperationContext.CREATE_PRODUCT)
        for _ in range(engine.config.circuit_breaker.failure_threshold):
            breaker.record_failure()

        issues = await engine._health_check()

        assert issues == [
            "remote_platform unreachable: connection reset",
            "open circuits: create_product",
        ]
        assert engine.health_warnings == [f"batch 0: {issue}" for issue in issues]

    @pytest.mark.asyncio
    async def test_health_check_quiet_when_healthy(self, tmp_path):
        engine = build_engine(make_config(tmp_path), FakePostgrest([]), FakeStripe())

        assert await engine._health_check() == []
        assert engine.health_warnings == []


class TestStateMachine:
    def test_invalid_transition_rejected(self, tmp_path):
        engine = build_engine(make_config(tmp_path), FakePostgrest([]), FakeStripe())

        with pytest.raises(InvalidTransitionError):
            engine._transition(MigrationPhase.BATCH_LOOP)

    @pytest.mark.asyncio
    async def test_empty_source_completes(self, tmp_path):
        engine = build_engine(make_config(tmp_path), FakePostgrest([]), FakeStripe())

        report = await engine.run()

        assert report.outcome == RunOutcome.COMPLETED
        assert report.processed == 0
        assert engine.phase == MigrationPhase.DONE

    def test_from_config_wires_services(self, tmp_path):
        engine = MigrationEngine.from_config(make_config(tmp_path), run_id="mig-x")

        assert set(engine.rate_limiters) == {"remote", "store"}
        assert engine.rate_limiters["store"].capacity == 50
        assert engine.remote.run_id == "mig-x"
        assert engine.store.table == "products"
