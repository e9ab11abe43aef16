"""Unit tests for config hashing and idempotency keys"""

import pytest

from catalog_migrator.models.config import MigrationConfig
from catalog_migrator.utils.hash import (
    CONFIG_HASH_LENGTH,
    calculate_config_hash,
    idempotency_key,
)


def make_config(**overrides):
    data = {
        "remote": {"api_key": "sk_test_123"},
        "source": {"url": "https://db.example.com", "service_key": "service"},
    }
    data.update(overrides)
    return MigrationConfig(**data)


class TestConfigHash:
    def test_hash_is_stable(self):
        assert calculate_config_hash(make_config()) == calculate_config_hash(
            make_config()
        )

    def test_hash_length(self):
        assert len(calculate_config_hash(make_config())) == CONFIG_HASH_LENGTH

    @pytest.mark.parametrize(
        "overrides",
        [
            {"batch_size": 20},
            {"dry_run": True},
            {"skip_validation": True},
            {"filter": {"skip_synced": False}},
            {"filter": {"strategy": "selective", "product_ids": ["a"]}},
            {"validation": {"min_price": 100}},
        ],
    )
    def test_selection_settings_change_hash(self, overrides):
        assert calculate_config_hash(make_config(**overrides)) != calculate_config_hash(
            make_config()
        )

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_concurrency": 10},
            {"inter_batch_delay_seconds": 1.0},
            {"retry": {"max_retries": 2}},
            {"logging": {"level": "DEBUG"}},
            {"remote": {"api_key": "sk_test_other"}},
        ],
    )
    def test_tuning_and_secrets_do_not_change_hash(self, overrides):
        assert calculate_config_hash(make_config(**overrides)) == calculate_config_hash(
            make_config()
        )


class TestIdempotencyKey:
    def test_deterministic(self):
        assert idempotency_key("p-1", "product:run") == idempotency_key(
            "p-1", "product:run"
        )

    def test_scoped_by_operation_and_record(self):
        keys = {
            idempotency_key("p-1", "product:run"),
            idempotency_key("p-1", "price:run"),
            idempotency_key("p-2", "product:run"),
        }
        assert len(keys) == 3
        assert all(len(k) == 32 for k in keys)
