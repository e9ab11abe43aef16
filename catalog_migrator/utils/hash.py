"""Stable hashing of the settings that shape a migration run.

The checkpoint stores this hash; a resumed run is only trusted when the
record selection and payload shaping settings are unchanged.
"""

import hashlib
import json

from catalog_migrator.models.config import MigrationConfig

CONFIG_HASH_LENGTH = 16


def calculate_config_hash(config: MigrationConfig) -> str:
    """Calculate a stable SHA-256 hash of the run-shaping configuration.

    Secrets and pure tuning knobs (concurrency, delays, retry policy,
    logging) are excluded so changing them keeps checkpoints resumable.

    Args:
        config: Effective configuration of the run (after CLI overrides).

    Returns:
        First 16 hex characters of the SHA-256 digest.
    """
    normalized = {
        "source_table": config.source.table,
        "filter": config.filter.model_dump(mode="json"),
        "batch_size": config.batch_size,
        "dry_run": config.dry_run,
        "skip_validation": config.skip_validation,
        "default_currency": config.remote.default_currency,
        "idempotency_metadata_key": config.remote.idempotency_metadata_key,
        "validation": config.validation.model_dump(mode="json"),
    }

    json_str = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(json_str.encode("utf-8")).hexdigest()
    return digest[:CONFIG_HASH_LENGTH]


def idempotency_key(source_id: str, operation: str) -> str:
    """Deterministic Idempotency-Key header value for a create call."""
    raw = f"{operation}:{source_id}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
