from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class FilterStrategy(str, Enum):
    """Which source rows a run selects"""

    FULL = "full"  # Every pending row
    INCREMENTAL = "incremental"  # Pending rows created inside a date range
    SELECTIVE = "selective"  # Explicit list of ids


class NameFallbackPolicy(str, Enum):
    """How the remote lookup treats products found only by name."""

    DISABLED = "disabled"  # Metadata lookup only
    EXACT_UNIQUE = "exact_unique"  # Trust a single exact name match
    FIRST_MATCH = "first_match"  # Exact match if any, else first result


class RemoteConfig(BaseModel):
    """Remote commerce platform (Stripe-compatible API)"""

    api_key: str = Field(..., min_length=1)
    base_url: str = "https://api.stripe.com"
    api_version: Optional[str] = None
    timeout_seconds: float = Field(30.0, gt=0, le=300)
    idempotency_metadata_key: str = Field("supabase_id", min_length=1, max_length=40)
    name_fallback: NameFallbackPolicy = NameFallbackPolicy.EXACT_UNIQUE
    name_search_limit: int = Field(5, ge=1, le=100)
    default_currency: str = Field("eur", min_length=3, max_length=3)

    @field_validator("default_currency")
    @classmethod
    def lower_currency(cls, v: str) -> str:
        return v.lower()


class SourceConfig(BaseModel):
    """Source store (PostgREST endpoint)"""

    url: str = Field(..., min_length=1)
    service_key: str = Field(..., min_length=1)
    table: str = Field("products", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    timeout_seconds: float = Field(30.0, gt=0, le=300)
    requests_per_window: int = Field(50, ge=1, le=1000)


class FilterConfig(BaseModel):
    """Record selection criteria"""

    strategy: FilterStrategy = FilterStrategy.FULL
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    product_ids: List[str] = Field(default_factory=list)
    skip_synced: bool = True

    @field_validator("end_date")
    @classmethod
    def validate_date_range(cls, v: Optional[datetime], info) -> Optional[datetime]:
        values = info.data
        start = values.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("end_date must be after start_date")
        return v

    @model_validator(mode="after")
    def check_selective(self) -> "FilterConfig":
        if self.strategy == FilterStrategy.SELECTIVE and not self.product_ids:
            raise ValueError("selective strategy requires product_ids")
        return self


class RateLimitConfig(BaseModel):
    """Windowed token bucket for outbound remote requests"""

    requests_per_window: int = Field(25, ge=1, le=1000)
    window_seconds: float = Field(1.0, gt=0, le=60)
    growth_factor: float = Field(1.1, gt=1.0, le=2.0)
    decay_factor: float = Field(0.8, gt=0.0, lt=1.0)
    rate_limit_decay_factor: float = Field(0.5, gt=0.0, lt=1.0)
    min_multiplier: float = Field(0.1, gt=0.0, le=1.0)


class RetryConfig(BaseModel):
    """Retry policy applied to every remote and store call"""

    max_retries: int = Field(5, ge=0, le=10)
    base_delay_seconds: float = Field(1.0, ge=0.0, le=60)
    max_delay_seconds: float = Field(30.0, gt=0, le=600)
    backoff_multiplier: float = Field(2.0, ge=1.0, le=10)
    jitter_factor: float = Field(0.3, ge=0.0, le=1.0)
    rate_limit_min_delay_seconds: float = Field(5.0, ge=0.0, le=600)


class CircuitBreakerConfig(BaseModel):
    """Per-operation circuit breaker"""

    enabled: bool = True
    failure_threshold: int = Field(5, ge=1, le=100)
    success_threshold: int = Field(1, ge=1, le=10)
    cooldown_seconds: float = Field(60.0, ge=0.0, le=3600)


class CheckpointConfig(BaseModel):
    """Checkpoint persistence"""

    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = True
    path: str = "./checkpoints/migration-checkpoint.json"
    checkpoint_interval: int = Field(10, ge=1, le=1000)  # Save every N records
    max_age_hours: float = Field(24.0, gt=0)


class BackupConfig(BaseModel):
    """Snapshot of the selected source rows taken before a fresh run"""

    enabled: bool = True
    directory: str = "./backups"
    page_size: int = Field(500, ge=1, le=1000)


class HealthCheckConfig(BaseModel):
    """Periodic re-check of both systems during the batch loop"""

    enabled: bool = True
    interval_batches: int = Field(50, ge=1, le=10000)
    error_rate_threshold: float = Field(0.5, gt=0.0, le=1.0)


class ValidationConfig(BaseModel):
    """Field policies applied by the validator"""

    max_title_length: int = Field(250, ge=10, le=5000)
    max_description_length: int = Field(5000, ge=10, le=50000)
    min_price: int = Field(50, ge=1, description="Minimum price in minor units")
    max_price: int = Field(99_999_999, ge=1, description="Maximum price in minor units")
    supported_currencies: List[str] = Field(default_factory=lambda: ["eur", "usd", "gbp"])
    currency_decimals: int = Field(2, ge=0, le=3)
    max_metadata_bytes: int = Field(8000, ge=256)
    max_metadata_value_length: int = Field(500, ge=16)

    @field_validator("supported_currencies")
    @classmethod
    def lower_currencies(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("supported_currencies must not be empty")
        return [c.lower() for c in v]

    @field_validator("max_price")
    @classmethod
    def validate_price_range(cls, v: int, info) -> int:
        min_price = info.data.get("min_price")
        if min_price is not None and v < min_price:
            raise ValueError("max_price must be >= min_price")
        return v


class LoggingConfig(BaseModel):
    level: str = Field("INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_output: bool = True


class MigrationConfig(BaseModel):
    """Root configuration for a migration run"""

    model_config = ConfigDict(extra="forbid")

    environment: Environment = Environment.DEVELOPMENT
    dry_run: bool = False
    batch_size: int = Field(10, ge=1, le=100)
    max_concurrency: int = Field(5, ge=1, le=20)
    inter_batch_delay_seconds: float = Field(0.1, ge=0.0, le=60)
    skip_validation: bool = False
    verify_after_migration: bool = True
    verification_sample_size: int = Field(10, ge=0, le=1000)
    max_consecutive_batch_failures: int = Field(3, ge=1, le=100)
    report_dir: str = "./reports"
    report_error_limit: int = Field(10, ge=0, le=1000)

    remote: RemoteConfig
    source: SourceConfig
    filter: FilterConfig = Field(default_factory=FilterConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    checkpoint: CheckpointConfig = Field(default_factory=CheckpointConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def check_production_limits(self) -> "MigrationConfig":
        if self.environment == Environment.PRODUCTION:
            if self.batch_size > 50:
                raise ValueError("batch_size must not exceed 50 in production")
            if self.rate_limit.requests_per_window > 100:
                raise ValueError(
                    "rate_limit.requests_per_window must not exceed 100 in production"
                )
            if not self.backup.enabled:
                raise ValueError("backup must be enabled in production")
        if self.remote.default_currency not in self.validation.supported_currencies:
            raise ValueError(
                "remote.default_currency must be one of validation.supported_currencies"
            )
        return self
