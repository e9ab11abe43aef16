"""Data models for source records and their validated remote payloads."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SyncStatus(str, Enum):
    """Sync state of a source row, as written back by the engine."""

    UNSET = "unset"
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class Dimensions(BaseModel):
    """Physical dimensions in centimetres"""

    height: Optional[float] = None
    width: Optional[float] = None
    depth: Optional[float] = None

    def format(self) -> str:
        parts = []
        if self.height:
            parts.append(f"H: {self.height:g}cm")
        if self.width:
            parts.append(f"W: {self.width:g}cm")
        if self.depth:
            parts.append(f"D: {self.depth:g}cm")
        return " x ".join(parts)


class SourceRecord(BaseModel):
    """Read-only view of one source-store product row"""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    weight: Optional[float] = None
    available: bool = True
    image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.UNSET

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> str:
        # Integer primary keys are common in PostgREST tables
        return str(v)

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, v: object) -> Optional[str]:
        if v is None:
            return None
        return str(v)

    @field_validator("sync_status", mode="before")
    @classmethod
    def default_sync_status(cls, v: object) -> object:
        return SyncStatus.UNSET if v in (None, "") else v

    @property
    def is_synced(self) -> bool:
        return self.sync_status == SyncStatus.SYNCED and bool(self.stripe_product_id)


class ValidationIssue(BaseModel):
    """A single field-level validation violation"""

    model_config = ConfigDict(frozen=True)

    field: str
    reason: str


class ValidatedProduct(BaseModel):
    """Sanitized, remote-platform-shaped product derived from a SourceRecord.

    Produced fresh per record and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str
    name: str
    description: Optional[str] = None
    unit_amount: int = Field(..., gt=0, description="Price in minor currency units")
    currency: str = Field(..., min_length=3, max_length=3)
    metadata: Dict[str, str] = Field(default_factory=dict)
    images: List[str] = Field(default_factory=list)
    active: bool = True
    original_price: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class InvalidRecord(BaseModel):
    """A record rejected by validation, with every issue found"""

    record: SourceRecord
    issues: List[ValidationIssue]

    @property
    def message(self) -> str:
        return "; ".join(f"{i.field}: {i.reason}" for i in self.issues)


class BatchValidationResult(BaseModel):
    """Partition of one batch into processable and rejected records"""

    valid: List[ValidatedProduct] = Field(default_factory=list)
    invalid: List[InvalidRecord] = Field(default_factory=list)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)
