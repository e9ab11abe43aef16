"""
Validation and transformation of source records into remote payloads.

Every violation of a record is collected before failing so a single
report shows the complete diagnosis. Over-long text is truncated with a
warning rather than rejected.
"""

import json
import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import structlog

from catalog_migrator.models.config import ValidationConfig
from catalog_migrator.models.product import (
    BatchValidationResult,
    InvalidRecord,
    SourceRecord,
    ValidatedProduct,
    ValidationIssue,
)
from catalog_migrator.observability.metrics import VALIDATION_FAILURES
from catalog_migrator.utils.exceptions import ValidationError

logger = structlog.get_logger()

ELLIPSIS = "..."
MIGRATION_TIMESTAMP_KEY = "migration_timestamp"

# Non-essential metadata keys in the order they are dropped when the
# serialized metadata exceeds the platform ceiling.
DROPPABLE_METADATA_KEYS = ("dimensions", "weight", "subcategory", "category")

_CURRENCY_SYMBOLS = re.compile(r"[€$£¥₹\s ]")
_CURRENCY_CODE = re.compile(r"^(eur|usd|gbp)|(eur|usd|gbp)$", re.IGNORECASE)
_NUMERIC = re.compile(r"^[+-]?[\d.,]+$")
_LINE_BREAKS = re.compile(r"[\r\n]+")


class PriceParseError(ValueError):
    """Price string cannot be turned into minor units"""

    pass


def truncate(text: str, max_length: int) -> Tuple[str, bool]:
    """Cut text to exactly max_length characters ending with an ellipsis.

    Returns:
        (text, truncated) tuple
    """
    if len(text) <= max_length:
        return text, False
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS, True


def normalize_decimal_separators(value: str) -> str:
    """Rewrite a number so that '.' is the only decimal separator.

    - both ',' and '.' present: the right-most one is the decimal point
    - a single ',' is a decimal comma ("25,50")
    - repeated ',' or repeated '.' are thousands separators
    """
    has_comma = "," in value
    has_dot = "." in value

    if has_comma and has_dot:
        if value.rfind(",") > value.rfind("."):
            return value.replace(".", "").replace(",", ".")
        return value.replace(",", "")
    if has_comma:
        if value.count(",") == 1:
            return value.replace(",", ".")
        return value.replace(",", "")
    if value.count(".") > 1:
        return value.replace(".", "")
    return value


def parse_price(raw: Optional[str], decimals: int = 2) -> int:
    """Parse a free-text price into integer minor currency units.

    Args:
        raw: Price as entered in the source store ("25,50 €", "$1,299.00")
        decimals: Number of minor-unit digits of the currency

    Returns:
        Amount in minor units, rounded half-up

    Raises:
        PriceParseError: If the price is missing, non-numeric, zero or negative
    """
    if raw is None or not str(raw).strip():
        raise PriceParseError("price is required")

    cleaned = _CURRENCY_SYMBOLS.sub("", str(raw))
    cleaned = _CURRENCY_CODE.sub("", cleaned)
    if not cleaned or not _NUMERIC.match(cleaned):
        raise PriceParseError(f"price '{raw}' is not numeric")

    normalized = normalize_decimal_separators(cleaned)
    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        raise PriceParseError(f"price '{raw}' is not numeric")

    if not amount.is_finite():
        raise PriceParseError(f"price '{raw}' is not numeric")

    minor = (amount * (Decimal(10) ** decimals)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    if minor < 0:
        raise PriceParseError(f"price '{raw}' is negative")
    if minor == 0:
        raise PriceParseError(f"price '{raw}' must be greater than zero")
    return int(minor)


def is_valid_image_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class DataValidator:
    """
    Turn SourceRecords into ValidatedProducts.

    Hard errors (collected, then raised together):
    - missing or empty title
    - missing, non-numeric, zero or negative price
    - price outside [min_price, max_price] (strict mode only)

    Warnings (record still valid):
    - title or description truncated
    - unsupported currency replaced by the default
    - invalid image URL dropped
    - metadata keys dropped or values shortened to fit platform limits
    """

    def __init__(
        self,
        config: ValidationConfig,
        idempotency_key: str = "supabase_id",
        default_currency: str = "eur",
        lenient: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize validator.

        Args:
            config: Field policies
            idempotency_key: Metadata key holding the source identifier
            default_currency: Currency used when a record has none
            lenient: Skip range policies, keep structural checks
            clock: Source of the migration timestamp written to metadata
        """
        self.config = config
        self.idempotency_key = idempotency_key
        self.default_currency = default_currency.lower()
        self.lenient = lenient
        self._clock = clock

    def validate(self, record: SourceRecord) -> ValidatedProduct:
        """
        Validate and transform one record.

        Raises:
            ValidationError: With every issue found in the record
        """
        issues: List[ValidationIssue] = []
        warnings: List[str] = []

        name = self._sanitize_title(record, issues, warnings)
        unit_amount = self._parse_amount(record, issues)

        if issues:
            raise ValidationError(issues, record_id=record.id)

        if name is None or unit_amount is None:
            raise RuntimeError(
                f"Record {record.id} has no title or amount after validation"
            )

        description = self._build_description(record, warnings)
        currency = self._resolve_currency(record, warnings)
        metadata = self._build_metadata(record, warnings)
        images = self._collect_images(record, warnings)

        return ValidatedProduct(
            source_id=record.id,
            name=name,
            description=description,
            unit_amount=unit_amount,
            currency=currency,
            metadata=metadata,
            images=images,
            active=record.available,
            original_price=record.price,
            warnings=warnings,
        )

    def validate_batch(self, records: Iterable[SourceRecord]) -> BatchValidationResult:
        """
        Partition a batch without raising.

        Returns:
            BatchValidationResult with valid products, rejected records
            (with issues) and warnings keyed by source id
        """
        result = BatchValidationResult()

        for record in records:
            try:
                product = self.validate(record)
            except ValidationError as e:
                for issue in e.issues:
                    VALIDATION_FAILURES.labels(field=issue.field).inc()
                result.invalid.append(InvalidRecord(record=record, issues=e.issues))
                logger.warning(
                    "record_validation_failed",
                    record_id=record.id,
                    issues=[f"{i.field}: {i.reason}" for i in e.issues],
                )
                continue

            result.valid.append(product)
            if product.warnings:
                result.warnings[product.source_id] = list(product.warnings)

        logger.debug(
            "batch_validated",
            valid=len(result.valid),
            invalid=len(result.invalid),
            with_warnings=len(result.warnings),
        )
        return result

    def _sanitize_title(
        self,
        record: SourceRecord,
        issues: List[ValidationIssue],
        warnings: List[str],
    ) -> Optional[str]:
        raw = record.title or ""
        title = _LINE_BREAKS.sub(" ", raw).strip()
        if not title:
            issues.append(ValidationIssue(field="title", reason="title is required"))
            return None

        title, truncated = truncate(title, self.config.max_title_length)
        if truncated:
            warnings.append(
                f"title truncated from {len(raw.strip())} to "
                f"{self.config.max_title_length} characters"
            )
        return title

    def _parse_amount(
        self, record: SourceRecord, issues: List[ValidationIssue]
    ) -> Optional[int]:
        try:
            amount = parse_price(record.price, self.config.currency_decimals)
        except PriceParseError as e:
            issues.append(ValidationIssue(field="price", reason=str(e)))
            return None

        if self.lenient:
            return amount

        if amount < self.config.min_price:
            issues.append(
                ValidationIssue(
                    field="price",
                    reason=f"{amount} is below minimum {self.config.min_price}",
                )
            )
            return None
        if amount > self.config.max_price:
            issues.append(
                ValidationIssue(
                    field="price",
                    reason=f"{amount} exceeds maximum {self.config.max_price}",
                )
            )
            return None
        return amount

    def _build_description(
        self, record: SourceRecord, warnings: List[str]
    ) -> Optional[str]:
        parts = []
        if record.description and record.description.strip():
            parts.append(record.description.strip())

        if record.dimensions:
            dims = record.dimensions.format()
            if dims:
                parts.append(f"Dimensions: {dims}")

        if record.weight:
            parts.append(f"Weight: {record.weight:g}kg")

        if record.category:
            category = f"Category: {record.category}"
            if record.subcategory:
                category += f" / {record.subcategory}"
            parts.append(category)

        if not parts:
            return None

        description, truncated = truncate(
            "\n\n".join(parts), self.config.max_description_length
        )
        if truncated:
            warnings.append(
                f"description truncated to {self.config.max_description_length} characters"
            )
        return description

    def _resolve_currency(self, record: SourceRecord, warnings: List[str]) -> str:
        currency = (record.currency or self.default_currency).strip().lower()
        if currency not in self.config.supported_currencies:
            warnings.append(
                f"unsupported currency '{currency}', using '{self.default_currency}'"
            )
            return self.default_currency
        return currency

    def _build_metadata(self, record: SourceRecord, warnings: List[str]) -> Dict[str, str]:
        metadata: Dict[str, str] = {
            self.idempotency_key: record.id,
            MIGRATION_TIMESTAMP_KEY: self._clock().isoformat(),
        }
        if record.category:
            metadata["category"] = record.category
        if record.subcategory:
            metadata["subcategory"] = record.subcategory
        if record.dimensions:
            dims = record.dimensions.format()
            if dims:
                metadata["dimensions"] = dims
        if record.weight:
            metadata["weight"] = f"{record.weight:g}"

        limit = self.config.max_metadata_value_length
        for key, value in list(metadata.items()):
            if key == self.idempotency_key:
                continue
            shortened, truncated = truncate(value, limit)
            if truncated:
                metadata[key] = shortened
                warnings.append(f"metadata value '{key}' truncated to {limit} characters")

        for key in DROPPABLE_METADATA_KEYS:
            if self._metadata_size(metadata) <= self.config.max_metadata_bytes:
                break
            if key in metadata:
                del metadata[key]
                warnings.append(f"metadata key '{key}' dropped to fit size limit")

        return metadata

    @staticmethod
    def _metadata_size(metadata: Dict[str, str]) -> int:
        return len(json.dumps(metadata, ensure_ascii=False).encode("utf-8"))

    def _collect_images(self, record: SourceRecord, warnings: List[str]) -> List[str]:
        if not record.image:
            return []
        if is_valid_image_url(record.image):
            return [record.image]
        warnings.append(f"invalid image URL dropped: {record.image}")
        return []
