"""Exception hierarchy for the migration engine.

Every failure that crosses a component boundary is expressed as a
MigrationError carrying three classification fields:

- kind: closed ErrorKind tag describing what went wrong
- retryable: whether the Retry Handler may attempt the operation again
- severity: whether the failure is local to one record or fatal to the run

Classification happens once, where the error is first caught (the HTTP
clients map status codes, classify_error() wraps anything else).
Downstream code only inspects these fields and never re-derives them
from messages or status codes.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from catalog_migrator.models.product import ValidationIssue


class ErrorKind(str, Enum):
    """Closed set of error categories."""

    VALIDATION = "validation"
    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CRITICAL_STORE = "critical_store"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """How far the damage of an error reaches."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MigrationError(Exception):
    """Base exception for all classified migration errors

    Use this to catch any classified failure in one place:
    ```python
    try:
        await remote_sync.find_or_create(product)
    except MigrationError as e:
        if e.severity == Severity.CRITICAL:
            raise
    ```
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    retryable: bool = False
    severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.context = context or {}

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "severity": self.severity.value,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.code:
            data["code"] = self.code
        return data


class ValidationError(MigrationError):
    """Source record cannot be turned into a remote payload

    Raised when:
    - Title is missing or empty
    - Price is non-numeric, zero, negative or out of range

    Carries every violation found, not just the first one.
    Never retried; fatal to the single record only.
    """

    kind = ErrorKind.VALIDATION
    retryable = False
    severity = Severity.LOW

    def __init__(self, issues: List[ValidationIssue], record_id: Optional[str] = None):
        summary = "; ".join(f"{i.field}: {i.reason}" for i in issues)
        super().__init__(
            f"Validation failed: {summary}", context={"record_id": record_id}
        )
        self.issues = issues
        self.record_id = record_id


class TransientNetworkError(MigrationError):
    """Network-level or server-side failure that may succeed on retry

    Raised when:
    - Connection reset, DNS failure or timeout
    - Remote returns 5xx
    """

    kind = ErrorKind.TRANSIENT_NETWORK
    retryable = True
    severity = Severity.MEDIUM


class RateLimitError(MigrationError):
    """Remote throttled the request

    Raised when:
    - API returns 429 status

    Retried with a mandatory minimum backoff (or the retry-after value).
    """

    kind = ErrorKind.RATE_LIMIT
    retryable = True
    severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class AuthenticationError(MigrationError):
    """Credentials rejected

    Raised when:
    - API returns 401 or 403

    Fatal to the whole run: no further record can succeed.
    """

    kind = ErrorKind.AUTHENTICATION
    retryable = False
    severity = Severity.CRITICAL


class InvalidRequestError(MigrationError):
    """Remote rejected the request as malformed (400, 422)."""

    kind = ErrorKind.INVALID_REQUEST
    retryable = False
    severity = Severity.HIGH


class NotFoundError(MigrationError):
    """Entity does not exist

    Raised when:
    - API returns 404
    - A write-back updated zero rows

    Lookups treat it as a trigger to create, not as a failure.
    """

    kind = ErrorKind.NOT_FOUND
    retryable = False
    severity = Severity.LOW


class ConflictError(MigrationError):
    """Duplicate entity (409 or unique-constraint violation)

    The Remote Sync Service resolves it through the idempotent lookup path.
    """

    kind = ErrorKind.CONFLICT
    retryable = False
    severity = Severity.LOW


class CriticalStoreError(MigrationError):
    """Source store schema problem (missing table or column)

    Fatal to the whole run.
    """

    kind = ErrorKind.CRITICAL_STORE
    retryable = False
    severity = Severity.CRITICAL


class CircuitOpenError(MigrationError):
    """Circuit breaker for an operation class is OPEN

    Raised before any network call is made.
    """

    kind = ErrorKind.CIRCUIT_OPEN
    retryable = False
    severity = Severity.HIGH

    def __init__(self, operation: str, cooldown_remaining: float = 0.0) -> None:
        super().__init__(
            f"Circuit breaker '{operation}' is OPEN",
            context={"operation": operation},
        )
        self.operation = operation
        self.cooldown_remaining = cooldown_remaining


class UnknownRemoteError(MigrationError):
    """Unclassified failure; retried conservatively."""

    kind = ErrorKind.UNKNOWN
    retryable = True
    severity = Severity.MEDIUM


class PreflightError(Exception):
    """Connectivity check against the source store or remote platform failed."""

    pass


def classify_error(error: BaseException) -> MigrationError:
    """Map an arbitrary exception onto the closed taxonomy.

    Already-classified errors pass through unchanged.

    Args:
        error: Exception raised by an operation

    Returns:
        A MigrationError instance (the original one when possible)
    """
    if isinstance(error, MigrationError):
        return error

    if isinstance(error, asyncio.TimeoutError):
        classified: MigrationError = TransientNetworkError(
            f"Request timed out: {error}"
        )
    elif isinstance(error, aiohttp.ClientResponseError):
        classified = error_for_status(error.status, error.message)
    elif isinstance(error, (aiohttp.ClientError, ConnectionError)):
        classified = TransientNetworkError(f"Network error: {error}")
    else:
        classified = UnknownRemoteError(f"{type(error).__name__}: {error}")

    classified.__cause__ = error
    return classified


def error_for_status(
    status: int,
    message: str,
    retry_after: Optional[float] = None,
    code: Optional[str] = None,
) -> MigrationError:
    """Build the classified error for an HTTP status code.

    Args:
        status: HTTP status code of a failed response
        message: Human readable error message
        retry_after: Parsed Retry-After header, if any
        code: Provider-specific error code, if any

    Returns:
        Classified MigrationError
    """
    if status == 429:
        return RateLimitError(message, retry_after=retry_after, status=status, code=code)
    if status in (401, 403):
        return AuthenticationError(message, status=status, code=code)
    if status == 404:
        return NotFoundError(message, status=status, code=code)
    if status == 409:
        return ConflictError(message, status=status, code=code)
    if status in (400, 422):
        return InvalidRequestError(message, status=status, code=code)
    if status in (408, 425) or status >= 500:
        return TransientNetworkError(message, status=status, code=code)
    return UnknownRemoteError(message, status=status, code=code)
