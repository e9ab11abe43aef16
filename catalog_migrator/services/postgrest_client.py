import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog_migrator.models.config import SourceConfig
from catalog_migrator.utils.exceptions import (
    ConflictError,
    CriticalStoreError,
    MigrationError,
    NotFoundError,
    TransientNetworkError,
    error_for_status,
)

logger = structlog.get_logger()

QueryParams = Sequence[Tuple[str, str]]

# PostgreSQL / PostgREST error codes with a fixed meaning for the engine
CRITICAL_STORE_CODES = {"42P01", "42703", "42501"}  # no table, no column, no privilege
NOT_FOUND_CODES = {"PGRST116"}
CONFLICT_CODES = {"23505"}
TRANSIENT_CODES = {"PGRST301", "57014", "53300"}


def parse_content_range(value: Optional[str]) -> int:
    """Total row count from a Content-Range header ("0-9/120" or "*/0")"""
    if not value or "/" not in value:
        raise ValueError(f"Missing or malformed Content-Range header: {value!r}")
    total = value.rsplit("/", 1)[1]
    if total == "*":
        raise ValueError("Content-Range header carries no exact count")
    return int(total)


def classify_store_error(
    status: int, code: Optional[str], message: str
) -> MigrationError:
    if code in CRITICAL_STORE_CODES:
        return CriticalStoreError(message, status=status, code=code)
    if code in NOT_FOUND_CODES:
        return NotFoundError(message, status=status, code=code)
    if code in CONFLICT_CODES:
        return ConflictError(message, status=status, code=code)
    if code in TRANSIENT_CODES:
        return TransientNetworkError(message, status=status, code=code)
    return error_for_status(status, message, code=code)


class PostgrestClient:
    """Async client for a PostgREST endpoint (Supabase /rest/v1)."""

    def __init__(self, config: SourceConfig):
        self.config = config
        self.base_url = f"{config.url.rstrip('/')}/rest/v1"
        self.timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.config.service_key,
            "Authorization": f"Bearer {self.config.service_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[QueryParams] = None,
        json_body: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> Tuple[Any, Dict[str, str]]:
        url = f"{self.base_url}/{table}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method,
                    url,
                    params=list(params or []),
                    json=json_body,
                    headers=self._headers(prefer),
                ) as response:
                    if response.status >= 400:
                        raise await self._error_from_response(response, method, table)
                    headers = dict(response.headers)
                    if method == "HEAD" or response.status == 204:
                        return None, headers
                    return await response.json(), headers

        except asyncio.TimeoutError:
            logger.warning("store_timeout", method=method, table=table)
            raise TransientNetworkError(f"{method} {table} timed out")
        except aiohttp.ClientError as e:
            logger.warning("store_network_error", method=method, table=table, error=str(e))
            raise TransientNetworkError(f"{method} {table} failed: {e}")

    async def _error_from_response(
        self, response: Any, method: str, table: str
    ) -> MigrationError:
        code = None
        message = f"HTTP {response.status}"
        if method != "HEAD":
            try:
                payload = await response.json(content_type=None)
                if isinstance(payload, dict):
                    code = payload.get("code")
                    message = payload.get("message") or message
            except (ValueError, aiohttp.ContentTypeError):
                pass

        error = classify_store_error(response.status, code, message)
        log = logger.error if error.is_critical else logger.warning
        log(
            "store_error_response",
            method=method,
            table=table,
            status=response.status,
            code=code,
            kind=error.kind.value,
        )
        return error

    async def select(self, table: str, params: QueryParams) -> List[Dict[str, Any]]:
        rows, _ = await self._request("GET", table, params=params)
        return rows or []

    async def count(self, table: str, params: QueryParams) -> int:
        _, headers = await self._request(
            "HEAD", table, params=params, prefer="count=exact"
        )
        content_range = headers.get("Content-Range") or headers.get("content-range")
        return parse_content_range(content_range)

    async def update(
        self, table: str, params: QueryParams, values: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        rows, _ = await self._request(
            "PATCH",
            table,
            params=params,
            json_body=values,
            prefer="return=representation",
        )
        return rows or []

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(TransientNetworkError),
        reraise=True,
    )
    async def ping(self, table: str) -> None:
        """Connectivity, credential and schema check used by preflight"""
        await self.select(table, [("select", "id"), ("limit", "1")])
