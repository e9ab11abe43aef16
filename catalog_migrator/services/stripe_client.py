import asyncio
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog_migrator.models.config import RemoteConfig
from catalog_migrator.utils.exceptions import (
    ConflictError,
    MigrationError,
    RateLimitError,
    TransientNetworkError,
    error_for_status,
)

logger = structlog.get_logger()

FormItems = List[Tuple[str, str]]


def encode_form(data: Dict[str, Any], prefix: str = "") -> FormItems:
    """Flatten a payload into Stripe's bracketed form encoding.

    {"metadata": {"a": "1"}, "images": ["u"]} becomes
    [("metadata[a]", "1"), ("images[0]", "u")]
    """
    items: FormItems = []
    for key, value in data.items():
        field = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(encode_form(value, field))
        elif isinstance(value, (list, tuple)):
            for index, element in enumerate(value):
                if isinstance(element, dict):
                    items.extend(encode_form(element, f"{field}[{index}]"))
                else:
                    items.append((f"{field}[{index}]", _scalar(element)))
        else:
            items.append((field, _scalar(value)))
    return items


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def escape_search_value(value: str) -> str:
    """Escape a value for use inside a double-quoted search clause"""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _parse_retry_after(headers: Any) -> Optional[float]:
    raw = headers.get("Retry-After") if headers is not None else None
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


class StripeClient:
    """Minimal async client for a Stripe-compatible REST API.

    Every failure leaves this class as a classified MigrationError.
    """

    def __init__(self, config: RemoteConfig):
        self.config = config
        self.api_key = config.api_key
        self.base_url = config.base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self.config.api_version:
            headers["Stripe-Version"] = self.config.api_version
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        query = encode_form(params) if params else None
        body = encode_form(data) if data else None

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method,
                    url,
                    params=query,
                    data=body,
                    headers=self._headers(idempotency_key),
                ) as response:
                    if response.status >= 400:
                        raise await self._error_from_response(response, method, path)
                    return await response.json()

        except asyncio.TimeoutError:
            logger.warning("remote_timeout", method=method, path=path)
            raise TransientNetworkError(f"{method} {path} timed out")
        except aiohttp.ClientError as e:
            logger.warning("remote_network_error", method=method, path=path, error=str(e))
            raise TransientNetworkError(f"{method} {path} failed: {e}")

    async def _error_from_response(
        self, response: Any, method: str, path: str
    ) -> MigrationError:
        code = None
        error_type = None
        try:
            payload = await response.json(content_type=None)
            error_body = payload.get("error", {}) if isinstance(payload, dict) else {}
            message = error_body.get("message") or f"HTTP {response.status}"
            code = error_body.get("code")
            error_type = error_body.get("type")
        except (ValueError, aiohttp.ContentTypeError):
            message = f"HTTP {response.status}"

        logger.debug(
            "remote_error_response",
            method=method,
            path=path,
            status=response.status,
            code=code,
            error_type=error_type,
        )

        if code == "resource_already_exists":
            return ConflictError(message, status=response.status, code=code)
        return error_for_status(
            response.status,
            message,
            retry_after=_parse_retry_after(response.headers),
            code=code,
        )

    async def retrieve_account(self) -> Dict[str, Any]:
        return await self._request("GET", "/v1/account")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((TransientNetworkError, RateLimitError)),
        reraise=True,
    )
    async def ping(self) -> Dict[str, Any]:
        """Connectivity and credential check used by preflight"""
        return await self.retrieve_account()

    async def search_products(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        result = await self._request(
            "GET", "/v1/products/search", params={"query": query, "limit": limit}
        )
        return result.get("data", [])

    async def retrieve_product(self, product_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/products/{product_id}")

    async def create_product(
        self, payload: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST", "/v1/products", data=payload, idempotency_key=idempotency_key
        )

    async def update_product(
        self, product_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self._request("POST", f"/v1/products/{product_id}", data=payload)

    async def list_prices(
        self, product_id: str, active: bool = True, limit: int = 10
    ) -> List[Dict[str, Any]]:
        result = await self._request(
            "GET",
            "/v1/prices",
            params={"product": product_id, "active": active, "limit": limit},
        )
        return result.get("data", [])

    async def create_price(
        self, payload: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "POST", "/v1/prices", data=payload, idempotency_key=idempotency_key
        )
