"""Unit tests for the Stripe-compatible HTTP client"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from catalog_migrator.models.config import RemoteConfig
from catalog_migrator.services.stripe_client import (
    StripeClient,
    encode_form,
    escape_search_value,
)
from catalog_migrator.utils.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    RateLimitError,
    TransientNetworkError,
)


@pytest.fixture
def client():
    return StripeClient(
        RemoteConfig(
            api_key="sk_test_123",
            base_url="https://stripe.test/",
            api_version="2024-06-20",
        )
    )


def mock_response(status=200, payload=None, headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=payload if payload is not None else {})
    return response


def patch_request(*responses):
    """Patch ClientSession.request to yield the given responses in order."""
    mock_request = MagicMock()
    contexts = []
    for response in responses:
        ctx = MagicMock()
        ctx.__aenter__.return_value = response
        ctx.__aexit__.return_value = False
        contexts.append(ctx)
    mock_request.side_effect = contexts
    return patch("aiohttp.ClientSession.request", new=mock_request), mock_request


class TestEncodeForm:
    def test_flat_and_nested(self):
        items = encode_form(
            {
                "name": "Chair",
                "active": True,
                "metadata": {"supabase_id": "p-1"},
                "images": ["https://a", "https://b"],
                "description": None,
            }
        )

        assert ("name", "Chair") in items
        assert ("active", "true") in items
        assert ("metadata[supabase_id]", "p-1") in items
        assert ("images[0]", "https://a") in items
        assert ("images[1]", "https://b") in items
        assert all(key != "description" for key, _ in items)

    def test_numbers_stringified(self):
        assert encode_form({"unit_amount": 2550}) == [("unit_amount", "2550")]

    def test_escape_search_value(self):
        assert escape_search_value('a "b" \\c') == 'a \\"b\\" \\\\c'


class TestRequests:
    @pytest.mark.asyncio
    async def test_search_products(self, client):
        patcher, mock_request = patch_request(
            mock_response(payload={"data": [{"id": "prod_1"}]})
        )
        with patcher:
            results = await client.search_products('name:"Chair"', limit=5)

        assert results == [{"id": "prod_1"}]
        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://stripe.test/v1/products/search")
        assert ("query", 'name:"Chair"') in kwargs["params"]
        assert ("limit", "5") in kwargs["params"]
        assert kwargs["headers"]["Authorization"] == "Bearer sk_test_123"
        assert kwargs["headers"]["Stripe-Version"] == "2024-06-20"

    @pytest.mark.asyncio
    async def test_create_product_sends_idempotency_key(self, client):
        patcher, mock_request = patch_request(mock_response(payload={"id": "prod_9"}))
        with patcher:
            created = await client.create_product(
                {"name": "Chair", "metadata": {"supabase_id": "p-1"}},
                idempotency_key="key-1",
            )

        assert created["id"] == "prod_9"
        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert kwargs["headers"]["Idempotency-Key"] == "key-1"
        assert ("metadata[supabase_id]", "p-1") in kwargs["data"]

    @pytest.mark.asyncio
    async def test_list_prices(self, client):
        patcher, mock_request = patch_request(
            mock_response(payload={"data": [{"id": "price_1", "unit_amount": 100}]})
        )
        with patcher:
            prices = await client.list_prices("prod_1", active=True, limit=10)

        assert prices[0]["id"] == "price_1"
        params = mock_request.call_args.kwargs["params"]
        assert ("product", "prod_1") in params
        assert ("active", "true") in params


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            (400, InvalidRequestError),
            (401, AuthenticationError),
            (404, NotFoundError),
            (409, ConflictError),
            (500, TransientNetworkError),
        ],
    )
    async def test_status_mapped(self, client, status, expected):
        patcher, _ = patch_request(
            mock_response(status=status, payload={"error": {"message": "nope"}})
        )
        with patcher:
            with pytest.raises(expected, match="nope"):
                await client.retrieve_product("prod_1")

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, client):
        patcher, _ = patch_request(
            mock_response(status=429, payload={}, headers={"Retry-After": "7"})
        )
        with patcher:
            with pytest.raises(RateLimitError) as exc_info:
                await client.retrieve_product("prod_1")

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_resource_already_exists_is_conflict(self, client):
        patcher, _ = patch_request(
            mock_response(
                status=400,
                payload={"error": {"code": "resource_already_exists", "message": "dup"}},
            )
        )
        with patcher:
            with pytest.raises(ConflictError):
                await client.create_product({"name": "x"})

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, client):
        mock_request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch("aiohttp.ClientSession.request", new=mock_request):
            with pytest.raises(TransientNetworkError):
                await client.retrieve_account()

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, client):
        mock_request = MagicMock(side_effect=asyncio.TimeoutError())
        with patch("aiohttp.ClientSession.request", new=mock_request):
            with pytest.raises(TransientNetworkError, match="timed out"):
                await client.retrieve_account()


class TestPing:
    @pytest.mark.asyncio
    async def test_ping_success(self, client):
        patcher, _ = patch_request(mock_response(payload={"id": "acct_1"}))
        with patcher:
            account = await client.ping()
        assert account["id"] == "acct_1"

    @pytest.mark.asyncio
    async def test_ping_does_not_retry_auth_errors(self, client):
        patcher, mock_request = patch_request(mock_response(status=401, payload={}))
        with patcher:
            with pytest.raises(AuthenticationError):
                await client.ping()
        assert mock_request.call_count == 1
