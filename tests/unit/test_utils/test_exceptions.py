"""Unit tests for the error taxonomy and classification"""

import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest

from catalog_migrator.models.product import ValidationIssue
from catalog_migrator.utils.exceptions import (
    AuthenticationError,
    ConflictError,
    CriticalStoreError,
    ErrorKind,
    InvalidRequestError,
    MigrationError,
    NotFoundError,
    RateLimitError,
    Severity,
    TransientNetworkError,
    UnknownRemoteError,
    ValidationError,
    classify_error,
    error_for_status,
)


class TestErrorFlags:
    """Each kind fixes retryable and severity."""

    @pytest.mark.parametrize(
        "error,retryable,severity",
        [
            (TransientNetworkError("x"), True, Severity.MEDIUM),
            (RateLimitError("x"), True, Severity.MEDIUM),
            (AuthenticationError("x"), False, Severity.CRITICAL),
            (InvalidRequestError("x"), False, Severity.HIGH),
            (NotFoundError("x"), False, Severity.LOW),
            (ConflictError("x"), False, Severity.LOW),
            (CriticalStoreError("x"), False, Severity.CRITICAL),
            (UnknownRemoteError("x"), True, Severity.MEDIUM),
        ],
    )
    def test_flags(self, error, retryable, severity):
        assert error.retryable is retryable
        assert error.severity == severity

    def test_critical_errors(self):
        assert AuthenticationError("x").is_critical
        assert CriticalStoreError("x").is_critical
        assert not TransientNetworkError("x").is_critical

    def test_validation_error_lists_every_issue(self):
        issues = [
            ValidationIssue(field="title", reason="title is required"),
            ValidationIssue(field="price", reason="price must be greater than zero"),
        ]
        error = ValidationError(issues, record_id="p-1")

        assert error.kind == ErrorKind.VALIDATION
        assert not error.retryable
        assert "title: title is required" in str(error)
        assert "price: price must be greater than zero" in str(error)
        assert error.record_id == "p-1"

    def test_to_dict(self):
        error = RateLimitError("slow down", retry_after=3.0, status=429, code="rate")

        data = error.to_dict()

        assert data == {
            "kind": "rate_limit",
            "message": "slow down",
            "retryable": True,
            "severity": "medium",
            "status": 429,
            "code": "rate",
        }


class TestErrorForStatus:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (429, RateLimitError),
            (401, AuthenticationError),
            (403, AuthenticationError),
            (404, NotFoundError),
            (409, ConflictError),
            (400, InvalidRequestError),
            (422, InvalidRequestError),
            (408, TransientNetworkError),
            (500, TransientNetworkError),
            (503, TransientNetworkError),
            (418, UnknownRemoteError),
        ],
    )
    def test_status_mapping(self, status, expected):
        error = error_for_status(status, "boom")
        assert type(error) is expected
        assert error.status == status

    def test_retry_after_carried(self):
        error = error_for_status(429, "slow", retry_after=7.5)
        assert error.retry_after == 7.5


class TestClassifyError:
    def test_classified_error_passes_through(self):
        original = ConflictError("dup")
        assert classify_error(original) is original

    def test_timeout_is_transient(self):
        error = classify_error(asyncio.TimeoutError())
        assert isinstance(error, TransientNetworkError)

    def test_client_error_is_transient(self):
        error = classify_error(aiohttp.ClientConnectionError("refused"))
        assert isinstance(error, TransientNetworkError)
        assert isinstance(error.__cause__, aiohttp.ClientConnectionError)

    def test_client_response_error_uses_status(self):
        response_error = aiohttp.ClientResponseError(
            request_info=MagicMock(), history=(), status=401, message="Unauthorized"
        )
        error = classify_error(response_error)
        assert isinstance(error, AuthenticationError)

    def test_anything_else_is_unknown(self):
        error = classify_error(KeyError("id"))
        assert isinstance(error, UnknownRemoteError)
        assert isinstance(error, MigrationError)
        assert error.retryable
