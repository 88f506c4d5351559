import asyncio

import httpx
import pytest

from ai_completions.providers.base import ProviderHTTPError, TransportTimeoutError
from ai_completions.services.errors import (
    DEFAULT_RETRY_AFTER_SECONDS,
    ErrorKind,
    ExternalError,
    classify,
    parse_failure,
)


@pytest.mark.parametrize(
    "exc",
    [
        TransportTimeoutError("Request timeout after 5s"),
        asyncio.TimeoutError(),
        httpx.ReadTimeout("timed out"),
    ],
)
def test_classify_timeout(exc: BaseException) -> None:
    err = classify(exc)
    assert err.kind is ErrorKind.NETWORK
    assert err.code == "TIMEOUT"
    assert err.retry_after_seconds is None


def test_classify_401_message() -> None:
    err = classify(RuntimeError("HTTP 401: Incorrect API key provided"))
    assert err.kind is ErrorKind.AUTHENTICATION
    assert err.code == "INVALID_API_KEY"
    assert err.retryable is False


def test_classify_429_message_uses_fixed_retry_after() -> None:
    err = classify(RuntimeError("HTTP 429: Too Many Requests"))
    assert err.kind is ErrorKind.RATE_LIMIT
    assert err.code == "RATE_LIMIT"
    assert err.retry_after_seconds == DEFAULT_RETRY_AFTER_SECONDS == 60
    assert err.retryable is True


def test_classify_429_prefers_provider_hint() -> None:
    err = classify(ProviderHTTPError(429, "slow down", retry_after_seconds=7))
    assert err.kind is ErrorKind.RATE_LIMIT
    assert err.retry_after_seconds == 7


def test_classify_status_wins_over_body_text() -> None:
    # 500 с "401" в теле — это всё ещё ошибка провайдера, а не авторизация.
    err = classify(ProviderHTTPError(500, "upstream said 401 somewhere"))
    assert err.kind is ErrorKind.API_ERROR


def test_classify_connect_error_is_network() -> None:
    err = classify(httpx.ConnectError("connection refused"))
    assert err.kind is ErrorKind.NETWORK
    assert err.code == "UNREACHABLE"


def test_classify_anything_else_keeps_details() -> None:
    raw = ValueError("boom")
    err = classify(raw)
    assert err.kind is ErrorKind.API_ERROR
    assert err.code is None
    assert err.details is raw
    assert err.message == "boom"


def test_classify_is_idempotent_for_external_error() -> None:
    err = classify(RuntimeError("429"))
    assert classify(err) is err


def test_parse_failure_payload() -> None:
    err = parse_failure("no json here at all")
    assert isinstance(err, ExternalError)
    assert err.kind is ErrorKind.PARSE_ERROR
    payload = err.to_payload()
    assert payload["error"]["kind"] == "parse_error"
    assert payload["error"]["code"] == "PARSE_FAILED"
    assert err.remediation
