"""Классификация ошибок транспорта/провайдера (закрытая таксономия + подсказки)."""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx

from ai_completions.providers.base import ProviderHTTPError, TransportTimeoutError

DEFAULT_RETRY_AFTER_SECONDS = 60.0


class ErrorKind(str, Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    PARSE_ERROR = "parse_error"


REMEDIATION: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Проверьте соединение и повторите запрос позже",
    ErrorKind.AUTHENTICATION: "Проверьте API ключ (OPENAI_API_KEY)",
    ErrorKind.RATE_LIMIT: "Подождите retry_after_seconds и повторите",
    ErrorKind.API_ERROR: "Ошибка провайдера; детали в details",
    ErrorKind.PARSE_ERROR: "Модель вернула текст вместо JSON; повторите или упростите промпт",
}

RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.RATE_LIMIT})


class ExternalError(Exception):
    """Типизированная ошибка для вызывающего кода. Создаётся только в этом модуле."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        code: str | None = None,
        retry_after_seconds: float | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.retry_after_seconds = retry_after_seconds
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def remediation(self) -> str:
        return REMEDIATION[self.kind]

    def to_payload(self) -> dict:
        """Формирует JSON `{error:{...}}` (без details: там может быть что угодно)."""
        err: dict[str, Any] = {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }
        if self.retry_after_seconds is not None:
            err["retry_after_seconds"] = self.retry_after_seconds
        return {"error": err}

    def __repr__(self) -> str:
        return (
            f"ExternalError(kind={self.kind.value!r}, code={self.code!r}, "
            f"message={self.message!r})"
        )


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (TransportTimeoutError, TimeoutError, httpx.TimeoutException))


def classify(exc: BaseException) -> ExternalError:
    """Переводит любое исключение в `ExternalError` (тотальная функция)."""
    if isinstance(exc, ExternalError):
        return exc

    if _is_timeout(exc):
        return ExternalError(ErrorKind.NETWORK, "Request timeout", code="TIMEOUT")

    text = str(exc)
    if isinstance(exc, ProviderHTTPError):
        # Статус известен точно: тело ответа может случайно содержать "401"/"429".
        is_auth = exc.status_code == 401
        is_rate_limit = exc.status_code == 429
    else:
        is_auth = "401" in text
        is_rate_limit = "429" in text

    if is_auth:
        return ExternalError(ErrorKind.AUTHENTICATION, "Invalid API key", code="INVALID_API_KEY")

    if is_rate_limit:
        hint = exc.retry_after_seconds if isinstance(exc, ProviderHTTPError) else None
        return ExternalError(
            ErrorKind.RATE_LIMIT,
            "Rate limit exceeded",
            code="RATE_LIMIT",
            retry_after_seconds=hint if hint is not None else DEFAULT_RETRY_AFTER_SECONDS,
        )

    if isinstance(exc, httpx.TransportError):
        return ExternalError(
            ErrorKind.NETWORK,
            "Не удалось подключиться к провайдеру",
            code="UNREACHABLE",
            details=exc,
        )

    return ExternalError(
        ErrorKind.API_ERROR,
        text or "Unknown API error",
        details=exc,
    )


def parse_failure(text: str) -> ExternalError:
    """Ошибка для вызывающего кода, которому нужен JSON, а пришёл только текст."""
    return ExternalError(
        ErrorKind.PARSE_ERROR,
        "Не удалось извлечь структурированные данные из ответа модели",
        code="PARSE_FAILED",
        details={"text_len": len(text)},
    )
