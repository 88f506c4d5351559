"""OpenAI-compatible транспорт (POST /v1/chat/completions через httpx)."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

import httpx
import structlog

from ai_completions.providers.base import (
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    ProviderHTTPError,
    TransportTimeoutError,
)
from ai_completions.settings import Settings

log = structlog.get_logger()

STREAM_PREFIX = "data: "
STREAM_DONE = "[DONE]"


def _parse_retry_after(value: str | None) -> float | None:
    """`Retry-After` в секундах (HTTP-date не поддерживаем, вернём None)."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class OpenAICompatibleTransport(CompletionTransport):
    name = "openai"

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        if not settings.openai_api_key:
            raise RuntimeError("Нужен OPENAI_API_KEY для provider=openai")
        base = settings.openai_base_url.rstrip("/")
        # Разрешаем как "https://api.openai.com", так и "https://api.openai.com/v1".
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        self._url = f"{base.rstrip('/')}/v1/chat/completions"
        self._headers: dict[str, str] = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        if settings.openai_organization:
            self._headers["OpenAI-Organization"] = settings.openai_organization
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout_seconds),
        )

    async def _post(self, payload: dict, timeout_seconds: float) -> httpx.Response:
        return await self._client.post(
            self._url,
            json=payload,
            headers=self._headers,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def send(self, request: CompletionRequest, timeout_seconds: float) -> CompletionResponse:
        try:
            r = await asyncio.wait_for(
                self._post(request.to_payload(), timeout_seconds),
                timeout_seconds,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise TransportTimeoutError(f"Request timeout after {timeout_seconds}s") from exc

        if r.status_code >= 400:
            raise ProviderHTTPError(
                r.status_code,
                r.text,
                retry_after_seconds=_parse_retry_after(r.headers.get("Retry-After")),
            )
        return CompletionResponse.from_payload(r.json())

    async def stream(
        self, request: CompletionRequest, timeout_seconds: float
    ) -> AsyncIterator[str]:
        payload = request.to_payload()
        payload["stream"] = True
        loop = asyncio.get_running_loop()
        # httpx ограничивает только отдельные чтения; общий дедлайн на весь стрим ставим сами.
        deadline = loop.time() + timeout_seconds
        try:
            async with self._client.stream(
                "POST",
                self._url,
                json=payload,
                headers=self._headers,
                timeout=httpx.Timeout(timeout_seconds),
            ) as r:
                if r.status_code >= 400:
                    body = (await r.aread()).decode("utf-8", errors="replace")
                    raise ProviderHTTPError(
                        r.status_code,
                        body,
                        retry_after_seconds=_parse_retry_after(r.headers.get("Retry-After")),
                    )
                lines = r.aiter_lines()
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise TimeoutError
                    try:
                        line = await asyncio.wait_for(anext(lines), remaining)
                    except StopAsyncIteration:
                        return
                    if not line.startswith(STREAM_PREFIX):
                        continue
                    data = line[len(STREAM_PREFIX) :].strip()
                    if data == STREAM_DONE:
                        return
                    delta = _delta_content(data)
                    if delta:
                        yield delta
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise TransportTimeoutError(f"Stream timeout after {timeout_seconds}s") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def _delta_content(data: str) -> str | None:
    try:
        chunk = json.loads(data)
        return chunk["choices"][0]["delta"].get("content")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        # Битые чанки в стриме пропускаем.
        log.debug("stream_chunk_skipped", size=len(data))
        return None
