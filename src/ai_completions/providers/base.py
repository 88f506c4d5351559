"""Интерфейс транспорта (chat completions) и модели запроса/ответа."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionOptions:
    """Параметры одного вызова; `None` значит «взять из настроек»."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    timeout_seconds: float | None = None
    cache_key: str | None = None


@dataclass(frozen=True)
class CompletionRequest:
    """Запрос к провайдеру (создаётся на каждый вызов)."""

    messages: tuple[Message, ...]
    model: str
    max_tokens: int
    temperature: float
    stream: bool = False

    def to_payload(self) -> dict:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": self.stream,
        }


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class Choice:
    message: Message
    finish_reason: str | None = None
    index: int = 0


@dataclass(frozen=True)
class CompletionResponse:
    """Ответ провайдера + usage (если получилось достать)."""

    choices: tuple[Choice, ...]
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    created_at: int = 0

    @property
    def content(self) -> str | None:
        """Текст первого choice (или `None`, если провайдер ничего не вернул)."""
        if not self.choices:
            return None
        return self.choices[0].message.content

    @classmethod
    def from_payload(cls, data: dict) -> CompletionResponse:
        """Собирает ответ из JSON `/chat/completions` (терпимо к пропущенным полям)."""
        choices: list[Choice] = []
        for i, row in enumerate(data.get("choices") or []):
            if not isinstance(row, dict):
                continue
            msg = row.get("message") or {}
            content = msg.get("content")
            choices.append(
                Choice(
                    message=Message(
                        role=msg.get("role") or "assistant",
                        content=content if isinstance(content, str) else "",
                    ),
                    finish_reason=row.get("finish_reason"),
                    index=int(row.get("index", i) or 0),
                )
            )

        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        completion_tokens = int(usage.get("completion_tokens") or 0)
        total_tokens = usage.get("total_tokens")
        return cls(
            choices=tuple(choices),
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=(
                    int(total_tokens)
                    if total_tokens is not None
                    else prompt_tokens + completion_tokens
                ),
            ),
            model=str(data.get("model") or ""),
            created_at=int(data.get("created") or time.time()),
        )


class TransportTimeoutError(TimeoutError):
    """Запрос прерван по таймауту (отличим от прочих сетевых ошибок)."""


class ProviderHTTPError(RuntimeError):
    """Провайдер ответил не-2xx. Текст вида `HTTP <status>: <body>`."""

    def __init__(self, status_code: int, body: str, retry_after_seconds: float | None = None):
        super().__init__(f"HTTP {status_code}: {body}")
        self.status_code = status_code
        self.body = body
        self.retry_after_seconds = retry_after_seconds


class CompletionTransport:
    """Базовый интерфейс транспорта. Повторов внутри нет: один вызов = одна попытка."""

    name: str

    async def send(self, request: CompletionRequest, timeout_seconds: float) -> CompletionResponse:
        raise NotImplementedError

    def stream(self, request: CompletionRequest, timeout_seconds: float) -> AsyncIterator[str]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
