"""Mock транспорт для демо и тестов (без внешних ключей)."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator

from ai_completions.providers.base import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    Message,
    Usage,
)


class MockProvider(CompletionTransport):
    """Отвечает эхом последнего сообщения; `reply` позволяет задать фиксированный текст."""

    name = "mock"

    def __init__(self, reply: str | None = None) -> None:
        self.reply = reply
        self.calls: list[CompletionRequest] = []

    def _answer(self, request: CompletionRequest) -> str:
        if self.reply is not None:
            return self.reply
        user_text = request.messages[-1].content if request.messages else ""
        return f"[mock] ok: {user_text[:120]}"

    async def send(self, request: CompletionRequest, timeout_seconds: float) -> CompletionResponse:
        self.calls.append(request)
        user_text = request.messages[-1].content if request.messages else ""
        out_text = self._answer(request)
        prompt_tokens = max(1, len(user_text) // 4)
        completion_tokens = max(1, len(out_text) // 4)
        return CompletionResponse(
            choices=(
                Choice(
                    message=Message(role="assistant", content=out_text),
                    finish_reason="stop",
                    index=0,
                ),
            ),
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model=request.model or "mock-1",
            created_at=int(time.time()),
        )

    async def stream(
        self, request: CompletionRequest, timeout_seconds: float
    ) -> AsyncIterator[str]:
        self.calls.append(request)
        words = self._answer(request).split(" ")
        for i, word in enumerate(words):
            yield word if i == 0 else f" {word}"
