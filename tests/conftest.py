import asyncio

import pytest

from ai_completions import settings as settings_module
from ai_completions.providers.base import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    Message,
    Usage,
)
from ai_completions.settings import Settings


class FakeClock:
    """Ручные часы: `sleep` не ждёт, а двигает время."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_response(
    content: str = "ok", model: str = "gpt-4o", total: int = 30
) -> CompletionResponse:
    return CompletionResponse(
        choices=(
            Choice(message=Message(role="assistant", content=content), finish_reason="stop"),
        ),
        usage=Usage(prompt_tokens=total - 10, completion_tokens=10, total_tokens=total),
        model=model,
        created_at=1700000000,
    )


class FakeTransport(CompletionTransport):
    """Отдаёт заранее заданные ответы/исключения по очереди, последний повторяет."""

    name = "fake"

    def __init__(self, *results: CompletionResponse | BaseException, delay: float = 0.0) -> None:
        self.results = list(results) or [make_response()]
        self.delay = delay
        self.requests: list[CompletionRequest] = []
        self.timeouts: list[float] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def send(self, request: CompletionRequest, timeout_seconds: float) -> CompletionResponse:
        self.requests.append(request)
        self.timeouts.append(timeout_seconds)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def stream(self, request: CompletionRequest, timeout_seconds: float):
        self.requests.append(request)
        result = self.results[0]
        if isinstance(result, BaseException):
            raise result
        for word in (result.content or "").split(" "):
            yield word

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        openai_organization="org-test",
        default_model="gpt-4o",
        max_requests_per_minute=60,
        cache_ttl_seconds=300,
        request_timeout_seconds=30,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reset_settings():
    settings_module._settings = None
    yield
    settings_module._settings = None
