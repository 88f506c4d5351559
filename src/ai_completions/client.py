"""CompletionClient: кэш -> rate limit -> транспорт -> метрики -> кэш -> ответ."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import structlog

from ai_completions.providers.base import (
    CompletionOptions,
    CompletionRequest,
    CompletionResponse,
    CompletionTransport,
    Message,
)
from ai_completions.services.cache import ResponseCache
from ai_completions.services.errors import ExternalError, classify
from ai_completions.services.limits import RateLimiter
from ai_completions.services.parsing import ParseResult, ResponseParser, require_structured
from ai_completions.services.prompts import PromptTemplate, cache_key_for, render
from ai_completions.services.redaction import redact_messages
from ai_completions.services.tracking import Metrics, MetricsTracker
from ai_completions.settings import Settings

log = structlog.get_logger()

HEALTH_CHECK_MAX_TOKENS = 10
HEALTH_CHECK_TIMEOUT_SECONDS = 5.0


class EmptyCompletionError(RuntimeError):
    """Провайдер ответил 2xx, но без текста."""


MessagesLike = Sequence[Message | Mapping[str, str]]


def _to_messages(messages: MessagesLike) -> tuple[Message, ...]:
    out: list[Message] = []
    for m in messages:
        if isinstance(m, Message):
            out.append(m)
        else:
            out.append(Message(role=m["role"], content=m["content"]))
    return tuple(out)


class CompletionClient:
    """Оркестратор вызовов. Все зависимости передаются явно (удобно подменять в тестах).

    Повторов внутри нет: одна попытка на вызов, ошибка уходит вызывающему как
    `ExternalError`. Ошибки разбора JSON не бросаются (кроме `require_structured`).
    """

    def __init__(
        self,
        settings: Settings,
        transport: CompletionTransport,
        *,
        cache: ResponseCache | None = None,
        limiter: RateLimiter | None = None,
        tracker: MetricsTracker | None = None,
        parser: ResponseParser | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.cache = cache or ResponseCache()
        self.limiter = limiter or RateLimiter(settings.max_requests_per_minute)
        self.tracker = tracker or MetricsTracker(window_size=settings.metrics_window_size)
        self.parser = parser or ResponseParser()
        self._clock = clock
        self._inflight: dict[str, asyncio.Future] = {}

    async def __aenter__(self) -> CompletionClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    def render(self, template: PromptTemplate, variables: Mapping[str, Any]) -> str:
        return render(template, variables)

    def _build_request(
        self,
        messages: MessagesLike,
        options: CompletionOptions,
        stream: bool = False,
    ) -> CompletionRequest:
        s = self.settings
        return CompletionRequest(
            messages=_to_messages(messages),
            model=options.model or s.default_model,
            max_tokens=options.max_tokens if options.max_tokens is not None else s.max_tokens,
            temperature=(
                options.temperature if options.temperature is not None else s.temperature
            ),
            stream=stream,
        )

    def _timeout(self, options: CompletionOptions) -> float:
        if options.timeout_seconds is not None:
            return options.timeout_seconds
        return self.settings.request_timeout_seconds

    async def complete(
        self,
        messages: MessagesLike,
        options: CompletionOptions | None = None,
    ) -> CompletionResponse:
        """Один completion. С `cache_key` сначала смотрим в кэш (попадание не тратит лимит)."""
        options = options or CompletionOptions()
        key = options.cache_key

        if key:
            cached = self.cache.get(key)
            self.tracker.on_cache_lookup(cached is not None)
            if cached is not None:
                log.debug("cache_hit", cache_key=key)
                return cached

            if self.settings.dedupe_inflight:
                pending = self._inflight.get(key)
                while pending is not None:
                    log.debug("inflight_join", cache_key=key)
                    try:
                        return await asyncio.shield(pending)
                    except asyncio.CancelledError:
                        # Отменили владельца, а не нас: идём к провайдеру сами.
                        if not pending.cancelled() or asyncio.current_task().cancelling():
                            raise
                    log.debug("inflight_owner_cancelled", cache_key=key)
                    pending = self._inflight.get(key)
                return await self._dispatch_shared(key, messages, options)

        return await self._dispatch(messages, options)

    async def _dispatch_shared(
        self,
        key: str,
        messages: MessagesLike,
        options: CompletionOptions,
    ) -> CompletionResponse:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        # Исключение забираем сами, чтобы не было "exception was never retrieved".
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            response = await self._dispatch(messages, options)
        except ExternalError as err:
            future.set_exception(err)
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(response)
            return response
        finally:
            self._inflight.pop(key, None)

    async def _dispatch(
        self,
        messages: MessagesLike,
        options: CompletionOptions,
    ) -> CompletionResponse:
        await self.limiter.acquire()

        request = self._build_request(messages, options)
        log.debug(
            "completion_dispatch",
            model=request.model,
            messages=redact_messages([m.to_dict() for m in request.messages]),
        )
        t0 = self._clock()
        try:
            response = await self.transport.send(request, self._timeout(options))
            if not response.choices:
                raise EmptyCompletionError("Empty response from provider")
        except Exception as e:
            err = classify(e)
            self.tracker.on_error(request.model)
            log.warning(
                "completion_failed",
                provider=self.transport.name,
                model=request.model,
                kind=err.kind.value,
                code=err.code,
                err=str(e),
            )
            raise err from e

        elapsed_ms = (self._clock() - t0) * 1000
        self.tracker.on_success(response, elapsed_ms)
        log.info(
            "completion_succeeded",
            provider=self.transport.name,
            model=response.model or request.model,
            latency_ms=int(elapsed_ms),
            total_tokens=response.usage.total_tokens,
        )

        if options.cache_key:
            self.cache.put(options.cache_key, response, self.settings.cache_ttl_seconds)
        return response

    async def complete_from_template(
        self,
        template: PromptTemplate,
        variables: Mapping[str, Any],
        options: CompletionOptions | None = None,
        require_structured_output: bool = False,
    ) -> ParseResult:
        """Рендерит шаблон в system-сообщение, вызывает модель и разбирает JSON.

        Ключ кэша по умолчанию — отпечаток шаблона и переменных.
        """
        options = options or CompletionOptions()
        prompt = render(template, variables)
        if not options.cache_key:
            options = CompletionOptions(
                model=options.model,
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                timeout_seconds=options.timeout_seconds,
                cache_key=cache_key_for(template, variables),
            )

        response = await self.complete([Message(role="system", content=prompt)], options)
        result = self.parser.parse(response.content)
        log.debug(
            "template_parsed",
            template_id=template.id,
            strategy=result.strategy.value,
            repaired=result.repaired,
        )
        if require_structured_output:
            require_structured(result)
        return result

    async def stream(
        self,
        messages: MessagesLike,
        on_chunk: Callable[[str], Any],
        options: CompletionOptions | None = None,
    ) -> None:
        """Стрим без кэша: каждый кусок текста отдаётся в `on_chunk` по мере прихода."""
        options = options or CompletionOptions()
        await self.limiter.acquire()

        request = self._build_request(messages, options, stream=True)
        t0 = self._clock()
        chunks = aiter(self.transport.stream(request, self._timeout(options)))
        try:
            while True:
                try:
                    chunk = await anext(chunks)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    err = classify(e)
                    self.tracker.on_error(request.model)
                    log.warning(
                        "stream_failed",
                        provider=self.transport.name,
                        model=request.model,
                        kind=err.kind.value,
                        code=err.code,
                        err=str(e),
                    )
                    raise err from e
                # Ошибки колбэка принадлежат вызывающему: не классифицируем и не считаем.
                on_chunk(chunk)
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        self.tracker.on_stream_success(request.model, (self._clock() - t0) * 1000)

    def get_metrics(self) -> Metrics:
        return self.tracker.snapshot()

    def reset_metrics(self) -> None:
        self.tracker.reset()

    async def health_check(self) -> bool:
        """Минимальный запрос к провайдеру; True, если вернулся хоть какой-то текст."""
        try:
            response = await self.complete(
                [Message(role="user", content="Health check")],
                CompletionOptions(
                    max_tokens=HEALTH_CHECK_MAX_TOKENS,
                    timeout_seconds=HEALTH_CHECK_TIMEOUT_SECONDS,
                ),
            )
        except ExternalError as err:
            log.warning("health_check_failed", kind=err.kind.value, code=err.code)
            return False
        return response.content is not None
