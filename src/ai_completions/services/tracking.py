"""Метрики клиента: латентность (скользящее окно), токены, стоимость, ошибки, cache hit rate."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace

from ai_completions.metrics import (
    cache_lookups_total,
    completion_latency_seconds,
    completions_total,
    cost_usd_total,
    tokens_total,
)
from ai_completions.providers.base import CompletionResponse
from ai_completions.services.pricing import estimate_cost

DEFAULT_WINDOW_SIZE = 100


@dataclass(frozen=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0


@dataclass(frozen=True)
class Metrics:
    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    average_response_time_ms: float = 0.0
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    cost_estimate: float = 0.0
    cache_hit_rate: float = 0.0


class MetricsTracker:
    """Только наблюдает: ни один метод не бросает исключений.

    Живёт столько же, сколько инстанс клиента; обнуляется только через `reset()`.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE, pricing: dict | None = None) -> None:
        self._window: deque[float] = deque(maxlen=max(1, window_size))
        self._pricing = pricing
        self._metrics = Metrics()

    def _record_latency(self, elapsed_ms: float) -> float:
        self._window.append(elapsed_ms)
        return sum(self._window) / len(self._window)

    def _count_request(self, failed: bool) -> None:
        m = self._metrics
        request_count = m.request_count + 1
        error_count = m.error_count + (1 if failed else 0)
        self._metrics = replace(
            m,
            request_count=request_count,
            error_count=error_count,
            error_rate=error_count / request_count,
        )

    def on_success(self, response: CompletionResponse, elapsed_ms: float) -> None:
        self._count_request(failed=False)
        usage = response.usage
        cost = estimate_cost(usage.total_tokens, response.model, self._pricing)
        m = self._metrics
        self._metrics = replace(
            m,
            average_response_time_ms=self._record_latency(elapsed_ms),
            token_usage=TokenUsage(
                prompt=m.token_usage.prompt + usage.prompt_tokens,
                completion=m.token_usage.completion + usage.completion_tokens,
                total=m.token_usage.total + usage.total_tokens,
            ),
            cost_estimate=m.cost_estimate + float(cost),
        )

        model = response.model or "-"
        completions_total.labels(model=model, status="succeeded").inc()
        completion_latency_seconds.labels(model=model).observe(elapsed_ms / 1000)
        tokens_total.labels(model=model, kind="prompt").inc(usage.prompt_tokens)
        tokens_total.labels(model=model, kind="completion").inc(usage.completion_tokens)
        cost_usd_total.labels(model=model).inc(float(cost))

    def on_stream_success(self, model: str, elapsed_ms: float) -> None:
        # В стриме usage не приходит: учитываем только запрос и латентность.
        self._count_request(failed=False)
        self._metrics = replace(
            self._metrics,
            average_response_time_ms=self._record_latency(elapsed_ms),
        )
        completions_total.labels(model=model or "-", status="succeeded").inc()
        completion_latency_seconds.labels(model=model or "-").observe(elapsed_ms / 1000)

    def on_error(self, model: str | None = None) -> None:
        self._count_request(failed=True)
        completions_total.labels(model=model or "-", status="failed").inc()

    def on_cache_lookup(self, hit: bool) -> None:
        m = self._metrics
        prior = m.request_count
        if prior == 0:
            rate = 1.0 if hit else 0.0
        else:
            rate = (m.cache_hit_rate * prior + (1 if hit else 0)) / (prior + 1)
        self._metrics = replace(m, cache_hit_rate=rate)
        cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    def snapshot(self) -> Metrics:
        return self._metrics

    def reset(self) -> None:
        self._window.clear()
        self._metrics = Metrics()
