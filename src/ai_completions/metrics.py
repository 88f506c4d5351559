"""Метрики Prometheus (локальный registry)."""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry()

completions_total = Counter(
    "completions_total",
    "Total number of completion calls",
    ["model", "status"],
    registry=registry,
)

completion_latency_seconds = Histogram(
    "completion_latency_seconds",
    "Completion latency in seconds",
    ["model"],
    registry=registry,
)

cache_lookups_total = Counter(
    "cache_lookups_total",
    "Response cache lookups",
    ["result"],
    registry=registry,
)

tokens_total = Counter(
    "tokens_total",
    "Total tokens",
    ["model", "kind"],
    registry=registry,
)

cost_usd_total = Counter(
    "cost_usd_total",
    "Total estimated cost in USD",
    ["model"],
    registry=registry,
)


def render_metrics() -> bytes:
    """Текст для Prometheus scrape (text exposition format)."""
    return generate_latest(registry)
