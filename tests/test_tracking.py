import pytest

from ai_completions.metrics import registry, render_metrics
from ai_completions.services.tracking import MetricsTracker
from conftest import make_response


def test_errors_and_success_accumulate() -> None:
    tracker = MetricsTracker()
    tracker.on_error()
    tracker.on_error()
    tracker.on_success(make_response(), 120)

    m = tracker.snapshot()
    assert m.request_count == 3
    assert m.error_count == 2
    assert m.error_rate == pytest.approx(0.667, abs=1e-3)


def test_rolling_window_average() -> None:
    tracker = MetricsTracker(window_size=2)
    tracker.on_success(make_response(), 100)
    tracker.on_success(make_response(), 200)
    tracker.on_success(make_response(), 400)
    assert tracker.snapshot().average_response_time_ms == pytest.approx(300)


def test_token_usage_and_cost() -> None:
    tracker = MetricsTracker()
    tracker.on_success(make_response(model="gpt-4", total=1000), 10)
    tracker.on_success(make_response(model="unknown-model", total=500), 10)

    m = tracker.snapshot()
    assert m.token_usage.total == 1500
    assert m.token_usage.completion == 20
    assert m.token_usage.prompt == 1480
    # 1000/1000*0.03 + 500/1000*0.01
    assert m.cost_estimate == pytest.approx(0.035)


def test_cache_hit_rate_formula() -> None:
    tracker = MetricsTracker()
    tracker.on_cache_lookup(True)
    assert tracker.snapshot().cache_hit_rate == 1.0

    tracker.on_success(make_response(), 10)
    tracker.on_success(make_response(), 10)
    tracker.on_cache_lookup(False)
    # (1.0 * 2 + 0) / 3
    assert tracker.snapshot().cache_hit_rate == pytest.approx(2 / 3)


def test_snapshot_is_a_copy_and_reset_clears() -> None:
    tracker = MetricsTracker()
    tracker.on_error()
    before = tracker.snapshot()
    tracker.on_error()
    assert before.request_count == 1

    tracker.reset()
    m = tracker.snapshot()
    assert m.request_count == 0
    assert m.average_response_time_ms == 0.0


def test_prometheus_counters_are_updated() -> None:
    def sample() -> float:
        return (
            registry.get_sample_value(
                "completions_total", {"model": "metrics-probe", "status": "failed"}
            )
            or 0.0
        )

    before = sample()
    MetricsTracker().on_error("metrics-probe")
    assert sample() == before + 1


def test_render_metrics_exposition() -> None:
    MetricsTracker().on_success(make_response(model="gpt-4"), 10)
    text = render_metrics().decode()
    assert 'completions_total{model="gpt-4",status="succeeded"}' in text
    assert "completion_latency_seconds_bucket" in text
