from ai_completions.services.cache import ResponseCache
from conftest import FakeClock


def test_put_then_get_returns_value(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("k", {"v": 1}, ttl_seconds=10)
    assert cache.get("k") == {"v": 1}


def test_expires_at_is_insert_time_plus_ttl(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("k", "v", ttl_seconds=10)
    entry = cache.entry("k")
    assert entry is not None
    assert entry.expires_at == entry.inserted_at + 10


def test_get_after_ttl_is_absent_and_evicts(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("k", "v", ttl_seconds=10)
    clock.advance(10)
    assert cache.get("k") == "v"  # ровно на границе ещё живо
    clock.advance(0.001)
    assert cache.get("k") is None
    assert cache.entry("k") is None


def test_hit_updates_access_stats(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("k", "v", ttl_seconds=10)
    clock.advance(1)
    cache.get("k")
    clock.advance(1)
    cache.get("k")
    entry = cache.entry("k")
    assert entry.access_count == 2
    assert entry.last_accessed_at == clock.now


def test_put_overwrites_and_resets_ttl(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("k", "old", ttl_seconds=10)
    clock.advance(8)
    cache.put("k", "new", ttl_seconds=10)
    clock.advance(8)
    assert cache.get("k") == "new"


def test_put_sweeps_expired_entries(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("a", 1, ttl_seconds=1)
    cache.put("b", 2, ttl_seconds=100)
    clock.advance(5)
    cache.put("c", 3, ttl_seconds=100)
    assert len(cache) == 2
    assert "a" not in cache
    assert "b" in cache


def test_clear(clock: FakeClock) -> None:
    cache = ResponseCache(clock=clock)
    cache.put("a", 1, ttl_seconds=1)
    cache.clear()
    assert len(cache) == 0
