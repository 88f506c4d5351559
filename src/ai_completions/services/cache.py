"""In-memory TTL кэш ответов по ключу, который передаёт вызывающий код."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    expires_at: float
    access_count: int = 0
    last_accessed_at: float | None = None


class ResponseCache:
    """Ключ -> запись с `expires_at = inserted_at + ttl`.

    Без блокировок: рассчитан на один event loop (ни одна операция не
    прерывается посередине). Одновременные промахи по одному ключу не
    объединяются: оба идут к провайдеру, выигрывает последняя запись.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._clock()
        if now > entry.expires_at:
            del self._entries[key]
            return None

        entry.access_count += 1
        entry.last_accessed_at = now
        return entry.value

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=now + ttl_seconds,
        )
        self.sweep()

    def sweep(self) -> int:
        """Удаляет просроченные записи, возвращает сколько удалено."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for k in expired:
            del self._entries[k]
        if expired:
            log.debug("cache_sweep", removed=len(expired), size=len(self._entries))
        return len(expired)

    def entry(self, key: str) -> CacheEntry | None:
        # Без побочных эффектов (для диагностики и тестов).
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() <= entry.expires_at

    def __len__(self) -> int:
        return len(self._entries)
