"""Rate limit (requests per minute): минимальный интервал между отправками."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable


class RateLimiter:
    """Выравнивает отправки до одной на `60 / rpm` секунд.

    Хранит только время последней отправки (не token bucket), поэтому пачка
    запросов растягивается, а не пропускается разом. Слот резервируется до
    ожидания: параллельные вызовы встают в очередь по интервалу.
    """

    def __init__(
        self,
        max_requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests_per_minute <= 0:
            raise ValueError("max_requests_per_minute must be positive")
        self.interval = 60.0 / max_requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self._last_dispatch: float | None = None

    @property
    def last_dispatch(self) -> float | None:
        return self._last_dispatch

    async def acquire(self) -> None:
        now = self._clock()
        if self._last_dispatch is None:
            slot = now
        else:
            slot = max(now, self._last_dispatch + self.interval)
        self._last_dispatch = slot

        delay = slot - now
        if delay > 0:
            await self._sleep(delay)
