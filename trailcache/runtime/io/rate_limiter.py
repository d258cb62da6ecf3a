from __future__ import annotations

"""Process-wide shared rate limiter for event API calls.

Fetchers that talk to the same endpoint share one limiter so concurrent
queries in a single process respect a common request spacing.
"""

from dataclasses import dataclass
import asyncio
import time
from typing import Dict


@dataclass(slots=True)
class LimiterShape:
    max_concurrency: int
    min_interval_s: float


class SharedLimiter:
    """Bound concurrency and space out request starts."""

    def __init__(self, *, max_concurrency: int, min_interval_s: float) -> None:
        self.shape = LimiterShape(max(1, int(max_concurrency)), max(0.0, float(min_interval_s)))
        self._sem = asyncio.Semaphore(self.shape.max_concurrency)
        self._last_call_at: float | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "SharedLimiter":
        await self._sem.acquire()
        try:
            if self.shape.min_interval_s > 0:
                async with self._lock:
                    if self._last_call_at is not None:
                        elapsed = time.perf_counter() - self._last_call_at
                        if elapsed < self.shape.min_interval_s:
                            await asyncio.sleep(self.shape.min_interval_s - elapsed)
                    self._last_call_at = time.perf_counter()
        except BaseException:
            self._sem.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._sem.release()


_REGISTRY: Dict[str, SharedLimiter] = {}


def get_shared_limiter(
    key: str, *, max_concurrency: int, min_interval_s: float
) -> SharedLimiter:
    """Return the process-wide limiter for ``key`` and shape."""

    reg_key = f"{key}|{int(max_concurrency)}|{float(min_interval_s)}"
    limiter = _REGISTRY.get(reg_key)
    if limiter is None:
        limiter = SharedLimiter(
            max_concurrency=max_concurrency, min_interval_s=min_interval_s
        )
        _REGISTRY[reg_key] = limiter
    return limiter


def reset_shared_limiters() -> None:
    """Forget every registered limiter (tests run each case on a new loop)."""

    _REGISTRY.clear()


__all__ = [
    "LimiterShape",
    "SharedLimiter",
    "get_shared_limiter",
    "reset_shared_limiters",
]
