import asyncio
import time

import pytest

from trailcache.runtime.io.rate_limiter import (
    SharedLimiter,
    get_shared_limiter,
    reset_shared_limiters,
)


def test_same_key_and_shape_share_a_limiter():
    a = get_shared_limiter("https://x", max_concurrency=1, min_interval_s=0.5)
    b = get_shared_limiter("https://x", max_concurrency=1, min_interval_s=0.5)
    c = get_shared_limiter("https://x", max_concurrency=2, min_interval_s=0.5)
    assert a is b
    assert a is not c


def test_reset_forgets_limiters():
    a = get_shared_limiter("k", max_concurrency=1, min_interval_s=0.0)
    reset_shared_limiters()
    assert get_shared_limiter("k", max_concurrency=1, min_interval_s=0.0) is not a


def test_shape_is_clamped():
    limiter = SharedLimiter(max_concurrency=0, min_interval_s=-1)
    assert limiter.shape.max_concurrency == 1
    assert limiter.shape.min_interval_s == 0.0


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    limiter = SharedLimiter(max_concurrency=2, min_interval_s=0.0)
    active = 0
    peak = 0

    async def worker():
        nonlocal active, peak
        async with limiter:
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(worker() for _ in range(6)))
    assert peak == 2


@pytest.mark.asyncio
async def test_min_interval_spaces_calls():
    limiter = SharedLimiter(max_concurrency=1, min_interval_s=0.05)
    starts: list[float] = []

    for _ in range(3):
        async with limiter:
            starts.append(time.perf_counter())

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.045 for gap in gaps)
