from __future__ import annotations

import pytest

from liqui.rate_limit import TokenBucketRateLimiter


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_rejects_non_positive_rate():
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(0)


def test_slow_rate_still_allows_one_request():
    limiter = TokenBucketRateLimiter(0.33, clock=_Clock())
    assert limiter.capacity == 1.0
    assert limiter.delay_until_token() == 0.0


@pytest.mark.asyncio
async def test_acquire_waits_for_refill(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = _Clock()
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)
        clock.now += seconds

    monkeypatch.setattr("liqui.rate_limit.asyncio.sleep", fake_sleep)

    limiter = TokenBucketRateLimiter(0.5, clock=clock)
    await limiter.acquire()
    await limiter.acquire()

    assert slept == [pytest.approx(2.0)]
    assert limiter.token_count == pytest.approx(0.0)


def test_refill_is_clamped_to_capacity():
    clock = _Clock()
    limiter = TokenBucketRateLimiter(2, clock=clock)
    limiter.token_count = 0.0
    clock.now = 100.0
    assert limiter.delay_until_token() == 0.0
    assert limiter.token_count == 2.0
