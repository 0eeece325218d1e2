"""Tests for the token-bucket and compute-unit rate limiters."""

import asyncio

import pytest

from src.parsers.rate_limiter import BudgetExhaustedError, ComputeUnitLimiter, RateLimiter


def test_capacity_defaults_to_rpm(fake_clock):
    limiter = RateLimiter(5, clock=fake_clock)
    assert limiter.capacity == 5
    assert limiter.tokens == 5


def test_burst_overrides_capacity(fake_clock):
    limiter = RateLimiter(600, burst=10, clock=fake_clock)
    assert limiter.capacity == 10


def test_invalid_rpm_rejected():
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_sixth_call_fails_until_refill(fake_clock):
    """5 req/min: five immediate tokens, then one token every 12 seconds."""
    limiter = RateLimiter(5, clock=fake_clock)
    for _ in range(5):
        assert limiter.try_acquire() is True
    assert limiter.try_acquire() is False
    assert limiter.estimated_wait_ms() == 12_000

    fake_clock.advance_ms(11_999)
    assert limiter.try_acquire() is False

    fake_clock.advance_ms(1)
    assert limiter.try_acquire() is True


def test_try_acquire_failure_has_no_side_effects(fake_clock):
    limiter = RateLimiter(5, clock=fake_clock)
    for _ in range(5):
        limiter.try_acquire()
    before = limiter.tokens
    assert limiter.try_acquire() is False
    assert limiter.tokens == before


def test_estimated_wait_is_pure(fake_clock):
    limiter = RateLimiter(5, clock=fake_clock)
    for _ in range(5):
        limiter.try_acquire()
    fake_clock.advance_ms(6_000)
    first = limiter.estimated_wait_ms()
    second = limiter.estimated_wait_ms()
    assert first == second == 6_000
    assert limiter.tokens == pytest.approx(0.5)


def test_refill_never_exceeds_capacity(fake_clock):
    limiter = RateLimiter(60, burst=3, clock=fake_clock)
    limiter.try_acquire()
    fake_clock.advance_ms(10 * 60_000)
    assert limiter.tokens == 3


def test_estimated_wait_zero_when_tokens_available(fake_clock):
    assert RateLimiter(5, clock=fake_clock).estimated_wait_ms() == 0


@pytest.mark.asyncio
async def test_acquire_never_double_consumes():
    """Concurrent acquirers on a fresh bucket each take exactly one token."""
    limiter = RateLimiter(60, burst=10)
    await asyncio.gather(*(limiter.acquire() for _ in range(10)))
    assert limiter.tokens < 1
    assert limiter.try_acquire() is False


@pytest.mark.asyncio
async def test_acquire_waits_for_refill():
    # 600 rpm = 1 token per 100ms
    limiter = RateLimiter(600, burst=1)
    await limiter.acquire()
    loop = asyncio.get_running_loop()
    t0 = loop.time()
    await limiter.acquire()
    assert loop.time() - t0 >= 0.05


@pytest.mark.asyncio
async def test_cu_budget_exhaustion_raises_immediately(fake_clock):
    limiter = ComputeUnitLimiter(1500, 25, max_cu=100, name="moralis", clock=fake_clock)
    await limiter.acquire(50)
    await limiter.acquire(50)
    assert limiter.remaining_cu == 0
    with pytest.raises(BudgetExhaustedError):
        await limiter.acquire(10)
    # Failed reservation consumed nothing
    assert limiter.cu_used == 100


def test_cu_try_acquire_refunds_when_no_token(fake_clock):
    limiter = ComputeUnitLimiter(1, 1, max_cu=1000, clock=fake_clock)
    assert limiter.try_acquire(10) is True
    assert limiter.try_acquire(10) is False
    assert limiter.cu_used == 10


def test_cu_window_rolls_over(fake_clock):
    limiter = ComputeUnitLimiter(1500, 25, max_cu=50, cu_window_ms=60_000, clock=fake_clock)
    assert limiter.try_acquire(50) is True
    with pytest.raises(BudgetExhaustedError):
        limiter.try_acquire(1)

    fake_clock.advance_ms(60_000)
    assert limiter.remaining_cu == 50
    assert limiter.try_acquire(50) is True
