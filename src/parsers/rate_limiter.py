"""Token-bucket rate limiters for the async provider clients.

Refill is computed lazily from elapsed clock time on every access, so an idle
limiter needs no background timer. Blocked callers park on a condition
variable until the bucket can cover them instead of busy-polling.
"""

import asyncio
import math
import time
from collections.abc import Callable

from loguru import logger

DAY_MS = 86_400_000


class BudgetExhaustedError(Exception):
    """Compute-unit budget for the current window is spent.

    Not retryable until the window rolls over; callers skip the work.
    """


class RateLimiter:
    """Token bucket for async HTTP clients.

    capacity = burst (or requests_per_minute when no burst is given),
    refill_rate = requests_per_minute / 60_000 tokens per millisecond.
    Pass the SAME instance to every client that shares an API key; never
    share one instance across providers.
    """

    def __init__(
        self,
        requests_per_minute: float,
        burst: int | None = None,
        *,
        name: str = "limiter",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        self.name = name
        self._clock = clock
        self.capacity = max(1.0, float(burst if burst is not None else requests_per_minute))
        self.requests_per_minute = requests_per_minute
        self.refill_rate = requests_per_minute / 60_000
        self._tokens = self.capacity
        self._last_refill = self._now_ms()
        self._cond = asyncio.Condition()

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _projected_tokens(self) -> float:
        elapsed = max(0.0, self._now_ms() - self._last_refill)
        # Multiply before dividing so whole-token refills land exactly
        return min(self.capacity, self._tokens + elapsed * self.requests_per_minute / 60_000)

    def _refill(self) -> None:
        self._tokens = self._projected_tokens()
        self._last_refill = self._now_ms()

    def _take_token(self) -> bool:
        # No await between refill and decrement: this is the critical section.
        self._refill()
        if self._tokens >= 1:
            self._tokens -= 1
            return True
        return False

    @property
    def tokens(self) -> float:
        """Tokens available right now (read-only projection)."""
        return self._projected_tokens()

    def try_acquire(self) -> bool:
        """Non-blocking: consume a token if one is available right now."""
        return self._take_token()

    def estimated_wait_ms(self) -> int:
        """Estimated wait before the next token is available. Pure read."""
        tokens = self._projected_tokens()
        if tokens >= 1:
            return 0
        return math.ceil((1 - tokens) * 60_000 / self.requests_per_minute)

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._cond:
            while not self._take_token():
                wait_s = max(self.estimated_wait_ms(), 1) / 1000
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=wait_s)
                except asyncio.TimeoutError:
                    pass
            # Wake the next parked waiter so it re-checks against the new state.
            self._cond.notify(1)


class ComputeUnitLimiter(RateLimiter):
    """Token bucket plus a compute-unit budget over a daily window.

    The CU check is independent from the per-second token check: an exhausted
    budget raises BudgetExhaustedError immediately instead of blocking.
    """

    def __init__(
        self,
        requests_per_minute: float,
        burst: int | None = None,
        *,
        max_cu: int,
        cu_window_ms: float = DAY_MS,
        name: str = "limiter",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(requests_per_minute, burst, name=name, clock=clock)
        self.max_cu = max_cu
        self.cu_window_ms = cu_window_ms
        self._cu_used = 0
        self._cu_window_start = self._now_ms()

    def _roll_window(self) -> None:
        now = self._now_ms()
        if now - self._cu_window_start >= self.cu_window_ms:
            self._cu_used = 0
            self._cu_window_start = now

    @property
    def cu_used(self) -> int:
        self._roll_window()
        return self._cu_used

    @property
    def remaining_cu(self) -> int:
        if self._now_ms() - self._cu_window_start >= self.cu_window_ms:
            return self.max_cu
        return max(0, self.max_cu - self._cu_used)

    def _reserve(self, cu_cost: int) -> None:
        self._roll_window()
        if self._cu_used + cu_cost > self.max_cu:
            resets_in = self.cu_window_ms - (self._now_ms() - self._cu_window_start)
            logger.warning(
                f"[{self.name.upper()}] CU budget exhausted "
                f"({self._cu_used}/{self.max_cu}), resets in {math.ceil(resets_in / 60_000)} min"
            )
            raise BudgetExhaustedError(
                f"{self.name}: CU budget exhausted ({self._cu_used}/{self.max_cu})"
            )
        self._cu_used += cu_cost

    def _refund(self, cu_cost: int) -> None:
        self._cu_used = max(0, self._cu_used - cu_cost)

    def try_acquire(self, cu_cost: int = 0) -> bool:
        self._reserve(cu_cost)
        if self._take_token():
            return True
        self._refund(cu_cost)
        return False

    async def acquire(self, cu_cost: int = 0) -> None:
        # Reserve before parking so concurrent callers cannot overspend the budget.
        self._reserve(cu_cost)
        try:
            await super().acquire()
        except BaseException:
            self._refund(cu_cost)
            raise
