"""Pacing policies applied between batches of Google Places calls."""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol


class Pacer(Protocol):
    """Waits before the next batch is allowed to start."""

    async def wait(self, cost: int = 1) -> None: ...


PacerFactory = Callable[[int], Pacer]


@dataclass
class FixedDelayPacer:
    """Sleep a fixed number of milliseconds before every batch after the first."""

    delay_ms: int

    async def wait(self, cost: int = 1) -> None:
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)


@dataclass
class NoDelayPacer:
    """Never waits."""

    delay_ms: int = 0

    async def wait(self, cost: int = 1) -> None:
        return None


@dataclass
class TokenBucketPacer:
    """
    Token bucket: ``rate_per_second`` tokens are added continuously up to
    ``capacity``. A batch of ``cost`` requests waits until enough tokens
    are available.
    """

    rate_per_second: float
    capacity: int
    _tokens: float = field(init=False)
    _updated_at: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self) -> None:
        if self.rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._tokens = float(self.capacity)
        self._updated_at = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated_at) * self.rate_per_second)
        self._updated_at = now

    async def wait(self, cost: int = 1) -> None:
        cost = min(max(cost, 1), self.capacity)
        async with self._lock:
            self._refill()
            while self._tokens < cost:
                await asyncio.sleep((cost - self._tokens) / self.rate_per_second)
                self._refill()
            self._tokens -= cost


def fixed_delay(delay_ms: int) -> Pacer:
    """Default pacer factory."""
    return FixedDelayPacer(delay_ms)
