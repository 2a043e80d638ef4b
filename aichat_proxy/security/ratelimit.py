"""Rate limiting using in-memory sliding window counters.

Enforces per-client request limits keyed by client identity. Uses a sliding
window algorithm: timestamps of recent requests are stored in a deque,
and expired entries are pruned on each check.

Each client window carries its own asyncio.Lock, so decisions for one
client are serialized while independent clients never contend. The lock
is never held across network I/O.

Returns standard rate limit metadata for response headers:
- X-RateLimit-Limit
- X-RateLimit-Remaining
- X-RateLimit-Reset
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache

from aichat_proxy.config.settings import get_settings

Clock = Callable[[], float]


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: float


@dataclass
class ClientWindow:
    timestamps: deque[float] = field(default_factory=deque)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class WindowStore:
    """Client id -> ClientWindow map. Windows are created lazily and never evicted."""

    def __init__(self):
        self._windows: dict[str, ClientWindow] = {}

    def get(self, client_id: str) -> ClientWindow:
        window = self._windows.get(client_id)
        if window is None:
            window = self._windows[client_id] = ClientWindow()
        return window

    def discard(self, client_id: str) -> None:
        self._windows.pop(client_id, None)

    def clear(self) -> None:
        self._windows.clear()

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._windows

    def __len__(self) -> int:
        return len(self._windows)


class SlidingWindowRateLimiter:
    """Admits at most ``max_requests`` per client in any trailing ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Clock = time.monotonic,
        store: WindowStore | None = None,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._store = store if store is not None else WindowStore()

    async def check(self, client_id: str, now: float | None = None) -> RateLimitResult:
        """Check the client against its window and record the request if admitted.

        Args:
            client_id: Rate-limit key (see security.identity).
            now: Override for the clock reading, mostly for tests.
        """
        window = self._store.get(client_id)
        async with window.lock:
            if now is None:
                now = self._clock()
            window_start = now - self.window_seconds
            timestamps = window.timestamps

            # Prune expired timestamps from the left
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= self.max_requests:
                # Time until the oldest request in the window expires
                reset = timestamps[0] + self.window_seconds - now
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_seconds=round(reset, 1),
                )

            timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=max(0, self.max_requests - len(timestamps)),
                reset_seconds=round(timestamps[0] + self.window_seconds - now, 1),
            )

    async def admit(self, client_id: str, now: float | None = None) -> bool:
        result = await self.check(client_id, now)
        return result.allowed

    def reset_client(self, client_id: str) -> None:
        """Clear rate limit state for a client. Useful for testing."""
        self._store.discard(client_id)


@lru_cache
def get_rate_limiter() -> SlidingWindowRateLimiter:
    settings = get_settings()
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
