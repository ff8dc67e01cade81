"""Fixed-window rate limiting in front of the language model call."""
import asyncio
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger
from redis import RedisError

from resume_review.config import settings
from resume_review.models import RateLimitResult


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimitBackendUnavailable(Exception):
    """The durable backend could not answer. Callers fall back to memory."""


@dataclass
class RateLimitEntry:
    identifier: str
    count: int
    reset_time: int


class RateLimitBackend(ABC):
    """Counts requests per identifier within a fixed window."""

    def __init__(self, max_requests: int, window_ms: int, clock: Callable[[], int] = _now_ms):
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.clock = clock

    @abstractmethod
    async def hit(self, identifier: str) -> RateLimitResult:
        """Record one request and report whether it is admitted."""


class InMemoryRateLimitBackend(RateLimitBackend):
    """Process-local counters with a periodic sweep of expired windows.

    Owned by whoever constructs it: call ``start()`` to run the sweep task on
    the current event loop and ``stop()`` to cancel it.
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        sweep_interval: float = 300.0,
        clock: Callable[[], int] = _now_ms,
    ):
        super().__init__(max_requests, window_ms, clock)
        self.sweep_interval = sweep_interval
        self._entries: dict[str, RateLimitEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    async def hit(self, identifier: str) -> RateLimitResult:
        # No await between read and write: atomic on the event loop.
        now = self.clock()
        entry = self._entries.get(identifier)

        if entry is None or now > entry.reset_time:
            entry = RateLimitEntry(identifier, 1, now + self.window_ms)
            self._entries[identifier] = entry
            return RateLimitResult(
                allowed=True,
                remaining=self.max_requests - 1,
                reset_time=entry.reset_time,
                limit=self.max_requests,
            )

        if entry.count >= self.max_requests:
            return RateLimitResult(
                allowed=False, remaining=0, reset_time=entry.reset_time, limit=self.max_requests
            )

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            remaining=self.max_requests - entry.count,
            reset_time=entry.reset_time,
            limit=self.max_requests,
        )

    def sweep(self) -> int:
        """Drop entries whose window has ended. Returns how many were removed."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if now > entry.reset_time]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Rate limit sweep removed {len(expired)} expired entries")
        return len(expired)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self):
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Rate limit sweep started (every {self.sweep_interval:.0f}s)")

    async def stop(self):
        """Cancel the sweep task and wait for it to finish."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("Rate limit sweep stopped")

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()


class RedisRateLimitBackend(RateLimitBackend):
    """Shared counters in Redis using INCR plus EXPIRE on the first hit."""

    key_prefix = "ratelimit:"

    def __init__(self, client, max_requests: int, window_ms: int, clock: Callable[[], int] = _now_ms):
        super().__init__(max_requests, window_ms, clock)
        self.client = client

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    async def hit(self, identifier: str) -> RateLimitResult:
        key = f"{self.key_prefix}{identifier}"
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, self.window_seconds)

            ttl = await self.client.ttl(key)
            if ttl == -1:
                # Key survived without an expiry (EXPIRE lost); re-arm it.
                await self.client.expire(key, self.window_seconds)
                ttl = self.window_seconds
        except (RedisError, OSError) as e:
            raise RateLimitBackendUnavailable(str(e)) from e

        reset_time = self.clock() + max(0, ttl) * 1000
        if count > self.max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time, limit=self.max_requests)
        return RateLimitResult(
            allowed=True,
            remaining=max(0, self.max_requests - count),
            reset_time=reset_time,
            limit=self.max_requests,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            return False


class RateLimiter:
    """Admission control. Uses the durable backend when present, memory otherwise.

    ``check`` never raises: durable backend failures are logged and the
    in-memory backend answers instead.
    """

    def __init__(self, memory: InMemoryRateLimitBackend, durable: Optional[RedisRateLimitBackend] = None):
        self.memory = memory
        self.durable = durable

    @property
    def limit(self) -> int:
        return self.memory.max_requests

    def now(self) -> int:
        return self.memory.clock()

    async def check(self, identifier: str) -> RateLimitResult:
        if self.durable is not None:
            try:
                return await self.durable.hit(identifier)
            except RateLimitBackendUnavailable as e:
                logger.warning(f"Redis rate limit error, falling back to memory: {e}")
        return await self.memory.hit(identifier)

    def start(self):
        self.memory.start()

    async def stop(self):
        await self.memory.stop()
        if self.durable is not None:
            try:
                await self.durable.client.aclose()
            except (RedisError, OSError) as e:
                logger.warning(f"Error closing Redis client: {e}")


def create_rate_limiter(redis_client=None) -> RateLimiter:
    """Build a limiter from settings. Redis is used only when REDIS_URL is set."""
    memory = InMemoryRateLimitBackend(
        settings.rate_limit_max,
        settings.rate_limit_window_ms,
        sweep_interval=settings.rate_limit_sweep_interval_seconds,
    )
    durable = None
    if redis_client is None and settings.redis_url:
        from redis.asyncio import Redis

        redis_client = Redis.from_url(settings.redis_url)
        logger.info("Rate limiting backed by Redis")
    if redis_client is not None:
        durable = RedisRateLimitBackend(redis_client, settings.rate_limit_max, settings.rate_limit_window_ms)
    return RateLimiter(memory, durable)


def get_client_identifier(request) -> str:
    """Derive a client key from proxy headers, falling back to the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"
