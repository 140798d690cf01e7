"""Per-client fixed-window counters.

A window starts on a client's first request, counts every request until
``window_seconds`` have elapsed, and is restarted by the first request after
that. Counting and the expiry check happen as one atomic step per client.
"""

from __future__ import annotations

import asyncio
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Protocol

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

Clock = Callable[[], float]


class WindowStoreUnavailable(Exception):
    """The counter backend cannot be reached."""


@dataclass
class RateWindow:
    """Counter state for one client identity."""

    window_start: float
    count: int
    limit: int

    def reset_at(self, window_seconds: float) -> float:
        return self.window_start + window_seconds

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def exceeded(self) -> bool:
        return self.count > self.limit


class WindowStore(Protocol):
    window_seconds: float

    async def hit(self, key: str, limit: int) -> RateWindow:
        """Count one request for ``key`` and return a snapshot of its window."""
        ...

    async def connect(self) -> bool: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class MemoryWindowStore:
    """In-process store: a lock-guarded dict of windows.

    Windows whose period has elapsed are dropped by a sweep that runs at most
    once per ``sweep_interval`` seconds.
    """

    def __init__(
        self,
        window_seconds: float,
        *,
        clock: Clock = time.time,
        sweep_interval: float | None = None,
    ) -> None:
        self.window_seconds = window_seconds
        self._clock = clock
        self._sweep_interval = window_seconds if sweep_interval is None else sweep_interval
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    async def hit(self, key: str, limit: int) -> RateWindow:
        return self.record(key, limit)

    def record(self, key: str, limit: int) -> RateWindow:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            window = self._windows.get(key)
            if window is None or now - window.window_start >= self.window_seconds:
                window = RateWindow(window_start=now, count=0, limit=limit)
                self._windows[key] = window
            window.limit = limit
            window.count += 1
            return replace(window)

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items()
            if now - window.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            logger.debug("rate_windows_swept", dropped=len(expired), active=len(self._windows))

    async def connect(self) -> bool:
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


# Atomic increment; the first hit of a window sets its expiry.
# Returns [count, remaining_ttl_ms]
_FIXED_WINDOW_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('PTTL', KEYS[1])
return {count, ttl}
"""

_KEY_PREFIX = "ratelimit"
_URL_CREDENTIALS = re.compile(r"(rediss?://[^:/@]*:)[^@]+(@)")


def redact_url(url: str) -> str:
    """Mask the password of a Redis URL before it is logged."""
    return _URL_CREDENTIALS.sub(r"\1***\2", url)


class RedisWindowStore:
    """Shared store for multi-worker deployments, one Redis key per client.

    The store owns its connection pool: ``connect`` at startup, ``close`` at
    shutdown. While the pool is missing every ``hit`` raises
    WindowStoreUnavailable and the limiter fails closed.
    """

    def __init__(
        self,
        window_seconds: float,
        url: str = "redis://localhost:6379",
        *,
        pool_size: int = 10,
        connect_attempts: int = 5,
        backoff: float = 0.5,
        clock: Clock = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self.url = url
        self._pool_size = pool_size
        self._connect_attempts = connect_attempts
        self._backoff = backoff
        self._clock = clock
        self._client: aioredis.Redis | None = None

    async def connect(self) -> bool:
        """Open the pool, retrying with exponential backoff.

        Returns False (and leaves the store unavailable) once every attempt
        has failed; startup continues so /ready can report the outage.
        """
        for attempt in range(self._connect_attempts):
            client = aioredis.from_url(
                self.url,
                max_connections=self._pool_size,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            try:
                await client.ping()
            except (aioredis.ConnectionError, OSError) as exc:
                delay = self._backoff * 2 ** attempt
                logger.warning(
                    "rate_store_connect_retry",
                    attempt=attempt + 1,
                    attempts=self._connect_attempts,
                    delay=delay,
                    error=str(exc),
                )
                await client.aclose()
                if attempt + 1 < self._connect_attempts:
                    await asyncio.sleep(delay)
                continue
            self._client = client
            logger.info("rate_store_connected", url=redact_url(self.url), pool_size=self._pool_size)
            return True

        logger.error("rate_store_connect_failed", url=redact_url(self.url))
        return False

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except (aioredis.RedisError, OSError):
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("rate_store_closed")

    async def hit(self, key: str, limit: int) -> RateWindow:
        if self._client is None:
            raise WindowStoreUnavailable("Redis not connected")

        window_ms = int(self.window_seconds * 1000)
        try:
            result = await self._client.eval(_FIXED_WINDOW_LUA, 1, f"{_KEY_PREFIX}:{key}", str(window_ms))
        except (aioredis.RedisError, OSError) as exc:
            raise WindowStoreUnavailable(str(exc)) from exc

        count = int(result[0])
        ttl_ms = int(result[1])
        if ttl_ms < 0:
            ttl_ms = window_ms
        window_start = self._clock() - (window_ms - ttl_ms) / 1000
        return RateWindow(window_start=window_start, count=count, limit=limit)
