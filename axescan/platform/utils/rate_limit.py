"""
Fixed-window rate limiting.

The counting store is injected: InMemoryRateLimitStore is fine for a single
API instance, RedisRateLimitStore keeps one shared count across instances.
"""
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Protocol, Tuple

from fastapi import Request
from redis import Redis


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int


class RateLimitStore(Protocol):
    def hit(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """Count one request for `key`. Returns (count in window, seconds until reset)."""
        ...


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._lock = Lock()
        self._next_sweep = 0.0

    def hit(self, key: str, window_seconds: int) -> Tuple[int, int]:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + window_seconds
            count, reset_at = self._entries.get(key, (0, now + window_seconds))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._entries[key] = (count, reset_at)
        return count, max(1, int(reset_at - now))

    def _sweep(self, now: float) -> None:
        # Drop keys whose window has closed; caller holds the lock
        expired = [key for key, (_, reset_at) in self._entries.items() if now >= reset_at]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisRateLimitStore:
    def __init__(self, redis: Redis, prefix: str = "rl"):
        self.redis = redis
        self.prefix = prefix

    def hit(self, key: str, window_seconds: int) -> Tuple[int, int]:
        redis_key = f"{self.prefix}:{key}"
        pipe = self.redis.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = pipe.execute()
        if ttl is None or ttl < 0:
            self.redis.expire(redis_key, window_seconds)
            ttl = window_seconds
        return int(count), max(1, int(ttl))


class RateLimiter:
    def __init__(self, store: RateLimitStore, max_requests: int, window_seconds: int):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    def check(self, key: str) -> RateLimitResult:
        count, retry_after = self.store.hit(key, self.window_seconds)
        if count > self.max_requests:
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitResult(allowed=True, remaining=self.max_requests - count, retry_after=retry_after)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def build_rate_limit_store(force_in_memory: bool, redis_url: Optional[str] = None) -> RateLimitStore:
    if force_in_memory or not redis_url:
        return InMemoryRateLimitStore()
    return RedisRateLimitStore(Redis.from_url(redis_url, decode_responses=True))
