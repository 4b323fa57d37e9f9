"""
Sliding-window rate limiter.

- Keyed by caller identity (user id + scope).
- A request at time t is admitted iff fewer than max_requests admitted
  timestamps fall inside (t - window, t].
- State lives behind RateLimitStore: InMemoryRateLimitStore is process-local
  (limits are enforced per instance), RedisRateLimitStore is shared across
  instances.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional, Protocol
from uuid import uuid4

from redis import Redis

logger = logging.getLogger("shopmatch")


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float
    max_keys: int = 1000


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds
    current: int

    def retry_after(self, now: float) -> int:
        """Whole seconds until the oldest counted request leaves the window."""
        remaining_window = self.reset_at - now
        if remaining_window <= 0:
            return 0
        return math.ceil(remaining_window)


def build_result(config: RateLimitConfig, now: float, current: int, oldest: Optional[float], admitted: bool) -> RateLimitResult:
    reset_at = (oldest if oldest is not None else now) + config.window_seconds
    return RateLimitResult(
        allowed=admitted,
        remaining=max(0, config.max_requests - current),
        reset_at=reset_at,
        current=current,
    )


class RateLimitStore(Protocol):
    def evaluate(self, key: str, now: float, config: RateLimitConfig, *, consume: bool) -> RateLimitResult:
        """Count the key's requests inside the window ending at `now`.

        With consume=True the request is recorded when admitted; with
        consume=False nothing is written.
        """
        ...

    def reset(self, key: str) -> None:
        ...


@dataclass
class _KeyRecord:
    timestamps: Deque[float] = field(default_factory=deque)
    last_access: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemoryRateLimitStore:
    """Process-local store with a bounded key space and LRU eviction.

    Same-key checks are serialized on a per-key lock so the read of the
    current count and the append happen as one step; different keys never
    contend beyond the short map lookup.
    """

    def __init__(self, max_keys: int = 1000):
        self.max_keys = max(1, max_keys)
        self._records: Dict[str, _KeyRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def _get_or_create(self, key: str, now: float) -> _KeyRecord:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                if len(self._records) >= self.max_keys:
                    self._evict_lru()
                record = _KeyRecord(last_access=now)
                self._records[key] = record
            return record

    def _evict_lru(self) -> None:
        # O(n) scan, only paid when a new key arrives at capacity
        oldest_key = min(self._records, key=lambda k: self._records[k].last_access)
        del self._records[oldest_key]
        logger.debug("ratelimit.evicted", extra={"evicted_key": oldest_key})

    def evaluate(self, key: str, now: float, config: RateLimitConfig, *, consume: bool) -> RateLimitResult:
        cutoff = now - config.window_seconds

        if not consume:
            with self._lock:
                record = self._records.get(key)
            if record is None:
                return build_result(config, now, 0, None, admitted=config.max_requests > 0)
            with record.lock:
                live = [ts for ts in record.timestamps if ts > cutoff]
            return build_result(config, now, len(live), live[0] if live else None, admitted=len(live) < config.max_requests)

        while True:
            record = self._get_or_create(key, now)
            with record.lock:
                # reset() or eviction may have dropped the record before we locked it
                with self._lock:
                    current_record = self._records.get(key)
                if current_record is not record:
                    continue

                timestamps = record.timestamps
                while timestamps and timestamps[0] <= cutoff:
                    timestamps.popleft()
                record.last_access = now

                admitted = len(timestamps) < config.max_requests
                if admitted:
                    timestamps.append(now)
                oldest = timestamps[0] if timestamps else None
                return build_result(config, now, len(timestamps), oldest, admitted=admitted)

    def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)


# Prune, count and append in one round trip so concurrent instances cannot
# both observe current < limit for the same key.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local consume = tonumber(ARGV[4])
local member = ARGV[5]
local cutoff = now - window

if consume == 1 then
  redis.call('ZREMRANGEBYSCORE', key, '-inf', cutoff)
end

local current = redis.call('ZCOUNT', key, '(' .. cutoff, '+inf')
local admitted = 0
if current < limit then
  admitted = 1
  if consume == 1 then
    redis.call('ZADD', key, now, member)
    current = current + 1
  end
end

if consume == 1 then
  redis.call('PEXPIRE', key, math.ceil(window * 1000))
end

local oldest = redis.call('ZRANGEBYSCORE', key, '(' .. cutoff, '+inf', 'WITHSCORES', 'LIMIT', 0, 1)
local oldest_score = ''
if oldest[2] then
  oldest_score = oldest[2]
end

return {admitted, current, oldest_score}
"""


class RedisRateLimitStore:
    """Shared store backed by one sorted set per key.

    Keys expire one window after their last admitted request, so the key
    space is bounded by Redis expiry rather than by max_keys.
    """

    def __init__(self, client: Redis, prefix: str = "ratelimit"):
        self.client = client
        self.prefix = prefix
        self._script = client.register_script(_SLIDING_WINDOW_LUA)

    def _redis_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def evaluate(self, key: str, now: float, config: RateLimitConfig, *, consume: bool) -> RateLimitResult:
        member = f"{now:.6f}:{uuid4().hex}"
        admitted, current, oldest_raw = self._script(
            keys=[self._redis_key(key)],
            args=[repr(now), repr(float(config.window_seconds)), config.max_requests, 1 if consume else 0, member],
        )
        if isinstance(oldest_raw, bytes):
            oldest_raw = oldest_raw.decode()
        oldest = float(oldest_raw) if oldest_raw else None
        return build_result(config, now, int(current), oldest, admitted=bool(int(admitted)))

    def reset(self, key: str) -> None:
        self.client.delete(self._redis_key(key))


class SlidingWindowRateLimiter:
    """check/status/reset over a pluggable store.

    Construct one per limited surface (e.g. applications export) and share it
    across requests; nothing here is module-global.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: Optional[RateLimitStore] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self.config = config
        self.store = store if store is not None else InMemoryRateLimitStore(config.max_keys)
        self.time_fn = time_fn

    def check(self, key: str) -> RateLimitResult:
        """Admit or deny one request for key, recording it when admitted."""
        return self.store.evaluate(key, self.time_fn(), self.config, consume=True)

    def status(self, key: str) -> RateLimitResult:
        """Preview the key's quota without consuming it."""
        return self.store.evaluate(key, self.time_fn(), self.config, consume=False)

    def reset(self, key: str) -> None:
        self.store.reset(key)


def build_export_rate_limiter(settings_obj, *, time_fn: Callable[[], float] = time.time, redis_client: Optional[Redis] = None) -> SlidingWindowRateLimiter:
    config = RateLimitConfig(
        max_requests=max(0, settings_obj.EXPORT_RATE_LIMIT_MAX_REQUESTS),
        window_seconds=float(settings_obj.EXPORT_RATE_LIMIT_WINDOW_SECONDS),
        max_keys=settings_obj.EXPORT_RATE_LIMIT_MAX_KEYS,
    )
    if settings_obj.RATE_LIMIT_BACKEND == "redis":
        client = redis_client or Redis.from_url(settings_obj.REDIS_URL)
        store: RateLimitStore = RedisRateLimitStore(client, prefix="ratelimit:export")
    else:
        store = InMemoryRateLimitStore(config.max_keys)
    return SlidingWindowRateLimiter(config, store=store, time_fn=time_fn)
