"""
Request rate limiting for privileged operations.

Counters live behind a ``RateLimitStore`` so the per-process memory store
can be swapped for the Redis store without touching call sites. The memory
store under-counts when the API runs as several processes.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, cast

import redis
from fastapi import Request
from starlette.concurrency import run_in_threadpool
from structlog import get_logger

from app.config import Settings
from app.core.exceptions import RateLimitException

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """A ceiling of ``points`` per ``window`` seconds."""

    name: str
    points: int
    window: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of consuming points from a bucket."""

    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimitStore(Protocol):
    """Counter backend used by the rate limiter."""

    async def consume(self, key: str, cost: int, policy: RateLimitPolicy) -> RateLimitDecision:
        """Consume ``cost`` points from the bucket identified by ``key``."""
        ...


class MemoryRateLimitStore:
    """Fixed-window counters held in process memory."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        """Initialize with an injectable monotonic clock."""
        self._clock = clock
        # bucket -> (window start, points consumed, window end)
        self._windows: dict[str, tuple[float, int, float]] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        """Drop buckets whose window has elapsed."""
        expired = [bucket for bucket, (_, _, ends) in self._windows.items() if ends <= now]
        for bucket in expired:
            del self._windows[bucket]
        self._next_sweep = now + self._sweep_interval

    async def consume(self, key: str, cost: int, policy: RateLimitPolicy) -> RateLimitDecision:
        """Consume points, opening a new window when the previous one elapsed."""
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)

        bucket = f"{policy.name}:{key}"
        started, consumed, _ = self._windows.get(bucket, (now, 0, now + policy.window))

        if now - started >= policy.window:
            started, consumed = now, 0
        ends = started + policy.window

        if consumed + cost > policy.points:
            retry_after = max(1, math.ceil(ends - now))
            self._windows[bucket] = (started, consumed, ends)
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        consumed += cost
        self._windows[bucket] = (started, consumed, ends)
        return RateLimitDecision(allowed=True, remaining=policy.points - consumed)

    def reset(self) -> None:
        """Drop all counters."""
        self._windows.clear()


class RedisRateLimitStore:
    """Fixed-window counters shared through Redis."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "ratelimit"):
        """Initialize rate limiter with Redis client."""
        self.redis = redis_client
        self.prefix = prefix

    async def consume(self, key: str, cost: int, policy: RateLimitPolicy) -> RateLimitDecision:
        """
        Consume points from a Redis counter.

        The client is synchronous, so the round trips run in the threadpool.

        Args:
            key: Client identifier (e.g., IP address)
            cost: Points this request costs
            policy: Ceiling and window to apply

        Returns:
            Decision for this request
        """
        try:
            return await run_in_threadpool(self._consume, key, cost, policy)
        except redis.RedisError as e:
            # On error, allow request (fail open)
            logger.warning("rate_limit_store_unavailable", error=str(e))
            return RateLimitDecision(allowed=True, remaining=policy.points)

    def _consume(self, key: str, cost: int, policy: RateLimitPolicy) -> RateLimitDecision:
        bucket = f"{self.prefix}:{policy.name}:{key}"
        consumed = cast(int, self.redis.incrby(bucket, cost))

        if consumed == cost:
            # First request in this window
            self.redis.expire(bucket, policy.window)

        if consumed > policy.points:
            ttl = cast(int, self.redis.ttl(bucket))
            retry_after = ttl if ttl > 0 else policy.window
            return RateLimitDecision(allowed=False, remaining=0, retry_after=retry_after)

        return RateLimitDecision(allowed=True, remaining=policy.points - consumed)


def get_client_ip(request: Request) -> str:
    """Best-effort client address, preferring proxy forwarding headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


# Points charged per operation: (policy name, cost)
OPERATION_COSTS: dict[str, tuple[str, int]] = {
    "create_user": ("strict", 1),
    "delete_user": ("default", 3),
    "reset_password": ("default", 3),
    "update_role": ("default", 2),
    "list_users": ("default", 1),
    "repair_business": ("default", 2),
    "audit_logs": ("default", 1),
    "session": ("default", 1),
}


class RateLimiter:
    """Applies per-operation rate limits to inbound requests."""

    def __init__(
        self,
        store: RateLimitStore,
        policies: dict[str, RateLimitPolicy],
        enabled: bool = True,
        costs: dict[str, tuple[str, int]] | None = None,
    ):
        """Initialize with a counter store and named policies."""
        self.store = store
        self.policies = policies
        self.enabled = enabled
        self.costs = costs or OPERATION_COSTS

    @classmethod
    def from_settings(cls, settings: Settings, store: RateLimitStore) -> "RateLimiter":
        """Build the limiter from application settings."""
        policies = {
            "default": RateLimitPolicy(
                "default", settings.rate_limit_points, settings.rate_limit_window_seconds
            ),
            "strict": RateLimitPolicy(
                "strict",
                settings.strict_rate_limit_points,
                settings.strict_rate_limit_window_seconds,
            ),
        }
        return cls(store, policies, enabled=settings.rate_limit_enabled)

    async def check(self, request: Request, operation: str) -> RateLimitDecision | None:
        """
        Charge the request against its operation's budget.

        Returns:
            The decision, or None when rate limiting is disabled

        Raises:
            RateLimitException: If the client exceeded the ceiling
        """
        if not self.enabled:
            return None

        policy_name, cost = self.costs.get(operation, ("default", 1))
        policy = self.policies[policy_name]
        client_ip = get_client_ip(request)

        decision = await self.store.consume(client_ip, cost, policy)
        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded",
                client=client_ip,
                operation=operation,
                retry_after=decision.retry_after,
            )
            raise RateLimitException(retry_after=decision.retry_after, limit=policy.points)
        return decision
