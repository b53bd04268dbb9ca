"""
Redis fixed-window rate limiting

Each policy counts consumed points per key in a window key that expires after
``duration`` seconds. Exceeding the limit sets a separate block key for
``block_duration`` seconds. Redis being unavailable never blocks a request:
the limiter fails open and logs the error.
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app
import redis

from access_gate.exceptions import RateLimited
from access_gate.services.metrics_service import MetricsService
from access_gate.utils.routes_helpers import get_redis_connection


@dataclass(frozen=True)
class RateLimitPolicy:
    key_prefix: str
    points: int
    duration: int  # seconds
    block_duration: int = 0  # seconds

    @property
    def name(self):
        return self.key_prefix.split(':', 1)[-1]


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: Optional[int] = None
    retry_after: Optional[int] = None


# 3 access requests per email per day
ACCESS_REQUEST_POLICY = RateLimitPolicy('rl:access_request', points=3, duration=86400, block_duration=86400)
# 5 code validations (and signups) per IP per 15 minutes
CODE_VALIDATION_POLICY = RateLimitPolicy('rl:code_validation', points=5, duration=900, block_duration=900)
# 50 generated codes per admin per day
CODE_GENERATION_POLICY = RateLimitPolicy('rl:code_generation', points=50, duration=86400, block_duration=86400)
# 3 magic links per email per 15 minutes
MAGIC_LINK_POLICY = RateLimitPolicy('rl:magic_link', points=3, duration=900, block_duration=900)


class RateLimiter:
    """Consume points from Redis-backed counters"""

    def __init__(self, client):
        self.redis = client

    def consume(self, policy: RateLimitPolicy, key: str, points: int = 1) -> RateLimitResult:
        counter_key = f"{policy.key_prefix}:{key}"
        block_key = f"{policy.key_prefix}:blocked:{key}"

        try:
            if policy.block_duration:
                blocked_for = self.redis.ttl(block_key)
                if blocked_for is not None and blocked_for > 0:
                    return RateLimitResult(allowed=False, remaining=0, retry_after=blocked_for)

            pipe = self.redis.pipeline()
            pipe.incrby(counter_key, points)
            pipe.ttl(counter_key)
            consumed, window_ttl = pipe.execute()

            # First hit in the window (or a counter that lost its expiry)
            if window_ttl is None or window_ttl < 0:
                self.redis.expire(counter_key, policy.duration)
                window_ttl = policy.duration

            if consumed > policy.points:
                retry_after = window_ttl
                if policy.block_duration:
                    self.redis.set(block_key, 1, ex=policy.block_duration)
                    retry_after = policy.block_duration
                return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

            return RateLimitResult(allowed=True, remaining=policy.points - consumed)

        except redis.RedisError as e:
            current_app.logger.error(f"Rate limiter unavailable for {policy.key_prefix}, allowing request: {e}")
            return RateLimitResult(allowed=True)


# Global rate limiter instance (initialized on first use)
_rate_limiter = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(get_redis_connection(db=current_app.config.get('REDIS_RATE_LIMIT_DB', 0)))
    return _rate_limiter


def set_rate_limiter(limiter: Optional[RateLimiter]):
    """Replace the global rate limiter (None resets to lazy initialization)"""
    global _rate_limiter
    _rate_limiter = limiter


def enforce_rate_limit(policy: RateLimitPolicy, key: str):
    """Consume one point for key, raising RateLimited when over the limit"""
    if not current_app.config.get('RATE_LIMIT_ENABLED', True):
        return None

    result = get_rate_limiter().consume(policy, str(key).lower())
    if not result.allowed:
        MetricsService.track_rate_limit(policy.name, 'limited')
        current_app.logger.warning(f"Rate limit exceeded for {policy.key_prefix}:{key}")
        raise RateLimited(result.retry_after)

    MetricsService.track_rate_limit(policy.name, 'allowed')
    return result
