"""Redis-backed rate limiting: window counting, blocking and failing open."""

import pytest
import redis

from access_gate.exceptions import RateLimited
from access_gate.services.rate_limiter import (
    ACCESS_REQUEST_POLICY,
    CODE_VALIDATION_POLICY,
    RateLimitPolicy,
    RateLimiter,
    enforce_rate_limit,
    set_rate_limiter,
)


class _BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError('connection refused')
        return fail


def test_allows_up_to_points_then_blocks(app, fake_redis):
    limiter = RateLimiter(fake_redis)

    results = [limiter.consume(CODE_VALIDATION_POLICY, '10.0.0.1') for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert [r.remaining for r in results[:5]] == [4, 3, 2, 1, 0]
    assert results[-1].retry_after == CODE_VALIDATION_POLICY.block_duration


def test_keys_are_counted_independently(app, fake_redis):
    limiter = RateLimiter(fake_redis)
    for _ in range(3):
        limiter.consume(ACCESS_REQUEST_POLICY, 'a@x.com')

    assert limiter.consume(ACCESS_REQUEST_POLICY, 'a@x.com').allowed is False
    assert limiter.consume(ACCESS_REQUEST_POLICY, 'b@x.com').allowed is True


def test_block_outlasts_window_and_then_lifts(app, fake_redis):
    policy = RateLimitPolicy('rl:test', points=1, duration=10, block_duration=60)
    limiter = RateLimiter(fake_redis)
    limiter.consume(policy, 'k')
    assert limiter.consume(policy, 'k').allowed is False

    fake_redis.advance(30)
    blocked = limiter.consume(policy, 'k')
    assert blocked.allowed is False
    assert blocked.retry_after == 30

    fake_redis.advance(31)
    assert limiter.consume(policy, 'k').allowed is True


def test_window_resets_without_block(app, fake_redis):
    policy = RateLimitPolicy('rl:test', points=2, duration=10)
    limiter = RateLimiter(fake_redis)
    limiter.consume(policy, 'k')
    limiter.consume(policy, 'k')
    denied = limiter.consume(policy, 'k')
    assert denied.allowed is False
    assert denied.retry_after == 10

    fake_redis.advance(10)
    assert limiter.consume(policy, 'k').allowed is True


def test_fails_open_when_redis_unavailable(app):
    result = RateLimiter(_BrokenRedis()).consume(CODE_VALIDATION_POLICY, '10.0.0.1')

    assert result.allowed is True


def test_enforce_raises_rate_limited_with_retry_after(app):
    for _ in range(3):
        enforce_rate_limit(ACCESS_REQUEST_POLICY, 'A@X.com')

    with pytest.raises(RateLimited) as excinfo:
        enforce_rate_limit(ACCESS_REQUEST_POLICY, 'a@x.com')

    assert excinfo.value.retry_after == ACCESS_REQUEST_POLICY.block_duration
    assert excinfo.value.status_code == 429


def test_enforce_is_noop_when_disabled(app):
    app.config['RATE_LIMIT_ENABLED'] = False
    set_rate_limiter(RateLimiter(_BrokenRedis()))

    for _ in range(10):
        assert enforce_rate_limit(ACCESS_REQUEST_POLICY, 'a@x.com') is None
