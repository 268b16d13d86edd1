import time

import pytest
from pyrate_limiter import Limiter, Rate

from core.rate_limit import acquire, build_rate_limiter
from core.resilience import RateLimitError


def test_minute_quota_then_refuse():
    limiter = build_rate_limiter(60, max_wait_seconds=0)

    for _ in range(60):
        acquire(limiter)

    with pytest.raises(RateLimitError):
        acquire(limiter)


def test_per_second_cap():
    limiter = build_rate_limiter(600, requests_per_second=2, max_wait_seconds=0)

    acquire(limiter)
    acquire(limiter)

    with pytest.raises(RateLimitError):
        acquire(limiter)


def test_burst_within_minute_quota():
    limiter = build_rate_limiter(60, requests_per_second=30, max_wait_seconds=0)

    for _ in range(30):
        acquire(limiter)

    with pytest.raises(RateLimitError):
        acquire(limiter)


def test_loose_per_second_cap_is_ignored():
    # 100 per second can never bind under 60 per minute
    limiter = build_rate_limiter(60, requests_per_second=100, max_wait_seconds=0)

    for _ in range(60):
        acquire(limiter)

    with pytest.raises(RateLimitError):
        acquire(limiter)


def test_blocks_until_window_frees():
    limiter = Limiter(Rate(2, 200), raise_when_fail=False, max_delay=1000)

    started = time.monotonic()
    for _ in range(3):
        acquire(limiter)

    assert time.monotonic() - started >= 0.15


@pytest.mark.parametrize(
    "per_minute, per_second, max_wait",
    [(0, None, 1), (-1, None, 1), (10, 0, 1), (10, None, -1)],
)
def test_invalid_arguments(per_minute, per_second, max_wait):
    with pytest.raises(ValueError):
        build_rate_limiter(per_minute, per_second, max_wait)
