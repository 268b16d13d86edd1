"""
Upstream Rate Limiting

Throttles requests to the osu! API with pyrate-limiter. One limiter is
shared by all fetch workers of an extractor, so the quota applies to the
process as a whole. Callers block in acquire() until the request fits
the window, up to a maximum wait.
"""

from typing import Optional

from pyrate_limiter import Duration, Limiter, Rate

from core.logging import get_logger
from core.resilience import RateLimitError

OSU_API_BUCKET = "osu_api"

logger = get_logger("rate_limit")


def build_rate_limiter(
    requests_per_minute: int,
    requests_per_second: Optional[int] = None,
    max_wait_seconds: float = 60,
) -> Limiter:
    """
    Build a blocking limiter from a per-minute quota.

    Args:
        requests_per_minute: Requests allowed in any 60 second window
        requests_per_second: Optional tighter cap on bursts
        max_wait_seconds: Longest a caller may block; 0 fails immediately

    Raises:
        ValueError: On a non-positive quota or negative wait
    """
    if requests_per_minute < 1:
        raise ValueError("requests_per_minute must be at least 1")
    if requests_per_second is not None and requests_per_second < 1:
        raise ValueError("requests_per_second must be at least 1")
    if max_wait_seconds < 0:
        raise ValueError("max_wait_seconds must not be negative")

    if requests_per_second is None or requests_per_second >= requests_per_minute:
        rates = [Rate(requests_per_minute, Duration.MINUTE)]
    elif requests_per_second * 60 <= requests_per_minute:
        # the per-second cap binds on its own
        rates = [Rate(requests_per_second, Duration.SECOND)]
    else:
        rates = [
            Rate(requests_per_second, Duration.SECOND),
            Rate(requests_per_minute, Duration.MINUTE),
        ]

    max_delay = int(max_wait_seconds * 1000) or None
    return Limiter(rates, raise_when_fail=False, max_delay=max_delay)


def acquire(limiter: Limiter, name: str = OSU_API_BUCKET) -> None:
    """
    Take one slot, blocking while the window is full.

    Raises:
        RateLimitError: If the wait would exceed the limiter's maximum
    """
    if not limiter.try_acquire(name):
        logger.warning("rate_limit_exhausted", bucket=name)
        raise RateLimitError(f"Local rate limit for {name} exhausted")
