"""Rate limiter adapters - Sliding window throttles."""

from .memory import SlidingWindowRateLimiter
from .redis_limiter import RedisSlidingWindowRateLimiter

__all__ = ["RedisSlidingWindowRateLimiter", "SlidingWindowRateLimiter"]
