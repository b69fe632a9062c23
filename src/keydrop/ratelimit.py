"""Redis-backed fixed-window rate limiting for the claim endpoint."""

import time
from typing import Optional

from loguru import logger
from redis import asyncio as aioredis

from .config import Config
from .errors import StoreError
from .pool import redis_call


class RateLimitExceeded(Exception):
    """Raised when a subject exceeds the configured request budget."""


class RateLimiter:
    """
    N requests per subject per fixed window.

    Counters live at ``ratelimit:<subject>:<window index>`` and expire with
    their window. When Redis is unreachable the request is allowed through:
    the claim path's own pool pop will surface the outage.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self._redis = redis
        self.max_requests = (
            Config.RATE_LIMIT_MAX_REQUESTS if max_requests is None else max_requests
        )
        self.window_seconds = (
            Config.RATE_LIMIT_WINDOW_SECONDS if window_seconds is None else window_seconds
        )
        self._timeout = Config.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    def _bucket_key(self, subject: str, now: Optional[float] = None) -> str:
        bucket = int((time.time() if now is None else now) // self.window_seconds)
        return f"ratelimit:{subject}:{bucket}"

    async def check(self, subject: str) -> None:
        key = self._bucket_key(subject)

        async def _hit() -> int:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self.window_seconds)
            return int(count)

        try:
            count = await redis_call("rate limit", _hit(), self._timeout)
        except StoreError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return

        if count > self.max_requests:
            logger.info(f"Rate limit exceeded for {subject} ({count}/{self.max_requests})")
            raise RateLimitExceeded(f"rate limit exceeded for {subject}")
