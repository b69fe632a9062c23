"""Redis-backed key pool and advisory expiry markers."""

from typing import Awaitable, Iterable, Optional, TypeVar

from redis import asyncio as aioredis

from .config import Config
from .errors import guarded

T = TypeVar("T")

REDIS_ERRORS = (aioredis.RedisError,)


async def redis_call(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    """
    Bound one Redis round-trip.

    Single Redis commands are atomic on the server, so a timed-out SPOP has
    either removed its member or not; it never leaves one half-removed.
    """
    return await guarded("Redis", operation, awaitable, timeout, REDIS_ERRORS)


class KeyPool:
    """
    Unordered set of available, not-yet-issued key values.

    Removal goes through SPOP, so concurrent poppers never receive the
    same member.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        set_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._redis = redis
        self.set_key = set_key or Config.REDIS_KEYSET
        self._timeout = Config.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    async def pop(self) -> Optional[str]:
        """Atomically remove one random key value. Returns None when empty."""
        return await redis_call("pool pop", self._redis.spop(self.set_key), self._timeout)

    async def add_many(self, values: Iterable[str]) -> int:
        """
        Insert key values with set semantics.

        Returns:
            Number of values that were not already present
        """
        values = list(values)
        if not values:
            return 0

        async def _add() -> int:
            async with self._redis.pipeline(transaction=True) as pipe:
                for value in values:
                    pipe.sadd(self.set_key, value)
                results = await pipe.execute()
            return sum(int(added) for added in results)

        return await redis_call("pool add", _add(), self._timeout)

    async def size(self) -> int:
        return await redis_call("pool size", self._redis.scard(self.set_key), self._timeout)


class ExpiryMarkers:
    """
    Self-expiring ``page_ttl:<link_id>`` markers.

    Markers are advisory cleanup only. The ledger alone decides whether a
    link can be redeemed.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._redis = redis
        self._prefix = prefix or Config.EXPIRY_MARKER_PREFIX
        self._timeout = Config.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    def marker_key(self, link_id: str) -> str:
        return f"{self._prefix}{link_id}"

    async def arm(self, link_id: str, ttl_seconds: int) -> None:
        await redis_call(
            "marker arm",
            self._redis.setex(self.marker_key(link_id), ttl_seconds, "1"),
            self._timeout,
        )

    async def clear(self, link_id: str) -> bool:
        deleted = await redis_call(
            "marker clear", self._redis.delete(self.marker_key(link_id)), self._timeout
        )
        return bool(deleted)

    async def armed(self, link_ids: Iterable[str]) -> dict[str, bool]:
        """Report which of the given links still hold a live marker."""
        link_ids = list(link_ids)
        if not link_ids:
            return {}

        async def _check() -> list:
            async with self._redis.pipeline(transaction=False) as pipe:
                for link_id in link_ids:
                    pipe.exists(self.marker_key(link_id))
                return await pipe.execute()

        results = await redis_call("marker lookup", _check(), self._timeout)
        return {link_id: bool(found) for link_id, found in zip(link_ids, results)}
