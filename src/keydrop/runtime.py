"""Process-wide store handles and the services built on them."""

import asyncio
from typing import Any, Optional

from loguru import logger
from redis import asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .audit import AuditLogger, audit_logger
from .database import (
    check_database_health,
    close_database,
    get_engine,
    get_session_factory,
)
from .errors import StoreError
from .inventory import InventoryAdmin
from .issuance import IssuanceService
from .ledger import Ledger
from .pool import ExpiryMarkers, KeyPool
from .ratelimit import RateLimiter
from .redemption import RedemptionService
from .redis_client import check_redis_health, close_redis_client, get_redis_client


class Runtime:
    """
    Owns the Redis client and ledger session factory for one process.

    Services get their store handles through their constructors; nothing
    below this object reaches for a global client.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
        audit: Optional[AuditLogger] = None,
        owns_handles: bool = False,
    ):
        self.redis = redis
        self.session_factory = session_factory
        self.engine = engine
        self._owns_handles = owns_handles

        audit = audit or audit_logger
        self.pool = KeyPool(redis)
        self.markers = ExpiryMarkers(redis)
        self.ledger = Ledger(session_factory)
        self.rate_limiter = RateLimiter(redis)
        self.issuance = IssuanceService(self.pool, self.ledger, self.markers, audit=audit)
        self.redemption = RedemptionService(self.ledger, self.markers, audit=audit)
        self.inventory = InventoryAdmin(self.pool, self.ledger, self.markers, audit=audit)

    @classmethod
    async def start(cls) -> "Runtime":
        """Acquire the shared Redis client and ledger engine."""
        try:
            redis = await get_redis_client()
        except (aioredis.RedisError, OSError) as exc:
            raise StoreError(f"redis unavailable: {exc}") from exc
        engine = get_engine()
        runtime = cls(redis, get_session_factory(), engine=engine, owns_handles=True)
        logger.info("Store handles acquired")
        return runtime

    async def close(self) -> None:
        """Release the shared handles if this runtime acquired them."""
        if not self._owns_handles:
            return
        await close_redis_client()
        await close_database()
        logger.info("Store handles released")

    async def health(self) -> dict[str, Any]:
        redis_ok, redis_status = await check_redis_health(self.redis)
        if self.engine is not None:
            db_ok, db_status = await check_database_health(self.engine)
        else:
            db_ok, db_status = True, "unchecked"
        return {"ok": redis_ok and db_ok, "redis": redis_status, "database": db_status}


_runtime: Optional[Runtime] = None
_runtime_lock = asyncio.Lock()


async def get_runtime() -> Runtime:
    """Return the installed runtime, starting one on first use."""
    global _runtime
    if _runtime is None:
        async with _runtime_lock:
            if _runtime is None:
                _runtime = await Runtime.start()
    return _runtime


def set_runtime(runtime: Optional[Runtime]) -> None:
    """Install a runtime built elsewhere (tests, CLI commands)."""
    global _runtime
    _runtime = runtime


async def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None
