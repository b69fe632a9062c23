"""Durable ledger: key catalog plus the issued-link records."""

from typing import Awaitable, Iterable, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Config
from .errors import AlreadyConsumed, LinkNotFound, guarded
from .models import IssuedLink, KeyRecord, utcnow

T = TypeVar("T")

_CATALOG_CHUNK = 500

# asyncpg surfaces dropped connections as OSError subclasses
LEDGER_ERRORS = (SQLAlchemyError, OSError)


class Ledger:
    """
    SQLAlchemy-backed ledger.

    Every public method runs as one short unit of work bounded by
    ``STORE_TIMEOUT_SECONDS``. A timeout cancels the unit of work, whose
    ``session.begin()`` block then rolls back, so no row stays locked and
    no partial write survives a StoreError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self._timeout = Config.STORE_TIMEOUT_SECONDS if timeout is None else timeout

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await guarded("Ledger", operation, awaitable, self._timeout, LEDGER_ERRORS)

    # Issued links -------------------------------------------------------
    async def record_issue(self, link_id: str, key_value: str) -> IssuedLink:
        """Persist an unconsumed IssuedLink binding ``link_id`` to ``key_value``."""

        async def _insert() -> IssuedLink:
            async with self._session_factory() as session:
                async with session.begin():
                    link = IssuedLink(
                        link_id=link_id,
                        key_value=key_value,
                        created_at=utcnow(),
                        consumed=False,
                    )
                    session.add(link)
                return link

        return await self._bounded("record issue", _insert())

    async def consume(
        self,
        link_id: str,
        requester_ip: Optional[str] = None,
        requester_agent: Optional[str] = None,
    ) -> str:
        """
        Check-and-mark a link as consumed and return its key value.

        The row is read with ``FOR UPDATE`` so concurrent redemptions of the
        same link queue on the lock; the first to commit wins and the rest
        see ``consumed`` already set.

        Raises:
            LinkNotFound: No row for ``link_id``
            AlreadyConsumed: Row was consumed earlier
            StoreError: Store failure or timeout (rolled back)
        """

        async def _consume() -> str:
            async with self._session_factory() as session:
                async with session.begin():
                    stmt = (
                        select(IssuedLink)
                        .where(IssuedLink.link_id == link_id)
                        .with_for_update()
                    )
                    link = (await session.execute(stmt)).scalar_one_or_none()
                    if link is None:
                        raise LinkNotFound(link_id)
                    if link.consumed:
                        raise AlreadyConsumed(link_id)

                    link.consumed = True
                    link.consumed_at = utcnow()
                    link.requester_ip = requester_ip
                    link.requester_agent = requester_agent
                return link.key_value

        return await self._bounded("consume", _consume())

    async def get_link(self, link_id: str) -> Optional[IssuedLink]:
        async def _get() -> Optional[IssuedLink]:
            async with self._session_factory() as session:
                return await session.get(IssuedLink, link_id)

        return await self._bounded("get link", _get())

    async def recent_links(self, limit: int) -> list[IssuedLink]:
        """Most recently issued links, newest first."""

        async def _recent() -> list[IssuedLink]:
            async with self._session_factory() as session:
                stmt = (
                    select(IssuedLink)
                    .order_by(IssuedLink.created_at.desc())
                    .limit(limit)
                )
                return list((await session.execute(stmt)).scalars())

        return await self._bounded("recent links", _recent())

    # Key catalog --------------------------------------------------------
    async def catalog_values(self) -> list[str]:
        """All non-deprecated key values in the catalog."""

        async def _values() -> list[str]:
            async with self._session_factory() as session:
                stmt = (
                    select(KeyRecord.key_value)
                    .where(KeyRecord.deprecated.is_(False))
                    .order_by(KeyRecord.id)
                )
                return list((await session.execute(stmt)).scalars())

        return await self._bounded("catalog values", _values())

    async def catalog_size(self) -> int:
        async def _count() -> int:
            async with self._session_factory() as session:
                stmt = (
                    select(func.count())
                    .select_from(KeyRecord)
                    .where(KeyRecord.deprecated.is_(False))
                )
                return int((await session.execute(stmt)).scalar_one())

        return await self._bounded("catalog size", _count())

    async def add_catalog_keys(self, values: Iterable[str]) -> int:
        """
        Insert key values into the catalog, skipping ones already present.

        Returns:
            Number of new KeyRecords created
        """
        pending = list(dict.fromkeys(v for v in values if v))
        if not pending:
            return 0

        async def _add() -> int:
            created = 0
            async with self._session_factory() as session:
                async with session.begin():
                    for start in range(0, len(pending), _CATALOG_CHUNK):
                        chunk = pending[start:start + _CATALOG_CHUNK]
                        existing = set(
                            (
                                await session.execute(
                                    select(KeyRecord.key_value).where(
                                        KeyRecord.key_value.in_(chunk)
                                    )
                                )
                            ).scalars()
                        )
                        fresh = [value for value in chunk if value not in existing]
                        session.add_all(KeyRecord(key_value=value) for value in fresh)
                        created += len(fresh)
            return created

        return await self._bounded("add catalog keys", _add())

    async def deprecate_key(self, key_value: str) -> bool:
        """Exclude a catalog key from future pool refills."""

        async def _deprecate() -> bool:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(KeyRecord)
                        .where(KeyRecord.key_value == key_value)
                        .values(deprecated=True)
                    )
                return result.rowcount > 0

        return await self._bounded("deprecate key", _deprecate())
