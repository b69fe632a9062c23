"""Inventory administration: catalog seeding, pool refills and the audit view."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from loguru import logger

from .audit import AuditEvent, AuditLogger, audit_logger
from .errors import StoreError
from .ledger import Ledger
from .pool import ExpiryMarkers, KeyPool


@dataclass
class InventoryStatus:
    pool_size: int
    catalog_size: int

    def to_dict(self) -> dict[str, int]:
        return {"pool_size": self.pool_size, "catalog_size": self.catalog_size}


def load_key_file(path: Union[str, Path]) -> list[str]:
    """
    Read a newline-separated key file.

    Lines are stripped, blank lines dropped, duplicates kept once in file
    order. Both LF and CRLF endings are accepted.
    """
    raw = Path(path).read_text(encoding="utf-8")
    return list(dict.fromkeys(line.strip() for line in raw.splitlines() if line.strip()))


class InventoryAdmin:
    """Off-hot-path operations that move keys between catalog and pool."""

    def __init__(
        self,
        pool: KeyPool,
        ledger: Ledger,
        markers: ExpiryMarkers,
        audit: Optional[AuditLogger] = None,
    ):
        self._pool = pool
        self._ledger = ledger
        self._markers = markers
        self._audit = audit or audit_logger

    async def refill_pool(self) -> int:
        """
        Copy every non-deprecated catalog key into the pool.

        Set semantics make this idempotent: values already pooled are left
        as they are. Values that were issued earlier are pushed again too;
        a refill is the explicit re-seed that puts keys back into circulation.

        Returns:
            Number of catalog values pushed
        """
        values = await self._ledger.catalog_values()
        if not values:
            logger.info("Pool refill: no keys in catalog")
            return 0

        added = await self._pool.add_many(values)
        self._audit.log(
            AuditEvent.POOL_REFILLED,
            catalog_count=len(values),
            newly_added=added,
            set_key=self._pool.set_key,
        )
        logger.info(
            f"Pool refill: pushed {len(values)} keys to {self._pool.set_key} "
            f"({added} new)"
        )
        return len(values)

    async def seed_catalog(self, values: Iterable[str]) -> int:
        """Add key values to the catalog, ignoring ones already there."""
        created = await self._ledger.add_catalog_keys(values)
        self._audit.log(AuditEvent.CATALOG_SEEDED, created=created)
        logger.info(f"Seeded {created} new keys into the catalog")
        return created

    async def seed_catalog_from_file(self, path: Union[str, Path]) -> int:
        return await self.seed_catalog(load_key_file(path))

    async def deprecate(self, key_value: str) -> bool:
        changed = await self._ledger.deprecate_key(key_value)
        if changed:
            self._audit.log(AuditEvent.KEY_DEPRECATED)
            logger.info("Deprecated one catalog key")
        return changed

    async def status(self) -> InventoryStatus:
        return InventoryStatus(
            pool_size=await self._pool.size(),
            catalog_size=await self._ledger.catalog_size(),
        )

    async def inspect(self, limit: int) -> list[dict[str, Any]]:
        """
        Most recent issued links for the admin audit view.

        Each entry carries ``marker_active``; it is None when the marker
        store could not be reached, since markers never gate the result.
        """
        links = await self._ledger.recent_links(limit)
        try:
            armed = await self._markers.armed(link.link_id for link in links)
        except StoreError as e:
            logger.warning(f"Marker lookup skipped for inspect view: {e}")
            armed = {}

        entries = []
        for link in links:
            entry = link.to_audit_dict()
            entry["marker_active"] = armed.get(link.link_id)
            entries.append(entry)
        return entries
