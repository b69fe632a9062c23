"""Issuance: pop a key from the pool and bind it to a fresh link."""

import uuid
from typing import Optional

from loguru import logger

from .audit import AuditLogger, audit_logger
from .config import Config
from .errors import NoInventory, StoreError
from .ledger import Ledger
from .models import IssuedLink
from .pool import ExpiryMarkers, KeyPool


class IssuanceService:
    """
    Turn one pool entry into one redeemable link.

    The pop and the ledger insert live in different stores and are not one
    transaction. The pop is the point where the key leaves inventory; the
    insert is the point where it becomes redeemable. If the insert fails
    after the pop, that key is out of circulation until an explicit re-seed.
    It is never pushed back automatically, because a commit that timed out
    may still have landed and pushing back would allow a second issue.
    """

    def __init__(
        self,
        pool: KeyPool,
        ledger: Ledger,
        markers: ExpiryMarkers,
        claim_ttl: Optional[int] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._pool = pool
        self._ledger = ledger
        self._markers = markers
        self._claim_ttl = Config.CLAIM_TTL if claim_ttl is None else claim_ttl
        self._audit = audit or audit_logger

    @staticmethod
    def new_link_id() -> str:
        # uuid4 carries 122 random bits from os.urandom.
        return str(uuid.uuid4())

    async def issue(self) -> IssuedLink:
        """
        Issue one link.

        Returns:
            The persisted, unconsumed IssuedLink

        Raises:
            NoInventory: Pool is empty
            StoreError: Pool pop or ledger insert failed
        """
        key_value = await self._pool.pop()
        if key_value is None:
            logger.warning("Claim rejected: key pool is empty")
            raise NoInventory("no keys available")

        link_id = self.new_link_id()
        try:
            link = await self._ledger.record_issue(link_id, key_value)
        except StoreError:
            logger.error(
                f"Ledger insert failed for link {link_id}; "
                "popped key is out of circulation until re-seeded"
            )
            raise

        await self._arm_marker(link_id)
        self._audit.log_issued(link_id)
        logger.info(f"Issued link {link_id}")
        return link

    async def _arm_marker(self, link_id: str) -> None:
        try:
            await self._markers.arm(link_id, self._claim_ttl)
        except StoreError as e:
            logger.warning(f"Expiry marker not armed for {link_id}: {e}")
