"""Redemption: exchange a link for its bound key, exactly once."""

import uuid
from typing import Optional

from loguru import logger

from .audit import AuditLogger, audit_logger
from .errors import AlreadyConsumed, LinkNotFound, StoreError
from .ledger import Ledger
from .pool import ExpiryMarkers


def is_well_formed_link_id(link_id: str) -> bool:
    """Link ids are canonical uuid4 strings; anything else cannot exist."""
    try:
        return str(uuid.UUID(link_id)) == link_id.lower()
    except (ValueError, AttributeError, TypeError):
        return False


class RedemptionService:
    """Single-delivery redemption of issued links."""

    def __init__(
        self,
        ledger: Ledger,
        markers: ExpiryMarkers,
        audit: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._markers = markers
        self._audit = audit or audit_logger

    async def redeem(
        self,
        link_id: str,
        requester_ip: Optional[str] = None,
        requester_agent: Optional[str] = None,
    ) -> str:
        """
        Mark ``link_id`` consumed and return its key value.

        Only the caller whose transaction commits the consumed flag receives
        the key; every other caller for the same link gets AlreadyConsumed.

        Raises:
            LinkNotFound: Unknown or malformed link id
            AlreadyConsumed: Link was redeemed before
            StoreError: Ledger failure or timeout (rolled back)
        """
        if not is_well_formed_link_id(link_id):
            self._audit.log_rejected(str(link_id)[:64], "malformed", requester_ip)
            raise LinkNotFound(link_id)

        link_id = link_id.lower()
        try:
            key_value = await self._ledger.consume(link_id, requester_ip, requester_agent)
        except LinkNotFound:
            self._audit.log_rejected(link_id, "not_found", requester_ip)
            raise
        except AlreadyConsumed:
            logger.info(f"Link {link_id} already consumed")
            self._audit.log_rejected(link_id, "already_consumed", requester_ip)
            raise

        await self._clear_marker(link_id)
        self._audit.log_redeemed(link_id, requester_ip)
        logger.info(f"Redeemed link {link_id}")
        return key_value

    async def _clear_marker(self, link_id: str) -> None:
        try:
            await self._markers.clear(link_id)
        except StoreError as e:
            logger.warning(f"Expiry marker for {link_id} not cleared: {e}")
