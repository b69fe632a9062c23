"""Structured JSON audit trail for issuance, redemption and admin actions."""

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

AUDIT_ROTATION_BYTES = int(os.getenv("AUDIT_ROTATION_BYTES", str(10 * 1024 * 1024)))
MAX_FIELD_LENGTH = 512

# Never written to the audit file, whatever the caller passes.
_REDACTED_FIELDS = frozenset({"key_value", "token", "admin_token"})


class AuditEvent(str, Enum):
    """Audit event types."""

    LINK_ISSUED = "link_issued"
    LINK_REDEEMED = "link_redeemed"
    REDEMPTION_REJECTED = "redemption_rejected"
    POOL_REFILLED = "pool_refilled"
    CATALOG_SEEDED = "catalog_seeded"
    KEY_DEPRECATED = "key_deprecated"
    ADMIN_DENIED = "admin_denied"


class AuditLogger:
    """
    JSON Lines audit logger.

    One object per line, ISO 8601 UTC timestamps, append-only, rotated to a
    timestamped sibling file once it exceeds ``AUDIT_ROTATION_BYTES``.
    Secret key values are dropped before anything is written.
    """

    def __init__(self, log_path: Optional[str] = None):
        if log_path is None:
            log_path = os.getenv("AUDIT_LOG_PATH", "./audit.jsonl")
        self.log_path = Path(log_path)
        self.rotation_bytes = AUDIT_ROTATION_BYTES

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self.rotation_bytes:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        rotated_path = self.log_path.with_name(f"{self.log_path.name}.{timestamp}")
        counter = 1
        while rotated_path.exists():
            rotated_path = self.log_path.with_name(
                f"{self.log_path.name}.{timestamp}.{counter}"
            )
            counter += 1
        self.log_path.replace(rotated_path)

    @staticmethod
    def _clean(fields: dict) -> dict:
        cleaned = {}
        for name, value in fields.items():
            if name in _REDACTED_FIELDS:
                continue
            if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
                value = value[:MAX_FIELD_LENGTH] + "...[truncated]"
            cleaned[name] = value
        return cleaned

    def log(self, event: AuditEvent, **fields) -> None:
        """
        Append one audit record.

        Audit writes are best-effort: an unwritable audit file is reported
        through loguru and never fails the request that triggered it.
        """
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            **self._clean(fields),
        }
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_needed()
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit record {event.value}: {e}")

    def log_issued(self, link_id: str) -> None:
        self.log(AuditEvent.LINK_ISSUED, link_id=link_id)

    def log_redeemed(self, link_id: str, requester_ip: Optional[str]) -> None:
        self.log(AuditEvent.LINK_REDEEMED, link_id=link_id, requester_ip=requester_ip)

    def log_rejected(self, link_id: str, reason: str, requester_ip: Optional[str]) -> None:
        self.log(
            AuditEvent.REDEMPTION_REJECTED,
            link_id=link_id,
            reason=reason,
            requester_ip=requester_ip,
        )

    def log_admin_denied(self, action: str, requester_ip: Optional[str]) -> None:
        self.log(AuditEvent.ADMIN_DENIED, action=action, requester_ip=requester_ip)


# Module-level singleton
audit_logger = AuditLogger()
