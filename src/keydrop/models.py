"""Ledger tables: the key catalog and the issued-link audit trail."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, false
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class KeyRecord(Base):
    """
    Catalog entry for a vetted key value.

    Rows are created by the admin seeding path and never touched by the
    claim or redemption path. Deprecated rows are skipped on pool refills.
    """

    __tablename__ = "keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_value: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    deprecated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class IssuedLink(Base):
    """
    One issued link bound to exactly one key value.

    ``consumed`` flips from false to true exactly once, under a row lock,
    and the row is kept afterwards as the audit record of the delivery.
    """

    __tablename__ = "issued_links"
    __table_args__ = (Index("idx_issued_links_consumed", "consumed"),)

    link_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    key_value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    consumed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    requester_ip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requester_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def to_audit_dict(self, reveal_key: bool = False) -> dict[str, Any]:
        """
        Serialize for the admin inspect view.

        Key values of unconsumed links are masked unless ``reveal_key`` is set;
        a consumed key has already been delivered and is shown as stored.
        """
        show_key = reveal_key or self.consumed
        return {
            "link_id": self.link_id,
            "key_value": self.key_value if show_key else None,
            "consumed": self.consumed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "consumed_at": self.consumed_at.isoformat() if self.consumed_at else None,
            "requester_ip": self.requester_ip,
            "requester_agent": self.requester_agent,
        }
