"""
Module: broker_kernel.models.claim_reprocess
Responsibility: ORM persistence for claim reprocess records -- one row each
    time a claim returns from PENDING_INFO to SUBMITTED with the missing
    information supplied.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import Base, UUIDString


class ClaimReprocess(Base):
    """Append-only record of a claim resubmission."""

    __tablename__ = "claim_reprocesses"

    __table_args__ = (
        Index("idx_claim_reprocess_claim", "claim_id"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("claims.id", ondelete="CASCADE"),
        nullable=False,
    )
    reprocess_date: Mapped[date] = mapped_column(Date, nullable=False)
    reprocess_description: Mapped[str] = mapped_column(Text, nullable=False)
    business_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ClaimReprocess claim={self.claim_id} on {self.reprocess_date}>"
