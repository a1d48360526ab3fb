"""
Module: broker_kernel.models.claim
Responsibility: ORM persistence for insurance claims.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``status`` holds a ClaimStatus value and changes only through
      accepted lifecycle edits.
    - ``version`` is the optimistic version counter; SQLAlchemy adds it to
      every UPDATE's WHERE clause, so a stale write fails instead of
      overwriting a concurrent transition.

Audit relevance:
    Every accepted edit produces a LifecycleAuditEntry with before/after
    snapshots of the fields governed by the claim blueprint.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import TrackedBase, UUIDString


class ClaimStatus(str, Enum):
    """Claim lifecycle states.  RETURNED, SETTLED and CANCELLED are terminal."""

    DRAFT = "DRAFT"
    VALIDATION = "VALIDATION"
    SUBMITTED = "SUBMITTED"
    PENDING_INFO = "PENDING_INFO"
    RETURNED = "RETURNED"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


class Claim(TrackedBase):
    """
    A reimbursement claim filed against a policy.

    Contract:
        Created in DRAFT by the claim intake feature; moved and edited only
        through the lifecycle executor; never deleted (cancellation is a
        transition).
    """

    STATUS_ENUM: ClassVar[type[ClaimStatus]] = ClaimStatus

    __tablename__ = "claims"

    __table_args__ = (
        UniqueConstraint("claim_number", name="uq_claim_number"),
        Index("idx_claim_status", "status"),
        Index("idx_claim_client", "client_id"),
        Index("idx_claim_settlement_date", "settlement_date"),
    )

    claim_number: Mapped[str] = mapped_column(String(50), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    affiliate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    patient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    policy_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ClaimStatus.DRAFT.value,
    )

    # Intake
    care_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    diagnosis_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    diagnosis_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount_submitted: Mapped[Decimal | None] = mapped_column(nullable=True)
    incident_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    submitted_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Settlement
    business_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_approved: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount_denied: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount_unprocessed: Mapped[Decimal | None] = mapped_column(nullable=True)
    deductible_applied: Mapped[Decimal | None] = mapped_column(nullable=True)
    copay_applied: Mapped[Decimal | None] = mapped_column(nullable=True)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    settlement_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    settlement_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} [{self.status}]>"

    @property
    def status_enum(self) -> ClaimStatus:
        return ClaimStatus(self.status)
