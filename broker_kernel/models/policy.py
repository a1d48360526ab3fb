"""
Module: broker_kernel.models.policy
Responsibility: ORM persistence for insurance policies placed by the broker.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``status`` holds a PolicyStatus value and changes only through
      accepted lifecycle edits.
    - ``version`` is the optimistic version counter.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Date, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import TrackedBase, UUIDString


class PolicyStatus(str, Enum):
    """Policy lifecycle states.  CANCELLED is terminal; EXPIRED may reactivate."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Policy(TrackedBase):
    """
    A group health policy with its copay and premium tiers.

    Premium tiers: ``t_premium`` (holder only), ``tplus1_premium`` (holder
    plus one dependant), ``tplusf_premium`` (holder plus family).
    """

    STATUS_ENUM: ClassVar[type[PolicyStatus]] = PolicyStatus

    __tablename__ = "policies"

    __table_args__ = (
        UniqueConstraint("policy_number", name="uq_policy_number"),
        Index("idx_policy_status", "status"),
        Index("idx_policy_client", "client_id"),
    )

    policy_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    client_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    insurer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PolicyStatus.PENDING.value,
    )

    amb_copay: Mapped[Decimal | None] = mapped_column(nullable=True)
    hosp_copay: Mapped[Decimal | None] = mapped_column(nullable=True)
    maternity: Mapped[Decimal | None] = mapped_column(nullable=True)
    t_premium: Mapped[Decimal | None] = mapped_column(nullable=True)
    tplus1_premium: Mapped[Decimal | None] = mapped_column(nullable=True)
    tplusf_premium: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    additional_costs: Mapped[Decimal | None] = mapped_column(nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Policy {self.policy_number} [{self.status}]>"

    @property
    def status_enum(self) -> PolicyStatus:
        return PolicyStatus(self.status)
