"""
Module: broker_kernel.models.invoice
Responsibility: ORM persistence for insurer premium invoices reconciled by
    the broker (billed amount and affiliate count against expectations).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID

from sqlalchemy import Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import TrackedBase, UUIDString


class InvoiceStatus(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    DISCREPANCY = "DISCREPANCY"
    CANCELLED = "CANCELLED"


class Invoice(TrackedBase):
    """An insurer invoice awaiting validation against expected billing."""

    STATUS_ENUM: ClassVar[type[InvoiceStatus]] = InvoiceStatus

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_client", "client_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    insurer_invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    insurer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    policy_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.PENDING.value,
    )

    billing_period: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_affiliate_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actual_affiliate_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discrepancy_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} [{self.status}]>"

    @property
    def status_enum(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)
