"""
Module: broker_kernel.db.base
Responsibility: Declarative bases shared by every broker ORM model: the
    portable UUID column type, the annotation-to-column map, and the
    TrackedBase mixin carrying creator/editor stamps.
Architecture position: Kernel > DB.  Imported by every models/ file and by
    nothing outside the kernel's persistence code.  MUST NOT import from
    models/, services/, selectors/ or domain/.

Invariants enforced:
    - Primary keys are uuid4 values, stored as canonical 36-char strings so
      SQLite and PostgreSQL rows compare identically.
    - Amounts (claim settlements, policy premiums, invoice totals) are
      Numeric(14, 2), never float.
    - TrackedBase rows always name their creator; ``updated_by_id`` names
      the actor of the last applied lifecycle edit.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID persisted as String(36).

    Bound values may be ``UUID`` instances or their string form; both are
    normalized to the canonical lowercase hyphenated text, so a malformed
    id fails at bind time rather than matching nothing.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, PyUUID):
            value = PyUUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, PyUUID):
            return value
        return PyUUID(value)


class Base(DeclarativeBase):
    """Declarative base; every table gets a uuid4 ``id``."""

    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: Numeric(14, 2),
        date: Date(),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base for lifecycle-governed records.

    ``created_at``/``updated_at`` come from the database clock.
    ``created_by_id`` is set by whoever inserts the record;
    ``updated_by_id`` is written by ``RecordStore.apply_merge``.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
