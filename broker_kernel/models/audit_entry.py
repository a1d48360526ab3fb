"""
Module: broker_kernel.models.audit_entry
Responsibility: ORM persistence for the per-record lifecycle audit trail.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ DTOs only.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (ORM listeners + PostgreSQL triggers).
    - (entity_kind, record_id, seq) is unique: seq numbers one record's
      accepted edits 1, 2, 3, ...
    - hash = H(entity_kind | record_id | seq | payload_hash | prev_hash),
      where prev_hash is the previous entry of the same record.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError if two transactions try to append the same seq for
      one record (AuditTrailService reports it as TransientStorageError).

Audit relevance:
    One row per accepted edit, written in the same transaction as the
    record mutation.  Rejected edits never produce a row.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import Base, UUIDString
from broker_kernel.domain.lifecycle import AuditEntry, StatusTransition


class AuditAction(str, Enum):
    """Kinds of lifecycle audit entries."""

    FIELDS_UPDATED = "fields_updated"
    STATUS_CHANGED = "status_changed"


class LifecycleAuditEntry(Base):
    """
    One accepted lifecycle edit.

    Guarantees:
        - ``before``/``after`` are JSON-safe snapshots of the blueprint's
          fields plus status.
        - ``from_state``/``to_state`` are both set or both NULL.
    """

    __tablename__ = "lifecycle_audit_entries"

    __table_args__ = (
        UniqueConstraint("entity_kind", "record_id", "seq", name="uq_audit_record_seq"),
        Index("idx_audit_record", "entity_kind", "record_id"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    entity_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    before: Mapped[dict] = mapped_column(JSON, nullable=False)
    after: Mapped[dict] = mapped_column(JSON, nullable=False)
    changes: Mapped[dict] = mapped_column(JSON, nullable=False)
    # "metadata" is reserved on declarative classes
    edit_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False)

    from_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_state: Mapped[str | None] = mapped_column(String(30), nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<LifecycleAuditEntry {self.entity_kind}:{self.record_id} #{self.seq}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    @property
    def transition(self) -> StatusTransition | None:
        if self.from_state is None or self.to_state is None:
            return None
        return StatusTransition(self.from_state, self.to_state)

    def to_dto(self) -> AuditEntry:
        return AuditEntry(
            id=self.id,
            entity_kind=self.entity_kind,
            record_id=self.record_id,
            seq=self.seq,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            occurred_at=self.occurred_at,
            before=dict(self.before),
            after=dict(self.after),
            changes=dict(self.changes),
            transition=self.transition,
            metadata=dict(self.edit_metadata),
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )
