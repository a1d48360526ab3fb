"""
Module: broker_kernel.selectors.audit_selector
Responsibility: Read access to the lifecycle audit trail of one record and
    verification of its hash chain.
Architecture position: Kernel > Selectors.  Read-only.

Failure modes:
    - AuditChainBrokenError from verify_chain() when a stored hash does not
      match its recomputed value or an entry does not link to its
      predecessor.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from broker_kernel.domain.lifecycle import AuditEntry
from broker_kernel.exceptions import AuditChainBrokenError
from broker_kernel.logging_config import get_logger
from broker_kernel.models.audit_entry import LifecycleAuditEntry
from broker_kernel.selectors.base import BaseSelector
from broker_kernel.services.audit_trail_service import audit_payload
from broker_kernel.utils.hashing import hash_audit_entry, hash_payload

logger = get_logger("selectors.audit")


def _kind(entity_kind) -> str:
    return str(getattr(entity_kind, "value", entity_kind))


class AuditSelector(BaseSelector[LifecycleAuditEntry]):
    """Queries over lifecycle audit entries."""

    def _entries(self, entity_kind, record_id: UUID) -> list[LifecycleAuditEntry]:
        stmt = (
            select(LifecycleAuditEntry)
            .where(
                LifecycleAuditEntry.entity_kind == _kind(entity_kind),
                LifecycleAuditEntry.record_id == record_id,
            )
            .order_by(LifecycleAuditEntry.seq)
        )
        return list(self.session.execute(stmt).scalars().all())

    def history(self, entity_kind, record_id: UUID) -> list[AuditEntry]:
        """All audit entries of one record, oldest first."""
        return [entry.to_dto() for entry in self._entries(entity_kind, record_id)]

    def latest(self, entity_kind, record_id: UUID) -> AuditEntry | None:
        entries = self._entries(entity_kind, record_id)
        return entries[-1].to_dto() if entries else None

    def count_for(self, entity_kind, record_id: UUID) -> int:
        stmt = select(func.count(LifecycleAuditEntry.id)).where(
            LifecycleAuditEntry.entity_kind == _kind(entity_kind),
            LifecycleAuditEntry.record_id == record_id,
        )
        return int(self.session.execute(stmt).scalar_one())

    def verify_chain(self, entity_kind, record_id: UUID) -> bool:
        """
        Validate one record's audit chain.

        Postconditions:
            Returns True only if every entry's payload hash and chained hash
            recompute to the stored values, seq runs 1..n without gaps, and
            each prev_hash equals its predecessor's hash.

        Raises:
            AuditChainBrokenError: At the first entry that fails.
        """
        kind = _kind(entity_kind)
        prev_hash: str | None = None
        for expected_seq, entry in enumerate(self._entries(kind, record_id), start=1):
            if entry.seq != expected_seq:
                self._broken(entry, f"seq {expected_seq}", f"seq {entry.seq}")
            if entry.prev_hash != prev_hash:
                self._broken(entry, prev_hash or "None", entry.prev_hash or "None")

            payload_hash = hash_payload(audit_payload(entry))
            if payload_hash != entry.payload_hash:
                self._broken(entry, payload_hash, entry.payload_hash)

            expected_hash = hash_audit_entry(
                kind, str(record_id), entry.seq, entry.payload_hash, entry.prev_hash
            )
            if expected_hash != entry.hash:
                self._broken(entry, expected_hash, entry.hash)

            prev_hash = entry.hash
        return True

    @staticmethod
    def _broken(entry: LifecycleAuditEntry, expected: str, actual: str) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={
                "audit_entry_id": str(entry.id),
                "record_id": str(entry.record_id),
                "seq": entry.seq,
            },
        )
        raise AuditChainBrokenError(str(entry.id), expected, actual)
