"""
AuditTrailService -- append-only, hash-chained record of accepted edits.

Responsibility:
    Writes exactly one ``LifecycleAuditEntry`` per accepted lifecycle edit,
    inside the caller's transaction, carrying the before/after snapshots,
    the field-level changes, the {from, to} status pair, and metadata
    (actor role, hook outcomes).

Architecture position:
    Kernel > Services -- imperative shell.  Called by the lifecycle
    executor after the record merge has been flushed.

Invariants enforced:
    - Atomicity: flushes only; the entry commits or rolls back with the
      record mutation it describes.
    - Per-record ordering: seq = previous seq + 1.  The caller holds the
      record's row lock, so no other transaction appends for the same
      record concurrently; the (kind, record_id, seq) unique constraint
      backs this up.
    - Hash chain: hash = H(kind | record_id | seq | payload_hash | prev_hash).

Failure modes:
    - TransientStorageError if the flush hits a lock or connection fault,
      or if the (kind, record_id, seq) constraint rejects the entry because
      a concurrent transaction appended the same seq.

Audit relevance:
    This IS the audit trail.  Rejected edits never reach this service.
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from broker_kernel.domain.clock import Clock, SystemClock
from broker_kernel.domain.lifecycle import StatusTransition
from broker_kernel.exceptions import TransientStorageError
from broker_kernel.logging_config import get_logger
from broker_kernel.models.audit_entry import AuditAction, LifecycleAuditEntry
from broker_kernel.services.base import BaseService
from broker_kernel.services.record_store import (
    TRANSIENT_DB_ERRORS,
    describe_storage_fault,
)
from broker_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.audit_trail")


def diff_snapshots(
    before: Mapping[str, Any], after: Mapping[str, Any]
) -> dict[str, dict[str, Any]]:
    """Fields whose values differ, as {field: {"before": b, "after": a}}."""
    changes: dict[str, dict[str, Any]] = {}
    for name in sorted(set(before) | set(after)):
        old, new = before.get(name), after.get(name)
        if old != new:
            changes[name] = {"before": old, "after": new}
    return changes


def audit_payload(entry: LifecycleAuditEntry) -> dict[str, Any]:
    """The hashed content of an audit entry.

    Stable across storage round trips: only JSON columns and strings, no
    timestamps (SQLite drops timezone information).
    """
    return {
        "action": entry.action,
        "actor_id": str(entry.actor_id),
        "actor_role": entry.actor_role,
        "before": entry.before,
        "after": entry.after,
        "changes": entry.changes,
        "metadata": entry.edit_metadata,
        "from_state": entry.from_state,
        "to_state": entry.to_state,
    }


class AuditTrailService(BaseService[LifecycleAuditEntry]):
    """
    Appends lifecycle audit entries.

    Contract:
        ``append`` is called once per accepted edit, after the record
        merge, while the record's row lock is held.

    Non-goals:
        - Does NOT read history (see AuditSelector).
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _last_entry(self, entity_kind: str, record_id: UUID) -> LifecycleAuditEntry | None:
        stmt = (
            select(LifecycleAuditEntry)
            .where(
                LifecycleAuditEntry.entity_kind == entity_kind,
                LifecycleAuditEntry.record_id == record_id,
            )
            .order_by(LifecycleAuditEntry.seq.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def append(
        self,
        *,
        entity_kind: str,
        record_id: UUID,
        actor_id: UUID,
        actor_role: str,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        transition: StatusTransition | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> LifecycleAuditEntry:
        """Append one entry for an accepted edit and flush it.

        ``before``/``after`` must already be JSON-safe snapshots.
        ``metadata`` is merged over the standard keys ``role`` and
        ``status_transition``.

        Returns:
            The flushed ``LifecycleAuditEntry``.
        """
        kind = str(getattr(entity_kind, "value", entity_kind))
        try:
            last = self._last_entry(kind, record_id)
        except TRANSIENT_DB_ERRORS as exc:
            raise TransientStorageError(
                kind, str(record_id), describe_storage_fault(exc)
            ) from exc

        meta: dict[str, Any] = {
            "role": actor_role,
            "status_transition": transition.to_dict() if transition else None,
        }
        meta.update(to_json_safe(dict(metadata or {})))

        entry = LifecycleAuditEntry(
            entity_kind=kind,
            record_id=record_id,
            seq=(last.seq + 1) if last is not None else 1,
            action=(
                AuditAction.STATUS_CHANGED.value
                if transition
                else AuditAction.FIELDS_UPDATED.value
            ),
            actor_id=actor_id,
            actor_role=actor_role,
            occurred_at=self._clock.now(),
            before=dict(before),
            after=dict(after),
            changes=diff_snapshots(before, after),
            edit_metadata=meta,
            from_state=transition.from_state if transition else None,
            to_state=transition.to_state if transition else None,
            prev_hash=last.hash if last is not None else None,
        )
        entry.payload_hash = hash_payload(audit_payload(entry))
        entry.hash = hash_audit_entry(
            kind, str(record_id), entry.seq, entry.payload_hash, entry.prev_hash
        )

        self.session.add(entry)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Another transaction appended this seq first.
            logger.warning(
                "audit_seq_conflict",
                extra={"record_id": str(record_id), "seq": entry.seq},
            )
            raise TransientStorageError(
                kind, str(record_id), f"audit seq {entry.seq} already taken"
            ) from exc
        except TRANSIENT_DB_ERRORS as exc:
            raise TransientStorageError(
                kind, str(record_id), describe_storage_fault(exc)
            ) from exc

        logger.info(
            "audit_entry_created",
            extra={
                "audit_entry_id": str(entry.id),
                "seq": entry.seq,
                "action": entry.action,
                "changed_fields": sorted(entry.changes),
                "from_state": entry.from_state,
                "to_state": entry.to_state,
            },
        )
        return entry
