"""
Module: broker_kernel.db.immutability
Responsibility: ORM-level enforcement that lifecycle audit entries are
    append-only.  Layer 1 of 2; PostgreSQL triggers in db/triggers.py are
    layer 2.
Architecture position: Kernel > DB.  Imports models lazily inside the
    listener registration functions.

Invariants enforced:
    - LifecycleAuditEntry: no UPDATE and no DELETE through the ORM.

Failure modes:
    - ImmutabilityViolationError raised from the flush that attempted it.
"""

from sqlalchemy import event

from broker_kernel.exceptions import ImmutabilityViolationError
from broker_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LifecycleAuditEntry",
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LifecycleAuditEntry",
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_entry_update(mapper, connection, target):
    """Prevent any UPDATE of a lifecycle audit entry."""
    _blocked(target, "UPDATE", "Lifecycle audit entries cannot be modified")


def _check_audit_entry_delete(mapper, connection, target):
    """Prevent DELETE of a lifecycle audit entry."""
    _blocked(target, "DELETE", "Lifecycle audit entries cannot be deleted")


def register_immutability_listeners():
    """
    Register the audit immutability listeners.

    Call once during application initialization, after models are imported.
    Safe to call more than once.
    """
    from broker_kernel.models.audit_entry import LifecycleAuditEntry

    if not event.contains(LifecycleAuditEntry, "before_update", _check_audit_entry_update):
        event.listen(LifecycleAuditEntry, "before_update", _check_audit_entry_update)
    if not event.contains(LifecycleAuditEntry, "before_delete", _check_audit_entry_delete):
        event.listen(LifecycleAuditEntry, "before_delete", _check_audit_entry_delete)


def unregister_immutability_listeners():
    """
    Remove the audit immutability listeners.

    WARNING: Only for tests that must violate immutability on purpose to
    verify chain-tamper detection.
    """
    from broker_kernel.models.audit_entry import LifecycleAuditEntry

    for name, fn in (
        ("before_update", _check_audit_entry_update),
        ("before_delete", _check_audit_entry_delete),
    ):
        if event.contains(LifecycleAuditEntry, name, fn):
            event.remove(LifecycleAuditEntry, name, fn)
