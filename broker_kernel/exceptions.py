"""
Typed Exception Hierarchy for the Broker Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Lifecycle rejections are shown to people correcting a form. Callers must be
able to tell an access problem from a missing settlement date without
parsing messages, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (field sets, from/to states)

Example - WRONG way:
    except Exception as e:
        if "missing" in str(e):
            ...

Example - RIGHT way:
    except MissingRequirementsError as e:
        api_response(code=e.code, fields=sorted(e.missing_fields))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BrokerKernelError:

    BrokerKernelError (base)
    |
    +-- LifecycleRejection            (deterministic, never retried)
    |   +-- UnauthorizedEditError
    |   +-- ForbiddenFieldsError
    |   +-- IllegalTransitionError
    |   +-- MissingRequirementsError
    |
    +-- RecordNotFoundError
    |
    +-- ConcurrencyError              (retry-eligible)
    |   +-- TransientStorageError
    |       +-- OptimisticLockError
    |
    +-- BlueprintError
    |   +-- BlueprintIntegrityError
    |   +-- UnknownEntityKindError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lifecycle       | UNAUTHORIZED                | Role not an editor in the current state
                | FORBIDDEN_FIELDS            | Payload touches non-editable fields
                | ILLEGAL_TRANSITION          | Target state not reachable from current
                | MISSING_REQUIREMENTS        | Merged record lacks required fields
----------------|-----------------------------|-----------------------------------------
Record          | RECORD_NOT_FOUND            | Id does not resolve for the entity kind
----------------|-----------------------------|-----------------------------------------
Concurrency     | TRANSIENT_STORAGE_FAILURE   | Lock contention, timeout, connectivity
                | OPTIMISTIC_LOCK_CONFLICT    | Version counter moved under us
----------------|-----------------------------|-----------------------------------------
Blueprint       | BLUEPRINT_INTEGRITY         | Startup validation failed
                | UNKNOWN_ENTITY_KIND         | No blueprint registered for kind
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying/deleting an audit entry

===============================================================================
HANDLING PATTERNS
===============================================================================

1. REJECTIONS ARE FINAL. The same request against the same record state
   fails the same way; never retry a LifecycleRejection.

2. ONLY ConcurrencyError IS RETRY-ELIGIBLE. The executor re-reads the
   record under lock on every attempt, so resubmitting the same request
   is safe (see broker_services.retry).

3. AUDIT CHAIN ERRORS are an integrity incident, not a user error.
"""

from __future__ import annotations

from typing import Any, Iterable


def _sorted(names: Iterable[str]) -> tuple[str, ...]:
    return tuple(sorted(names))


class BrokerKernelError(Exception):
    """Base exception for all broker kernel errors."""

    code: str = "BROKER_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable form for response shaping."""
        data: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, val in vars(self).items():
            if key.startswith("_"):
                continue
            if isinstance(val, (set, frozenset)):
                val = sorted(val)
            data[key] = val
        return data


# Lifecycle rejections


class LifecycleRejection(BrokerKernelError):
    """Base for the four blueprint checks. No mutation was performed."""

    code: str = "LIFECYCLE_REJECTED"


class UnauthorizedEditError(LifecycleRejection):
    """Actor's role may not edit a record in its current state."""

    code: str = "UNAUTHORIZED"

    def __init__(self, entity_kind: str, state: str, role: str):
        self.entity_kind = entity_kind
        self.state = state
        self.role = role
        super().__init__(
            f"Role {role} may not edit a {entity_kind} in state {state}"
        )


class ForbiddenFieldsError(LifecycleRejection):
    """One or more touched fields are not editable in the current state."""

    code: str = "FORBIDDEN_FIELDS"

    def __init__(self, entity_kind: str, state: str, forbidden_fields: Iterable[str]):
        self.entity_kind = entity_kind
        self.state = state
        self.forbidden_fields = frozenset(forbidden_fields)
        super().__init__(
            f"Fields not editable for {entity_kind} in state {state}: "
            f"{', '.join(_sorted(self.forbidden_fields))}"
        )


class IllegalTransitionError(LifecycleRejection):
    """Requested status is not reachable from the current status."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, entity_kind: str, from_state: str, to_state: str):
        self.entity_kind = entity_kind
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal {entity_kind} transition: {from_state} -> {to_state}"
        )


class MissingRequirementsError(LifecycleRejection):
    """Fields required by the requested transition are not populated."""

    code: str = "MISSING_REQUIREMENTS"

    def __init__(
        self,
        entity_kind: str,
        from_state: str,
        to_state: str,
        missing_fields: Iterable[str],
    ):
        self.entity_kind = entity_kind
        self.from_state = from_state
        self.to_state = to_state
        self.missing_fields = frozenset(missing_fields)
        super().__init__(
            f"Cannot move {entity_kind} {from_state} -> {to_state}, missing: "
            f"{', '.join(_sorted(self.missing_fields))}"
        )


# Record lookup


class RecordNotFoundError(BrokerKernelError):
    """Record id does not resolve to a record of the given kind."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_kind: str, record_id: str):
        self.entity_kind = entity_kind
        self.record_id = record_id
        super().__init__(f"{entity_kind} not found: {record_id}")


# Concurrency / storage


class ConcurrencyError(BrokerKernelError):
    """Base exception for retry-eligible storage failures."""

    code: str = "CONCURRENCY_ERROR"


class TransientStorageError(ConcurrencyError):
    """Transaction could not complete. Safe to retry with the same request."""

    code: str = "TRANSIENT_STORAGE_FAILURE"

    def __init__(self, entity_kind: str, record_id: str, reason: str):
        self.entity_kind = entity_kind
        self.record_id = record_id
        self.reason = reason
        super().__init__(
            f"Transient storage failure on {entity_kind} {record_id}: {reason}"
        )


class OptimisticLockError(TransientStorageError):
    """Version counter changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_kind: str, record_id: str):
        super().__init__(
            entity_kind,
            record_id,
            "record was modified by another transaction",
        )


# Blueprint configuration


class BlueprintError(BrokerKernelError):
    """Base exception for blueprint configuration errors."""

    code: str = "BLUEPRINT_ERROR"


class BlueprintIntegrityError(BlueprintError):
    """Blueprint failed startup validation. The process must not start."""

    code: str = "BLUEPRINT_INTEGRITY"

    def __init__(self, entity_kind: str, errors: Iterable[str]):
        self.entity_kind = entity_kind
        self.errors = tuple(errors)
        super().__init__(
            f"Blueprint for {entity_kind} failed validation:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


class UnknownEntityKindError(BlueprintError):
    """No blueprint is registered for the entity kind."""

    code: str = "UNKNOWN_ENTITY_KIND"

    def __init__(self, entity_kind: str):
        self.entity_kind = entity_kind
        super().__init__(f"No lifecycle blueprint registered for {entity_kind}")


# Audit


class AuditError(BrokerKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_entry_id: str, expected_hash: str, actual_hash: str):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_entry_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability


class ImmutabilityError(BrokerKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
