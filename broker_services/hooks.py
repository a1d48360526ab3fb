"""
broker_services.hooks -- Side effects of accepted lifecycle edits.

Responsibility:
    Hooks run after an edit has passed every lifecycle check and its
    fields have been merged, inside the same transaction, and before the
    audit entry is written.  Each hook returns audit metadata describing
    what it did (or None when it did nothing).

Architecture position:
    Services layer.  Hooks receive an ``EditContext`` from the
    ``LifecycleExecutor`` and may write kernel ORM rows through its
    session.  They never commit.

Invariants enforced:
    - A hook failure aborts the whole edit: the executor rolls back the
      merge, the hook's own writes and the (unwritten) audit entry.
    - Transition inputs reach hooks only through ``EditContext``; they are
      never written to the governed record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import delete
from sqlalchemy.orm import Session

from broker_kernel.domain.clock import Clock
from broker_kernel.domain.lifecycle import EntityKind, LifecycleBlueprint, StatusTransition
from broker_kernel.logging_config import get_logger
from broker_kernel.models.claim import ClaimStatus
from broker_kernel.models.claim_reprocess import ClaimReprocess
from broker_kernel.models.user_session import UserSession

logger = get_logger("services.lifecycle_hooks")


@dataclass(frozen=True)
class EditContext:
    """Everything a hook may inspect about one accepted edit."""

    session: Session
    blueprint: LifecycleBlueprint
    record: Any
    actor_id: UUID
    actor_role: str
    before_fields: Mapping[str, Any]
    applied_fields: Mapping[str, Any]
    transition: StatusTransition | None
    clock: Clock
    transition_inputs: Mapping[str, Any] = field(default_factory=dict)

    @property
    def entity_kind(self) -> str:
        return self.blueprint.entity_kind


@runtime_checkable
class EditHook(Protocol):
    """Side effect attached to accepted edits of some entity kinds."""

    def applies_to(self, entity_kind: str) -> bool: ...

    def after_apply(self, context: EditContext) -> Mapping[str, Any] | None: ...


class ClaimReprocessHook:
    """
    Record a claim resubmission.

    When a claim moves PENDING_INFO -> SUBMITTED, the reprocess date and
    description supplied as transition inputs become a ``ClaimReprocess``
    row; the claim's current business days are copied onto it.
    """

    def applies_to(self, entity_kind: str) -> bool:
        return entity_kind == EntityKind.CLAIM.value

    def after_apply(self, context: EditContext) -> Mapping[str, Any] | None:
        transition = context.transition
        if transition is None or transition != StatusTransition(
            ClaimStatus.PENDING_INFO.value, ClaimStatus.SUBMITTED.value
        ):
            return None

        inputs = context.transition_inputs
        reprocess = ClaimReprocess(
            id=uuid4(),
            claim_id=context.record.id,
            reprocess_date=inputs["reprocess_date"],
            reprocess_description=inputs["reprocess_description"],
            business_days=getattr(context.record, "business_days", None),
            created_by_id=context.actor_id,
            created_at=context.clock.now(),
        )
        context.session.add(reprocess)

        logger.info(
            "claim_reprocess_created",
            extra={"reprocess_id": str(reprocess.id)},
        )
        return {"reprocess_created": True, "reprocess_id": str(reprocess.id)}


class PrincipalDeactivationHook:
    """
    Force logout of a deactivated principal.

    When an edit flips a record's active flag from True to False and the
    record links a user principal, every ``UserSession`` of that user is
    deleted.  Records without the flag or the link are ignored.
    """

    def __init__(
        self,
        active_field: str = "is_active",
        principal_field: str = "user_id",
        kinds: Iterable[str] | None = None,
    ):
        self.active_field = active_field
        self.principal_field = principal_field
        self.kinds = frozenset(kinds) if kinds is not None else None

    def applies_to(self, entity_kind: str) -> bool:
        return self.kinds is None or entity_kind in self.kinds

    def after_apply(self, context: EditContext) -> Mapping[str, Any] | None:
        if self.active_field not in context.applied_fields:
            return None
        was_active = context.before_fields.get(self.active_field)
        is_active = getattr(context.record, self.active_field, None)
        if not (was_active is True and is_active is False):
            return None

        user_id = getattr(context.record, self.principal_field, None)
        if user_id is None:
            return None

        result = context.session.execute(
            delete(UserSession).where(UserSession.user_id == user_id)
        )
        revoked = result.rowcount or 0

        logger.info(
            "principal_sessions_revoked",
            extra={"user_id": str(user_id), "session_count": revoked},
        )
        return {"sessions_revoked": revoked}


def default_hooks() -> tuple[EditHook, ...]:
    """Hooks installed when the executor is not given an explicit list."""
    return (ClaimReprocessHook(), PrincipalDeactivationHook())
