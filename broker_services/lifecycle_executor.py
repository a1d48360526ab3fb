"""
broker_services.lifecycle_executor -- Apply blueprint-checked edits.

Responsibility:
    The single mutation path for lifecycle-governed records.  For one edit
    request it loads the record under a row lock, asks the pure lifecycle
    engine whether the edit is acceptable, and on acceptance merges the
    fields, runs side-effect hooks and appends the audit entry, all in
    one transaction.

Architecture position:
    Services layer.  Thin coordinator: rule evaluation is delegated to
    ``broker_engines.lifecycle``, record access to ``RecordStore``, audit
    to ``AuditTrailService``.  Blueprints come from a
    ``broker_config.BlueprintRegistry``.

Invariants enforced:
    - No partial application: a rejected edit writes nothing; an accepted
      edit writes the merge, hook rows and audit entry together or not at
      all.
    - Check-and-apply runs against the state read under the row lock, so
      two concurrent edits of one record serialize and the second is
      evaluated against the first's result.
    - Storage faults surface as TRANSIENT_FAILURE, never as a rejection.

Failure modes:
    - REJECTED result carrying the first failing check's typed error.
    - TRANSIENT_FAILURE result carrying ``TransientStorageError``.
    - ``RecordNotFoundError`` / ``UnknownEntityKindError`` raise: the
      request names nothing that can be edited.

Audit relevance:
    Every applied edit yields exactly one ``LifecycleAuditEntry``.  Every
    call logs ``lifecycle_edit_started`` and one outcome event with
    ``duration_ms``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from broker_config import BlueprintRegistry
from broker_engines.lifecycle import evaluate_edit
from broker_kernel.domain.clock import Clock, SystemClock
from broker_kernel.domain.lifecycle import (
    EditRequest,
    LifecycleBlueprint,
    StatusTransition,
)
from broker_kernel.exceptions import BrokerKernelError, TransientStorageError
from broker_kernel.logging_config import LogContext, get_logger
from broker_kernel.services.audit_trail_service import AuditTrailService
from broker_kernel.services.record_store import (
    TRANSIENT_DB_ERRORS,
    RecordStore,
    describe_storage_fault,
)
from broker_services.hooks import EditContext, EditHook, default_hooks

logger = get_logger("services.lifecycle_executor")


class EditStatus(str, Enum):
    """Outcome of one edit request."""

    APPLIED = "applied"
    REJECTED = "rejected"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class EditResult:
    """Result of ``LifecycleExecutor.apply_edit``.

    ``snapshot`` is the record's governed fields plus status after the
    edit (APPLIED only).  ``error`` is the typed rejection or storage
    error (REJECTED / TRANSIENT_FAILURE only).
    """

    status: EditStatus
    record_id: UUID
    snapshot: Mapping[str, Any] | None = None
    transition: StatusTransition | None = None
    error: BrokerKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == EditStatus.APPLIED

    @property
    def code(self) -> str | None:
        return self.error.code if self.error is not None else None


class LifecycleExecutor:
    """
    Applies edit requests to claims, policies and invoices.

    Contract:
        ``apply_edit`` never raises for a rejected or transiently failed
        edit; it returns an ``EditResult``.

    Guarantees:
        - auto_commit=True: commit on APPLIED, rollback otherwise.
        - auto_commit=False: flush only; the caller owns the transaction
          boundary and must roll back after a TRANSIENT_FAILURE.

    Non-goals:
        - Does NOT coerce payload types.
        - Does NOT retry (see ``broker_services.retry``).
    """

    def __init__(
        self,
        session: Session,
        registry: BlueprintRegistry,
        clock: Clock | None = None,
        hooks: Iterable[EditHook] | None = None,
        auto_commit: bool = True,
        models: Mapping[str, type] | None = None,
    ):
        self._session = session
        self._registry = registry
        self._clock = clock or SystemClock()
        self._hooks = tuple(hooks) if hooks is not None else default_hooks()
        self._auto_commit = auto_commit
        self._store = RecordStore(session, models)
        self._audit = AuditTrailService(session, self._clock)

    def apply_edit(
        self,
        entity_kind,
        record_id: UUID,
        actor_id: UUID,
        actor_role: str,
        edit_request: EditRequest | Mapping[str, Any],
        correlation_id: str | None = None,
    ) -> EditResult:
        """Check one edit against the record's blueprint and apply it.

        Preconditions:
            - ``edit_request`` fields are already coerced to the model's
              Python types.  A mapping is accepted as the field payload.

        Postconditions:
            - APPLIED: record, hook rows and audit entry are flushed
              (committed when auto_commit=True).
            - REJECTED / TRANSIENT_FAILURE: nothing of this edit persists
              (rolled back when auto_commit=True).

        Raises:
            RecordNotFoundError: ``record_id`` does not resolve.
            UnknownEntityKindError: No blueprint for ``entity_kind``.
        """
        kind = str(getattr(entity_kind, "value", entity_kind))
        with LogContext.bind(
            correlation_id=correlation_id,
            entity_kind=kind,
            record_id=str(record_id),
            actor_id=str(actor_id),
            actor_role=actor_role,
        ):
            t0 = time.monotonic()
            try:
                blueprint = self._registry.get(kind)
                request = self._as_request(record_id, edit_request, blueprint)
                logger.info(
                    "lifecycle_edit_started",
                    extra={
                        "touched_fields": sorted(request.touched_fields),
                        "requested_status": request.requested_status,
                    },
                )
                result = self._do_apply(blueprint, request, actor_id, actor_role)
                if self._auto_commit:
                    if result.is_success:
                        self._commit(kind, record_id)
                    else:
                        self._session.rollback()

            except TransientStorageError as exc:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "lifecycle_edit_transient",
                    extra={
                        "code": exc.code,
                        "reason": exc.reason,
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
                return EditResult(
                    status=EditStatus.TRANSIENT_FAILURE,
                    record_id=record_id,
                    error=exc,
                )

            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "lifecycle_edit_failed",
                    extra={"duration_ms": _elapsed_ms(t0)},
                    exc_info=True,
                )
                raise

            if result.is_success:
                logger.info(
                    "lifecycle_edit_applied",
                    extra={
                        "transition": (
                            result.transition.to_dict() if result.transition else None
                        ),
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
            else:
                logger.info(
                    "lifecycle_edit_rejected",
                    extra={
                        "code": result.code,
                        "detail": str(result.error),
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
            return result

    def apply_edit_or_raise(
        self,
        entity_kind,
        record_id: UUID,
        actor_id: UUID,
        actor_role: str,
        edit_request: EditRequest | Mapping[str, Any],
        correlation_id: str | None = None,
    ) -> Mapping[str, Any]:
        """Like ``apply_edit`` but returns the snapshot or raises the error."""
        result = self.apply_edit(
            entity_kind, record_id, actor_id, actor_role, edit_request, correlation_id
        )
        if result.error is not None:
            raise result.error
        return result.snapshot

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _as_request(
        record_id: UUID,
        edit_request: EditRequest | Mapping[str, Any],
        blueprint: LifecycleBlueprint,
    ) -> EditRequest:
        if isinstance(edit_request, EditRequest):
            if str(edit_request.record_id) != str(record_id):
                raise ValueError(
                    f"Edit request targets {edit_request.record_id}, not {record_id}"
                )
            fields = edit_request.fields
        else:
            fields = edit_request
        return EditRequest(
            record_id=record_id,
            fields=fields,
            status_field=blueprint.status_field,
        )

    def _do_apply(
        self,
        blueprint: LifecycleBlueprint,
        request: EditRequest,
        actor_id: UUID,
        actor_role: str,
    ) -> EditResult:
        kind = blueprint.entity_kind
        record_id = request.record_id

        record = self._store.load_for_update(kind, record_id)
        current_status = self._store.get_status(record, blueprint)
        current_fields = self._store.get_fields(record, blueprint)

        evaluation = evaluate_edit(
            blueprint, current_status, current_fields, actor_role, request
        )
        if not evaluation.ok:
            return EditResult(
                status=EditStatus.REJECTED,
                record_id=record_id,
                error=evaluation.rejection,
            )

        before = self._store.snapshot(record, blueprint)
        transition = evaluation.transition
        self._store.apply_merge(
            record,
            blueprint,
            evaluation.proposed_fields,
            transition.to_state if transition else None,
            actor_id,
        )

        context = EditContext(
            session=self._session,
            blueprint=blueprint,
            record=record,
            actor_id=actor_id,
            actor_role=actor_role,
            before_fields=current_fields,
            applied_fields=evaluation.proposed_fields,
            transition=transition,
            clock=self._clock,
            transition_inputs=evaluation.transition_inputs,
        )
        metadata: dict[str, Any] = {}
        try:
            for hook in self._hooks:
                if hook.applies_to(kind):
                    metadata.update(hook.after_apply(context) or {})
        except TRANSIENT_DB_ERRORS as exc:
            raise TransientStorageError(
                kind, str(record_id), describe_storage_fault(exc)
            ) from exc
        self._store.flush(kind, record_id)

        after = self._store.snapshot(record, blueprint)
        self._audit.append(
            entity_kind=kind,
            record_id=record.id,
            actor_id=actor_id,
            actor_role=actor_role,
            before=before,
            after=after,
            transition=transition,
            metadata=metadata,
        )
        return EditResult(
            status=EditStatus.APPLIED,
            record_id=record_id,
            snapshot=after,
            transition=transition,
        )

    def _commit(self, kind: str, record_id: UUID) -> None:
        try:
            self._session.commit()
        except TRANSIENT_DB_ERRORS as exc:
            raise TransientStorageError(
                kind, str(record_id), describe_storage_fault(exc)
            ) from exc


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)
