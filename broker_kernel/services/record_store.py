"""
RecordStore -- locked read and merge-write of lifecycle-governed records.

Responsibility:
    The narrow record access interface the lifecycle executor depends on:
    load a record by id under a row lock, read its status and governed
    field values, and apply an accepted partial merge (plus optional
    status change) inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Knows ORM models; knows nothing
    about blueprint rules beyond the field enumeration and status field.

Invariants enforced:
    - Reads used for a check-and-apply sequence take SELECT ... FOR UPDATE
      (PostgreSQL) and always refresh the identity map, so checks never
      run against a stale in-session copy.
    - Writes flush through the model's optimistic version counter; a
      concurrent writer that got there first makes this flush fail.
    - Storage faults are reported as TransientStorageError (retry-eligible),
      never as validation failures.

Failure modes:
    - RecordNotFoundError: id does not resolve for the entity kind.
    - UnknownEntityKindError: no model registered for the kind.
    - TransientStorageError / OptimisticLockError: lock timeout, deadlock,
      connectivity loss, or stale version on flush.
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from broker_kernel.db.base import Base
from broker_kernel.domain.lifecycle import LifecycleBlueprint
from broker_kernel.exceptions import (
    OptimisticLockError,
    RecordNotFoundError,
    TransientStorageError,
    UnknownEntityKindError,
)
from broker_kernel.logging_config import get_logger
from broker_kernel.services.base import BaseService
from broker_kernel.utils.hashing import to_json_safe

logger = get_logger("services.record_store")

TRANSIENT_DB_ERRORS = (OperationalError, PoolTimeoutError)


class RecordStore(BaseService[Base]):
    """
    Locked access to claims, policies, invoices (and any other mapped kind).

    Contract:
        ``models`` maps entity kind to ORM class.  Defaults to
        ``broker_kernel.models.MODEL_FOR_KIND``.

    Non-goals:
        - Does NOT evaluate blueprint rules.
        - Does NOT commit.
    """

    def __init__(self, session: Session, models: Mapping[str, type] | None = None):
        super().__init__(session)
        if models is None:
            from broker_kernel.models import MODEL_FOR_KIND

            models = MODEL_FOR_KIND
        self._models = dict(models)

    def model_for(self, entity_kind: str) -> type:
        try:
            return self._models[str(getattr(entity_kind, "value", entity_kind))]
        except KeyError:
            raise UnknownEntityKindError(str(entity_kind)) from None

    def load_for_update(self, entity_kind: str, record_id: UUID) -> Any:
        """Load one record with a row lock held until the transaction ends.

        Raises:
            RecordNotFoundError: No record of this kind has ``record_id``.
            TransientStorageError: Lock wait timed out or connection failed.
        """
        model = self.model_for(entity_kind)
        stmt = (
            select(model)
            .where(model.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        try:
            record = self.session.execute(stmt).scalar_one_or_none()
        except TRANSIENT_DB_ERRORS as exc:
            logger.warning(
                "record_lock_failed",
                extra={"entity_kind": str(entity_kind), "record_id": str(record_id)},
            )
            raise TransientStorageError(
                str(entity_kind), str(record_id), describe_storage_fault(exc)
            ) from exc
        if record is None:
            raise RecordNotFoundError(str(entity_kind), str(record_id))
        return record

    @staticmethod
    def get_status(record: Any, blueprint: LifecycleBlueprint) -> str:
        status = getattr(record, blueprint.status_field)
        return str(getattr(status, "value", status))

    @staticmethod
    def get_fields(record: Any, blueprint: LifecycleBlueprint) -> dict[str, Any]:
        """Current values of every blueprint-governed field."""
        return {name: getattr(record, name) for name in sorted(blueprint.fields)}

    def snapshot(self, record: Any, blueprint: LifecycleBlueprint) -> dict[str, Any]:
        """JSON-safe snapshot of governed fields plus status."""
        data = to_json_safe(self.get_fields(record, blueprint))
        data[blueprint.status_field] = self.get_status(record, blueprint)
        return data

    def apply_merge(
        self,
        record: Any,
        blueprint: LifecycleBlueprint,
        proposed_fields: Mapping[str, Any],
        new_status: str | None,
        actor_id: UUID,
    ) -> None:
        """Write accepted fields and status, then flush.

        Preconditions:
            ``record`` was obtained from ``load_for_update`` in this
            transaction and the edit has passed every lifecycle check.
        """
        for name, value in proposed_fields.items():
            setattr(record, name, value)
        if new_status is not None:
            setattr(record, blueprint.status_field, new_status)
        if hasattr(record, "updated_by_id"):
            record.updated_by_id = actor_id
        self.flush(blueprint.entity_kind, record.id)

    def flush(self, entity_kind: str, record_id: UUID) -> None:
        """Flush pending changes, translating storage faults."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(str(entity_kind), str(record_id)) from exc
        except TRANSIENT_DB_ERRORS as exc:
            raise TransientStorageError(
                str(entity_kind), str(record_id), describe_storage_fault(exc)
            ) from exc


def describe_storage_fault(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    text = str(orig if orig is not None else exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
