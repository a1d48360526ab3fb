"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and persist with ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Services flush within the caller's transaction and never commit or
    roll back themselves.  The caller (LifecycleExecutor, session_scope,
    or a test harness) owns the boundary, so a record mutation and its
    audit entry always commit together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from broker_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
