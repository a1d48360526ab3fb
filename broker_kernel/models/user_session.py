"""
Module: broker_kernel.models.user_session
Responsibility: ORM persistence for authenticated user sessions.  Only the
    lifecycle side-effect hooks touch this table here: deleting a user's
    rows forces that user to log in again.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from broker_kernel.db.base import Base, UUIDString


class UserSession(Base):
    __tablename__ = "user_sessions"

    __table_args__ = (
        UniqueConstraint("token", name="uq_user_session_token"),
        Index("idx_user_session_user", "user_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
