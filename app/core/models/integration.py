"""OAuth integrations and their sync history."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class Integration(Base):
    """Connected external platform for a user. Soft delete via is_active; tokens are kept."""

    __tablename__ = "user_integrations"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_integration_user_platform"),
        {"schema": "integrations"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    last_synced = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    sync_logs = relationship("SyncLog", back_populates="integration", cascade="all, delete-orphan")


class SyncLog(Base):
    """One row per sync attempt. Only moves started -> success | failed."""

    __tablename__ = "sync_logs"
    __table_args__ = {"schema": "integrations"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    integration_id = Column(
        Uuid,
        ForeignKey("integrations.user_integrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(50), nullable=False)
    sync_status = Column(String(20), nullable=False, default="started")
    items_synced = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sync_started = Column(DateTime, default=utcnow, nullable=False)
    sync_completed = Column(DateTime, nullable=True)

    integration = relationship("Integration", back_populates="sync_logs")
