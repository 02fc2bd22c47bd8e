"""Courses and coursework mirrored from external platforms. Upserted by (user_id, source, external_id)."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Float, String, Text, UniqueConstraint, Uuid

from app.db.session import Base, utcnow


class ExternalCourse(Base):
    __tablename__ = "external_courses"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "external_id", name="uq_external_course_identity"),
        {"schema": "integrations"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    integration_id = Column(
        Uuid,
        ForeignKey("integrations.user_integrations.id", ondelete="SET NULL"),
        nullable=True,
    )
    source = Column(String(50), nullable=False)
    external_id = Column(String(255), nullable=False)
    name = Column(String(500), nullable=False)
    section = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    room = Column(String(255), nullable=True)
    link = Column(Text, nullable=True)
    state = Column(String(50), nullable=True)
    synced_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class ExternalAssignment(Base):
    __tablename__ = "external_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "source", "external_id", name="uq_external_assignment_identity"),
        {"schema": "integrations"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    integration_id = Column(
        Uuid,
        ForeignKey("integrations.user_integrations.id", ondelete="SET NULL"),
        nullable=True,
    )
    source = Column(String(50), nullable=False)
    external_id = Column(String(255), nullable=False)
    course_external_id = Column(String(255), nullable=False)
    course_name = Column(String(500), nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    max_points = Column(Float, nullable=True)
    work_type = Column(String(50), nullable=True)
    state = Column(String(50), nullable=True)
    link = Column(Text, nullable=True)
    synced_at = Column(DateTime, default=utcnow, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
