import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, Uuid

from app.db.session import Base, utcnow


class Notification(Base):
    """Attendance-risk notification for a student. Only read-state changes after creation."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notification_dedupe", "student_id", "subject_code", "type", "created_at"),
        {"schema": "school"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    subject_code = Column(String(50), nullable=False)
    subject_name = Column(String(255), nullable=True)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # critical | warning | good | excellent
    attendance_percentage = Column(Integer, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
