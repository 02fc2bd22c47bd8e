import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Uuid

from app.db.session import Base, utcnow


class AttendanceRecord(Base):
    """Attendance for one class session. Percentages count unique calendar days, not rows."""

    __tablename__ = "attendance"
    __table_args__ = (
        Index("ix_attendance_student_class", "student_id", "class_id"),
        {"schema": "school"},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Uuid, ForeignKey("school.classes.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False)  # present | absent | late
    created_at = Column(DateTime, default=utcnow, nullable=False)
