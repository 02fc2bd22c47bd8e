import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid

from app.db.session import Base, utcnow


class EmailLog(Base):
    """Outcome of one campaign email decision: sent, failed or skipped."""

    __tablename__ = "email_logs"
    __table_args__ = {"schema": "school"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    email_address = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)
    email_type = Column(String(50), nullable=False, default="weekly_attendance")
    sent_at = Column(DateTime, default=utcnow, nullable=False)
