"""Scheduled class sessions. A subject may span several rows (lecture, lab) sharing subject_code + group_name."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Time, Uuid

from app.db.session import Base, utcnow


class SchoolClass(Base):
    __tablename__ = "classes"
    __table_args__ = {"schema": "school"}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    subject_code = Column(String(50), nullable=True)  # falls back to first token of name
    group_name = Column(String(100), nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0=Monday .. 6=Sunday
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
