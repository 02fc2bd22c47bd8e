"""Student attendance check-in."""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import AttendanceStatus
from app.core.exceptions import ServiceError
from app.core.models import AttendanceRecord, Enrollment
from app.db.session import utcnow

logger = logging.getLogger(__name__)


async def mark_attendance(
    db: AsyncSession,
    student_id: UUID,
    class_id: Optional[UUID],
    att_date: Optional[date] = None,
) -> AttendanceRecord:
    """Record the student as present. One record per student, class and calendar day."""
    if not class_id:
        raise ServiceError("class_id is required", status.HTTP_400_BAD_REQUEST)

    enrollment = await db.execute(
        select(Enrollment.id).where(Enrollment.student_id == student_id, Enrollment.class_id == class_id)
    )
    if enrollment.scalar_one_or_none() is None:
        raise ServiceError("Student not enrolled in this class", status.HTTP_403_FORBIDDEN)

    now = utcnow()
    day = att_date or now.date()
    if day > now.date():
        raise ServiceError("Cannot mark attendance for future dates", status.HTTP_400_BAD_REQUEST)
    day_start = datetime.combine(day, time.min)
    existing = await db.execute(
        select(AttendanceRecord.id).where(
            AttendanceRecord.student_id == student_id,
            AttendanceRecord.class_id == class_id,
            AttendanceRecord.date >= day_start,
            AttendanceRecord.date < day_start + timedelta(days=1),
        ).limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        logger.info("Duplicate attendance attempt: student %s, class %s, %s", student_id, class_id, day)
        raise ServiceError("Attendance already marked for this date", status.HTTP_409_CONFLICT)

    record = AttendanceRecord(
        student_id=student_id,
        class_id=class_id,
        date=datetime.combine(day, now.time()),
        status=AttendanceStatus.present.value,
    )
    db.add(record)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Error inserting attendance for student %s: %s", student_id, e)
        raise ServiceError("Error marking attendance", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    await db.refresh(record)
    return record
