"""Notification persistence, scoped to the owning student.

exists_recent() and insert_notification() are two separate statements with no lock
between them. Two triggers for the same student and subject landing within the same
instant can both pass the check; the trigger cadence (one per marked class session)
keeps this rare.
"""

import logging
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PersistenceError
from app.core.models import Notification
from app.db.session import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


async def exists_recent(
    db: AsyncSession,
    student_id: UUID,
    subject_code: str,
    notification_type: str,
    within_hours: int = 24,
) -> bool:
    """True if the same (student, subject, tier) notification was created inside the window."""
    since = utcnow() - timedelta(hours=within_hours)
    result = await db.execute(
        select(Notification.id)
        .where(
            Notification.student_id == student_id,
            Notification.subject_code == subject_code,
            Notification.type == notification_type,
            Notification.created_at >= since,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def insert_notification(
    db: AsyncSession,
    *,
    student_id: UUID,
    subject_code: str,
    subject_name: Optional[str],
    message: str,
    notification_type: str,
    attendance_percentage: int,
) -> Notification:
    notification = Notification(
        student_id=student_id,
        subject_code=subject_code,
        subject_name=subject_name,
        message=message,
        type=notification_type,
        attendance_percentage=attendance_percentage,
        is_read=False,
    )
    db.add(notification)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError(f"Could not save notification for {subject_code}: {e}") from e
    await db.refresh(notification)
    return notification


async def list_notifications(
    db: AsyncSession,
    student_id: UUID,
    limit: int = DEFAULT_LIST_LIMIT,
) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.student_id == student_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def unread_count(db: AsyncSession, student_id: UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.student_id == student_id,
            Notification.is_read.is_(False),
        )
    )
    return result.scalar_one()


async def mark_read(db: AsyncSession, notification_id: UUID, student_id: UUID) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.student_id == student_id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.commit()
        await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession, student_id: UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(
            Notification.student_id == student_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def delete_notification(db: AsyncSession, notification_id: UUID, student_id: UUID) -> None:
    result = await db.execute(
        delete(Notification).where(
            Notification.id == notification_id,
            Notification.student_id == student_id,
        )
    )
    if not result.rowcount:
        raise NotFoundError("Notification not found")
    await db.commit()
