"""Turns a student's attendance into stored notifications and alert emails."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.attendance.aggregator import AttendanceStat, calculate_student_attendance
from app.auth.models import User
from app.core.email_service import EmailDispatcher
from app.core.enums import UserRole
from app.core.exceptions import NotFoundError, ServiceError
from app.core.models import Notification

from . import service as store
from .composer import AlertMessageInput, MessageComposer
from .emails import render_alert_email
from .risk import classify_risk

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    notifications: List[Notification] = field(default_factory=list)
    stats: List[AttendanceStat] = field(default_factory=list)


class NotificationOrchestrator:
    def __init__(
        self,
        dispatcher: EmailDispatcher,
        composer: MessageComposer,
        frontend_url: str,
        dedupe_hours: int = 24,
    ) -> None:
        self.dispatcher = dispatcher
        self.composer = composer
        self.frontend_url = frontend_url
        self.dedupe_hours = dedupe_hours
        self._pending: Set[asyncio.Task] = set()

    async def generate_for_student(
        self,
        db: AsyncSession,
        student_id: UUID,
        only_escalated: bool = False,
    ) -> GenerationResult:
        """Create one notification per subject whose tier was not already notified recently.

        With only_escalated, good and excellent subjects are skipped. Critical and
        warning subjects also get an alert email, sent in the background.
        """
        result = await db.execute(
            select(User).where(User.id == student_id, User.role == UserRole.STUDENT.value)
        )
        student = result.scalar_one_or_none()
        if not student:
            raise NotFoundError("Student not found")
        student_name = student.full_name
        student_email = student.email

        stats = await calculate_student_attendance(db, student_id)
        created: List[Notification] = []
        for stat in stats:
            risk = classify_risk(stat.percentage)
            if only_escalated and not risk.is_escalated:
                continue
            try:
                if await store.exists_recent(
                    db, student_id, stat.subject_code, risk.level.value, within_hours=self.dedupe_hours
                ):
                    logger.info(
                        "Skipping %s notification for student %s in %s: already sent in the last %sh",
                        risk.level.value, student_id, stat.subject_code, self.dedupe_hours,
                    )
                    continue
                params = AlertMessageInput(
                    student_name=student_name,
                    subject_code=stat.subject_code,
                    subject_name=stat.subject_name,
                    percentage=stat.percentage,
                    risk_level=risk.level,
                    absent_days=stat.absent_days,
                    total_days=stat.total_days,
                )
                message = self.composer.compose(params)
                notification = await store.insert_notification(
                    db,
                    student_id=student_id,
                    subject_code=stat.subject_code,
                    subject_name=stat.subject_name,
                    message=message,
                    notification_type=risk.level.value,
                    attendance_percentage=stat.percentage,
                )
                created.append(notification)
                if risk.is_escalated:
                    self._schedule_alert_email(student_email, params, message)
            except (ServiceError, SQLAlchemyError) as e:
                logger.error(
                    "Notification for student %s in %s failed: %s", student_id, stat.subject_code, e
                )
                # A failed statement aborts the transaction; reset it for the next subject.
                await db.rollback()
                for notification in created:
                    await db.refresh(notification)
                continue

        logger.info(
            "Generated %d notification(s) for student %s across %d subject(s)",
            len(created), student_id, len(stats),
        )
        return GenerationResult(notifications=created, stats=stats)

    def _schedule_alert_email(self, to: str, params: AlertMessageInput, message: str) -> None:
        task = asyncio.create_task(self._send_alert_email(to, params, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_alert_email(self, to: str, params: AlertMessageInput, message: str) -> None:
        try:
            email = render_alert_email(params, message, self.frontend_url)
            result = await self.dispatcher.send(
                to, email.subject, email.html, email.text, priority=email.priority
            )
        except Exception:
            logger.exception("Alert email for %s (%s) crashed", to, params.subject_code)
            return
        if not result.success:
            logger.warning("Alert email for %s (%s) not sent: %s", to, params.subject_code, result.error)

    @property
    def pending_emails(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding alert emails."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def run_post_attendance_notifications(services, student_id: UUID) -> None:
    """Background follow-up to a marked attendance. Never raises; everything is logged."""
    try:
        async with services.session_factory() as db:
            result = await services.orchestrator.generate_for_student(
                db, student_id, only_escalated=True
            )
        logger.info(
            "Post-attendance check for student %s created %d notification(s)",
            student_id, len(result.notifications),
        )
    except ServiceError as e:
        logger.warning("Post-attendance notifications for student %s skipped: %s", student_id, e.message)
    except Exception:
        logger.exception("Post-attendance notifications for student %s failed", student_id)
