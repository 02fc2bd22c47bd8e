"""Weekly attendance email campaign.

Every Monday morning each active student with a subject below the 80% safety buffer
gets one digest email listing those subjects, how many classes they need to recover
to 75%, and which sessions are still ahead this week.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from apscheduler.schedulers.base import BaseScheduler
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.api.v1.attendance.aggregator import AttendanceStat, SubjectGroup, load_group_attendance
from app.auth.models import User
from app.core.email_service import NOT_CONFIGURED, EmailDispatcher, EmailResult
from app.core.enums import EmailLogStatus, UserRole
from app.core.exceptions import CampaignAlreadyRunningError
from app.core.models import EmailLog, SchoolClass

from .composer import MessageComposer, UpcomingSession, WeeklyDigestInput, WeeklySubject
from .emails import render_weekly_email

logger = logging.getLogger(__name__)

JOB_ID = "weekly_attendance_campaign"
SAFETY_BUFFER = 80.0
FORCE_SEND_SAMPLE = 3


class EmailDeliveryError(Exception):
    """A send attempt came back unsuccessful and may be retried."""


@dataclass
class CampaignOptions:
    # Restrict the run to these addresses.
    test_recipients: List[str] = field(default_factory=list)
    # Send a sample even when no subject is below the buffer.
    force_send: bool = False
    max_emails: Optional[int] = None


@dataclass
class CampaignSummary:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sent + self.skipped + self.failed


def classes_needed_for_75(attended: int, total: int) -> int:
    """Consecutive classes to attend before attended/total reaches 75%.

    Solves (attended + x) / (total + x) >= 0.75 for the smallest whole x.
    """
    deficit = 0.75 * total - attended
    if deficit <= 0:
        return 0
    return max(0, math.ceil(deficit / 0.25))


def upcoming_sessions(classes: Sequence[SchoolClass], today: date) -> List[UpcomingSession]:
    """Sessions from today through Sunday, in weekday then start-time order."""
    weekday = today.weekday()
    sessions = [
        UpcomingSession(day_of_week=c.day_of_week, start_time=c.start_time)
        for c in classes
        if c.is_active and c.day_of_week is not None and c.day_of_week >= weekday
    ]
    sessions.sort(key=lambda s: (s.day_of_week, s.start_time.isoformat() if s.start_time else ""))
    return sessions


def build_weekly_subject(group: SubjectGroup, stat: AttendanceStat, today: date) -> WeeklySubject:
    return WeeklySubject(
        subject_code=stat.subject_code,
        subject_name=stat.subject_name,
        classes_attended=stat.present_days,
        total_classes=stat.total_days,
        attendance_percentage=round(stat.exact_percentage, 1),
        classes_needed_for_75=classes_needed_for_75(stat.present_days, stat.total_days),
        upcoming_classes=upcoming_sessions(group.classes, today),
    )


def select_subjects(subjects: Sequence[WeeklySubject], force_send: bool) -> List[WeeklySubject]:
    """Subjects below the safety buffer, or a small sample when force_send is on."""
    at_risk = [s for s in subjects if s.attendance_percentage < SAFETY_BUFFER]
    if at_risk or not force_send:
        return at_risk
    return sorted(subjects, key=lambda s: s.attendance_percentage)[:FORCE_SEND_SAMPLE]


class WeeklyCampaign:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        dispatcher: EmailDispatcher,
        composer: MessageComposer,
        frontend_url: str,
        *,
        timezone: str = "Asia/Kolkata",
        day_of_week: str = "mon",
        hour: int = 8,
        student_delay: float = 1.0,
        max_retries: int = 3,
        retry_wait: float = 1.0,
        default_options: Optional[CampaignOptions] = None,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.composer = composer
        self.frontend_url = frontend_url
        self.timezone = timezone
        self.day_of_week = day_of_week
        self.hour = hour
        self.student_delay = student_delay
        self.max_retries = max(1, max_retries)
        self.retry_wait = retry_wait
        self.default_options = default_options or CampaignOptions()
        self._running = False
        self._scheduler: Optional[BaseScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def today(self) -> date:
        return datetime.now(ZoneInfo(self.timezone)).date()

    # ----- scheduling -----
    def schedule(self, scheduler: BaseScheduler) -> None:
        scheduler.add_job(
            self._scheduled_run,
            trigger="cron",
            day_of_week=self.day_of_week,
            hour=self.hour,
            minute=0,
            timezone=self.timezone,
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info(
            "Weekly attendance campaign scheduled: %s %02d:00 %s",
            self.day_of_week, self.hour, self.timezone,
        )

    def stop(self) -> None:
        """Cancel future runs. A run already in progress finishes."""
        if self._scheduler is not None and self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
            logger.info("Weekly attendance campaign unscheduled")
        self._scheduler = None

    async def _scheduled_run(self) -> None:
        try:
            await self.run()
        except CampaignAlreadyRunningError:
            logger.warning("Scheduled weekly campaign skipped: previous run still in progress")
        except Exception:
            logger.exception("Scheduled weekly campaign crashed")

    # ----- run -----
    async def run(self, options: Optional[CampaignOptions] = None) -> CampaignSummary:
        if self._running:
            raise CampaignAlreadyRunningError()
        self._running = True
        try:
            return await self._run(options or self.default_options)
        finally:
            self._running = False

    async def _run(self, options: CampaignOptions) -> CampaignSummary:
        summary = CampaignSummary()
        today = self.today()
        week_start = today - timedelta(days=today.weekday())
        current_week = week_start.strftime("%B %d, %Y")
        logger.info(
            "Weekly campaign starting for week of %s (test_recipients=%d, force_send=%s)",
            current_week, len(options.test_recipients), options.force_send,
        )

        async with self.session_factory() as db:
            students = await self._load_students(db, options)
            logger.info("Weekly campaign: %d student(s) to check", len(students))

            for index, (student_id, name, email) in enumerate(students):
                if options.max_emails is not None and summary.sent >= options.max_emails:
                    logger.info("Weekly campaign reached max_emails=%d; stopping", options.max_emails)
                    break
                attempted = False
                try:
                    attempted = await self._process_student(
                        db, summary, student_id, name, email, options, today, current_week
                    )
                except Exception as e:
                    logger.exception("Weekly campaign failed for %s", email)
                    summary.failed += 1
                    summary.errors.append({"email": email, "error": str(e)})
                    await self._record(db, student_id, email, None, EmailLogStatus.failed, str(e))
                if attempted and index < len(students) - 1 and self.student_delay > 0:
                    await asyncio.sleep(self.student_delay)

        logger.info(
            "Weekly campaign finished: sent=%d skipped=%d failed=%d",
            summary.sent, summary.skipped, summary.failed,
        )
        return summary

    async def _load_students(
        self, db: AsyncSession, options: CampaignOptions
    ) -> List[Tuple]:
        query = select(User.id, User.full_name, User.email).where(
            User.role == UserRole.STUDENT.value,
            User.status == "ACTIVE",
        )
        if options.test_recipients:
            query = query.where(User.email.in_(options.test_recipients))
        result = await db.execute(query.order_by(User.full_name))
        return [tuple(row) for row in result.all()]

    async def _process_student(
        self,
        db: AsyncSession,
        summary: CampaignSummary,
        student_id,
        name: str,
        email: str,
        options: CampaignOptions,
        today: date,
        current_week: str,
    ) -> bool:
        """Handle one student. Returns True when an email was attempted."""
        pairs = await load_group_attendance(db, student_id)
        subjects = select_subjects(
            [build_weekly_subject(group, stat, today) for group, stat in pairs],
            options.force_send,
        )
        if not subjects:
            logger.info("Weekly campaign: %s has no subject below %.0f%%; skipped", email, SAFETY_BUFFER)
            summary.skipped += 1
            await self._record(db, student_id, email, None, EmailLogStatus.skipped, None)
            return False

        digest = WeeklyDigestInput(student_name=name, subjects=subjects, current_week=current_week)
        subject_line = self.composer.compose_subject_line(subjects)
        message = self.composer.compose_weekly(digest)
        rendered = render_weekly_email(name, subject_line, message, subjects, self.frontend_url)

        try:
            result = await self._send_with_retry(email, rendered)
        except EmailDeliveryError as e:
            result = EmailResult(success=False, error=str(e))

        if result.success:
            summary.sent += 1
            await self._record(db, student_id, email, subject_line, EmailLogStatus.sent, None)
        else:
            logger.error("Weekly campaign email to %s failed: %s", email, result.error)
            summary.failed += 1
            summary.errors.append({"email": email, "error": result.error or "unknown error"})
            await self._record(db, student_id, email, subject_line, EmailLogStatus.failed, result.error)
        return True

    async def _send_with_retry(self, to: str, rendered) -> EmailResult:
        result = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(EmailDeliveryError),
            wait=wait_exponential(multiplier=self.retry_wait, max=30),
            stop=stop_after_attempt(self.max_retries),
            reraise=True,
        ):
            with attempt:
                result = await self.dispatcher.send(
                    to, rendered.subject, rendered.html, rendered.text, priority=rendered.priority
                )
                # Retrying cannot help a dispatcher without a transport.
                if not result.success and result.error != NOT_CONFIGURED:
                    raise EmailDeliveryError(result.error or "send failed")
        return result

    async def _record(
        self,
        db: AsyncSession,
        student_id,
        email: str,
        subject: Optional[str],
        status: EmailLogStatus,
        error: Optional[str],
    ) -> None:
        db.add(
            EmailLog(
                student_id=student_id,
                email_address=email,
                subject=subject,
                status=status.value,
                error_message=error,
                email_type="weekly_attendance",
            )
        )
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Could not record email log for %s: %s", email, e)
