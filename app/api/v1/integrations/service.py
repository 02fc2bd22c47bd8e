"""Google Classroom connection lifecycle and course/coursework mirroring.

An integration is Disconnected (no row, or is_active=false), Connected, briefly
Refreshing while a new access token is fetched, or Syncing. Every sync writes a
SyncLog that starts as "started" and ends as "success" or "failed"; logs left in
"started" by a crashed process are closed by reconcile_stale_logs().
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from apscheduler.schedulers.base import BaseScheduler
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import IntegrationPlatform, SyncStatus
from app.core.exceptions import AuthError, NotFoundError, PersistenceError, ServiceError, TokenRefreshError
from app.core.models import ExternalAssignment, ExternalCourse, Integration, SyncLog
from app.db.session import utcnow

from .google_classroom import GoogleClassroomClient, parse_due_date

logger = logging.getLogger(__name__)

PLATFORM = IntegrationPlatform.GOOGLE_CLASSROOM.value
JOB_ID = "google_classroom_sync"


@dataclass
class SyncResult:
    courses: int = 0
    assignments: int = 0

    @property
    def items_synced(self) -> int:
        return self.courses + self.assignments


@dataclass
class SyncSummary:
    succeeded: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


# ----- OAuth state -----
def encode_state(user_id: UUID, issued_at: Optional[float] = None) -> str:
    payload = {"uid": str(user_id), "ts": int(issued_at if issued_at is not None else time.time())}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")


def decode_state(state: str, max_age_seconds: int = 600, now: Optional[float] = None) -> UUID:
    """User id carried in an OAuth state. AuthError when malformed or older than max_age_seconds."""
    try:
        padded = state + "=" * (-len(state) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        user_id = UUID(payload["uid"])
        issued_at = float(payload["ts"])
    except (binascii.Error, ValueError, KeyError, TypeError, AttributeError) as e:
        raise AuthError("Invalid OAuth state") from e
    current = now if now is not None else time.time()
    if current - issued_at > max_age_seconds or issued_at - current > 60:
        raise AuthError("OAuth state expired")
    return user_id


def _has_id(item) -> bool:
    return isinstance(item, dict) and bool(item.get("id"))


class ExternalSyncService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        client: GoogleClassroomClient,
        *,
        state_max_age_seconds: int = 600,
        integration_delay: float = 0.5,
        stale_minutes: int = 30,
        interval_hours: int = 3,
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.state_max_age_seconds = state_max_age_seconds
        self.integration_delay = integration_delay
        self.stale_minutes = stale_minutes
        self.interval_hours = interval_hours
        self._scheduler: Optional[BaseScheduler] = None

    # ----- connect -----
    def build_auth_url(self, user_id: UUID, scopes: Optional[Sequence[str]] = None) -> str:
        return self.client.authorization_url(encode_state(user_id), scopes)

    def decode_state(self, state: str) -> UUID:
        return decode_state(state, self.state_max_age_seconds)

    async def handle_callback(self, db: AsyncSession, code: str, state: str) -> Integration:
        """Exchange the code and store tokens. Reconnecting reactivates the existing row."""
        user_id = self.decode_state(state)
        tokens = await self.client.exchange_code(code)
        expiry = utcnow() + timedelta(seconds=tokens.expires_in) if tokens.expires_in else None

        result = await db.execute(
            select(Integration).where(Integration.user_id == user_id, Integration.platform == PLATFORM)
        )
        integration = result.scalar_one_or_none()
        if integration:
            integration.access_token = tokens.access_token
            # Google only returns a refresh token on first consent.
            if tokens.refresh_token:
                integration.refresh_token = tokens.refresh_token
            integration.token_expiry = expiry
            integration.is_active = True
            integration.updated_at = utcnow()
        else:
            integration = Integration(
                user_id=user_id,
                platform=PLATFORM,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                token_expiry=expiry,
                is_active=True,
            )
            db.add(integration)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(f"Could not store Google Classroom tokens: {e}") from e
        await db.refresh(integration)
        logger.info("Google Classroom connected for user %s", user_id)
        return integration

    async def ensure_fresh_token(self, db: AsyncSession, integration: Integration) -> str:
        """Stored access token, refreshed first when it has expired."""
        if integration.token_expiry is not None and integration.token_expiry > utcnow() and integration.access_token:
            return integration.access_token
        if not integration.refresh_token:
            raise TokenRefreshError("Google Classroom token expired and no refresh token is stored; reconnect")

        logger.info("Refreshing Google access token for user %s", integration.user_id)
        tokens = await self.client.refresh_access_token(integration.refresh_token)
        integration.access_token = tokens.access_token
        if tokens.refresh_token:
            integration.refresh_token = tokens.refresh_token
        integration.token_expiry = utcnow() + timedelta(seconds=tokens.expires_in or 3600)
        integration.updated_at = utcnow()
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(f"Could not store refreshed token: {e}") from e
        return tokens.access_token

    # ----- sync -----
    async def sync_one(self, db: AsyncSession, integration: Integration) -> SyncResult:
        integration_id = integration.id
        user_id = integration.user_id
        sync_log = SyncLog(
            integration_id=integration_id,
            user_id=user_id,
            platform=PLATFORM,
            sync_status=SyncStatus.started.value,
        )
        db.add(sync_log)
        await db.commit()
        log_id = sync_log.id

        result = SyncResult()
        try:
            access_token = await self.ensure_fresh_token(db, integration)
            courses = await self.client.list_courses(access_token)
            for course in courses:
                if not _has_id(course):
                    logger.warning("Skipping malformed course for user %s: %r", user_id, course)
                    continue
                await self._upsert_course(db, user_id, integration_id, course)
                result.courses += 1
                try:
                    coursework = await self.client.list_coursework(access_token, course["id"])
                except ServiceError as e:
                    logger.warning("Skipping coursework for course %s: %s", course["id"], e.message)
                    continue
                for work in coursework:
                    if not _has_id(work):
                        logger.warning("Skipping malformed coursework in course %s: %r", course["id"], work)
                        continue
                    await self._upsert_assignment(db, user_id, integration_id, course, work)
                    result.assignments += 1

            now = utcnow()
            integration.last_synced = now
            sync_log.sync_status = SyncStatus.success.value
            sync_log.items_synced = result.items_synced
            sync_log.sync_completed = now
            await db.commit()
        except Exception as e:
            await db.rollback()
            message = e.message if isinstance(e, ServiceError) else f"{e.__class__.__name__}: {e}"
            logger.error("Google Classroom sync failed for user %s: %s", user_id, message)
            await self._fail_log(db, log_id, message)
            raise

        logger.info(
            "Google Classroom sync for user %s: %d courses, %d assignments",
            user_id, result.courses, result.assignments,
        )
        return result

    async def _fail_log(self, db: AsyncSession, log_id: UUID, message: str) -> None:
        try:
            await db.execute(
                update(SyncLog)
                .where(SyncLog.id == log_id)
                .values(
                    sync_status=SyncStatus.failed.value,
                    error_message=message[:2000],
                    sync_completed=utcnow(),
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Could not mark sync log %s as failed: %s", log_id, e)

    async def _upsert_course(
        self, db: AsyncSession, user_id: UUID, integration_id: UUID, course: Dict[str, Any]
    ) -> ExternalCourse:
        result = await db.execute(
            select(ExternalCourse).where(
                ExternalCourse.user_id == user_id,
                ExternalCourse.source == PLATFORM,
                ExternalCourse.external_id == str(course["id"]),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = ExternalCourse(user_id=user_id, source=PLATFORM, external_id=str(course["id"]))
            db.add(row)
        row.integration_id = integration_id
        row.name = course.get("name") or "Untitled course"
        row.section = course.get("section")
        row.description = course.get("descriptionHeading") or course.get("description")
        row.room = course.get("room")
        row.link = course.get("alternateLink")
        row.state = course.get("courseState")
        row.synced_at = utcnow()
        return row

    async def _upsert_assignment(
        self,
        db: AsyncSession,
        user_id: UUID,
        integration_id: UUID,
        course: Dict[str, Any],
        work: Dict[str, Any],
    ) -> ExternalAssignment:
        result = await db.execute(
            select(ExternalAssignment).where(
                ExternalAssignment.user_id == user_id,
                ExternalAssignment.source == PLATFORM,
                ExternalAssignment.external_id == str(work["id"]),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = ExternalAssignment(user_id=user_id, source=PLATFORM, external_id=str(work["id"]))
            db.add(row)
        row.integration_id = integration_id
        row.course_external_id = str(course["id"])
        row.course_name = course.get("name")
        row.title = work.get("title") or "Untitled"
        row.description = work.get("description")
        row.due_date = parse_due_date(work.get("dueDate"), work.get("dueTime"))
        row.max_points = work.get("maxPoints")
        row.work_type = work.get("workType") or "ASSIGNMENT"
        row.state = work.get("state")
        row.link = work.get("alternateLink")
        row.synced_at = utcnow()
        return row

    async def _active_integration(self, db: AsyncSession, user_id: UUID) -> Optional[Integration]:
        result = await db.execute(
            select(Integration).where(
                Integration.user_id == user_id,
                Integration.platform == PLATFORM,
                Integration.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def sync_user(self, db: AsyncSession, user_id: UUID) -> SyncResult:
        integration = await self._active_integration(db, user_id)
        if not integration:
            raise NotFoundError("Google Classroom not connected")
        return await self.sync_one(db, integration)

    async def reconcile_stale_logs(self, db: AsyncSession) -> int:
        """Fail sync logs stuck in "started" for longer than stale_minutes."""
        cutoff = utcnow() - timedelta(minutes=self.stale_minutes)
        result = await db.execute(
            update(SyncLog)
            .where(SyncLog.sync_status == SyncStatus.started.value, SyncLog.sync_started < cutoff)
            .values(sync_status=SyncStatus.failed.value, error_message="timed out", sync_completed=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        count = result.rowcount or 0
        if count:
            logger.warning("Marked %d stale sync log(s) as failed", count)
        return count

    async def sync_all(self) -> SyncSummary:
        """Sync every active integration one after another. One failure does not stop the rest."""
        summary = SyncSummary()
        async with self.session_factory() as db:
            await self.reconcile_stale_logs(db)
            result = await db.execute(
                select(Integration.id).where(
                    Integration.platform == PLATFORM,
                    Integration.is_active.is_(True),
                )
            )
            integration_ids = list(result.scalars().all())

        logger.info("Scheduled sync: %d active Google Classroom integration(s)", len(integration_ids))
        for index, integration_id in enumerate(integration_ids):
            async with self.session_factory() as db:
                integration = await db.get(Integration, integration_id)
                if integration is None or not integration.is_active:
                    continue
                try:
                    await self.sync_one(db, integration)
                    summary.succeeded += 1
                except (ServiceError, SQLAlchemyError) as e:
                    summary.failed += 1
                    summary.errors.append({"integration_id": str(integration_id), "error": str(e)})
                except Exception as e:
                    logger.exception("Unexpected error syncing integration %s", integration_id)
                    summary.failed += 1
                    summary.errors.append({"integration_id": str(integration_id), "error": str(e)})
            if index < len(integration_ids) - 1 and self.integration_delay > 0:
                await asyncio.sleep(self.integration_delay)

        logger.info("Scheduled sync finished: %d succeeded, %d failed", summary.succeeded, summary.failed)
        return summary

    async def _scheduled_sync(self) -> None:
        try:
            await self.sync_all()
        except Exception:
            logger.exception("Scheduled Google Classroom sync crashed")

    def schedule(self, scheduler: BaseScheduler) -> None:
        scheduler.add_job(
            self._scheduled_sync,
            trigger="interval",
            hours=self.interval_hours,
            id=JOB_ID,
            replace_existing=True,
        )
        self._scheduler = scheduler
        logger.info("Google Classroom sync scheduled every %d hour(s)", self.interval_hours)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
        self._scheduler = None

    # ----- queries -----
    async def disconnect(self, db: AsyncSession, user_id: UUID) -> None:
        """Soft disconnect. Tokens are kept so a reconnect can reuse the refresh token."""
        integration = await self._active_integration(db, user_id)
        if not integration:
            raise NotFoundError("Google Classroom not connected")
        integration.is_active = False
        integration.updated_at = utcnow()
        await db.commit()
        logger.info("Google Classroom disconnected for user %s", user_id)

    async def get_status(self, db: AsyncSession, user_id: UUID) -> Optional[Integration]:
        result = await db.execute(
            select(Integration).where(Integration.user_id == user_id, Integration.platform == PLATFORM)
        )
        return result.scalar_one_or_none()

    async def list_courses(self, db: AsyncSession, user_id: UUID) -> List[ExternalCourse]:
        result = await db.execute(
            select(ExternalCourse)
            .where(ExternalCourse.user_id == user_id, ExternalCourse.source == PLATFORM)
            .order_by(ExternalCourse.name)
        )
        return list(result.scalars().all())

    async def list_assignments(self, db: AsyncSession, user_id: UUID) -> List[ExternalAssignment]:
        result = await db.execute(
            select(ExternalAssignment)
            .where(ExternalAssignment.user_id == user_id, ExternalAssignment.source == PLATFORM)
            .order_by(ExternalAssignment.due_date.is_(None), ExternalAssignment.due_date)
        )
        return list(result.scalars().all())
