import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["EMAIL_BACKEND"] = "log"

import random
from datetime import date, datetime, time, timedelta
from typing import AsyncGenerator, Callable, List, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.integrations.google_classroom import GoogleClassroomClient
from app.api.v1.notifications.composer import TemplateMessageComposer
from app.auth.models import User
from app.auth.security import create_access_token
from app.core.config import settings
from app.core.email_service import EmailDispatcher, OutgoingEmail
from app.core.models import AttendanceRecord, Enrollment, SchoolClass
from app.core.services import Services, build_services
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingTransport:
    """Email transport that keeps every message instead of sending it."""

    name = "recording"

    def __init__(self, fail_times: int = 0) -> None:
        self.sent: List[OutgoingEmail] = []
        self.attempts = 0
        self.fail_times = fail_times

    async def deliver(self, email: OutgoingEmail) -> Optional[str]:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise RuntimeError("smtp connection reset")
        self.sent.append(email)
        return f"msg-{len(self.sent)}"


class GoogleStub:
    """Canned Google OAuth and Classroom responses for httpx.MockTransport."""

    def __init__(self) -> None:
        self.courses = [
            {"id": "c1", "name": "Physics", "section": "A", "courseState": "ACTIVE", "alternateLink": "https://classroom.google.com/c/c1"},
            {"id": "c2", "name": "Chemistry", "courseState": "ACTIVE"},
        ]
        self.coursework = {
            "c1": [
                {
                    "id": "w1",
                    "title": "Lab report",
                    "dueDate": {"year": 2026, "month": 3, "day": 1},
                    "dueTime": {"hours": 17, "minutes": 30},
                    "maxPoints": 20,
                    "workType": "ASSIGNMENT",
                    "state": "PUBLISHED",
                },
                {"id": "w2", "title": "Reading", "state": "PUBLISHED"},
            ],
            "c2": [
                {"id": "w3", "title": "Titration quiz", "dueDate": {"year": 2026, "month": 2, "day": 10}, "workType": "SHORT_ANSWER_QUESTION"},
            ],
        }
        self.token_requests: List[dict] = []
        self.refresh_fails = False
        self.failing_coursework = set()
        self.page_courses = False
        self.omit_refresh_token = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = request.url
        if url.host == "oauth2.googleapis.com":
            form = dict(httpx.QueryParams(request.content.decode()))
            self.token_requests.append(form)
            if form.get("grant_type") == "refresh_token" and self.refresh_fails:
                return httpx.Response(400, json={"error": "invalid_grant"})
            body = {"access_token": f"access-{len(self.token_requests)}", "expires_in": 3599}
            if form.get("grant_type") == "authorization_code" and not self.omit_refresh_token:
                body["refresh_token"] = "refresh-1"
            return httpx.Response(200, json=body)

        path = url.path
        if path == "/v1/courses":
            if self.page_courses and "pageToken" not in url.params:
                return httpx.Response(200, json={"courses": self.courses[:1], "nextPageToken": "p2"})
            if self.page_courses:
                return httpx.Response(200, json={"courses": self.courses[1:]})
            return httpx.Response(200, json={"courses": self.courses})
        if path.startswith("/v1/courses/") and path.endswith("/courseWork"):
            course_id = path.split("/")[3]
            if course_id in self.failing_coursework:
                return httpx.Response(403, json={"error": {"message": "The caller does not have permission"}})
            return httpx.Response(200, json={"courseWork": self.coursework.get(course_id, [])})
        return httpx.Response(404, json={"error": {"message": "not found"}})


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        execution_options={"schema_translate_map": {"auth": None, "school": None, "integrations": None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine) -> Callable[[], AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def dispatcher(transport) -> EmailDispatcher:
    return EmailDispatcher(transport, send_delay=0)


@pytest.fixture()
def google() -> GoogleStub:
    return GoogleStub()


@pytest.fixture()
async def classroom_client(google) -> AsyncGenerator[GoogleClassroomClient, None]:
    client = GoogleClassroomClient(
        "client-id",
        "client-secret",
        "http://test/api/v1/integrations/google-classroom/callback",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(google.handler)),
    )
    yield client
    await client.aclose()


@pytest.fixture()
async def services(session_factory, dispatcher, classroom_client) -> AsyncGenerator[Services, None]:
    services = build_services(
        settings,
        session_factory,
        dispatcher=dispatcher,
        composer=TemplateMessageComposer(random.Random(7)),
        classroom_client=classroom_client,
    )
    services.weekly_campaign.student_delay = 0
    services.weekly_campaign.retry_wait = 0
    services.sync_service.integration_delay = 0
    yield services
    await services.orchestrator.drain()


@pytest.fixture()
async def client(services, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.state.services = services
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _bearer(user: User) -> dict:
    token = create_access_token(subject={"user_id": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> Callable[[User], dict]:
    return _bearer


class Factory:
    """Builds users, classes, enrollments and attendance rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def user(self, full_name: str = "Asha Verma", email: Optional[str] = None, role: str = "STUDENT", status: str = "ACTIVE") -> User:
        user = User(
            full_name=full_name,
            email=email or f"{full_name.split()[0].lower()}@example.edu",
            role=role,
            status=status,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def school_class(
        self,
        name: str,
        subject_code: Optional[str] = None,
        group_name: Optional[str] = None,
        day_of_week: Optional[int] = None,
        start_time: Optional[time] = None,
        is_active: bool = True,
    ) -> SchoolClass:
        school_class = SchoolClass(
            name=name,
            subject_code=subject_code,
            group_name=group_name,
            day_of_week=day_of_week,
            start_time=start_time,
            is_active=is_active,
        )
        self.db.add(school_class)
        await self.db.commit()
        return school_class

    async def enroll(self, student: User, *classes: SchoolClass) -> None:
        for school_class in classes:
            self.db.add(Enrollment(student_id=student.id, class_id=school_class.id))
        await self.db.commit()

    async def attendance(self, student: User, school_class: SchoolClass, day: date, status: str = "present") -> None:
        self.db.add(
            AttendanceRecord(
                student_id=student.id,
                class_id=school_class.id,
                date=datetime.combine(day, time(9, 0)),
                status=status,
            )
        )
        await self.db.commit()

    async def history(self, student: User, school_class: SchoolClass, present: int, total: int, start: date = date(2026, 1, 5)) -> None:
        """`total` distinct days of attendance, the first `present` of them present."""
        for offset in range(total):
            status = "present" if offset < present else "absent"
            self.db.add(
                AttendanceRecord(
                    student_id=student.id,
                    class_id=school_class.id,
                    date=datetime.combine(start + timedelta(days=offset), time(9, 0)),
                    status=status,
                )
            )
        await self.db.commit()


@pytest.fixture()
def factory(db_session) -> Factory:
    return Factory(db_session)
