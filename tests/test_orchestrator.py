import logging
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.api.v1.notifications import service as store
from app.api.v1.notifications.orchestrator import run_post_attendance_notifications
from app.core.exceptions import NotFoundError, PersistenceError
from app.core.models import Notification


async def _student_with_two_subjects(factory):
    student = await factory.user("Asha Verma", "asha@example.edu")
    subject_a = await factory.school_class("SubjectA Lecture", subject_code="SubjectA")
    subject_b = await factory.school_class("SubjectB Lecture", subject_code="SubjectB")
    await factory.enroll(student, subject_a, subject_b)
    await factory.history(student, subject_a, present=3, total=4)
    await factory.history(student, subject_b, present=2, total=10)
    return student


async def _notification_count(db) -> int:
    return (await db.execute(select(func.count(Notification.id)))).scalar_one()


@pytest.mark.asyncio
async def test_generates_notifications_and_alert_emails(services, factory, transport) -> None:
    student = await _student_with_two_subjects(factory)

    result = await services.orchestrator.generate_for_student(factory.db, student.id)
    await services.orchestrator.drain()

    assert [(s.subject_code, s.percentage) for s in result.stats] == [("SubjectA", 75), ("SubjectB", 20)]
    assert [n.type for n in result.notifications] == ["warning", "critical"]
    assert len(transport.sent) == 2
    subjects = sorted(e.subject for e in transport.sent)
    assert subjects == ["SubjectA Attendance Warning", "URGENT: SubjectB Attendance Alert - Action Required"]
    urgent = next(e for e in transport.sent if e.subject.startswith("URGENT"))
    assert urgent.priority == "high"
    assert urgent.to == "asha@example.edu"


@pytest.mark.asyncio
async def test_second_run_is_deduplicated(services, factory, transport) -> None:
    student = await _student_with_two_subjects(factory)

    await services.orchestrator.generate_for_student(factory.db, student.id)
    second = await services.orchestrator.generate_for_student(factory.db, student.id)
    await services.orchestrator.drain()

    assert second.notifications == []
    assert await _notification_count(factory.db) == 2
    assert len(transport.sent) == 2


@pytest.mark.asyncio
async def test_good_tiers_are_stored_without_email(services, factory, transport) -> None:
    student = await factory.user("Asha Verma")
    school_class = await factory.school_class("MA101 Lecture")
    await factory.enroll(student, school_class)
    await factory.history(student, school_class, present=9, total=10)

    result = await services.orchestrator.generate_for_student(factory.db, student.id)
    await services.orchestrator.drain()

    assert [n.type for n in result.notifications] == ["good"]
    assert transport.sent == []


@pytest.mark.asyncio
async def test_only_escalated_skips_safe_subjects(services, factory) -> None:
    student = await factory.user("Asha Verma")
    safe = await factory.school_class("MA101 Lecture")
    risky = await factory.school_class("PH101 Lecture")
    await factory.enroll(student, safe, risky)
    await factory.history(student, safe, present=10, total=10)
    await factory.history(student, risky, present=1, total=10)

    result = await services.orchestrator.generate_for_student(factory.db, student.id, only_escalated=True)

    assert [n.subject_code for n in result.notifications] == ["PH101"]
    assert len(result.stats) == 2


@pytest.mark.asyncio
async def test_unknown_student_is_fatal(services, db_session) -> None:
    with pytest.raises(NotFoundError):
        await services.orchestrator.generate_for_student(db_session, uuid4())


@pytest.mark.asyncio
async def test_one_subject_failing_does_not_stop_the_rest(services, factory, monkeypatch) -> None:
    student = await _student_with_two_subjects(factory)
    real_insert = store.insert_notification

    async def flaky_insert(db, **kwargs):
        if kwargs["subject_code"] == "SubjectA":
            raise PersistenceError("disk full")
        return await real_insert(db, **kwargs)

    monkeypatch.setattr(store, "insert_notification", flaky_insert)

    result = await services.orchestrator.generate_for_student(factory.db, student.id)

    assert [n.subject_code for n in result.notifications] == ["SubjectB"]


@pytest.mark.asyncio
async def test_email_failure_does_not_affect_notifications(services, factory, transport) -> None:
    transport.fail_times = 5
    student = await _student_with_two_subjects(factory)

    result = await services.orchestrator.generate_for_student(factory.db, student.id)
    await services.orchestrator.drain()

    assert len(result.notifications) == 2
    assert transport.sent == []
    assert transport.attempts == 2


@pytest.mark.asyncio
async def test_background_trigger_logs_instead_of_raising(services, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        await run_post_attendance_notifications(services, uuid4())
    assert "Student not found" in caplog.text


@pytest.mark.asyncio
async def test_background_trigger_only_escalates(services, factory, session_factory) -> None:
    student = await _student_with_two_subjects(factory)

    await run_post_attendance_notifications(services, student.id)
    await services.orchestrator.drain()

    async with session_factory() as db:
        assert await _notification_count(db) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("failing_subject, remaining", [("SubjectA", "SubjectB"), ("SubjectB", "SubjectA")])
async def test_store_read_failure_rolls_back_and_continues(
    services, factory, monkeypatch, failing_subject, remaining
) -> None:
    student = await _student_with_two_subjects(factory)
    real_exists_recent = store.exists_recent
    real_rollback = factory.db.rollback
    rollbacks = []

    async def flaky_exists_recent(db, student_id, subject_code, *args, **kwargs):
        if subject_code == failing_subject:
            raise OperationalError("SELECT", {}, Exception("server closed the connection"))
        return await real_exists_recent(db, student_id, subject_code, *args, **kwargs)

    async def counting_rollback():
        rollbacks.append(True)
        await real_rollback()

    monkeypatch.setattr(store, "exists_recent", flaky_exists_recent)
    monkeypatch.setattr(factory.db, "rollback", counting_rollback)

    result = await services.orchestrator.generate_for_student(factory.db, student.id)

    assert rollbacks == [True]
    assert [n.subject_code for n in result.notifications] == [remaining]
    assert result.notifications[0].is_read is False
