import random
from datetime import time

from app.api.v1.notifications.composer import (
    ALERT_TEMPLATES,
    AlertMessageInput,
    TemplateMessageComposer,
    UpcomingSession,
    WeeklyDigestInput,
    WeeklySubject,
)
from app.api.v1.notifications.risk import RiskTier


def _alert(tier: RiskTier, percentage: int = 60) -> AlertMessageInput:
    return AlertMessageInput(
        student_name="Asha",
        subject_code="CS101",
        subject_name="CS101 Lecture",
        percentage=percentage,
        risk_level=tier,
        absent_days=4,
        total_days=10,
    )


def _subject(code: str, pct: float, attended: int = 6, total: int = 10, needed: int = 0, upcoming=None) -> WeeklySubject:
    return WeeklySubject(
        subject_code=code,
        subject_name=f"{code} Lecture",
        classes_attended=attended,
        total_classes=total,
        attendance_percentage=pct,
        classes_needed_for_75=needed,
        upcoming_classes=upcoming or [],
    )


def test_same_seed_gives_same_alert() -> None:
    first = TemplateMessageComposer(random.Random(42)).compose(_alert(RiskTier.critical))
    second = TemplateMessageComposer(random.Random(42)).compose(_alert(RiskTier.critical))
    assert first == second


def test_alert_variants_mention_subject_and_percentage() -> None:
    composer = TemplateMessageComposer(random.Random(1))
    for tier in RiskTier:
        for _ in range(len(ALERT_TEMPLATES[tier]) * 3):
            message = composer.compose(_alert(tier, 60))
            assert "CS101" in message
            assert "60%" in message


def test_every_tier_has_three_variants() -> None:
    assert all(len(ALERT_TEMPLATES[tier]) == 3 for tier in RiskTier)


def test_weekly_digest_urgent_when_any_subject_critical() -> None:
    composer = TemplateMessageComposer(random.Random(0))
    session = UpcomingSession(day_of_week=2, start_time=time(9, 0))
    subjects = [_subject("CS101", 60.0, needed=6, upcoming=[session]), _subject("MA101", 78.0)]

    message = composer.compose_weekly(WeeklyDigestInput("Asha", subjects, "January 05, 2026"))

    assert "URGENT ATTENTION REQUIRED" in message
    assert "CS101" in message
    assert "attend the next 6 classes" in message
    assert "Wednesday at 09:00" in message
    assert composer.compose_weekly(WeeklyDigestInput("Asha", subjects, "January 05, 2026")) == message


def test_weekly_digest_heads_up_for_warning_only() -> None:
    composer = TemplateMessageComposer()
    message = composer.compose_weekly(WeeklyDigestInput("Asha", [_subject("MA101", 77.5)], "January 05, 2026"))
    assert "Heads up" in message
    assert "URGENT" not in message


def test_weekly_digest_encouragement_when_all_safe() -> None:
    composer = TemplateMessageComposer()
    message = composer.compose_weekly(WeeklyDigestInput("Asha", [_subject("MA101", 92.0)], "January 05, 2026"))
    assert message.startswith("Excellent work, Asha!")


def test_subject_lines() -> None:
    composer = TemplateMessageComposer()
    assert composer.compose_subject_line([_subject("A", 60.0), _subject("B", 70.0)]) == (
        "URGENT: Attendance Alert - 2 Subjects Below 75%"
    )
    assert composer.compose_subject_line([_subject("A", 60.0)]) == "URGENT: Attendance Alert - 1 Subject Below 75%"
    assert composer.compose_subject_line([_subject("A", 79.0)]) == "Weekly Attendance Reminder - Stay on Track"
    assert composer.compose_subject_line([_subject("A", 90.0)]) == "Your Weekly Attendance Update"


def test_session_label_without_time() -> None:
    assert UpcomingSession(day_of_week=6).label == "Sunday"
