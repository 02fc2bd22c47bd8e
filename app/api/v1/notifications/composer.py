"""Advisory message composition.

Messages come from fixed template pools. Single-subject alerts pick one of several
equivalent variants through an injected ``random.Random`` so callers (and tests)
can seed it; the weekly digest is fully deterministic.

Any object satisfying :class:`MessageComposer` can replace the template composer,
e.g. one backed by a language model.
"""

import random
from dataclasses import dataclass, field
from datetime import time
from typing import List, Optional, Protocol, Sequence

from .risk import RiskTier

WEEKLY_CRITICAL_BELOW = 75.0
WEEKLY_SAFE_FROM = 80.0

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class AlertMessageInput:
    student_name: str
    subject_code: str
    subject_name: str
    percentage: int
    risk_level: RiskTier
    absent_days: int
    total_days: int


@dataclass
class UpcomingSession:
    day_of_week: int  # 0=Monday
    start_time: Optional[time] = None

    @property
    def label(self) -> str:
        day = DAY_NAMES[self.day_of_week]
        if self.start_time is None:
            return day
        return f"{day} at {self.start_time.strftime('%H:%M')}"


@dataclass
class WeeklySubject:
    subject_code: str
    subject_name: str
    classes_attended: int
    total_classes: int
    attendance_percentage: float
    classes_needed_for_75: int
    upcoming_classes: List[UpcomingSession] = field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        return self.attendance_percentage < WEEKLY_CRITICAL_BELOW

    @property
    def is_warning(self) -> bool:
        return WEEKLY_CRITICAL_BELOW <= self.attendance_percentage < WEEKLY_SAFE_FROM


@dataclass
class WeeklyDigestInput:
    student_name: str
    subjects: List[WeeklySubject]
    current_week: str


class MessageComposer(Protocol):
    def compose(self, params: AlertMessageInput) -> str: ...

    def compose_weekly(self, params: WeeklyDigestInput) -> str: ...

    def compose_subject_line(self, subjects: Sequence[WeeklySubject]) -> str: ...


ALERT_TEMPLATES = {
    RiskTier.critical: (
        "URGENT: {name}, your {code} attendance is at {pct}%. You have missed {absent} of {total} "
        "classes. Attend the next {code} class or you risk detention.",
        "ATTENTION {name_upper}: your {code} attendance has dropped to {pct}%, below the 75% "
        "threshold. Do not miss your next {subject} class.",
        "Detention alert: {name}, you have only {pct}% attendance in {code} after missing {absent} "
        "classes. Attend every upcoming {subject} session to avoid academic consequences.",
    ),
    RiskTier.warning: (
        "Hey {name}, your {code} attendance is at {pct}%. You are at risk. Attend all upcoming "
        "{subject} classes to get back above 85%.",
        "{name}, your {code} attendance ({pct}%) needs attention. A few more absences could put "
        "you below 75%. Stay consistent with {subject}.",
        "Heads up {name}: your {code} attendance is {pct}%. Keep attending {subject} regularly "
        "to stay out of the danger zone.",
    ),
    RiskTier.good: (
        "Good job {name}! Your {code} attendance is at {pct}%. Keep it up.",
        "{name}, you have {pct}% attendance in {code}. You are in a safe zone, keep the same "
        "consistency in {subject}.",
        "Nice work {name}. {pct}% attendance in {code} is solid. Keep attending your {subject} "
        "classes.",
    ),
    RiskTier.excellent: (
        "Outstanding {name}! Your {code} attendance is {pct}%. You are well clear of any "
        "attendance risk.",
        "{pct}% in {code}, {name}. Excellent consistency, there is nothing to worry about here.",
        "Top attendance, {name}: {pct}% in {code}. You are far above the requirement in "
        "{subject}.",
    ),
}


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}es" if word.endswith("s") else f"{word}s"


class TemplateMessageComposer:
    """Template-based composer. No network access."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def compose(self, params: AlertMessageInput) -> str:
        pool = ALERT_TEMPLATES.get(params.risk_level, ALERT_TEMPLATES[RiskTier.good])
        template = self._rng.choice(pool)
        return template.format(
            name=params.student_name,
            name_upper=params.student_name.upper(),
            code=params.subject_code,
            subject=params.subject_name or params.subject_code,
            pct=params.percentage,
            absent=params.absent_days,
            total=params.total_days,
        )

    def compose_weekly(self, params: WeeklyDigestInput) -> str:
        critical = [s for s in params.subjects if s.is_critical]
        warning = [s for s in params.subjects if s.is_warning]
        if critical:
            return self._urgent_digest(params, critical)
        if warning:
            return self._warning_digest(params, warning)
        if params.subjects:
            return self._encouragement_digest(params)
        return (
            f"Hi {params.student_name},\n\n"
            "Your attendance is being monitored. Please keep attending all your classes "
            "regularly.\n\nBest regards,\nAcadence Team"
        )

    def compose_subject_line(self, subjects: Sequence[WeeklySubject]) -> str:
        critical = [s for s in subjects if s.is_critical]
        if critical:
            noun = "Subject" if len(critical) == 1 else "Subjects"
            return f"URGENT: Attendance Alert - {len(critical)} {noun} Below 75%"
        if any(s.is_warning for s in subjects):
            return "Weekly Attendance Reminder - Stay on Track"
        return "Your Weekly Attendance Update"

    # ----- weekly sections -----
    def _urgent_digest(self, params: WeeklyDigestInput, critical: List[WeeklySubject]) -> str:
        lines = [
            f"Hello {params.student_name},",
            "",
            f"This is an important attendance update for the week of {params.current_week}.",
            "",
            "URGENT ATTENTION REQUIRED",
            "",
            "The following {} below the 75% attendance threshold:".format(
                "subjects are currently" if len(critical) > 1 else "subject is currently"
            ),
            "",
        ]
        for subject in critical:
            lines.append(f"* {subject.subject_code}")
            lines.append(f"   - Current attendance: {subject.attendance_percentage:.1f}%")
            lines.append(
                f"   - Classes attended: {subject.classes_attended} out of {subject.total_classes}"
            )
            if subject.classes_needed_for_75 > 0:
                needed = subject.classes_needed_for_75
                lines.append(
                    f"   - Action required: attend the next {needed} {_plural(needed, 'class')} without fail"
                )
            if subject.upcoming_classes:
                lines.append("   - Upcoming this week:")
                for session in subject.upcoming_classes:
                    lines.append(f"     {session.label}")
            lines.append("")
        lines.extend([
            "What this means:",
            "Attendance below 75% may result in detention or being barred from exams. "
            "Please prioritise attending all upcoming classes.",
            "",
            "Your action plan:",
            "1. Mark every upcoming class in your calendar",
            "2. Set a reminder 30 minutes before each class",
            "3. Attend every class this week",
            "",
            "Each class you attend brings you closer to the 75% threshold.",
        ])
        return "\n".join(lines)

    def _warning_digest(self, params: WeeklyDigestInput, warning: List[WeeklySubject]) -> str:
        lines = [
            f"Hi {params.student_name},",
            "",
            f"Here is your weekly attendance check-in for {params.current_week}.",
            "",
            "Heads up - stay on track",
            "",
            "You are above the 75% minimum, but these subjects need your attention:",
            "",
        ]
        for subject in warning:
            gap = WEEKLY_SAFE_FROM - subject.attendance_percentage
            lines.append(f"* {subject.subject_code}")
            lines.append(
                f"   - Current attendance: {subject.attendance_percentage:.1f}% "
                f"({gap:.1f}% away from the comfort zone)"
            )
            lines.append(f"   - Classes: {subject.classes_attended}/{subject.total_classes}")
            if subject.upcoming_classes:
                lines.append(
                    "   - Don't miss: " + ", ".join(s.label for s in subject.upcoming_classes)
                )
            lines.append("")
        lines.extend([
            "Missing one or two more classes could drop you below 75%. Attend consistently "
            "this week to build a buffer.",
        ])
        return "\n".join(lines)

    def _encouragement_digest(self, params: WeeklyDigestInput) -> str:
        lines = [
            f"Excellent work, {params.student_name}!",
            "",
            "Your attendance is on track across your subjects. Current standing:",
            "",
        ]
        for subject in params.subjects[:3]:
            lines.append(
                f"* {subject.subject_code}: {subject.attendance_percentage:.1f}% "
                f"({subject.classes_attended}/{subject.total_classes} classes)"
            )
        lines.extend([
            "",
            "Keep up this consistency. Every class you attend is an investment in your results.",
        ])
        return "\n".join(lines)
