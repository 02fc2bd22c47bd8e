"""Email bodies for attendance alerts and the weekly digest."""

from dataclasses import dataclass
from html import escape
from typing import Sequence

from .composer import AlertMessageInput, WeeklySubject
from .risk import RiskTier

_ALERT_COLORS = {
    RiskTier.critical: "#EF4444",
    RiskTier.warning: "#F97316",
    RiskTier.good: "#EAB308",
    RiskTier.excellent: "#10B981",
}


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str
    priority: str = "normal"


def alert_subject(level: RiskTier, subject_code: str) -> str:
    if level == RiskTier.critical:
        return f"URGENT: {subject_code} Attendance Alert - Action Required"
    if level == RiskTier.warning:
        return f"{subject_code} Attendance Warning"
    if level == RiskTier.excellent:
        return f"Great Job! {subject_code} Attendance Update"
    return f"{subject_code} Attendance Update"


def _standing(percentage: float) -> str:
    if percentage < 75:
        return "Below required 75%"
    if percentage < 85:
        return "Approaching critical"
    if percentage < 95:
        return "Good standing"
    return "Excellent"


def render_alert_email(params: AlertMessageInput, message: str, frontend_url: str) -> RenderedEmail:
    dashboard = f"{frontend_url.rstrip('/')}/student/dashboard"
    attended = params.total_days - params.absent_days
    color = _ALERT_COLORS.get(params.risk_level, _ALERT_COLORS[RiskTier.warning])
    html = (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head><body>"
        f"<h1>Acadence LMS</h1><h2>Hello {escape(params.student_name)}!</h2>"
        f"<div style=\"border-left:4px solid {color};padding:16px\">{escape(message)}</div>"
        "<table>"
        f"<tr><td>Subject</td><td>{escape(params.subject_name)} ({escape(params.subject_code)})</td></tr>"
        f"<tr><td>Attendance</td><td>{params.percentage}%</td></tr>"
        f"<tr><td>Classes attended</td><td>{attended} / {params.total_days}</td></tr>"
        f"<tr><td>Classes missed</td><td>{params.absent_days}</td></tr>"
        f"<tr><td>Status</td><td>{_standing(params.percentage)}</td></tr>"
        "</table>"
        f"<p><a href=\"{escape(dashboard)}\">View full attendance report</a></p>"
        "</body></html>"
    )
    text_lines = [
        f"Hello {params.student_name},",
        "",
        message,
        "",
        f"Subject: {params.subject_name} ({params.subject_code})",
        f"Current Attendance: {params.percentage}%",
        f"Classes Attended: {attended} / {params.total_days}",
        f"Classes Missed: {params.absent_days}",
    ]
    if params.percentage < 75:
        text_lines.extend([
            "",
            "WARNING: Your attendance is below the required 75% threshold. "
            "Please attend all upcoming classes to avoid detention.",
        ])
    text_lines.extend(["", f"Visit your dashboard: {dashboard}", "", "---", "Acadence Learning Management System"])
    return RenderedEmail(
        subject=alert_subject(params.risk_level, params.subject_code),
        html=html,
        text="\n".join(text_lines),
        priority="high" if params.risk_level == RiskTier.critical else "normal",
    )


def render_weekly_email(
    student_name: str,
    subject_line: str,
    message: str,
    subjects: Sequence[WeeklySubject],
    frontend_url: str,
) -> RenderedEmail:
    dashboard = f"{frontend_url.rstrip('/')}/student/dashboard"
    cards = []
    text_blocks = []
    for subject in subjects:
        needed = ""
        if subject.classes_needed_for_75 > 0:
            needed = f"Must attend next {subject.classes_needed_for_75} class(es) to reach 75%"
        upcoming = ", ".join(s.label for s in subject.upcoming_classes)
        cards.append(
            "<div class=\"subject-card\">"
            f"<strong>{escape(subject.subject_code)}</strong> "
            f"{subject.attendance_percentage:.1f}%<br>"
            f"{subject.classes_attended}/{subject.total_classes} classes attended"
            + (f"<br><strong>{escape(needed)}</strong>" if needed else "")
            + (f"<br>Upcoming this week: {escape(upcoming)}" if upcoming else "")
            + "</div>"
        )
        block = [
            f"{subject.subject_code}: {subject.attendance_percentage:.1f}%",
            f"- Classes: {subject.classes_attended}/{subject.total_classes}",
        ]
        if needed:
            block.append(f"- {needed}")
        if upcoming:
            block.append(f"- Upcoming: {upcoming}")
        text_blocks.append("\n".join(block))

    html = (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head><body>"
        "<h1>Weekly Attendance Report</h1>"
        f"<h2>Hello {escape(student_name)}!</h2>"
        f"<div style=\"white-space:pre-line\">{escape(message)}</div>"
        "<h3>Subject Breakdown</h3>"
        + "".join(cards)
        + f"<p><a href=\"{escape(dashboard)}\">View full dashboard</a></p>"
        "</body></html>"
    )
    text = (
        f"Hello {student_name},\n\n{message}\n\nSubject Breakdown:\n\n"
        + "\n\n".join(text_blocks)
        + f"\n\nVisit your dashboard: {dashboard}\n\n---\nAcadence Learning Management System\n"
        "Weekly Automated Attendance Report"
    )
    return RenderedEmail(
        subject=subject_line,
        html=html,
        text=text,
        priority="high" if any(s.is_critical for s in subjects) else "normal",
    )
