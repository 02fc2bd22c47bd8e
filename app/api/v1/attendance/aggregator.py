"""Per-subject attendance aggregation.

A subject can span several class sessions (lecture, lab, tutorial). Sessions are
grouped by (subject_code, group_name) and attendance is counted in unique calendar
days across the whole group, so two rows on the same day count once.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DataSourceError
from app.core.models import AttendanceRecord, Enrollment, SchoolClass

logger = logging.getLogger(__name__)


@dataclass
class AttendanceStat:
    subject_code: str
    subject_name: str
    group_name: Optional[str]
    total_days: int
    present_days: int
    absent_days: int
    percentage: int

    @property
    def exact_percentage(self) -> float:
        """Unrounded percentage, used by the weekly campaign."""
        if self.total_days == 0:
            return 0.0
        return self.present_days / self.total_days * 100


@dataclass
class SubjectGroup:
    subject_code: str
    subject_name: str
    group_name: Optional[str]
    classes: List[SchoolClass] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.subject_code, self.group_name or "")

    @property
    def class_ids(self) -> List[UUID]:
        return [c.id for c in self.classes]


def subject_code_for(school_class: SchoolClass) -> str:
    """Explicit subject_code, else the first word of the class name ("CS101 Lab" -> "CS101")."""
    if school_class.subject_code:
        return school_class.subject_code
    parts = (school_class.name or "").split()
    return parts[0] if parts else school_class.name


def group_classes(classes: Iterable[SchoolClass]) -> List[SubjectGroup]:
    groups: Dict[Tuple[str, str], SubjectGroup] = {}
    for school_class in classes:
        code = subject_code_for(school_class)
        key = (code, school_class.group_name or "")
        if key not in groups:
            groups[key] = SubjectGroup(
                subject_code=code,
                subject_name=school_class.name,
                group_name=school_class.group_name,
            )
        groups[key].classes.append(school_class)
    return list(groups.values())


def _calendar_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize_group(group: SubjectGroup, records: Iterable) -> Optional[AttendanceStat]:
    """Stat for one group, or None when the group has no attendance yet."""
    class_ids = set(group.class_ids)
    days = set()
    present = set()
    for record in records:
        if record.class_id not in class_ids:
            continue
        day = _calendar_day(record.date)
        days.add(day)
        if record.status == "present":
            present.add(day)

    total_days = len(days)
    if total_days == 0:
        return None
    present_days = len(present)
    return AttendanceStat(
        subject_code=group.subject_code,
        subject_name=group.subject_name,
        group_name=group.group_name,
        total_days=total_days,
        present_days=present_days,
        absent_days=total_days - present_days,
        percentage=_round_half_up(present_days / total_days * 100),
    )


def aggregate_groups(
    groups: Sequence[SubjectGroup], records: Sequence
) -> List[Tuple[SubjectGroup, AttendanceStat]]:
    pairs = []
    for group in groups:
        stat = summarize_group(group, records)
        if stat is not None:
            pairs.append((group, stat))
    pairs.sort(key=lambda pair: pair[0].key)
    return pairs


def aggregate_attendance(classes: Iterable[SchoolClass], records: Sequence) -> List[AttendanceStat]:
    """One AttendanceStat per subject group with at least one attended-eligible day."""
    return [stat for _, stat in aggregate_groups(group_classes(classes), records)]


# ----- Store access -----
async def load_group_attendance(
    db: AsyncSession,
    student_id: UUID,
) -> List[Tuple[SubjectGroup, AttendanceStat]]:
    """Load enrollments and attendance for a student and aggregate them per subject group."""
    try:
        class_result = await db.execute(
            select(SchoolClass)
            .join(Enrollment, Enrollment.class_id == SchoolClass.id)
            .where(Enrollment.student_id == student_id)
            .order_by(SchoolClass.name)
        )
        classes = class_result.scalars().all()
        if not classes:
            return []
        record_result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.student_id == student_id,
                AttendanceRecord.class_id.in_([c.id for c in classes]),
            )
        )
        records = record_result.scalars().all()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to read attendance for student %s: %s", student_id, e)
        raise DataSourceError(f"Attendance data unavailable for student {student_id}") from e
    return aggregate_groups(group_classes(classes), records)


async def calculate_student_attendance(db: AsyncSession, student_id: UUID) -> List[AttendanceStat]:
    return [stat for _, stat in await load_group_attendance(db, student_id)]
