from app.core.models.school_class import SchoolClass
from app.core.models.enrollment import Enrollment
from app.core.models.attendance_record import AttendanceRecord
from app.core.models.notification import Notification
from app.core.models.integration import Integration, SyncLog
from app.core.models.external_item import ExternalAssignment, ExternalCourse
from app.core.models.email_log import EmailLog

__all__ = [
    "AttendanceRecord",
    "EmailLog",
    "Enrollment",
    "ExternalAssignment",
    "ExternalCourse",
    "Integration",
    "Notification",
    "SchoolClass",
    "SyncLog",
]
