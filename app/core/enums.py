from enum import Enum


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"


class IntegrationPlatform(str, Enum):
    GOOGLE_CLASSROOM = "google_classroom"


class SyncStatus(str, Enum):
    started = "started"
    success = "success"
    failed = "failed"


class EmailLogStatus(str, Enum):
    sent = "sent"
    failed = "failed"
    skipped = "skipped"
