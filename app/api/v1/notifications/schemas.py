from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class NotificationResponse(BaseModel):
    id: UUID
    student_id: UUID
    subject_code: str
    subject_name: Optional[str] = None
    message: str
    type: str
    attendance_percentage: int
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AttendanceStatResponse(BaseModel):
    subject_code: str
    subject_name: str
    group_name: Optional[str] = None
    total_days: int
    present_days: int
    absent_days: int
    percentage: int

    class Config:
        from_attributes = True


class WeeklyCampaignRequest(BaseModel):
    """Manual campaign run. Omitted fields fall back to the configured defaults."""

    test_recipients: Optional[List[EmailStr]] = Field(None, description="Only email these students")
    force_send: Optional[bool] = Field(None, description="Send a sample even when nobody is at risk")
    max_emails: Optional[int] = Field(None, ge=1)


class CampaignSummaryResponse(BaseModel):
    sent: int
    skipped: int
    failed: int
    errors: List[dict] = []
