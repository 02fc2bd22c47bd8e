from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AttendanceMarkRequest(BaseModel):
    """Student self check-in for a class session (e.g. after scanning the class QR code)."""

    class_id: Optional[UUID] = Field(None, description="Class being attended")
    att_date: Optional[date] = Field(None, alias="date", description="Defaults to today (UTC)")


class AttendanceRecordResponse(BaseModel):
    id: UUID
    student_id: UUID
    class_id: UUID
    date: datetime
    status: str

    class Config:
        from_attributes = True
