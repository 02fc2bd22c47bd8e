from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ExternalCourseResponse(BaseModel):
    id: UUID
    external_id: str
    name: str
    section: Optional[str] = None
    description: Optional[str] = None
    room: Optional[str] = None
    link: Optional[str] = None
    state: Optional[str] = None
    synced_at: datetime

    class Config:
        from_attributes = True


class ExternalAssignmentResponse(BaseModel):
    id: UUID
    external_id: str
    course_external_id: str
    course_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: Optional[float] = None
    work_type: Optional[str] = None
    state: Optional[str] = None
    link: Optional[str] = None
    synced_at: datetime

    class Config:
        from_attributes = True
