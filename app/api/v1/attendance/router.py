"""Attendance API router."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.notifications.orchestrator import run_post_attendance_notifications
from app.auth.rbac import require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.services import Services, get_services
from app.db.session import get_db

from . import service
from .schemas import AttendanceMarkRequest, AttendanceRecordResponse

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.post("/mark", status_code=status.HTTP_200_OK)
async def mark_attendance(
    payload: AttendanceMarkRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
    services: Services = Depends(get_services),
):
    """Mark the current student present, then check attendance risk in the background."""
    try:
        record = await service.mark_attendance(db, current_user.id, payload.class_id, payload.att_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    background_tasks.add_task(run_post_attendance_notifications, services, current_user.id)
    return {
        "message": "Attendance marked successfully",
        "data": AttendanceRecordResponse.model_validate(record).model_dump(mode="json"),
    }
