"""Student notifications and the admin weekly campaign trigger."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin, require_student
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.core.services import Services, get_services
from app.db.session import get_db

from . import service
from .schemas import (
    AttendanceStatResponse,
    CampaignSummaryResponse,
    NotificationResponse,
    WeeklyCampaignRequest,
)
from .weekly import CampaignOptions

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


def _dump(notification) -> dict:
    return NotificationResponse.model_validate(notification).model_dump(mode="json")


@router.get("")
async def list_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
):
    """Latest notifications for the current student, newest first."""
    notifications = await service.list_notifications(db, current_user.id)
    unread = await service.unread_count(db, current_user.id)
    return {
        "success": True,
        "notifications": [_dump(n) for n in notifications],
        "unreadCount": unread,
    }


@router.get("/unread-count")
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
):
    return {"success": True, "unreadCount": await service.unread_count(db, current_user.id)}


@router.post("/generate")
async def generate_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
    services: Services = Depends(get_services),
):
    """Check every subject of the current student and notify on each risk tier."""
    try:
        result = await services.orchestrator.generate_for_student(db, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "success": True,
        "message": f"Generated {len(result.notifications)} notifications",
        "notifications": [_dump(n) for n in result.notifications],
        "stats": [AttendanceStatResponse.model_validate(s).model_dump() for s in result.stats],
    }


@router.patch("/mark-all-read")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
):
    count = await service.mark_all_read(db, current_user.id)
    return {"success": True, "message": f"Marked {count} notifications as read", "count": count}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
):
    try:
        notification = await service.mark_read(db, notification_id, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, "notification": _dump(notification)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_student),
):
    try:
        await service.delete_notification(db, notification_id, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, "message": "Notification deleted"}


@router.post("/send-weekly", status_code=status.HTTP_200_OK)
async def send_weekly(
    payload: Optional[WeeklyCampaignRequest] = Body(None),
    current_user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Run the weekly attendance campaign now. 409 while another run is in progress."""
    campaign = services.weekly_campaign
    defaults = campaign.default_options
    options = CampaignOptions(
        test_recipients=list(defaults.test_recipients),
        force_send=defaults.force_send,
        max_emails=defaults.max_emails,
    )
    if payload is not None:
        if payload.test_recipients is not None:
            options.test_recipients = [str(e) for e in payload.test_recipients]
        if payload.force_send is not None:
            options.force_send = payload.force_send
        if payload.max_emails is not None:
            options.max_emails = payload.max_emails
    try:
        summary = await campaign.run(options)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "success": True,
        "message": "Weekly attendance emails processed",
        "summary": CampaignSummaryResponse(
            sent=summary.sent, skipped=summary.skipped, failed=summary.failed, errors=summary.errors
        ).model_dump(),
    }
