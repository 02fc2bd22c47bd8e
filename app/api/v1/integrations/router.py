"""Google Classroom integration endpoints."""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.exceptions import AuthError, NotFoundError, ServiceError
from app.core.services import Services, get_services
from app.db.session import get_db

from .schemas import ExternalAssignmentResponse, ExternalCourseResponse
from .service import PLATFORM

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/integrations/google-classroom", tags=["integrations"])


def _frontend_redirect(**params: str) -> RedirectResponse:
    query = "&".join(f"{key}={quote(value)}" for key, value in params.items())
    return RedirectResponse(f"{settings.frontend_url.rstrip('/')}/student?feature=integrations&{query}")


@router.get("/auth")
async def get_auth_url(
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Google consent URL for the current user."""
    return {"authUrl": services.sync_service.build_auth_url(current_user.id)}


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Redirect target registered with Google. Always answers with a redirect to the frontend."""
    if error:
        logger.warning("Google Classroom consent refused: %s", error)
        return _frontend_redirect(error=error)
    if not code or not state:
        return _frontend_redirect(error="invalid_state")
    try:
        await services.sync_service.handle_callback(db, code, state)
    except AuthError as e:
        logger.warning("Google Classroom callback rejected: %s", e.message)
        return _frontend_redirect(error="invalid_state")
    except ServiceError as e:
        logger.error("Google Classroom callback failed: %s", e.message)
        return _frontend_redirect(error="auth_failed")
    return _frontend_redirect(status="connected")


@router.post("/sync")
async def sync_now(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        result = await services.sync_service.sync_user(db, current_user.id)
    except NotFoundError as e:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": e.message})
    except ServiceError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Failed to sync Google Classroom", "error": e.message},
        )
    return {
        "message": "Sync completed",
        "coursesCount": result.courses,
        "assignmentsCount": result.assignments,
    }


@router.get("/status")
async def get_status(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    integration = await services.sync_service.get_status(db, current_user.id)
    if integration is None:
        return {"connected": False, "platform": PLATFORM}
    return {
        "connected": bool(integration.is_active),
        "platform": PLATFORM,
        "lastSynced": integration.last_synced.isoformat() if integration.last_synced else None,
        "isActive": bool(integration.is_active),
    }


@router.delete("/disconnect")
async def disconnect(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        await services.sync_service.disconnect(db, current_user.id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"message": "Google Classroom disconnected successfully"}


@router.get("/assignments")
async def list_assignments(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    assignments = await services.sync_service.list_assignments(db, current_user.id)
    return {
        "success": True,
        "assignments": [
            ExternalAssignmentResponse.model_validate(a).model_dump(mode="json") for a in assignments
        ],
    }


@router.get("/courses")
async def list_courses(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    courses = await services.sync_service.list_courses(db, current_user.id)
    return {
        "success": True,
        "courses": [ExternalCourseResponse.model_validate(c).model_dump(mode="json") for c in courses],
    }
