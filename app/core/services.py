"""Process-wide service objects, built once at startup and shared by routers and jobs."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.integrations.google_classroom import GoogleClassroomClient
from app.api.v1.integrations.service import ExternalSyncService
from app.api.v1.notifications.composer import MessageComposer, TemplateMessageComposer
from app.api.v1.notifications.orchestrator import NotificationOrchestrator
from app.api.v1.notifications.weekly import CampaignOptions, WeeklyCampaign
from app.core.config import Settings
from app.core.email_service import EmailDispatcher

logger = logging.getLogger(__name__)

# Lower bounds on batch pacing, whatever the environment says.
MIN_STUDENT_DELAY_SECONDS = 0.5


@dataclass
class Services:
    session_factory: Callable[[], AsyncSession]
    dispatcher: EmailDispatcher
    composer: MessageComposer
    orchestrator: NotificationOrchestrator
    weekly_campaign: WeeklyCampaign
    sync_service: ExternalSyncService
    scheduler: Optional[AsyncIOScheduler] = None


def build_services(
    settings: Settings,
    session_factory: Callable[[], AsyncSession],
    *,
    dispatcher: Optional[EmailDispatcher] = None,
    composer: Optional[MessageComposer] = None,
    classroom_client: Optional[GoogleClassroomClient] = None,
) -> Services:
    dispatcher = dispatcher or EmailDispatcher.from_settings(settings)
    composer = composer or TemplateMessageComposer()
    orchestrator = NotificationOrchestrator(
        dispatcher,
        composer,
        settings.frontend_url,
        dedupe_hours=settings.notification_dedupe_hours,
    )
    weekly_campaign = WeeklyCampaign(
        session_factory,
        dispatcher,
        composer,
        settings.frontend_url,
        timezone=settings.weekly_campaign_timezone,
        day_of_week=settings.weekly_campaign_day,
        hour=settings.weekly_campaign_hour,
        student_delay=max(settings.weekly_campaign_student_delay_seconds, MIN_STUDENT_DELAY_SECONDS),
        max_retries=settings.email_max_retries,
        default_options=CampaignOptions(
            test_recipients=list(settings.weekly_campaign_test_recipients),
            force_send=settings.weekly_campaign_force_send,
            max_emails=settings.weekly_campaign_max_emails,
        ),
    )
    sync_service = ExternalSyncService(
        session_factory,
        classroom_client or GoogleClassroomClient.from_settings(settings),
        state_max_age_seconds=settings.oauth_state_max_age_seconds,
        integration_delay=settings.sync_integration_delay_seconds,
        stale_minutes=settings.sync_log_stale_minutes,
        interval_hours=settings.sync_interval_hours,
    )
    return Services(
        session_factory=session_factory,
        dispatcher=dispatcher,
        composer=composer,
        orchestrator=orchestrator,
        weekly_campaign=weekly_campaign,
        sync_service=sync_service,
    )


def start_scheduler(services: Services, settings: Settings) -> AsyncIOScheduler:
    """Register the weekly campaign and the periodic sync on one scheduler. Must run inside the event loop."""
    scheduler = AsyncIOScheduler(timezone=settings.weekly_campaign_timezone)
    services.weekly_campaign.schedule(scheduler)
    services.sync_service.schedule(scheduler)
    scheduler.start()
    services.scheduler = scheduler
    logger.info("Background scheduler started")
    return scheduler


async def shutdown_services(services: Services) -> None:
    services.weekly_campaign.stop()
    services.sync_service.stop()
    if services.scheduler is not None:
        services.scheduler.shutdown(wait=False)
        services.scheduler = None
    await services.orchestrator.drain()
    await services.dispatcher.aclose()
    await services.sync_service.client.aclose()


def get_services(request: Request) -> Services:
    return request.app.state.services
