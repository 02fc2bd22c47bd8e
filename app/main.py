import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.integrations.router import router as integrations_router
from app.api.v1.notifications.router import router as notifications_router
from app.core.config import settings
from app.core.logging_config import init_logging
from app.core.services import build_services, shutdown_services, start_scheduler
from app.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(settings, AsyncSessionLocal)
    app.state.services = services
    if settings.scheduler_enabled:
        start_scheduler(services, settings)
    try:
        yield
    finally:
        await shutdown_services(services)


def create_app() -> FastAPI:
    init_logging(settings)
    app = FastAPI(title="Acadence Attendance Backend", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _log_request(request: Request, call_next):
        request_id = uuid.uuid4().hex[:12]
        start = time.time()
        response = await call_next(request)
        logger.info(
            "%s %s %s %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.time() - start) * 1000,
            extra={"request_id": request_id},
        )
        return response

    # Routers
    app.include_router(attendance_router)
    app.include_router(notifications_router)
    app.include_router(integrations_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
