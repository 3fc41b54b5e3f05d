"""
Timeclock — Application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/`, `models/`, and `core/` packages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timeclock.api.v1.api import api_router
from timeclock.core.config import settings
from timeclock.core.exceptions import register_exception_handlers
from timeclock.db.base import Base
from timeclock.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from timeclock.models.adjustment import Adjustment  # noqa: F401
from timeclock.models.missed_punch import MissedPunchFlag  # noqa: F401
from timeclock.models.notification import NotificationEvent, NotificationPreference  # noqa: F401
from timeclock.models.organization_settings import OrganizationSettings  # noqa: F401
from timeclock.models.schedule import Schedule  # noqa: F401
from timeclock.models.team import Team, TeamMember  # noqa: F401
from timeclock.models.time_session import BreakSegment, TimeSession  # noqa: F401
from timeclock.models.user import User  # noqa: F401
from timeclock.services.policy import get_or_create_org_settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed the organisation settings row on first run
    async with async_session_factory() as session:
        await get_or_create_org_settings(session)

    if not settings.CRON_SECRET:
        logger.warning("CRON_SECRET is not set; batch triggers will reject every call")

    logger.info("Timeclock v%s started", settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Employee time tracking: sessions, breaks, timesheets and reminders",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
