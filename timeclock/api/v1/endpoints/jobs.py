"""
Batch triggers (cron) and the caller's notification feed.

``POST /missed-punch/run`` and ``POST /notifications/run`` are guarded by
the cron secret, not by a user token.  Each call runs one bounded pass.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timeclock.api.v1.deps import (
    get_current_active_user,
    get_db,
    get_notifier,
    get_session_factory,
    require_cron_secret,
)
from timeclock.models.notification import NotificationEvent
from timeclock.models.user import User
from timeclock.schemas.jobs import (
    MissedPunchItem,
    MissedPunchRunResponse,
    NotificationEventRead,
    ReminderItem,
    ReminderRunResponse,
)
from timeclock.services.missed_punch import run_missed_punch_detector
from timeclock.services.notifier import Notifier
from timeclock.services.policy import load_policy
from timeclock.services.reminders import ReminderScheduler

router = APIRouter(tags=["jobs"])


@router.post(
    "/missed-punch/run",
    response_model=MissedPunchRunResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def run_missed_punch(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> MissedPunchRunResponse:
    async with session_factory() as db:
        policy = await load_policy(db)
    run = await run_missed_punch_detector(session_factory, policy)
    return MissedPunchRunResponse(
        threshold_hours=run.threshold_hours,
        flagged=len(run.flagged),
        skipped=len(run.skipped),
        failed=len(run.failed),
        details=[
            MissedPunchItem(
                session_id=o.session_id, user_id=o.user_id, status=o.status, reason=o.reason
            )
            for o in run.outcomes
        ],
    )


@router.post(
    "/notifications/run",
    response_model=ReminderRunResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def run_notifications(
    dry_run: bool = Query(default=False),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: Notifier = Depends(get_notifier),
) -> ReminderRunResponse:
    async with session_factory() as db:
        policy = await load_policy(db)
    run = await ReminderScheduler(session_factory, notifier, policy).run(dry_run=dry_run)
    return ReminderRunResponse(
        dry_run=run.dry_run,
        processed=len(run.processed),
        sent=len(run.sent),
        failed=len(run.failed),
        skipped=len(run.skipped),
        details=[
            ReminderItem(
                user_id=o.user_id,
                email=o.email,
                status=o.status,
                notification_type=o.notification_type,
                reason=o.reason,
            )
            for o in run.outcomes
        ],
    )


@router.get("/notifications/me", response_model=list[NotificationEventRead])
async def my_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> list[NotificationEvent]:
    result = await db.execute(
        select(NotificationEvent)
        .where(NotificationEvent.user_id == user.id)
        .order_by(NotificationEvent.created_at.desc(), NotificationEvent.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
