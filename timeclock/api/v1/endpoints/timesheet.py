"""
Timesheet & adjustment endpoints.

Members see their own timesheet; team MANAGER/ADMIN members (or global
admins) may request another member's, or ``user_id=all`` for the team.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import can_manage_team, get_current_active_user, get_db, require_admin
from timeclock.core.config import settings
from timeclock.core.exceptions import NotFoundError, PermissionDenied, ValidationFailed
from timeclock.models.adjustment import Adjustment
from timeclock.models.time_session import TimeSession
from timeclock.models.user import User
from timeclock.schemas.timesheet import (
    AdjustmentCreate,
    AdjustmentRead,
    TimesheetEntryRead,
    TimesheetQuery,
    TimesheetResponse,
)
from timeclock.services.policy import load_policy
from timeclock.services.timesheet import (
    TimesheetEntry,
    format_minutes,
    load_team_timesheet,
    load_user_timesheet,
    validate_range,
)

router = APIRouter(tags=["timesheet"])
logger = logging.getLogger(__name__)


def _entry_read(entry: TimesheetEntry) -> TimesheetEntryRead:
    return TimesheetEntryRead(
        date=entry.date,
        clock_in=entry.clock_in,
        clock_out=entry.clock_out,
        total_minutes=entry.total_minutes,
        break_minutes=entry.break_minutes,
        work_minutes=entry.work_minutes,
        adjusted_minutes=entry.adjusted_minutes,
        adjustments=[AdjustmentRead.model_validate(a) for a in entry.adjustments],
        work_display=format_minutes(entry.work_minutes),
        user_id=entry.user_id,
        user_name=entry.user_name,
    )


@router.get("/timesheet", response_model=TimesheetResponse)
async def get_timesheet(
    start_date: date = Query(...),
    end_date: date = Query(...),
    team_id: int | None = Query(default=None, gt=0),
    user_id: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> TimesheetResponse:
    try:
        query = TimesheetQuery(start_date=start_date, end_date=end_date, team_id=team_id, user_id=user_id)
    except ValueError as exc:
        raise ValidationFailed(str(exc))
    validate_range(query.start_date, query.end_date, settings.TIMESHEET_MAX_DAYS)
    policy = await load_policy(db)

    target = query.user_id
    if target is not None and target != "all" and int(target) == user.id:
        target = None

    if target is not None:
        if query.team_id is None:
            raise ValidationFailed("team_id required when viewing other users")
        if not await can_manage_team(db, user, query.team_id):
            raise PermissionDenied("Only managers and admins can view other users' timesheets")

    if target == "all":
        entries = await load_team_timesheet(
            db,
            query.team_id,
            query.start_date,
            query.end_date,
            tz_name=policy.timezone,
            max_days=settings.TIMESHEET_MAX_DAYS,
        )
    else:
        entries = await load_user_timesheet(
            db,
            int(target) if target else user.id,
            query.start_date,
            query.end_date,
            team_id=query.team_id,
            tz_name=policy.timezone,
            max_days=settings.TIMESHEET_MAX_DAYS,
        )

    return TimesheetResponse(
        start_date=query.start_date,
        end_date=query.end_date,
        timezone=policy.timezone,
        total_work_minutes=sum(e.work_minutes for e in entries),
        timesheet=[_entry_read(e) for e in entries],
    )


# ── Adjustments ─────────────────────────────────────────────────────
@router.get("/adjustments", response_model=list[AdjustmentRead])
async def list_adjustments(
    start_date: date | None = None,
    end_date: date | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> list[Adjustment]:
    """The caller's own adjustments, newest effective date first."""
    query = select(Adjustment).where(Adjustment.user_id == user.id)
    if start_date is not None:
        query = query.where(Adjustment.effective_date >= start_date)
    if end_date is not None:
        query = query.where(Adjustment.effective_date <= end_date)
    result = await db.execute(query.order_by(Adjustment.effective_date.desc(), Adjustment.id.desc()))
    return list(result.scalars().all())


@router.post("/adjustments", response_model=AdjustmentRead, status_code=201)
async def create_adjustment(
    body: AdjustmentCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Adjustment:
    """Record a direct admin correction for one user and day."""
    if body.session_id is not None:
        result = await db.execute(select(TimeSession).where(TimeSession.id == body.session_id))
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError("Time session not found")
        if session.user_id != body.user_id:
            raise ValidationFailed("Time session does not belong to this user")

    adjustment = Adjustment(**body.model_dump(), created_by=admin.id)
    adjustment.adjustment_type = body.adjustment_type.value
    db.add(adjustment)
    await db.commit()
    await db.refresh(adjustment)
    logger.info(
        "Adjustment %s %d min on %s for user %d by admin %d",
        adjustment.adjustment_type,
        adjustment.minutes,
        adjustment.effective_date,
        adjustment.user_id,
        admin.id,
    )
    return adjustment
