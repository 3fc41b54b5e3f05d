"""
Weekly schedule management for team managers and global admins.

A schedule is one user's expected hours on one team for one weekday.  The
late check, the clock-in/out reminders and the missed-punch reason all read
the active row; DELETE deactivates it so the history stays in place.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import can_manage_team, get_current_active_user, get_db
from timeclock.core.exceptions import NotFoundError, PermissionDenied, ScheduleConflict
from timeclock.models.schedule import Schedule
from timeclock.models.user import User
from timeclock.schemas.schedules import ScheduleCreate, ScheduleRead
from timeclock.services.clock import is_team_member

router = APIRouter(tags=["schedules"])
logger = logging.getLogger(__name__)


@router.get("/schedules", response_model=list[ScheduleRead])
async def list_schedules(
    team_id: int = Query(..., gt=0),
    user_id: int | None = Query(default=None, gt=0),
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> list[Schedule]:
    if not await can_manage_team(db, user, team_id):
        raise PermissionDenied("Only managers and admins can view team member schedules")

    query = select(Schedule).where(Schedule.team_id == team_id)
    if user_id is not None:
        query = query.where(Schedule.user_id == user_id)
    if not include_inactive:
        query = query.where(Schedule.is_active.is_(True))
    result = await db.execute(query.order_by(Schedule.user_id, Schedule.day_of_week, Schedule.start_time))
    return list(result.scalars().all())


@router.post("/schedules", response_model=ScheduleRead, status_code=201)
async def create_schedule(
    body: ScheduleCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> Schedule:
    """Add an active schedule; a second active one for the same weekday is a conflict."""
    if not await can_manage_team(db, user, body.team_id):
        raise PermissionDenied("Only managers and admins can manage team member schedules")
    if not await is_team_member(db, body.user_id, body.team_id):
        raise NotFoundError("User is not a member of this team")

    schedule = Schedule(**body.model_dump(), is_active=True)
    db.add(schedule)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ScheduleConflict()
    await db.refresh(schedule)

    logger.info(
        "Schedule %d created for user %d team %d weekday %d (%s-%s) by user %d",
        schedule.id,
        schedule.user_id,
        schedule.team_id,
        schedule.day_of_week,
        schedule.start_time,
        schedule.end_time,
        user.id,
    )
    return schedule


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> Response:
    result = await db.execute(select(Schedule).where(Schedule.id == schedule_id))
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise NotFoundError("Schedule not found")
    if not await can_manage_team(db, user, schedule.team_id):
        raise PermissionDenied("Only managers and admins can delete team member schedules")

    if schedule.is_active:
        schedule.is_active = False
        await db.commit()
        logger.info("Schedule %d deactivated by user %d", schedule_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
