"""
Session / break state machine.

Per user: ``OUT -> IN -> (ON_BREAK <-> IN) -> OUT``.  Every transition is a
request/response validation against the clock store; a rejected request
raises a ``TimeclockError`` and the caller re-issues a corrected one.

The store backs the check-then-insert with partial unique indexes, so a
concurrent second insert surfaces as ``IntegrityError`` and is reported as
the same conflict the pre-check would have raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, MultipleResultsFound
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core.constants import DAILY_BREAK_LIMITS
from timeclock.core.enums import BreakType, ClockState
from timeclock.core.exceptions import (
    AlreadyClockedIn,
    AlreadyClosed,
    BreakAlreadyActive,
    BreakLimitReached,
    ConflictError,
    NoActiveBreak,
    NotFoundError,
    NotOwnedError,
    PermissionDenied,
    SameTeam,
    SessionClosed,
)
from timeclock.core.timeutils import (
    at_local_time,
    day_of_week,
    ensure_utc,
    get_zone,
    local_date,
    local_day_bounds,
    utcnow,
)
from timeclock.models.schedule import Schedule
from timeclock.models.team import TeamMember
from timeclock.models.time_session import BreakSegment, TimeSession

logger = logging.getLogger(__name__)

PENDING_LATE_CONFIRMATION = "pending_late_confirmation"
CLOCKED_IN = "clocked_in"


@dataclass
class LateCheck:
    is_late: bool
    scheduled_start: datetime | None = None


@dataclass
class ClockInResult:
    """Outcome of a clock-in request.

    ``status`` is ``clocked_in`` when a session was opened, or
    ``pending_late_confirmation`` when the user is late and must confirm
    with a note; nothing is written in the pending case.
    """

    status: str
    is_late: bool
    session: TimeSession | None = None
    scheduled_start: datetime | None = None


@dataclass
class ActiveState:
    state: ClockState
    session: TimeSession | None = None
    open_break: BreakSegment | None = None


# ── Lookups ─────────────────────────────────────────────────────────
async def get_open_session(db: AsyncSession, user_id: int) -> TimeSession | None:
    result = await db.execute(
        select(TimeSession).where(
            TimeSession.user_id == user_id, TimeSession.clock_out_at.is_(None)
        )
    )
    return result.scalar_one_or_none()


async def get_open_break(db: AsyncSession, session_id: int) -> BreakSegment | None:
    result = await db.execute(
        select(BreakSegment).where(
            BreakSegment.session_id == session_id, BreakSegment.break_end_at.is_(None)
        )
    )
    return result.scalar_one_or_none()


async def get_clock_state(db: AsyncSession, user_id: int) -> ActiveState:
    session = await get_open_session(db, user_id)
    if session is None:
        return ActiveState(state=ClockState.OUT)
    open_break = await get_open_break(db, session.id)
    if open_break is not None:
        return ActiveState(state=ClockState.ON_BREAK, session=session, open_break=open_break)
    return ActiveState(state=ClockState.IN, session=session)


async def is_team_member(db: AsyncSession, user_id: int, team_id: int) -> bool:
    result = await db.execute(
        select(TeamMember.id).where(TeamMember.user_id == user_id, TeamMember.team_id == team_id)
    )
    return result.first() is not None


async def _owned_session(
    db: AsyncSession, user_id: int, session_id: int, *, lock: bool = False
) -> TimeSession:
    query = select(TimeSession).where(TimeSession.id == session_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFoundError("Time session not found")
    if session.user_id != user_id:
        raise NotOwnedError("Time session belongs to another user")
    return session


# ── Late check ──────────────────────────────────────────────────────
async def check_late(
    db: AsyncSession,
    user_id: int,
    team_id: int,
    clock_in_at: datetime,
    tz_name: str,
) -> LateCheck:
    """Compare ``clock_in_at`` with today's active schedule start for the team.

    No schedule means not late.  Duplicate active schedules for the same
    (user, team, weekday) violate a store invariant and are reported rather
    than resolved by picking one.
    """
    tz = get_zone(tz_name)
    day = local_date(clock_in_at, tz)
    try:
        result = await db.execute(
            select(Schedule).where(
                Schedule.user_id == user_id,
                Schedule.team_id == team_id,
                Schedule.day_of_week == day_of_week(day),
                Schedule.is_active.is_(True),
            )
        )
        schedule = result.scalar_one_or_none()
    except MultipleResultsFound:
        logger.error(
            "Multiple active schedules for user %d team %d weekday %d",
            user_id,
            team_id,
            day_of_week(day),
        )
        raise ConflictError("Multiple active schedules configured for this team and weekday")

    if schedule is None:
        return LateCheck(is_late=False)

    scheduled_start = at_local_time(day, schedule.start_time, tz)
    return LateCheck(is_late=ensure_utc(clock_in_at) > scheduled_start, scheduled_start=scheduled_start)


# ── Transitions ─────────────────────────────────────────────────────
async def clock_in(
    db: AsyncSession,
    user_id: int,
    team_id: int,
    *,
    late_note: str | None = None,
    tz_name: str = "UTC",
    now: datetime | None = None,
) -> ClockInResult:
    """Open a session, or ask for a late note first.

    The flow is two-step when the user is late: the first call returns
    ``pending_late_confirmation``; the caller repeats it with ``late_note``.
    """
    now = ensure_utc(now or utcnow())
    note = (late_note or "").strip() or None

    if not await is_team_member(db, user_id, team_id):
        raise PermissionDenied("You are not a member of this team")

    if await get_open_session(db, user_id) is not None:
        raise AlreadyClockedIn()

    late = await check_late(db, user_id, team_id, now, tz_name)
    if late.is_late and note is None:
        logger.info("Late clock-in for user %d team %d awaits confirmation", user_id, team_id)
        return ClockInResult(
            status=PENDING_LATE_CONFIRMATION,
            is_late=True,
            scheduled_start=late.scheduled_start,
        )

    session = TimeSession(user_id=user_id, team_id=team_id, clock_in_at=now, late_note=note)
    db.add(session)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Concurrent clock-in rejected for user %d", user_id)
        raise AlreadyClockedIn()
    await db.refresh(session)

    logger.info(
        "Clock-in user %d team %d session %d%s",
        user_id,
        team_id,
        session.id,
        " (late)" if late.is_late else "",
    )
    return ClockInResult(
        status=CLOCKED_IN,
        is_late=late.is_late,
        session=session,
        scheduled_start=late.scheduled_start,
    )


async def _close_open_break(db: AsyncSession, session_id: int, at: datetime) -> BreakSegment | None:
    open_break = await get_open_break(db, session_id)
    if open_break is not None:
        open_break.break_end_at = at
    return open_break


async def clock_out(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    *,
    now: datetime | None = None,
) -> TimeSession:
    """Close the session; an open break inside it ends at the same instant."""
    now = ensure_utc(now or utcnow())
    session = await _owned_session(db, user_id, session_id, lock=True)
    if session.clock_out_at is not None:
        raise AlreadyClosed("Session already clocked out")

    closed_break = await _close_open_break(db, session.id, now)
    session.clock_out_at = now
    await db.commit()
    await db.refresh(session)

    logger.info(
        "Clock-out user %d session %d%s",
        user_id,
        session.id,
        f" (ended break {closed_break.id})" if closed_break else "",
    )
    return session


async def count_completed_breaks(
    db: AsyncSession,
    user_id: int,
    break_type: BreakType,
    day_start: datetime,
    day_end: datetime,
) -> int:
    """Completed breaks of one type started in ``[day_start, day_end)``, all sessions."""
    result = await db.execute(
        select(func.count(BreakSegment.id))
        .join(TimeSession, BreakSegment.session_id == TimeSession.id)
        .where(
            TimeSession.user_id == user_id,
            BreakSegment.break_type == break_type.value,
            BreakSegment.break_end_at.is_not(None),
            BreakSegment.break_start_at >= day_start,
            BreakSegment.break_start_at < day_end,
        )
    )
    return int(result.scalar_one())


async def start_break(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    break_type: BreakType,
    *,
    tz_name: str = "UTC",
    now: datetime | None = None,
) -> BreakSegment:
    now = ensure_utc(now or utcnow())
    break_type = BreakType(break_type)
    session = await _owned_session(db, user_id, session_id, lock=True)
    if session.clock_out_at is not None:
        raise SessionClosed("Cannot start break on completed session")

    if await get_open_break(db, session.id) is not None:
        raise BreakAlreadyActive()

    limit = DAILY_BREAK_LIMITS[break_type.value]
    day_start, day_end = local_day_bounds(local_date(now, get_zone(tz_name)), get_zone(tz_name))
    taken = await count_completed_breaks(db, user_id, break_type, day_start, day_end)
    if taken >= limit:
        label = "lunch break" if break_type is BreakType.LUNCH else "breaks"
        raise BreakLimitReached(
            f"You have already taken {taken} {label} today "
            f"(limit: {limit} {break_type.value} per day)"
        )

    segment = BreakSegment(session_id=session.id, break_type=break_type.value, break_start_at=now)
    db.add(segment)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BreakAlreadyActive()
    await db.refresh(segment)

    logger.info("Break %s started for user %d session %d", break_type.value, user_id, session.id)
    return segment


async def end_break(
    db: AsyncSession,
    user_id: int,
    break_id: int,
    *,
    now: datetime | None = None,
) -> BreakSegment:
    now = ensure_utc(now or utcnow())
    result = await db.execute(
        select(BreakSegment, TimeSession.user_id)
        .join(TimeSession, BreakSegment.session_id == TimeSession.id)
        .where(BreakSegment.id == break_id)
        .with_for_update()
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Break segment not found")
    segment, owner_id = row
    if owner_id != user_id:
        raise NotOwnedError("Break segment belongs to another user")
    if segment.break_end_at is not None:
        raise NoActiveBreak("Break already ended")

    segment.break_end_at = now
    await db.commit()
    await db.refresh(segment)

    logger.info("Break %d ended for user %d", segment.id, user_id)
    return segment


async def switch_team(
    db: AsyncSession,
    user_id: int,
    session_id: int,
    team_id: int,
    *,
    now: datetime | None = None,
) -> TimeSession:
    """Close the open session and open one on ``team_id`` at the same instant."""
    now = ensure_utc(now or utcnow())
    session = await _owned_session(db, user_id, session_id, lock=True)
    if session.clock_out_at is not None:
        raise SessionClosed("Cannot switch teams on completed session")
    if session.team_id == team_id:
        raise SameTeam()
    if not await is_team_member(db, user_id, team_id):
        raise PermissionDenied("You are not a member of the selected team")

    await _close_open_break(db, session.id, now)
    session.clock_out_at = now
    # The old row must be closed before the new one exists (one open per user).
    await db.flush()
    new_session = TimeSession(user_id=user_id, team_id=team_id, clock_in_at=now)
    db.add(new_session)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyClockedIn()
    await db.refresh(new_session)

    logger.info(
        "User %d switched from team %d to team %d (session %d -> %d)",
        user_id,
        session.team_id,
        team_id,
        session.id,
        new_session.id,
    )
    return new_session
