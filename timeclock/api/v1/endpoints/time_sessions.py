"""
Clock-in/out, team switch and break endpoints.

All routes act on the authenticated caller; the state machine in
``timeclock.services.clock`` owns every rule.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.api.v1.deps import get_current_active_user, get_db
from timeclock.models.user import User
from timeclock.schemas.time_sessions import (
    ActiveStateResponse,
    BreakEndRequest,
    BreakRead,
    BreakStartRequest,
    ClockInRequest,
    ClockInResponse,
    ClockOutRequest,
    SessionRead,
    SwitchTeamRequest,
)
from timeclock.services import clock
from timeclock.services.policy import load_policy

router = APIRouter(tags=["time-sessions"])


@router.post("/time-sessions/clock-in", response_model=ClockInResponse, status_code=201)
async def clock_in(
    body: ClockInRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> ClockInResponse:
    """Open a session.  A late caller without a note gets 202 and must confirm."""
    policy = await load_policy(db)
    result = await clock.clock_in(
        db, user.id, body.team_id, late_note=body.late_note, tz_name=policy.timezone
    )
    if result.status == clock.PENDING_LATE_CONFIRMATION:
        response.status_code = status.HTTP_202_ACCEPTED
        return ClockInResponse(
            status=result.status,
            is_late=True,
            scheduled_start=result.scheduled_start,
            detail="A note is required when clocking in late",
        )
    return ClockInResponse(
        status=result.status,
        is_late=result.is_late,
        scheduled_start=result.scheduled_start,
        session=SessionRead.model_validate(result.session),
    )


@router.post("/time-sessions/clock-out", response_model=SessionRead)
async def clock_out(
    body: ClockOutRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> SessionRead:
    session = await clock.clock_out(db, user.id, body.session_id)
    return SessionRead.model_validate(session)


@router.post("/time-sessions/switch-team", response_model=SessionRead, status_code=201)
async def switch_team(
    body: SwitchTeamRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> SessionRead:
    """Stop the running session and immediately start one on another team."""
    session = await clock.switch_team(db, user.id, body.session_id, body.team_id)
    return SessionRead.model_validate(session)


@router.get("/time-sessions/active", response_model=ActiveStateResponse)
async def active_state(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> ActiveStateResponse:
    state = await clock.get_clock_state(db, user.id)
    return ActiveStateResponse(
        state=state.state,
        session=SessionRead.model_validate(state.session) if state.session else None,
        open_break=BreakRead.model_validate(state.open_break) if state.open_break else None,
    )


# ── Breaks ──────────────────────────────────────────────────────────
@router.post("/breaks/start", response_model=BreakRead, status_code=201)
async def break_start(
    body: BreakStartRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> BreakRead:
    policy = await load_policy(db)
    segment = await clock.start_break(
        db, user.id, body.session_id, body.break_type, tz_name=policy.timezone
    )
    return BreakRead.model_validate(segment)


@router.post("/breaks/end", response_model=BreakRead)
async def break_end(
    body: BreakEndRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> BreakRead:
    segment = await clock.end_break(db, user.id, body.break_id)
    return BreakRead.model_validate(segment)
