"""
Timesheet aggregation.

``calculate_timesheet`` is a pure function over sessions, breaks and
adjustments that were already filtered to one user (and optionally one
team).  It never mutates its inputs and always returns one entry per
calendar day in the requested range, zero-filled where nothing happened.

Per day::

    work_minutes = total_minutes - break_minutes + adjusted_minutes

Open sessions and open breaks contribute nothing; callers who want
"as of now" totals pass ``now`` as a synthetic clock-out upstream.
Negative results are returned as-is so data problems stay visible.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core.enums import AdjustmentType
from timeclock.core.exceptions import InvalidDateRange, ValidationFailed
from timeclock.core.timeutils import elapsed_minutes, ensure_utc, get_zone, local_date, local_day_bounds
from timeclock.models.adjustment import Adjustment
from timeclock.models.team import TeamMember
from timeclock.models.time_session import BreakSegment, TimeSession
from timeclock.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class TimesheetEntry:
    date: date
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    total_minutes: int = 0
    break_minutes: int = 0
    work_minutes: int = 0
    adjustments: list[Any] = field(default_factory=list)
    adjusted_minutes: int = 0
    user_id: int | None = None
    user_name: str | None = None


@dataclass
class MemberRecords:
    """Everything the engine needs for one user in the team view."""

    user_id: int
    name: str
    sessions: Sequence[Any]
    breaks: Sequence[Any]
    adjustments: Sequence[Any]


def validate_range(start: date, end: date, max_days: int | None = None) -> int:
    """Return the number of days in ``[start, end]`` or raise."""
    if end < start:
        raise InvalidDateRange()
    days = (end - start).days + 1
    if max_days is not None and days > max_days:
        raise ValidationFailed(f"Date range exceeds the maximum of {max_days} days")
    return days


def calculate_timesheet(
    sessions: Iterable[Any],
    breaks: Iterable[Any],
    adjustments: Iterable[Any],
    start: date,
    end: date,
    *,
    tz_name: str = "UTC",
    max_days: int | None = None,
) -> list[TimesheetEntry]:
    days = validate_range(start, end, max_days)
    tz = get_zone(tz_name)

    entries: dict[date, TimesheetEntry] = {}
    for offset in range(days):
        d = start + timedelta(days=offset)
        entries[d] = TimesheetEntry(date=d)

    # Sessions: earliest clock-in, latest closed clock-out, closed spans only.
    for session in sessions:
        clock_in_at = ensure_utc(session.clock_in_at)
        entry = entries.get(local_date(clock_in_at, tz))
        if entry is None:
            continue
        if entry.clock_in is None or clock_in_at < entry.clock_in:
            entry.clock_in = clock_in_at
        if session.clock_out_at is None:
            continue
        clock_out_at = ensure_utc(session.clock_out_at)
        if entry.clock_out is None or clock_out_at > entry.clock_out:
            entry.clock_out = clock_out_at
        entry.total_minutes += elapsed_minutes(clock_in_at, clock_out_at)

    for segment in breaks:
        if segment.break_end_at is None:
            continue
        entry = entries.get(local_date(segment.break_start_at, tz))
        if entry is not None:
            entry.break_minutes += elapsed_minutes(segment.break_start_at, segment.break_end_at)

    # Adjustments apply in the order given; OVERRIDE is last-write-wins.
    for adjustment in adjustments:
        entry = entries.get(adjustment.effective_date)
        if entry is None:
            continue
        entry.adjustments.append(adjustment)
        kind = AdjustmentType(adjustment.adjustment_type)
        if kind is AdjustmentType.ADD_TIME:
            entry.adjusted_minutes += adjustment.minutes
        elif kind is AdjustmentType.SUBTRACT_TIME:
            entry.adjusted_minutes -= adjustment.minutes
        else:
            entry.adjusted_minutes = adjustment.minutes - (entry.total_minutes - entry.break_minutes)

    for entry in entries.values():
        entry.work_minutes = entry.total_minutes - entry.break_minutes + entry.adjusted_minutes

    return sorted(entries.values(), key=lambda e: e.date)


def calculate_team_timesheet(
    members: Iterable[MemberRecords],
    start: date,
    end: date,
    *,
    tz_name: str = "UTC",
    max_days: int | None = None,
) -> list[TimesheetEntry]:
    """Per-user timesheets over the same range, tagged and sorted by (date, name)."""
    validate_range(start, end, max_days)
    combined: list[TimesheetEntry] = []
    for member in members:
        for entry in calculate_timesheet(
            member.sessions,
            member.breaks,
            member.adjustments,
            start,
            end,
            tz_name=tz_name,
        ):
            entry.user_id = member.user_id
            entry.user_name = member.name
            combined.append(entry)
    combined.sort(key=lambda e: (e.date, e.user_name or ""))
    return combined


def format_minutes(minutes: int) -> str:
    """``-75`` -> ``"-1:15"``."""
    sign = "-" if minutes < 0 else ""
    hours, mins = divmod(abs(minutes), 60)
    return f"{sign}{hours}:{mins:02d}"


# ── Store loaders ───────────────────────────────────────────────────
async def _load_records(
    db: AsyncSession,
    user_ids: Sequence[int],
    start: date,
    end: date,
    team_id: int | None,
    tz_name: str,
) -> tuple[dict[int, list[TimeSession]], dict[int, list[BreakSegment]], dict[int, list[Adjustment]]]:
    tz = get_zone(tz_name)
    range_start, _ = local_day_bounds(start, tz)
    _, range_end = local_day_bounds(end, tz)

    session_query = (
        select(TimeSession)
        .where(
            TimeSession.user_id.in_(user_ids),
            TimeSession.clock_in_at >= range_start,
            TimeSession.clock_in_at < range_end,
        )
        .order_by(TimeSession.clock_in_at)
    )
    adjustment_query = (
        select(Adjustment)
        .where(
            Adjustment.user_id.in_(user_ids),
            Adjustment.effective_date >= start,
            Adjustment.effective_date <= end,
        )
        .order_by(Adjustment.created_at, Adjustment.id)
    )
    if team_id is not None:
        session_query = session_query.where(TimeSession.team_id == team_id)
        adjustment_query = adjustment_query.where(Adjustment.team_id == team_id)

    sessions = list((await db.execute(session_query)).scalars().all())
    owner_by_session = {s.id: s.user_id for s in sessions}

    breaks: list[BreakSegment] = []
    if owner_by_session:
        result = await db.execute(
            select(BreakSegment)
            .where(BreakSegment.session_id.in_(list(owner_by_session)))
            .order_by(BreakSegment.break_start_at)
        )
        breaks = list(result.scalars().all())

    adjustments = list((await db.execute(adjustment_query)).scalars().all())

    by_user_sessions: dict[int, list[TimeSession]] = defaultdict(list)
    by_user_breaks: dict[int, list[BreakSegment]] = defaultdict(list)
    by_user_adjustments: dict[int, list[Adjustment]] = defaultdict(list)
    for s in sessions:
        by_user_sessions[s.user_id].append(s)
    for b in breaks:
        by_user_breaks[owner_by_session[b.session_id]].append(b)
    for a in adjustments:
        by_user_adjustments[a.user_id].append(a)
    return by_user_sessions, by_user_breaks, by_user_adjustments


async def load_user_timesheet(
    db: AsyncSession,
    user_id: int,
    start: date,
    end: date,
    *,
    team_id: int | None = None,
    tz_name: str = "UTC",
    max_days: int | None = None,
) -> list[TimesheetEntry]:
    validate_range(start, end, max_days)
    sessions, breaks, adjustments = await _load_records(db, [user_id], start, end, team_id, tz_name)
    return calculate_timesheet(
        sessions.get(user_id, []),
        breaks.get(user_id, []),
        adjustments.get(user_id, []),
        start,
        end,
        tz_name=tz_name,
    )


async def load_team_timesheet(
    db: AsyncSession,
    team_id: int,
    start: date,
    end: date,
    *,
    tz_name: str = "UTC",
    max_days: int | None = None,
) -> list[TimesheetEntry]:
    validate_range(start, end, max_days)
    result = await db.execute(
        select(User)
        .join(TeamMember, TeamMember.user_id == User.id)
        .where(TeamMember.team_id == team_id)
        .order_by(User.id)
    )
    users = list(result.scalars().all())
    if not users:
        return []

    sessions, breaks, adjustments = await _load_records(
        db, [u.id for u in users], start, end, team_id, tz_name
    )
    members = [
        MemberRecords(
            user_id=u.id,
            name=u.display_name,
            sessions=sessions.get(u.id, []),
            breaks=breaks.get(u.id, []),
            adjustments=adjustments.get(u.id, []),
        )
        for u in users
    ]
    logger.debug("Team %d timesheet over %d members", team_id, len(members))
    return calculate_team_timesheet(members, start, end, tz_name=tz_name)
