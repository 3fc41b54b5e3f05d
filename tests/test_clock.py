"""
Session/break state machine tests against the service layer.

Every call passes an explicit ``now`` so results do not depend on the
wall clock.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from timeclock.core.enums import BreakType, ClockState
from timeclock.core.exceptions import (
    AlreadyClockedIn,
    AlreadyClosed,
    BreakAlreadyActive,
    BreakLimitReached,
    NoActiveBreak,
    NotFoundError,
    NotOwnedError,
    PermissionDenied,
    SameTeam,
    SessionClosed,
)
from timeclock.core.timeutils import day_of_week, ensure_utc
from timeclock.models.schedule import Schedule
from timeclock.models.time_session import BreakSegment, TimeSession
from timeclock.services import clock

MONDAY = date(2024, 1, 15)
NOW = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def _later(minutes: int) -> datetime:
    return NOW + timedelta(minutes=minutes)


async def _schedule(db, user_id, team_id, start="09:00", end="17:00", active=True):
    db.add(
        Schedule(
            user_id=user_id,
            team_id=team_id,
            day_of_week=day_of_week(MONDAY),
            start_time=start,
            end_time=end,
            is_active=active,
        )
    )
    await db.commit()


# ── Clock in / out ──────────────────────────────────────────────────
class TestClockIn:
    async def test_opens_session(self, db_session, seed):
        result = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        assert result.status == clock.CLOCKED_IN
        assert result.is_late is False
        assert result.session.clock_out_at is None
        assert ensure_utc(result.session.clock_in_at) == NOW

        state = await clock.get_clock_state(db_session, seed.alice.id)
        assert state.state is ClockState.IN
        assert state.session.id == result.session.id

    async def test_second_clock_in_rejected(self, db_session, seed):
        await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        with pytest.raises(AlreadyClockedIn):
            await clock.clock_in(db_session, seed.alice.id, seed.other_team.id, now=_later(5))

    async def test_non_member_rejected(self, db_session, seed):
        with pytest.raises(PermissionDenied):
            await clock.clock_in(db_session, seed.bob.id, seed.other_team.id, now=NOW)

    async def test_store_rejects_second_open_session(self, db_session, seed):
        db_session.add(TimeSession(user_id=seed.alice.id, team_id=seed.team.id, clock_in_at=NOW))
        await db_session.commit()
        db_session.add(TimeSession(user_id=seed.alice.id, team_id=seed.other_team.id, clock_in_at=_later(1)))
        with pytest.raises(IntegrityError):
            await db_session.commit()
        await db_session.rollback()


class TestLateClockIn:
    async def test_on_time_is_not_late(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.team.id)
        result = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=_later(-5))
        assert result.status == clock.CLOCKED_IN
        assert result.is_late is False

    async def test_late_without_note_writes_nothing(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.team.id)
        result = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=_later(20))
        assert result.status == clock.PENDING_LATE_CONFIRMATION
        assert result.is_late is True
        assert result.session is None
        assert result.scheduled_start == NOW
        assert await clock.get_open_session(db_session, seed.alice.id) is None

    async def test_blank_note_still_pending(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.team.id)
        result = await clock.clock_in(
            db_session, seed.alice.id, seed.team.id, late_note="   ", now=_later(20)
        )
        assert result.status == clock.PENDING_LATE_CONFIRMATION

    async def test_late_with_note_opens_session(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.team.id)
        result = await clock.clock_in(
            db_session, seed.alice.id, seed.team.id, late_note="Train delayed", now=_later(20)
        )
        assert result.status == clock.CLOCKED_IN
        assert result.is_late is True
        assert result.session.late_note == "Train delayed"

    async def test_schedule_of_other_team_ignored(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.other_team.id)
        result = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=_later(120))
        assert result.status == clock.CLOCKED_IN
        assert result.is_late is False

    async def test_inactive_schedule_ignored(self, db_session, seed):
        await _schedule(db_session, seed.alice.id, seed.team.id, active=False)
        result = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=_later(120))
        assert result.is_late is False

    async def test_duplicate_active_schedule_rejected_by_store(self, db_session, seed):
        alice_id, team_id = seed.alice.id, seed.team.id
        await _schedule(db_session, alice_id, team_id)
        with pytest.raises(IntegrityError):
            await _schedule(db_session, alice_id, team_id, start="10:00")
        await db_session.rollback()
        # An inactive duplicate is allowed alongside the active row.
        await _schedule(db_session, alice_id, team_id, start="10:00", active=False)
        late = await clock.check_late(db_session, alice_id, team_id, _later(30), "UTC")
        assert late.is_late is True
        assert late.scheduled_start == NOW


class TestClockOut:
    async def test_closes_session(self, db_session, seed):
        opened = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        closed = await clock.clock_out(db_session, seed.alice.id, opened.session.id, now=_later(480))
        assert ensure_utc(closed.clock_out_at) == _later(480)
        assert (await clock.get_clock_state(db_session, seed.alice.id)).state is ClockState.OUT

    async def test_twice_is_already_closed(self, db_session, seed):
        opened = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        await clock.clock_out(db_session, seed.alice.id, opened.session.id, now=_later(60))
        with pytest.raises(AlreadyClosed):
            await clock.clock_out(db_session, seed.alice.id, opened.session.id, now=_later(61))

    async def test_other_users_session(self, db_session, seed):
        opened = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        with pytest.raises(NotOwnedError):
            await clock.clock_out(db_session, seed.bob.id, opened.session.id, now=_later(60))

    async def test_unknown_session(self, db_session, seed):
        with pytest.raises(NotFoundError):
            await clock.clock_out(db_session, seed.alice.id, 9999, now=NOW)

    async def test_ends_open_break(self, db_session, seed):
        opened = await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)
        segment = await clock.start_break(
            db_session, seed.alice.id, opened.session.id, BreakType.LUNCH, now=_later(180)
        )
        await clock.clock_out(db_session, seed.alice.id, opened.session.id, now=_later(200))
        await db_session.refresh(segment)
        assert ensure_utc(segment.break_end_at) == _later(200)


# ── Breaks ──────────────────────────────────────────────────────────
class TestBreaks:
    async def _open(self, db, seed):
        return (await clock.clock_in(db, seed.alice.id, seed.team.id, now=NOW)).session

    async def _take(self, db, seed, session, break_type, start, length=10):
        segment = await clock.start_break(db, seed.alice.id, session.id, break_type, now=_later(start))
        return await clock.end_break(db, seed.alice.id, segment.id, now=_later(start + length))

    async def test_start_and_end(self, db_session, seed):
        session = await self._open(db_session, seed)
        segment = await clock.start_break(
            db_session, seed.alice.id, session.id, BreakType.BREAK, now=_later(60)
        )
        state = await clock.get_clock_state(db_session, seed.alice.id)
        assert state.state is ClockState.ON_BREAK
        assert state.open_break.id == segment.id

        ended = await clock.end_break(db_session, seed.alice.id, segment.id, now=_later(75))
        assert ensure_utc(ended.break_end_at) == _later(75)
        assert (await clock.get_clock_state(db_session, seed.alice.id)).state is ClockState.IN

    async def test_third_break_refused(self, db_session, seed):
        session = await self._open(db_session, seed)
        await self._take(db_session, seed, session, BreakType.BREAK, 60)
        await self._take(db_session, seed, session, BreakType.BREAK, 120)
        with pytest.raises(BreakLimitReached) as exc:
            await clock.start_break(db_session, seed.alice.id, session.id, BreakType.BREAK, now=_later(180))
        assert "limit: 2 BREAK per day" in exc.value.detail

    async def test_second_lunch_refused(self, db_session, seed):
        session = await self._open(db_session, seed)
        await self._take(db_session, seed, session, BreakType.LUNCH, 180, length=30)
        with pytest.raises(BreakLimitReached):
            await clock.start_break(db_session, seed.alice.id, session.id, BreakType.LUNCH, now=_later(240))
        # Lunch does not use up the short-break allowance.
        await self._take(db_session, seed, session, BreakType.BREAK, 250)

    async def test_limit_spans_sessions_on_same_day(self, db_session, seed):
        first = await self._open(db_session, seed)
        await self._take(db_session, seed, first, BreakType.LUNCH, 60)
        second = await clock.switch_team(db_session, seed.alice.id, first.id, seed.other_team.id, now=_later(120))
        with pytest.raises(BreakLimitReached):
            await clock.start_break(db_session, seed.alice.id, second.id, BreakType.LUNCH, now=_later(180))

    async def test_limit_resets_next_day(self, db_session, seed):
        session = await self._open(db_session, seed)
        await self._take(db_session, seed, session, BreakType.LUNCH, 60)
        segment = await clock.start_break(
            db_session, seed.alice.id, session.id, BreakType.LUNCH, now=_later(24 * 60)
        )
        assert segment.break_type == BreakType.LUNCH.value

    async def test_open_break_blocks_but_does_not_count(self, db_session, seed):
        session = await self._open(db_session, seed)
        await self._take(db_session, seed, session, BreakType.BREAK, 60)
        segment = await clock.start_break(
            db_session, seed.alice.id, session.id, BreakType.BREAK, now=_later(120)
        )
        with pytest.raises(BreakAlreadyActive):
            await clock.start_break(db_session, seed.alice.id, session.id, BreakType.LUNCH, now=_later(125))
        count = await db_session.scalar(
            select(func.count(BreakSegment.id)).where(BreakSegment.session_id == session.id)
        )
        assert count == 2
        assert segment.break_end_at is None

    async def test_break_on_closed_session(self, db_session, seed):
        session = await self._open(db_session, seed)
        await clock.clock_out(db_session, seed.alice.id, session.id, now=_later(60))
        with pytest.raises(SessionClosed):
            await clock.start_break(db_session, seed.alice.id, session.id, BreakType.BREAK, now=_later(90))

    async def test_break_on_other_users_session(self, db_session, seed):
        session = await self._open(db_session, seed)
        with pytest.raises(NotOwnedError):
            await clock.start_break(db_session, seed.bob.id, session.id, BreakType.BREAK, now=_later(60))

    async def test_end_break_errors(self, db_session, seed):
        session = await self._open(db_session, seed)
        ended = await self._take(db_session, seed, session, BreakType.BREAK, 60)
        with pytest.raises(NoActiveBreak):
            await clock.end_break(db_session, seed.alice.id, ended.id, now=_later(90))
        with pytest.raises(NotOwnedError):
            await clock.end_break(db_session, seed.bob.id, ended.id, now=_later(90))
        with pytest.raises(NotFoundError):
            await clock.end_break(db_session, seed.alice.id, 9999, now=_later(90))

# ── Team switch ─────────────────────────────────────────────────────
class TestSwitchTeam:
    async def test_closes_and_reopens_at_same_instant(self, db_session, seed):
        first = (await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)).session
        second = await clock.switch_team(
            db_session, seed.alice.id, first.id, seed.other_team.id, now=_later(240)
        )
        await db_session.refresh(first)
        assert ensure_utc(first.clock_out_at) == _later(240)
        assert ensure_utc(second.clock_in_at) == _later(240)
        assert second.team_id == seed.other_team.id
        assert (await clock.get_open_session(db_session, seed.alice.id)).id == second.id

    async def test_same_team_rejected(self, db_session, seed):
        first = (await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)).session
        with pytest.raises(SameTeam):
            await clock.switch_team(db_session, seed.alice.id, first.id, seed.team.id, now=_later(5))

    async def test_non_member_target_rejected(self, db_session, seed):
        first = (await clock.clock_in(db_session, seed.bob.id, seed.team.id, now=NOW)).session
        with pytest.raises(PermissionDenied):
            await clock.switch_team(db_session, seed.bob.id, first.id, seed.other_team.id, now=_later(5))
        assert (await clock.get_open_session(db_session, seed.bob.id)).id == first.id

    async def test_closed_session_rejected(self, db_session, seed):
        first = (await clock.clock_in(db_session, seed.alice.id, seed.team.id, now=NOW)).session
        await clock.clock_out(db_session, seed.alice.id, first.id, now=_later(5))
        with pytest.raises(SessionClosed):
            await clock.switch_team(db_session, seed.alice.id, first.id, seed.other_team.id, now=_later(6))
