"""
Missed-punch detector.

Scans open sessions older than the organisation threshold (oldest first,
bounded batch) and inserts one ``MissedPunchFlag`` per session.  Sessions
that already carry an unresolved flag are left out of the batch, so stale
flags never crowd out newer overdue sessions.  The per-session recheck and
the insert share one transaction and the partial unique index rejects a
concurrent duplicate.  Flags are never resolved here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timeclock.core.config import settings
from timeclock.core.exceptions import DependencyError
from timeclock.core.timeutils import at_local_time, day_of_week, ensure_utc, get_zone, local_date, utcnow
from timeclock.models.missed_punch import MissedPunchFlag
from timeclock.models.schedule import Schedule
from timeclock.models.time_session import TimeSession
from timeclock.services.batch import run_bounded
from timeclock.services.policy import OrgPolicy

logger = logging.getLogger(__name__)

FLAGGED = "flagged"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class Candidate:
    session_id: int
    user_id: int
    team_id: int
    clock_in_at: datetime


@dataclass
class MissedPunchOutcome:
    session_id: int
    user_id: int
    status: str
    reason: str


@dataclass
class MissedPunchRunResult:
    threshold_hours: int
    outcomes: list[MissedPunchOutcome] = field(default_factory=list)

    def _with(self, status: str) -> list[MissedPunchOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def flagged(self) -> list[MissedPunchOutcome]:
        return self._with(FLAGGED)

    @property
    def skipped(self) -> list[MissedPunchOutcome]:
        return self._with(SKIPPED)

    @property
    def failed(self) -> list[MissedPunchOutcome]:
        return self._with(FAILED)


def flag_reason(
    candidate: Candidate,
    policy: OrgPolicy,
    scheduled_end_time: str | None,
    now: datetime,
) -> str:
    """Cite the scheduled end when it has passed, else the raw threshold."""
    if scheduled_end_time:
        tz = get_zone(policy.timezone)
        day = local_date(candidate.clock_in_at, tz)
        if now > at_local_time(day, scheduled_end_time, tz):
            return f"Session past scheduled end time ({scheduled_end_time})"
    return f"Session running longer than {policy.missed_punch_threshold_hours} hours"


async def find_candidates(
    db: AsyncSession, policy: OrgPolicy, now: datetime, batch_size: int
) -> list[Candidate]:
    cutoff = now - timedelta(hours=policy.missed_punch_threshold_hours)
    result = await db.execute(
        select(TimeSession.id, TimeSession.user_id, TimeSession.team_id, TimeSession.clock_in_at)
        .where(
            TimeSession.clock_out_at.is_(None),
            TimeSession.clock_in_at < cutoff,
            ~exists().where(
                MissedPunchFlag.session_id == TimeSession.id,
                MissedPunchFlag.resolved_at.is_(None),
            ),
        )
        .order_by(TimeSession.clock_in_at.asc(), TimeSession.id.asc())
        .limit(batch_size)
    )
    return [
        Candidate(session_id=r.id, user_id=r.user_id, team_id=r.team_id, clock_in_at=ensure_utc(r.clock_in_at))
        for r in result.all()
    ]


async def _scheduled_end_time(db: AsyncSession, candidate: Candidate, policy: OrgPolicy) -> str | None:
    day = local_date(candidate.clock_in_at, get_zone(policy.timezone))
    try:
        result = await db.execute(
            select(Schedule.end_time).where(
                Schedule.user_id == candidate.user_id,
                Schedule.team_id == candidate.team_id,
                Schedule.day_of_week == day_of_week(day),
                Schedule.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()
    except MultipleResultsFound:
        logger.warning(
            "Ambiguous active schedules for user %d team %d; citing threshold",
            candidate.user_id,
            candidate.team_id,
        )
        return None


async def _flag_one(
    session_factory: async_sessionmaker[AsyncSession],
    candidate: Candidate,
    policy: OrgPolicy,
    now: datetime,
) -> MissedPunchOutcome:
    async with session_factory() as db:
        still_open = await db.execute(
            select(TimeSession.id).where(
                TimeSession.id == candidate.session_id, TimeSession.clock_out_at.is_(None)
            )
        )
        if still_open.first() is None:
            return MissedPunchOutcome(candidate.session_id, candidate.user_id, SKIPPED, "Session no longer open")

        existing = await db.execute(
            select(MissedPunchFlag.id).where(
                MissedPunchFlag.session_id == candidate.session_id,
                MissedPunchFlag.resolved_at.is_(None),
            )
        )
        if existing.first() is not None:
            return MissedPunchOutcome(candidate.session_id, candidate.user_id, SKIPPED, "Already flagged")

        reason = flag_reason(candidate, policy, await _scheduled_end_time(db, candidate, policy), now)
        db.add(
            MissedPunchFlag(
                session_id=candidate.session_id,
                user_id=candidate.user_id,
                team_id=candidate.team_id,
                flag_reason=reason,
                created_at=now,
            )
        )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            return MissedPunchOutcome(candidate.session_id, candidate.user_id, SKIPPED, "Already flagged")

    logger.info("Flagged session %d (user %d): %s", candidate.session_id, candidate.user_id, reason)
    return MissedPunchOutcome(candidate.session_id, candidate.user_id, FLAGGED, reason)


async def run_missed_punch_detector(
    session_factory: async_sessionmaker[AsyncSession],
    policy: OrgPolicy,
    *,
    now: datetime | None = None,
    batch_size: int | None = None,
    max_workers: int | None = None,
) -> MissedPunchRunResult:
    """Flag long-running open sessions once each; per-session failures are isolated."""
    now = ensure_utc(now or utcnow())
    batch_size = batch_size or settings.MISSED_PUNCH_BATCH_SIZE
    run = MissedPunchRunResult(threshold_hours=policy.missed_punch_threshold_hours)

    try:
        async with session_factory() as db:
            candidates = await find_candidates(db, policy, now, batch_size)
    except SQLAlchemyError as exc:
        logger.error("Missed-punch scan could not read open sessions: %s", exc, exc_info=True)
        raise DependencyError("Clock store unavailable") from exc

    if not candidates:
        logger.info("Missed-punch scan: no open sessions past %dh", policy.missed_punch_threshold_hours)
        return run

    async def _worker(candidate: Candidate) -> MissedPunchOutcome:
        return await _flag_one(session_factory, candidate, policy, now)

    def _on_error(candidate: Candidate, exc: BaseException) -> MissedPunchOutcome:
        return MissedPunchOutcome(candidate.session_id, candidate.user_id, FAILED, str(exc) or type(exc).__name__)

    run.outcomes = await run_bounded(
        candidates,
        _worker,
        _on_error,
        max_workers=max_workers or settings.BATCH_MAX_WORKERS,
    )
    logger.info(
        "Missed-punch scan: %d candidates, %d flagged, %d skipped, %d failed",
        len(candidates),
        len(run.flagged),
        len(run.skipped),
        len(run.failed),
    )
    return run
