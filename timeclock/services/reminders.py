"""
Reminder scheduler.

One tick walks every active user.  For each user it resolves quiet hours
(user preference, else organisation default, else 22:00-06:00, wrapping
past midnight when start > end) and, outside quiet hours, evaluates four
independent reminders:

* ``CLOCK_IN_REMINDER``      no open session, now within
  ``[scheduled_start, scheduled_start + window]``
* ``CLOCK_OUT_REMINDER``     open session, now within
  ``[end - before, end]`` or ``[end, end + after]``
* ``BREAK_RETURN_REMINDER``  open break running >= threshold minutes
* ``MISSED_PUNCH_REMINDER``  open session running >= threshold hours

Each qualifying reminder passes a per-type cooldown lookup against the
``notification_events`` ledger, is sent, and is recorded (SENT or FAILED)
before the next check runs.  In dry-run mode everything is evaluated and
logged but nothing is sent or written.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timeclock.core import constants
from timeclock.core.config import settings
from timeclock.core.enums import NotificationStatus, NotificationType
from timeclock.core.exceptions import DependencyError
from timeclock.core.timeutils import (
    at_local_time,
    day_of_week,
    elapsed_minutes,
    ensure_utc,
    get_zone,
    parse_hhmm,
    utcnow,
)
from timeclock.models.notification import NotificationEvent, NotificationPreference
from timeclock.models.schedule import Schedule
from timeclock.models.time_session import BreakSegment, TimeSession
from timeclock.models.user import User
from timeclock.services.batch import run_bounded
from timeclock.services.notifier import Notifier, NotifierResult
from timeclock.services.policy import OrgPolicy

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
DRY_RUN = "dry_run"
SKIPPED = "skipped"

# Per event loop, one lock per user id.
_user_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[int, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _user_lock(user_id: int) -> asyncio.Lock:
    locks = _user_locks.setdefault(asyncio.get_running_loop(), {})
    return locks.setdefault(user_id, asyncio.Lock())


# ── Pure rules ──────────────────────────────────────────────────────
def is_in_quiet_hours(now_local: time, start: str, end: str) -> bool:
    """Inclusive window test with midnight wraparound when ``start > end``."""
    start_t, end_t = parse_hhmm(start), parse_hhmm(end)
    now_t = now_local.replace(tzinfo=None)
    if start_t <= end_t:
        return start_t <= now_t <= end_t
    return now_t >= start_t or now_t <= end_t


def effective_quiet_hours(prefs: "ReminderPreferences", policy: OrgPolicy) -> tuple[str, str]:
    start = prefs.quiet_hours_start or policy.quiet_hours_start or constants.DEFAULT_QUIET_HOURS_START
    end = prefs.quiet_hours_end or policy.quiet_hours_end or constants.DEFAULT_QUIET_HOURS_END
    return start, end


def in_clock_in_window(now: datetime, scheduled_start: datetime, window_minutes: int) -> bool:
    return scheduled_start <= now <= scheduled_start + timedelta(minutes=window_minutes)


def in_clock_out_window(
    now: datetime, scheduled_end: datetime, before_minutes: int, after_minutes: int
) -> bool:
    before = scheduled_end - timedelta(minutes=before_minutes)
    after = scheduled_end + timedelta(minutes=after_minutes)
    return (before <= now <= scheduled_end) or (scheduled_end <= now <= after)


@dataclass
class ReminderPreferences:
    clock_in_reminders_enabled: bool = True
    clock_out_reminders_enabled: bool = True
    break_return_reminders_enabled: bool = True
    missed_punch_reminders_enabled: bool = True
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    timezone: str | None = None

    @classmethod
    def from_model(cls, row: NotificationPreference) -> "ReminderPreferences":
        return cls(
            clock_in_reminders_enabled=row.clock_in_reminders_enabled is not False,
            clock_out_reminders_enabled=row.clock_out_reminders_enabled is not False,
            break_return_reminders_enabled=row.break_return_reminders_enabled is not False,
            missed_punch_reminders_enabled=row.missed_punch_reminders_enabled is not False,
            quiet_hours_start=row.quiet_hours_start,
            quiet_hours_end=row.quiet_hours_end,
            timezone=row.timezone,
        )


@dataclass
class ActiveSession:
    id: int
    team_id: int
    clock_in_at: datetime


@dataclass
class ActiveBreak:
    id: int
    break_start_at: datetime


@dataclass
class ScheduleWindow:
    team_id: int
    start_time: str
    end_time: str


@dataclass
class UserSnapshot:
    """Live state of one user, read once per tick."""

    user_id: int
    email: str
    name: str
    prefs: ReminderPreferences
    session: ActiveSession | None = None
    open_break: ActiveBreak | None = None
    schedules: list[ScheduleWindow] = field(default_factory=list)


@dataclass
class PendingReminder:
    notification_type: NotificationType
    payload: dict[str, Any]
    context: dict[str, Any]


def evaluate_reminders(
    snapshot: UserSnapshot, policy: OrgPolicy, now: datetime
) -> list[PendingReminder]:
    """Reminders whose preference, state and time window all qualify.

    Cooldown is not applied here; it needs the ledger.
    """
    now = ensure_utc(now)
    tz = get_zone(snapshot.prefs.timezone or policy.timezone)
    today = now.astimezone(tz).date()
    base_context = {"user_name": snapshot.name, "dashboard_url": f"{policy.app_base_url}/tracking"}
    pending: list[PendingReminder] = []
    session = snapshot.session

    if snapshot.prefs.clock_in_reminders_enabled and session is None:
        for sched in snapshot.schedules:
            scheduled_start = at_local_time(today, sched.start_time, tz)
            if in_clock_in_window(now, scheduled_start, policy.clock_in_reminder_window_minutes):
                pending.append(
                    PendingReminder(
                        NotificationType.CLOCK_IN_REMINDER,
                        payload={
                            "scheduled_start": scheduled_start.isoformat(),
                            "current_time": now.isoformat(),
                            "team_id": sched.team_id,
                        },
                        context=dict(base_context),
                    )
                )
                break

    if snapshot.prefs.clock_out_reminders_enabled and session is not None:
        for sched in snapshot.schedules:
            if sched.team_id != session.team_id:
                continue
            scheduled_end = at_local_time(today, sched.end_time, tz)
            if in_clock_out_window(
                now,
                scheduled_end,
                policy.clock_out_reminder_before_minutes,
                policy.clock_out_reminder_after_minutes,
            ):
                pending.append(
                    PendingReminder(
                        NotificationType.CLOCK_OUT_REMINDER,
                        payload={
                            "scheduled_end": scheduled_end.isoformat(),
                            "current_time": now.isoformat(),
                            "session_id": session.id,
                        },
                        context={
                            **base_context,
                            "clock_in_at": session.clock_in_at.isoformat(),
                            "duration_minutes": elapsed_minutes(session.clock_in_at, now),
                        },
                    )
                )
            break

    if snapshot.prefs.break_return_reminders_enabled and snapshot.open_break is not None:
        on_break = elapsed_minutes(snapshot.open_break.break_start_at, now)
        if on_break >= policy.break_return_threshold_minutes:
            pending.append(
                PendingReminder(
                    NotificationType.BREAK_RETURN_REMINDER,
                    payload={"break_id": snapshot.open_break.id, "break_duration_minutes": on_break},
                    context={
                        **base_context,
                        "break_start_at": snapshot.open_break.break_start_at.isoformat(),
                        "break_duration_minutes": on_break,
                    },
                )
            )

    if snapshot.prefs.missed_punch_reminders_enabled and session is not None:
        running = elapsed_minutes(session.clock_in_at, now)
        if running >= policy.missed_punch_threshold_hours * 60:
            pending.append(
                PendingReminder(
                    NotificationType.MISSED_PUNCH_REMINDER,
                    payload={"session_id": session.id, "session_duration_minutes": running},
                    context={
                        **base_context,
                        "clock_in_at": session.clock_in_at.isoformat(),
                        "duration_minutes": running,
                    },
                )
            )

    return pending


# ── Run results ─────────────────────────────────────────────────────
@dataclass
class ReminderOutcome:
    user_id: int
    email: str
    status: str
    notification_type: str | None = None
    reason: str | None = None


@dataclass
class ReminderRunResult:
    dry_run: bool
    outcomes: list[ReminderOutcome] = field(default_factory=list)

    def _with(self, *statuses: str) -> list[ReminderOutcome]:
        return [o for o in self.outcomes if o.status in statuses]

    @property
    def processed(self) -> list[ReminderOutcome]:
        """Reminders that qualified and cleared the cooldown."""
        return self._with(SENT, FAILED, DRY_RUN)

    @property
    def sent(self) -> list[ReminderOutcome]:
        return self._with(SENT, DRY_RUN)

    @property
    def failed(self) -> list[ReminderOutcome]:
        return self._with(FAILED)

    @property
    def skipped(self) -> list[ReminderOutcome]:
        return self._with(SKIPPED)


# ── Scheduler ───────────────────────────────────────────────────────
@dataclass(frozen=True)
class _UserRow:
    id: int
    email: str
    name: str


class ReminderScheduler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        policy: OrgPolicy,
        *,
        max_workers: int | None = None,
        batch_size: int | None = None,
        notifier_timeout: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.policy = policy
        self.max_workers = max_workers or settings.BATCH_MAX_WORKERS
        self.batch_size = batch_size or settings.REMINDER_BATCH_SIZE
        self.notifier_timeout = notifier_timeout or settings.NOTIFIER_TIMEOUT_SECONDS

    async def run(self, *, now: datetime | None = None, dry_run: bool = False) -> ReminderRunResult:
        now = ensure_utc(now or utcnow())
        run = ReminderRunResult(dry_run=dry_run)
        after_id = 0
        while True:
            page = await self._user_page(after_id)
            if not page:
                break
            after_id = page[-1].id

            async def _worker(user: _UserRow) -> list[ReminderOutcome]:
                return await self._process_user(user, now, dry_run)

            def _on_error(user: _UserRow, exc: BaseException) -> list[ReminderOutcome]:
                return [ReminderOutcome(user.id, user.email, FAILED, reason=str(exc) or type(exc).__name__)]

            for outcomes in await run_bounded(page, _worker, _on_error, max_workers=self.max_workers):
                run.outcomes.extend(outcomes)
            if len(page) < self.batch_size:
                break

        logger.info(
            "Reminder run%s: %d processed, %d sent, %d failed, %d skipped",
            " (dry run)" if dry_run else "",
            len(run.processed),
            len(run.sent),
            len(run.failed),
            len(run.skipped),
        )
        return run

    async def _user_page(self, after_id: int) -> list[_UserRow]:
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(User)
                    .where(User.is_active.is_(True), User.id > after_id)
                    .order_by(User.id)
                    .limit(self.batch_size)
                )
                return [_UserRow(u.id, u.email, u.display_name) for u in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.error("Reminder run could not list users: %s", exc, exc_info=True)
            raise DependencyError("Clock store unavailable") from exc

    async def _load_preferences(self, db: AsyncSession, user_id: int) -> NotificationPreference | None:
        result = await db.execute(
            select(NotificationPreference).where(NotificationPreference.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _preferences(self, db: AsyncSession, user: _UserRow, dry_run: bool) -> ReminderPreferences:
        """Stored preferences, creating the defaults row on a real run.

        Defaults carry no timezone, so the user follows the organisation zone
        even after it changes.
        """
        row = await self._load_preferences(db, user.id)
        if row is not None:
            return ReminderPreferences.from_model(row)
        if dry_run:
            return ReminderPreferences()

        db.add(NotificationPreference(user_id=user.id))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            row = await self._load_preferences(db, user.id)
            if row is None:
                raise
            logger.info("Notification preferences for user %d created concurrently", user.id)
            return ReminderPreferences.from_model(row)
        logger.info("Created default notification preferences for user %d", user.id)
        return ReminderPreferences()

    async def _lock_preferences(self, db: AsyncSession, user_id: int) -> None:
        # Row lock held until the event commit; overlapping runs queue here.
        await db.execute(
            select(NotificationPreference.id)
            .where(NotificationPreference.user_id == user_id)
            .with_for_update()
        )

    async def _snapshot(self, db: AsyncSession, user: _UserRow, prefs: ReminderPreferences, now: datetime) -> UserSnapshot:
        snapshot = UserSnapshot(user_id=user.id, email=user.email, name=user.name, prefs=prefs)

        result = await db.execute(
            select(TimeSession).where(TimeSession.user_id == user.id, TimeSession.clock_out_at.is_(None))
        )
        session = result.scalar_one_or_none()
        if session is not None:
            snapshot.session = ActiveSession(session.id, session.team_id, ensure_utc(session.clock_in_at))
            result = await db.execute(
                select(BreakSegment).where(
                    BreakSegment.session_id == session.id, BreakSegment.break_end_at.is_(None)
                )
            )
            open_break = result.scalar_one_or_none()
            if open_break is not None:
                snapshot.open_break = ActiveBreak(open_break.id, ensure_utc(open_break.break_start_at))

        tz = get_zone(prefs.timezone or self.policy.timezone)
        result = await db.execute(
            select(Schedule)
            .where(
                Schedule.user_id == user.id,
                Schedule.day_of_week == day_of_week(now.astimezone(tz).date()),
                Schedule.is_active.is_(True),
            )
            .order_by(Schedule.start_time, Schedule.team_id)
        )
        snapshot.schedules = [
            ScheduleWindow(s.team_id, s.start_time, s.end_time) for s in result.scalars().all()
        ]
        return snapshot

    async def _in_cooldown(self, db: AsyncSession, user_id: int, kind: NotificationType, now: datetime) -> bool:
        cutoff = now - timedelta(minutes=self.policy.reminder_cooldown_minutes)
        result = await db.execute(
            select(NotificationEvent.id)
            .where(
                NotificationEvent.user_id == user_id,
                NotificationEvent.notification_type == kind.value,
                NotificationEvent.created_at >= cutoff,
            )
            .limit(1)
        )
        return result.first() is not None

    async def _deliver(self, email: str, reminder: PendingReminder) -> NotifierResult:
        try:
            return await asyncio.wait_for(
                self.notifier.send(email, reminder.notification_type.value, reminder.context),
                timeout=self.notifier_timeout,
            )
        except asyncio.TimeoutError:
            return NotifierResult(success=False, error=f"Notifier timed out after {self.notifier_timeout}s")
        except Exception as exc:
            logger.warning("Notifier raised for %s: %s", email, exc, exc_info=True)
            return NotifierResult(success=False, error=str(exc) or type(exc).__name__)

    async def _process_user(self, user: _UserRow, now: datetime, dry_run: bool) -> list[ReminderOutcome]:
        """Evaluate, send and record one user's reminders.

        Overlapping runs take the user's lock (in process) and preference row
        lock (in the store) before the cooldown lookup, so the later run sees
        the earlier run's event and skips.
        """
        async with _user_lock(user.id):
            return await self._process_user_locked(user, now, dry_run)

    async def _process_user_locked(self, user: _UserRow, now: datetime, dry_run: bool) -> list[ReminderOutcome]:
        outcomes: list[ReminderOutcome] = []
        async with self.session_factory() as db:
            prefs = await self._preferences(db, user, dry_run)
            quiet_start, quiet_end = effective_quiet_hours(prefs, self.policy)
            local_now = now.astimezone(get_zone(prefs.timezone or self.policy.timezone))
            if is_in_quiet_hours(local_now.time(), quiet_start, quiet_end):
                logger.debug("User %d in quiet hours (%s-%s)", user.id, quiet_start, quiet_end)
                return [ReminderOutcome(user.id, user.email, SKIPPED, reason="quiet hours")]

            snapshot = await self._snapshot(db, user, prefs, now)
            for reminder in evaluate_reminders(snapshot, self.policy, now):
                kind = reminder.notification_type
                if not dry_run:
                    await self._lock_preferences(db, user.id)
                if await self._in_cooldown(db, user.id, kind, now):
                    outcomes.append(ReminderOutcome(user.id, user.email, SKIPPED, kind.value, "cooldown"))
                    continue

                if dry_run:
                    logger.info("%s for %s (dry run)", kind.value, user.email)
                    outcomes.append(ReminderOutcome(user.id, user.email, DRY_RUN, kind.value))
                    continue

                result = await self._deliver(user.email, reminder)
                status = NotificationStatus.SENT if result.success else NotificationStatus.FAILED
                db.add(
                    NotificationEvent(
                        user_id=user.id,
                        notification_type=kind.value,
                        status=status.value,
                        payload=reminder.payload,
                        error_message=result.error,
                        sent_at=datetime.now(timezone.utc) if result.success else None,
                        created_at=now,
                    )
                )
                await db.commit()

                if result.success:
                    logger.info("%s sent to %s", kind.value, user.email)
                    outcomes.append(ReminderOutcome(user.id, user.email, SENT, kind.value))
                else:
                    logger.warning("%s to %s failed: %s", kind.value, user.email, result.error)
                    outcomes.append(ReminderOutcome(user.id, user.email, FAILED, kind.value, result.error))
        return outcomes
