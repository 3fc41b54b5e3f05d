"""
Reminder window rules and the per-user evaluation, without a database.
"""

from datetime import datetime, time, timedelta, timezone

import pytest

from timeclock.core.enums import NotificationType
from timeclock.services.policy import OrgPolicy
from timeclock.services.reminders import (
    ActiveBreak,
    ActiveSession,
    ReminderPreferences,
    ScheduleWindow,
    UserSnapshot,
    effective_quiet_hours,
    evaluate_reminders,
    in_clock_in_window,
    in_clock_out_window,
    is_in_quiet_hours,
)

POLICY = OrgPolicy()


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 15, hour, minute, tzinfo=timezone.utc)


def _types(pending) -> list[NotificationType]:
    return [p.notification_type for p in pending]


# ── Quiet hours ─────────────────────────────────────────────────────
@pytest.mark.parametrize(
    "now,expected",
    [
        (time(23, 30), True),
        (time(5, 30), True),
        (time(22, 0), True),
        (time(6, 0), True),
        (time(12, 0), False),
        (time(21, 59), False),
    ],
)
def test_quiet_hours_wrap_past_midnight(now, expected):
    assert is_in_quiet_hours(now, "22:00", "06:00") is expected


def test_quiet_hours_same_day_window():
    assert is_in_quiet_hours(time(12, 30), "12:00", "13:00")
    assert not is_in_quiet_hours(time(13, 1), "12:00", "13:00")


def test_user_quiet_hours_take_precedence():
    prefs = ReminderPreferences(quiet_hours_start="20:00", quiet_hours_end="07:00")
    assert effective_quiet_hours(prefs, POLICY) == ("20:00", "07:00")
    assert effective_quiet_hours(ReminderPreferences(), POLICY) == ("22:00", "06:00")


# ── Windows ─────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    "now,expected",
    [
        (_utc(16, 50), True),
        (_utc(17, 0), True),
        (_utc(17, 25), True),
        (_utc(16, 0), False),
        (_utc(17, 35), False),
    ],
)
def test_clock_out_window(now, expected):
    assert in_clock_out_window(now, _utc(17), before_minutes=15, after_minutes=30) is expected


@pytest.mark.parametrize(
    "now,expected",
    [(_utc(9, 0), True), (_utc(9, 10), True), (_utc(8, 55), False), (_utc(9, 31), False)],
)
def test_clock_in_window(now, expected):
    assert in_clock_in_window(now, _utc(9), window_minutes=30) is expected


# ── Evaluation ──────────────────────────────────────────────────────
def _snapshot(**kwargs) -> UserSnapshot:
    kwargs.setdefault("prefs", ReminderPreferences())
    return UserSnapshot(user_id=1, email="alice@example.com", name="Alice", **kwargs)


NINE_TO_FIVE = [ScheduleWindow(team_id=1, start_time="09:00", end_time="17:00")]


def test_clock_in_reminder_when_not_clocked_in():
    pending = evaluate_reminders(_snapshot(schedules=NINE_TO_FIVE), POLICY, _utc(9, 10))
    assert _types(pending) == [NotificationType.CLOCK_IN_REMINDER]
    assert pending[0].payload["team_id"] == 1
    assert pending[0].context["user_name"] == "Alice"


def test_dashboard_link_uses_policy_base_url():
    policy = OrgPolicy(app_base_url="https://clock.example.com")
    pending = evaluate_reminders(_snapshot(schedules=NINE_TO_FIVE), policy, _utc(9, 10))
    assert pending[0].context["dashboard_url"] == "https://clock.example.com/tracking"


def test_no_clock_in_reminder_once_clocked_in():
    snap = _snapshot(schedules=NINE_TO_FIVE, session=ActiveSession(7, 1, _utc(9)))
    assert evaluate_reminders(snap, POLICY, _utc(9, 10)) == []


def test_no_reminder_without_schedule():
    assert evaluate_reminders(_snapshot(), POLICY, _utc(9, 10)) == []


def test_clock_out_reminder_near_end():
    snap = _snapshot(schedules=NINE_TO_FIVE, session=ActiveSession(7, 1, _utc(9)))
    pending = evaluate_reminders(snap, POLICY, _utc(16, 50))
    assert _types(pending) == [NotificationType.CLOCK_OUT_REMINDER]
    assert pending[0].payload["session_id"] == 7
    assert pending[0].context["duration_minutes"] == 470


def test_clock_out_uses_schedule_of_session_team():
    snap = _snapshot(schedules=NINE_TO_FIVE, session=ActiveSession(7, 2, _utc(9)))
    assert evaluate_reminders(snap, POLICY, _utc(16, 50)) == []


def test_break_return_after_threshold():
    snap = _snapshot(
        session=ActiveSession(7, 1, _utc(9)),
        open_break=ActiveBreak(3, _utc(12)),
    )
    assert evaluate_reminders(snap, POLICY, _utc(12, 29)) == []
    pending = evaluate_reminders(snap, POLICY, _utc(12, 30))
    assert _types(pending) == [NotificationType.BREAK_RETURN_REMINDER]
    assert pending[0].payload == {"break_id": 3, "break_duration_minutes": 30}


def test_missed_punch_after_threshold_hours():
    start = _utc(9)
    snap = _snapshot(session=ActiveSession(7, 1, start))
    assert evaluate_reminders(snap, POLICY, start + timedelta(hours=11, minutes=59)) == []
    pending = evaluate_reminders(snap, POLICY, start + timedelta(hours=12))
    assert _types(pending) == [NotificationType.MISSED_PUNCH_REMINDER]
    assert pending[0].payload["session_duration_minutes"] == 720


def test_disabled_preferences_suppress_reminders():
    prefs = ReminderPreferences(
        clock_in_reminders_enabled=False,
        break_return_reminders_enabled=False,
    )
    assert evaluate_reminders(_snapshot(prefs=prefs, schedules=NINE_TO_FIVE), POLICY, _utc(9, 10)) == []
    snap = _snapshot(prefs=prefs, session=ActiveSession(7, 1, _utc(9)), open_break=ActiveBreak(3, _utc(9)))
    assert evaluate_reminders(snap, POLICY, _utc(11)) == []


def test_schedule_read_in_user_timezone():
    prefs = ReminderPreferences(timezone="America/New_York")
    # 14:10 UTC is 09:10 in New York (EST).
    pending = evaluate_reminders(_snapshot(prefs=prefs, schedules=NINE_TO_FIVE), POLICY, _utc(14, 10))
    assert _types(pending) == [NotificationType.CLOCK_IN_REMINDER]
    assert evaluate_reminders(_snapshot(prefs=prefs, schedules=NINE_TO_FIVE), POLICY, _utc(9, 10)) == []
