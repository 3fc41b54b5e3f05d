"""String enums stored verbatim in the database."""

from __future__ import annotations

from enum import Enum


class ClockState(str, Enum):
    OUT = "OUT"
    IN = "IN"
    ON_BREAK = "ON_BREAK"


class BreakType(str, Enum):
    BREAK = "BREAK"
    LUNCH = "LUNCH"


class AdjustmentType(str, Enum):
    ADD_TIME = "ADD_TIME"
    SUBTRACT_TIME = "SUBTRACT_TIME"
    OVERRIDE = "OVERRIDE"


class TeamRole(str, Enum):
    MEMBER = "MEMBER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class NotificationType(str, Enum):
    CLOCK_IN_REMINDER = "CLOCK_IN_REMINDER"
    CLOCK_OUT_REMINDER = "CLOCK_OUT_REMINDER"
    BREAK_RETURN_REMINDER = "BREAK_RETURN_REMINDER"
    MISSED_PUNCH_REMINDER = "MISSED_PUNCH_REMINDER"


class NotificationStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"
