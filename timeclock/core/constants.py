"""Defaults for organisation policy and engine limits."""

# Completed breaks allowed per calendar day, by break type.
DAILY_BREAK_LIMITS = {"BREAK": 2, "LUNCH": 1}

DEFAULT_TIMEZONE = "UTC"
DEFAULT_QUIET_HOURS_START = "22:00"
DEFAULT_QUIET_HOURS_END = "06:00"

DEFAULT_MISSED_PUNCH_THRESHOLD_HOURS = 12
DEFAULT_CLOCK_IN_REMINDER_WINDOW_MINUTES = 30
DEFAULT_CLOCK_OUT_REMINDER_BEFORE_MINUTES = 15
DEFAULT_CLOCK_OUT_REMINDER_AFTER_MINUTES = 30
DEFAULT_BREAK_RETURN_THRESHOLD_MINUTES = 30
DEFAULT_REMINDER_COOLDOWN_MINUTES = 60
