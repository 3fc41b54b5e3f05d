"""
Organisation settings — singleton table for admin-configurable thresholds.

Only one row should ever exist.  Batch jobs never read it directly: it is
converted to an ``OrgPolicy`` value first.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from timeclock.core import constants
from timeclock.db.base import Base


class OrganizationSettings(Base):
    __tablename__ = "organization_settings"

    id: int = Column(Integer, primary_key=True, default=1)  # type: ignore[assignment]
    timezone: str = Column(String(64), nullable=False, default=constants.DEFAULT_TIMEZONE)  # type: ignore[assignment]
    missed_punch_threshold_hours: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_MISSED_PUNCH_THRESHOLD_HOURS
    )
    clock_in_reminder_window_minutes: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_CLOCK_IN_REMINDER_WINDOW_MINUTES
    )
    clock_out_reminder_before_minutes: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_CLOCK_OUT_REMINDER_BEFORE_MINUTES
    )
    clock_out_reminder_after_minutes: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_CLOCK_OUT_REMINDER_AFTER_MINUTES
    )
    break_return_threshold_minutes: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_BREAK_RETURN_THRESHOLD_MINUTES
    )
    reminder_cooldown_minutes: int = Column(  # type: ignore[assignment]
        Integer, nullable=False, default=constants.DEFAULT_REMINDER_COOLDOWN_MINUTES
    )
    quiet_hours_start: str = Column(  # type: ignore[assignment]
        String(5), nullable=False, default=constants.DEFAULT_QUIET_HOURS_START
    )
    quiet_hours_end: str = Column(  # type: ignore[assignment]
        String(5), nullable=False, default=constants.DEFAULT_QUIET_HOURS_END
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
