"""
Organisation policy: the explicit configuration value handed to batch jobs.

The settings row is read once per run and frozen into ``OrgPolicy`` so a
run is deterministic and tests can build a policy without a database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeclock.core import constants
from timeclock.core.config import settings
from timeclock.models.organization_settings import OrganizationSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrgPolicy:
    timezone: str = constants.DEFAULT_TIMEZONE
    missed_punch_threshold_hours: int = constants.DEFAULT_MISSED_PUNCH_THRESHOLD_HOURS
    clock_in_reminder_window_minutes: int = constants.DEFAULT_CLOCK_IN_REMINDER_WINDOW_MINUTES
    clock_out_reminder_before_minutes: int = constants.DEFAULT_CLOCK_OUT_REMINDER_BEFORE_MINUTES
    clock_out_reminder_after_minutes: int = constants.DEFAULT_CLOCK_OUT_REMINDER_AFTER_MINUTES
    break_return_threshold_minutes: int = constants.DEFAULT_BREAK_RETURN_THRESHOLD_MINUTES
    reminder_cooldown_minutes: int = constants.DEFAULT_REMINDER_COOLDOWN_MINUTES
    quiet_hours_start: str = constants.DEFAULT_QUIET_HOURS_START
    quiet_hours_end: str = constants.DEFAULT_QUIET_HOURS_END
    app_base_url: str = ""

    @classmethod
    def from_model(cls, row: OrganizationSettings, *, app_base_url: str = "") -> "OrgPolicy":
        return cls(
            timezone=row.timezone or constants.DEFAULT_TIMEZONE,
            missed_punch_threshold_hours=row.missed_punch_threshold_hours,
            clock_in_reminder_window_minutes=row.clock_in_reminder_window_minutes,
            clock_out_reminder_before_minutes=row.clock_out_reminder_before_minutes,
            clock_out_reminder_after_minutes=row.clock_out_reminder_after_minutes,
            break_return_threshold_minutes=row.break_return_threshold_minutes,
            reminder_cooldown_minutes=row.reminder_cooldown_minutes,
            quiet_hours_start=row.quiet_hours_start or constants.DEFAULT_QUIET_HOURS_START,
            quiet_hours_end=row.quiet_hours_end or constants.DEFAULT_QUIET_HOURS_END,
            app_base_url=app_base_url.rstrip("/"),
        )


async def get_or_create_org_settings(db: AsyncSession) -> OrganizationSettings:
    """Fetch the singleton settings row, creating it with defaults if absent."""
    result = await db.execute(select(OrganizationSettings).limit(1))
    row = result.scalar_one_or_none()
    if row is None:
        row = OrganizationSettings(id=1)
        db.add(row)
        await db.commit()
        await db.refresh(row)
        logger.info("Created default organization settings")
    return row


async def load_policy(db: AsyncSession) -> OrgPolicy:
    return OrgPolicy.from_model(await get_or_create_org_settings(db), app_base_url=settings.APP_BASE_URL)
