"""Pydantic schemas for organisation settings."""

from __future__ import annotations

from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from timeclock.core.timeutils import is_valid_hhmm


def _check_zone(v: str) -> str:
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {v}")
    return v


class OrganizationSettingsRead(BaseModel):
    timezone: str
    missed_punch_threshold_hours: int
    clock_in_reminder_window_minutes: int
    clock_out_reminder_before_minutes: int
    clock_out_reminder_after_minutes: int
    break_return_threshold_minutes: int
    reminder_cooldown_minutes: int
    quiet_hours_start: str
    quiet_hours_end: str

    model_config = {"from_attributes": True}


class OrganizationSettingsUpdate(BaseModel):
    timezone: str | None = None
    missed_punch_threshold_hours: int | None = Field(default=None, ge=1, le=72)
    clock_in_reminder_window_minutes: int | None = Field(default=None, ge=0, le=240)
    clock_out_reminder_before_minutes: int | None = Field(default=None, ge=0, le=240)
    clock_out_reminder_after_minutes: int | None = Field(default=None, ge=0, le=240)
    break_return_threshold_minutes: int | None = Field(default=None, ge=1, le=480)
    reminder_cooldown_minutes: int | None = Field(default=None, ge=1, le=1440)
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _no_nulls(cls, data: Any) -> Any:
        # Every column is NOT NULL; omit a field to leave it unchanged.
        if isinstance(data, dict):
            nulls = sorted(k for k, v in data.items() if v is None)
            if nulls:
                raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return data

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _hhmm(cls, v: str | None) -> str | None:
        if v is not None and not is_valid_hhmm(v):
            raise ValueError("Time must be HH:MM")
        return v[:5] if v else v

    @field_validator("timezone")
    @classmethod
    def _tz(cls, v: str | None) -> str | None:
        return _check_zone(v) if v is not None else v
