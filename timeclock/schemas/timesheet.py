"""Pydantic schemas for timesheets and adjustments."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, field_validator

from timeclock.core.enums import AdjustmentType


class AdjustmentCreate(BaseModel):
    user_id: int = Field(gt=0)
    team_id: int = Field(gt=0)
    session_id: int | None = Field(default=None, gt=0)
    adjustment_type: AdjustmentType
    minutes: int = Field(ge=0, le=24 * 60)
    effective_date: dt.date
    description: str | None = Field(default=None, max_length=1000)


class AdjustmentRead(BaseModel):
    id: int
    user_id: int
    team_id: int
    session_id: int | None
    adjustment_type: AdjustmentType
    minutes: int
    effective_date: dt.date
    description: str | None
    created_by: int | None = None
    created_at: dt.datetime | None = None

    model_config = {"from_attributes": True}


class TimesheetEntryRead(BaseModel):
    date: dt.date
    clock_in: dt.datetime | None
    clock_out: dt.datetime | None
    total_minutes: int
    break_minutes: int
    work_minutes: int
    adjusted_minutes: int
    adjustments: list[AdjustmentRead]
    work_display: str
    user_id: int | None = None
    user_name: str | None = None


class TimesheetResponse(BaseModel):
    start_date: dt.date
    end_date: dt.date
    timezone: str
    total_work_minutes: int
    timesheet: list[TimesheetEntryRead]


class TimesheetQuery(BaseModel):
    start_date: dt.date
    end_date: dt.date
    team_id: int | None = Field(default=None, gt=0)
    user_id: str | None = None  # numeric id or "all"

    @field_validator("user_id")
    @classmethod
    def _user_id(cls, v: str | None) -> str | None:
        if v is None or v == "all" or v.isdigit():
            return v
        raise ValueError("user_id must be a numeric id or 'all'")
