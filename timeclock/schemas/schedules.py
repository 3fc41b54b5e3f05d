"""Pydantic schemas for weekly schedules."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from timeclock.core.timeutils import is_valid_hhmm, parse_hhmm


class ScheduleCreate(BaseModel):
    user_id: int = Field(gt=0)
    team_id: int = Field(gt=0)
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday .. 6 = Saturday")
    start_time: str
    end_time: str
    break_expected_minutes: int = Field(default=0, ge=0, le=480)

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        if not is_valid_hhmm(v):
            raise ValueError("Time must be HH:MM")
        return v[:5]

    @model_validator(mode="after")
    def _ends_after_start(self) -> "ScheduleCreate":
        # Reminder and late checks place both times on the same local day.
        if parse_hhmm(self.end_time) <= parse_hhmm(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleRead(BaseModel):
    id: int
    user_id: int
    team_id: int
    day_of_week: int
    start_time: str
    end_time: str
    break_expected_minutes: int
    is_active: bool

    model_config = {"from_attributes": True}
