"""Pydantic schemas for clock-in/out, breaks and the active-state view."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from timeclock.core.enums import BreakType, ClockState


# ── Requests ────────────────────────────────────────────────────────
class ClockInRequest(BaseModel):
    team_id: int = Field(gt=0)
    late_note: str | None = Field(default=None, max_length=1000)

    @field_validator("late_note")
    @classmethod
    def _strip_note(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class ClockOutRequest(BaseModel):
    session_id: int = Field(gt=0)


class SwitchTeamRequest(BaseModel):
    session_id: int = Field(gt=0)
    team_id: int = Field(gt=0)


class BreakStartRequest(BaseModel):
    session_id: int = Field(gt=0)
    break_type: BreakType


class BreakEndRequest(BaseModel):
    break_id: int = Field(gt=0)


# ── Reads ───────────────────────────────────────────────────────────
class SessionRead(BaseModel):
    id: int
    user_id: int
    team_id: int
    clock_in_at: datetime
    clock_out_at: datetime | None
    late_note: str | None = None

    model_config = {"from_attributes": True}


class BreakRead(BaseModel):
    id: int
    session_id: int
    break_type: BreakType
    break_start_at: datetime
    break_end_at: datetime | None

    model_config = {"from_attributes": True}


class ClockInResponse(BaseModel):
    status: str  # clocked_in | pending_late_confirmation
    is_late: bool
    scheduled_start: datetime | None = None
    session: SessionRead | None = None
    detail: str | None = None


class ActiveStateResponse(BaseModel):
    state: ClockState
    session: SessionRead | None = None
    open_break: BreakRead | None = None
