"""Pydantic schemas for batch-trigger responses and the notification feed."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class MissedPunchItem(BaseModel):
    session_id: int
    user_id: int
    status: str
    reason: str


class MissedPunchRunResponse(BaseModel):
    success: bool = True
    threshold_hours: int
    flagged: int
    skipped: int
    failed: int
    details: list[MissedPunchItem]


class ReminderItem(BaseModel):
    user_id: int
    email: str
    status: str
    notification_type: str | None = None
    reason: str | None = None


class ReminderRunResponse(BaseModel):
    success: bool = True
    dry_run: bool
    processed: int
    sent: int
    failed: int
    skipped: int
    details: list[ReminderItem]


class NotificationEventRead(BaseModel):
    id: int
    notification_type: str
    status: str
    payload: dict[str, Any]
    error_message: str | None = None
    sent_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
