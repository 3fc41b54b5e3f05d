"""
Notification ledger and per-user reminder preferences.

``NotificationEvent`` is append-only; the reminder cooldown is a lookup
against it.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from timeclock.db.base import Base


class NotificationEvent(Base):
    __tablename__ = "notification_events"
    __table_args__ = (
        Index("ix_notification_events_user_type_created", "user_id", "notification_type", "created_at"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    notification_type: str = Column(String(40), nullable=False)  # type: ignore[assignment]
    status: str = Column(String(10), nullable=False)  # type: ignore[assignment]
    # SENT | FAILED
    payload: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    error_message: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    sent_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id"), nullable=False, unique=True
    )
    clock_in_reminders_enabled: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    clock_out_reminders_enabled: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    break_return_reminders_enabled: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    missed_punch_reminders_enabled: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
    quiet_hours_start: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    quiet_hours_end: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    timezone: str | None = Column(String(64), nullable=True)  # type: ignore[assignment]
