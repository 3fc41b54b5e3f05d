"""
Adjustment model — an immutable manual correction to one calendar day.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String

from timeclock.db.base import Base


class Adjustment(Base):
    __tablename__ = "adjustments"
    __table_args__ = (Index("ix_adjustments_user_date", "user_id", "effective_date"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    team_id: int = Column(Integer, ForeignKey("teams.id"), nullable=False)  # type: ignore[assignment]
    session_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("time_sessions.id"), nullable=True
    )
    adjustment_type: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    # ADD_TIME | SUBTRACT_TIME | OVERRIDE
    minutes: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    effective_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    description: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    created_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
