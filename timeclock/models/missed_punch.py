"""
MissedPunchFlag — a session left open past its expected end.

At most one unresolved flag per session (partial unique index); the
detector never resolves flags itself.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text

from timeclock.db.base import Base


class MissedPunchFlag(Base):
    __tablename__ = "missed_punch_flags"
    __table_args__ = (
        Index(
            "uq_missed_punch_flags_unresolved_session",
            "session_id",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    session_id: int = Column(Integer, ForeignKey("time_sessions.id"), nullable=False)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    team_id: int = Column(Integer, ForeignKey("teams.id"), nullable=False)  # type: ignore[assignment]
    flag_reason: str = Column(String(500), nullable=False)  # type: ignore[assignment]
    resolved_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
