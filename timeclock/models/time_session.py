"""
Clock store — work sessions and the break segments inside them.

The partial unique indexes are the store-level guarantee behind the
state machine: at most one open session per user and at most one open
break per session.  Concurrent inserts that slip past the service-level
check fail with ``IntegrityError``.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from timeclock.db.base import Base


class TimeSession(Base):
    __tablename__ = "time_sessions"
    __table_args__ = (
        Index(
            "uq_time_sessions_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("clock_out_at IS NULL"),
            sqlite_where=text("clock_out_at IS NULL"),
        ),
        Index("ix_time_sessions_user_clock_in", "user_id", "clock_in_at"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    team_id: int = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)  # type: ignore[assignment]
    clock_in_at: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    clock_out_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    late_note: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    breaks = relationship(
        "BreakSegment",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="BreakSegment.break_start_at",
    )


class BreakSegment(Base):
    __tablename__ = "break_segments"
    __table_args__ = (
        Index(
            "uq_break_segments_open_per_session",
            "session_id",
            unique=True,
            postgresql_where=text("break_end_at IS NULL"),
            sqlite_where=text("break_end_at IS NULL"),
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    session_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("time_sessions.id"), nullable=False, index=True
    )
    break_type: str = Column(String(10), nullable=False)  # type: ignore[assignment]
    # BREAK | LUNCH
    break_start_at: datetime = Column(DateTime(timezone=True), nullable=False, index=True)  # type: ignore[assignment]
    break_end_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]

    session = relationship("TimeSession", back_populates="breaks")
