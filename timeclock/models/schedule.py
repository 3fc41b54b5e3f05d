"""
Schedule model — a user's expected hours on one team for one weekday.

``day_of_week`` is 0 = Sunday .. 6 = Saturday; times are ``"HH:MM"``
wall-clock strings.  Only one *active* row may exist per
(user, team, weekday); the engine relies on that instead of picking
between duplicates.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, text

from timeclock.db.base import Base


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        Index(
            "uq_schedules_active_user_team_day",
            "user_id",
            "team_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    team_id: int = Column(Integer, ForeignKey("teams.id"), nullable=False)  # type: ignore[assignment]
    day_of_week: int = Column(Integer, nullable=False)  # type: ignore[assignment]
    start_time: str = Column(String(5), nullable=False)  # type: ignore[assignment]
    end_time: str = Column(String(5), nullable=False)  # type: ignore[assignment]
    break_expected_minutes: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, nullable=False, default=True)  # type: ignore[assignment]
