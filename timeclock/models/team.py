"""
Team & membership models.

Team CRUD lives elsewhere; the engine only reads membership to authorise
clock-in and to fan the timesheet out across a team.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from timeclock.db.base import Base


class Team(Base):
    __tablename__ = "teams"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_member"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    team_id: int = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    role: str = Column(String(20), nullable=False, default="MEMBER")  # type: ignore[assignment]
    # MEMBER | MANAGER | ADMIN
