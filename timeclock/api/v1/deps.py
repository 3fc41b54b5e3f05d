"""
FastAPI dependencies for the database session and caller identity, plus
the cron guard, session factory and notifier used by the batch triggers.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timeclock.core.enums import TeamRole
from timeclock.core.security import decode_access_token, verify_cron_secret
from timeclock.db.session import async_session_factory
from timeclock.models.team import TeamMember
from timeclock.models.user import User
from timeclock.services.notifier import Notifier, build_notifier

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Batch jobs open one session per item, so they get the factory."""
    return async_session_factory


def get_notifier() -> Notifier:
    return build_notifier()


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT and look up the user."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exc

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exc

    user_id: str | None = payload.get("sub")
    if user_id is None or not user_id.isdigit():
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None:
        raise credentials_exc
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject inactive accounts."""
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user account")
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_active_user),
) -> User:
    """Only allow admin role to proceed."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


async def can_manage_team(db: AsyncSession, user: User, team_id: int) -> bool:
    """Global admins, or MANAGER/ADMIN members of the team."""
    if user.role == "admin":
        return True
    result = await db.execute(
        select(TeamMember.role).where(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
    )
    role = result.scalar_one_or_none()
    return role in (TeamRole.MANAGER.value, TeamRole.ADMIN.value)


# ── Cron guard ──────────────────────────────────────────────────────
async def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
    x_cron_secret: Optional[str] = Header(default=None),
) -> None:
    """Accept ``Authorization: Bearer <secret>`` or ``X-Cron-Secret: <secret>``."""
    presented = x_cron_secret
    if authorization and authorization.startswith("Bearer "):
        presented = authorization[len("Bearer "):]
    if not verify_cron_secret(presented):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
