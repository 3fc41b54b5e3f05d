"""
Shared test fixtures for the Timeclock test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool)
so the partial unique indexes behave exactly as they do in production.
"""

import os
import sys
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SECRET_KEY"] = "test-secret-key"
# SQLite shares one connection under StaticPool, so batch items run one at a time.
os.environ["BATCH_MAX_WORKERS"] = "1"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timeclock.api.v1.deps import get_current_active_user, get_db, get_notifier, get_session_factory
from timeclock.db.base import Base
from timeclock.main import app
from timeclock.models.team import Team, TeamMember
from timeclock.models.user import User
from timeclock.services.notifier import Notifier, NotifierResult


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema per test; yields the session factory batch jobs expect."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct setup and queries in tests."""
    async with session_factory() as session:
        yield session


# ── Seed data ───────────────────────────────────────────────────────
async def make_user(db: AsyncSession, email: str, *, full_name: str | None = None, role: str = "member") -> User:
    user = User(email=email, full_name=full_name, role=role, is_active=True)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_team(db: AsyncSession, name: str) -> Team:
    team = Team(name=name)
    db.add(team)
    await db.commit()
    await db.refresh(team)
    return team


async def add_member(db: AsyncSession, team: Team, user: User, role: str = "MEMBER") -> None:
    db.add(TeamMember(team_id=team.id, user_id=user.id, role=role))
    await db.commit()


@dataclass
class Seed:
    alice: User
    bob: User
    manager: User
    team: Team
    other_team: Team


@pytest.fixture
async def seed(db_session: AsyncSession) -> Seed:
    """Alice and Bob on the Support team, Alice also on Sales; Mia manages Support."""
    alice = await make_user(db_session, "alice@example.com", full_name="Alice Archer")
    bob = await make_user(db_session, "bob@example.com", full_name="Bob Baker")
    manager = await make_user(db_session, "mia@example.com", full_name="Mia Manager")
    team = await make_team(db_session, "Support")
    other_team = await make_team(db_session, "Sales")
    await add_member(db_session, team, alice)
    await add_member(db_session, team, bob)
    await add_member(db_session, team, manager, role="MANAGER")
    await add_member(db_session, other_team, alice)
    return Seed(alice=alice, bob=bob, manager=manager, team=team, other_team=other_team)


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    """A global admin with no team memberships."""
    return await make_user(db_session, "root@example.com", full_name="Root Admin", role="admin")


# ── Notifier ────────────────────────────────────────────────────────
@dataclass
class FakeNotifier(Notifier):
    """Records every send; can be told to fail or raise for given addresses."""

    calls: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    raise_for: set[str] = field(default_factory=set)

    async def send(self, user_email, notification_type, context):
        self.calls.append((user_email, notification_type, context))
        if user_email in self.raise_for:
            raise ConnectionError("smtp relay unreachable")
        if user_email in self.fail_for:
            return NotifierResult(success=False, error="mailbox unavailable")
        return NotifierResult(success=True)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# ── HTTP client ─────────────────────────────────────────────────────
@dataclass
class AuthState:
    user: User | None = None


@pytest.fixture
def auth(seed: Seed) -> AuthState:
    """The caller the API sees; tests switch users by assigning ``auth.user``."""
    return AuthState(user=seed.alice)


@pytest.fixture
async def async_client(session_factory, auth: AuthState, notifier: FakeNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app with test overrides."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _override_current_user() -> User:
        return auth.user

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_current_active_user] = _override_current_user
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
