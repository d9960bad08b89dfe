"""
Pytest configuration.

Runs against an in-memory SQLite database (aiosqlite) and a fake Supabase
Auth served through httpx.MockTransport. AnyIO is pinned to asyncio.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
from httpx import ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gym_access.db import get_db, init_db
from gym_access.deps import get_app_settings, get_auth_client_factory
from gym_access.models import Account
from gym_access.services.supabase_auth import SupabaseAuthClient
from gym_access.settings import Settings, TelegramAuthConfig
from tests.helpers import (
    ANON_KEY,
    BOT_TOKEN,
    PASSWORD_SECRET,
    SERVICE_ROLE_KEY,
    SUPABASE_URL,
    FakeSupabase,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def auth_config() -> TelegramAuthConfig:
    return TelegramAuthConfig(
        supabase_url=SUPABASE_URL,
        service_role_key=SERVICE_ROLE_KEY,
        anon_key=ANON_KEY,
        bot_token=BOT_TOKEN,
        password_secret=PASSWORD_SECRET,
        max_age_seconds=3600,
        bot_username="gym_bot",
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        supabase_url=SUPABASE_URL,
        supabase_service_role_key=SERVICE_ROLE_KEY,
        supabase_anon_key=ANON_KEY,
        telegram_bot_token=BOT_TOKEN,
        telegram_auth_password_secret=PASSWORD_SECRET,
        telegram_auth_max_age_seconds=3600,
        telegram_bot_username="gym_bot",
    )


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def auth_client(auth_config, fake_supabase) -> SupabaseAuthClient:
    return SupabaseAuthClient(auth_config, transport=fake_supabase.transport())


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_account(db):
    """Insert an accounts row and return its id."""
    counter = {"n": 0}

    async def _make(email: str | None = None) -> str:
        counter["n"] += 1
        account = Account(
            id=f"00000000-0000-0000-0000-{counter['n']:012d}",
            email=email or f"user{counter['n']}@example.com",
        )
        db.add(account)
        await db.flush()
        return account.id

    return _make


@pytest.fixture
async def api(session_maker, test_settings, fake_supabase):
    """HTTP client against the app with test database and fake auth provider."""
    from gym_access.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_auth_client_factory] = lambda: (
        lambda config: SupabaseAuthClient(config, transport=fake_supabase.transport())
    )
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
