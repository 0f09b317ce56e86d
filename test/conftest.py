"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from numberops.config import Settings
from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.phone_numbers.models import OwnedNumber  # noqa: F401
from numberops.phone_numbers.search import SearchSessionRegistry
from numberops.phone_numbers.service import PhoneNumberService
from numberops.shared.database import Base, get_db_session
from numberops.telephony.mock_adapter import MockTelephonyAdapter
from numberops.voice_ai.mock_adapter import MockVoiceAIAdapter


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_env="dev",
        debug=True,
        database_url="sqlite+aiosqlite:///:memory:",
        provider_timeout_seconds=5.0,
        purchase_lease_seconds=60.0,
        register_on_purchase=False,
        search_debounce_seconds=0.0,
        sync_max_concurrency=3,
    )


@pytest_asyncio.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[Any, None]:
    """Create test database engine."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: Any) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def telephony() -> MockTelephonyAdapter:
    return MockTelephonyAdapter()


@pytest.fixture
def sandbox_telephony() -> MockTelephonyAdapter:
    return MockTelephonyAdapter(is_sandbox=True)


@pytest.fixture
def voice_ai() -> MockVoiceAIAdapter:
    return MockVoiceAIAdapter()


@pytest.fixture
def leases(test_settings: Settings) -> PurchaseLeaseRegistry:
    return PurchaseLeaseRegistry(test_settings.purchase_lease_seconds)


@pytest.fixture
def service(
    db_session: AsyncSession,
    telephony: MockTelephonyAdapter,
    voice_ai: MockVoiceAIAdapter,
    leases: PurchaseLeaseRegistry,
    test_settings: Settings,
) -> PhoneNumberService:
    return PhoneNumberService(
        session=db_session,
        telephony=telephony,
        voice_ai=voice_ai,
        leases=leases,
        search_sessions=SearchSessionRegistry(test_settings.search_debounce_seconds),
        settings=test_settings,
    )


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    telephony: MockTelephonyAdapter,
    voice_ai: MockVoiceAIAdapter,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API tests."""
    from numberops.main import create_app

    monkeypatch.setenv("SEARCH_DEBOUNCE_SECONDS", "0")
    monkeypatch.setenv("REGISTER_ON_PURCHASE", "false")

    app = create_app(telephony_provider=telephony, voice_ai_provider=voice_ai)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
