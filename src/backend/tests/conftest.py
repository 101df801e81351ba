"""Shared fixtures: in-memory SQLite database, providers, RFQ service and API client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PROVIDER_DIRECTORY_URL", "")
os.environ.setdefault("LOG_FORMAT", "console")

from collections.abc import AsyncGenerator
from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketplace.core.config import Settings, get_settings
from marketplace.db.base import Base
from marketplace.db.session import get_db
from marketplace.main import app
from marketplace.models import ServiceProvider
from marketplace.services.rfq_service import RfqService
from tests.factories import NOW, add_provider, quote_payload, rfq_payload


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def service(db) -> RfqService:
    return RfqService(db)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@pytest.fixture
async def providers(db) -> dict[str, ServiceProvider]:
    """Three active providers (A, B, C) and one inactive one."""
    result = {
        "a": await add_provider(db, "Alpha Plumbing", "4.20", verified=True),
        "b": await add_provider(db, "Beta Heating", "4.80", verified=False),
        "c": await add_provider(db, "Gamma Services", None, verified=True),
        "inactive": await add_provider(db, "Dormant Ltd", "3.00", verified=False, active=False),
    }
    await db.commit()
    return result


@pytest.fixture
async def sent_rfq(service, providers):
    """An RFQ sent to providers A, B and C."""
    rfq = await service.create_rfq(
        rfq_payload([providers["a"].id, providers["b"].id, providers["c"].id])
    )
    return await service.send_rfq(rfq.id, NOW)


@pytest.fixture
async def quoted_rfq(service, sent_rfq, providers):
    """The sent RFQ with quotes of 1500 (A), 1200 (B) and 1800 (C) EUR."""
    quotes = {}
    for key, price in (("a", "1500.00"), ("b", "1200.00"), ("c", "1800.00")):
        quotes[key] = await service.submit_quote(
            quote_payload(sent_rfq.id, providers[key].id, price, warranty_period_days=365),
            NOW + timedelta(hours=1),
        )
    return sent_rfq, quotes


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def debug_mode(client) -> None:
    """Run the app with ``debug`` enabled; cleared with the client overrides."""
    app.dependency_overrides[get_settings] = lambda: Settings(debug=True)
