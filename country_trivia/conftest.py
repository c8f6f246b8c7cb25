import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from country_trivia.db import Base, get_session
from country_trivia.fakes import FakeSources, FixedRandom
from country_trivia.main import app
from country_trivia.render import SummaryRenderer

# Setup test database
DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    """Fresh in-memory database for each test"""
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sources():
    return FakeSources()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, sources, tmp_path):
    """Async HTTP client for testing"""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.state.sources = sources
    app.state.renderer = SummaryRenderer(str(tmp_path / "cache"))
    app.state.refresh_lock = asyncio.Lock()
    app.state.rng = FixedRandom(0.5)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
