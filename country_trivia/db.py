import uuid
from typing import AsyncGenerator, Optional

import sqlalchemy as sa
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from country_trivia.log import setup_logger

logger = setup_logger(__name__, "db.log")

METADATA_ROW_ID = 1

Base = declarative_base()


def normalize_name(name: str) -> str:
    """Key used for case-insensitive country name matching."""
    return name.strip().lower()


class BaseModel(Base):
    __abstract__ = True
    id = sa.Column(sa.Uuid, primary_key=True, default=uuid.uuid4, unique=True)
    created_at = sa.Column(sa.DateTime(timezone=True), nullable=False)


class Country(BaseModel):
    __tablename__ = "countries"
    name = sa.Column(sa.String(255), nullable=False)
    # explicit case-insensitive uniqueness, independent of the collation
    name_key = sa.Column(sa.String(255), nullable=False, unique=True)
    capital = sa.Column(sa.String(255), nullable=True)
    region = sa.Column(sa.String(100), nullable=True, index=True)
    population = sa.Column(sa.BigInteger, nullable=False)
    currency_code = sa.Column(sa.String(10), nullable=True, index=True)
    exchange_rate = sa.Column(sa.Float, nullable=True)
    estimated_gdp = sa.Column(sa.Float, nullable=True)
    flag_url = sa.Column(sa.Text, nullable=True)
    last_refreshed_at = sa.Column(sa.DateTime(timezone=True), nullable=False)


class RefreshMetadata(Base):
    __tablename__ = "refresh_metadata"
    id = sa.Column(sa.Integer, primary_key=True)
    total_countries = sa.Column(sa.Integer, nullable=False, default=0)
    last_refreshed_at = sa.Column(sa.DateTime(timezone=True), nullable=True)


class Database:
    """
    Process-wide database handle.

    Owns the async engine (and its connection pool) and the session factory.
    Created and initialised in the application lifespan, disposed on shutdown.
    """

    def __init__(self, url: str, engine: Optional[AsyncEngine] = None):
        self.url = url
        self.engine = engine or create_async_engine(url=url)
        self.sessionmaker = async_sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init(self):
        """
        Create all tables defined in the Base metadata and seed the
        refresh metadata singleton row.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"tables ready: {list(Base.metadata.tables.keys())}")
        await seed_metadata(self.sessionmaker)

    async def drop(self):
        """Drop all tables. This deletes all data."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()
        logger.info("database engine disposed")


async def seed_metadata(session_factory: async_sessionmaker):
    async with session_factory() as session:
        existing = await session.get(RefreshMetadata, METADATA_ROW_ID)
        if existing is None:
            session.add(RefreshMetadata(id=METADATA_ROW_ID, total_countries=0))
            await session.commit()
            logger.info("seeded refresh metadata row")


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession from the Database stored on the application state.

    The session is closed when the request is finished.
    """
    database: Database = request.app.state.db
    async with database.sessionmaker() as session:
        yield session
