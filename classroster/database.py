"""Database connection and session management using SQLAlchemy async ORM"""
from datetime import timezone
from typing import AsyncGenerator

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from classroster.config import get_settings

DATABASE_URL = get_settings().database_url


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite (tests, local demos)
    keeps SQLAlchemy's defaults.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"timeout": 15},
        )

    # pool_size=20: Keep 20 connections alive in the pool
    # max_overflow=30: Allow 30 additional connections under load (total 50 max)
    # pool_recycle=3600: Recycle connections every hour to prevent stale connections
    return create_async_engine(
        database_url,
        echo=False,  # Set to True for SQL query logging during development
        pool_size=20,
        max_overflow=30,
        pool_recycle=3600,
        pool_pre_ping=True,  # Verify connection health before using
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Create a session factory bound to an engine"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(DATABASE_URL)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)

# Base class for declarative models
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column stored as UTC.

    SQLite drops tzinfo on the way in; results are re-tagged as UTC so
    comparisons against the clock never mix naive and aware values.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


async def init_models(bind: AsyncEngine = None) -> None:
    """Create all tables (tests and local demos; production uses Alembic)"""
    # Import models so they register on Base.metadata
    import classroster.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI endpoints to get database session.

    Usage in FastAPI:
        @app.get("/items")
        async def read_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
