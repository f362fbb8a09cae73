"""SQLAlchemy database setup"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from wagateway.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine; defaults to the configured DATABASE_URL."""
    url = database_url or settings.DATABASE_URL
    options = {"echo": settings.get("DEBUG", False), "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.get("DATABASE_POOL_SIZE", 5)
        options["max_overflow"] = settings.get("DATABASE_MAX_OVERFLOW", 10)
    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
