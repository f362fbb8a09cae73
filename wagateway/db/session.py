"""Database schema helpers"""

from sqlalchemy.ext.asyncio import AsyncEngine

from wagateway.db.base import Base


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables (used by tests and local SQLite setups; production runs alembic)."""
    # Import models so they register on the metadata
    import wagateway.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
