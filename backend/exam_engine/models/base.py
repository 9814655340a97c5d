"""
Database base configuration for SQLAlchemy models.

This module uses SQLAlchemy 2.0 style with DeclarativeBase. Engines are built
on demand from a DATABASE_URL because the default deployment keeps documents
in memory and never touches a database.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

# Build the async URL by string-prefix replacement on the raw DATABASE_URL.
# The make_url() round-trip strips underscores from some hostnames.
_SYNC_PREFIX_MAP = {
    "postgresql+psycopg2://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}
_ASYNC_PREFIXES = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


class Base(DeclarativeBase):
    """
    SQLAlchemy 2.0 declarative base class with type annotation support.
    """

    pass


def to_async_url(database_url: str) -> str:
    """
    Convert a sync DATABASE_URL to its async driver equivalent.

    Args:
        database_url: Database URL, sync or already async.

    Returns:
        URL using an async driver (asyncpg or aiosqlite).

    Raises:
        ValueError: If the URL prefix has no async driver mapping.
    """
    if database_url.startswith(_ASYNC_PREFIXES):
        return database_url
    for sync_prefix, async_prefix in _SYNC_PREFIX_MAP.items():
        if database_url.startswith(sync_prefix):
            return async_prefix + database_url[len(sync_prefix) :]
    raise ValueError(
        f"No async driver mapping for DATABASE_URL prefix. "
        f"Supported prefixes: {list(_SYNC_PREFIX_MAP.keys())}"
    )


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given DATABASE_URL."""
    async_url = to_async_url(database_url)
    if async_url.startswith("sqlite+aiosqlite://"):
        return create_async_engine(
            async_url, echo=echo, connect_args={"check_same_thread": False}
        )
    return create_async_engine(async_url, echo=echo, pool_pre_ping=True)


def create_session_factory(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables known to the declarative base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
