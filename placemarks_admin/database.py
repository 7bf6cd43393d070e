"""Async database session and engine configuration."""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from placemarks_admin.config import settings

Base = declarative_base()

# Async engine for PostgreSQL (default) or provided DATABASE_URL
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


def upsert_statement(session: AsyncSession, table):
    """
    Build a dialect-native INSERT that supports ON CONFLICT DO UPDATE.

    PostgreSQL runs in production, SQLite backs local development and tests.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")
    return insert(table)
