"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL, plus the unit-of-work
scope every state transition of the print-job engine runs in.
"""

from contextlib import asynccontextmanager
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from autoprint.app.core.config import settings
from autoprint.app.core.exceptions import ConflictError

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()

_UOW_DEPTH_KEY = "unit_of_work_depth"


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(db: AsyncSession):
    """
    Scope a block of work to a single atomic transaction.

    The outermost scope commits on success and rolls back on any exception,
    so a ledger credit can never be committed without the payment status
    change that triggered it. Nested scopes on the same session join the
    outer transaction instead of committing early.

    Unique-constraint violations raised by the storage backstops (one credit
    per payment, one debit per job, one job per queue position) surface as
    ConflictError.

    Usage:
        async with unit_of_work(db):
            ...
    """
    depth = db.info.get(_UOW_DEPTH_KEY, 0)
    db.info[_UOW_DEPTH_KEY] = depth + 1
    try:
        try:
            yield db
            if depth == 0:
                await db.commit()
        except IntegrityError as exc:
            if depth == 0:
                await db.rollback()
            raise ConflictError(
                "Concurrent update violated a uniqueness guarantee",
                details={"statement": type(exc.orig).__name__ if exc.orig else None}
            ) from exc
        except BaseException:
            if depth == 0:
                await db.rollback()
            raise
    finally:
        db.info[_UOW_DEPTH_KEY] = depth


def dialect_name(db: AsyncSession) -> str:
    """Name of the SQL dialect the session is bound to."""
    return db.get_bind().dialect.name
