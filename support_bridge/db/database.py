"""Database connection and session management."""
import logging
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from support_bridge.db.models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Convert sync driver URLs to their async equivalents."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the configured database."""
    return create_async_engine(
        normalize_database_url(database_url),
        echo=False,
        future=True,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    logger.info("Creating database tables if missing...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
