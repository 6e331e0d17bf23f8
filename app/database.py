import logging

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.db.base import Base

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

url = make_url(DATABASE_URL)
connect_args = {}

logger.info(f"Database backend: {url.get_backend_name()}")

if url.get_backend_name() == "sqlite":
    connect_args = {"check_same_thread": False}
    sqlite_kwargs = {}
    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        sqlite_kwargs["poolclass"] = StaticPool
    engine = create_async_engine(
        DATABASE_URL,
        connect_args=connect_args,
        echo=False,
        **sqlite_kwargs,
    )
else:
    engine = create_async_engine(
        DATABASE_URL,
        connect_args=connect_args,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=(settings.ENVIRONMENT != "production" and settings.DEBUG),
    )

# Create session factory with proper settings
async_session = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Import models so metadata.create_all sees every table
from app.models import (  # noqa: E402,F401
    BloodBank,
    BloodInventory,
    BloodUnit,
    Donation,
    Donor,
    DonorRequest,
    Reservation,
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully.")


async def close_db():
    """Close database connections gracefully"""
    try:
        await engine.dispose()
        logger.info("Database connections closed.")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
