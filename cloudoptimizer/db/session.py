from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from cloudoptimizer.core.config import get_settings
import structlog

logger = structlog.get_logger()
settings = get_settings()

# Fail fast if database URL is not configured
if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Check your .env file.")

is_sqlite = settings.DATABASE_URL.startswith("sqlite")

# SQLite (local dev/tests) cannot share pooled connections across threads;
# Postgres gets a sized pool with pre-ping.
pool_args = {}
connect_args = {}
if is_sqlite:
    connect_args["check_same_thread"] = False
elif settings.TESTING:
    from sqlalchemy.pool import NullPool
    pool_args["poolclass"] = NullPool
else:
    pool_args["pool_size"] = settings.DB_POOL_SIZE
    pool_args["max_overflow"] = settings.DB_MAX_OVERFLOW
    pool_args["pool_recycle"] = 300

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=not is_sqlite,
    connect_args=connect_args,
    **pool_args
)

# expire_on_commit=False keeps ORM objects readable after commit in async code
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields a database session and always closes it."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Creates tables for local development databases. Production uses Alembic."""
    from cloudoptimizer.db.base import Base
    import cloudoptimizer.models  # noqa: F401  registers all tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_schema_ensured", url=settings.DATABASE_URL.split("@")[-1])
