from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from .config import settings
import logging

logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    """Point plain postgres URLs at the asyncpg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


database_url = async_database_url(settings.database_url)
is_sqlite = database_url.startswith("sqlite")

engine_options = {"echo": False, "poolclass": NullPool}
if is_sqlite:
    engine_options["connect_args"] = {"timeout": settings.sqlite_busy_timeout_seconds}
else:
    engine_options.update(pool_pre_ping=True, pool_recycle=3600)

engine = create_async_engine(database_url, **engine_options)

if is_sqlite:
    # SQLite ignores FOR UPDATE / FOR SHARE and the driver defers BEGIN until
    # the first write. Take the database write lock at the start of every
    # transaction instead, so a reference check and the insert that follows
    # it cannot interleave with a cascade running on another connection.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

# Cascades commit and then hand entities back to the routers
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)

Base = declarative_base()


async def get_db():
    """Dependency to get database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise


async def create_tables():
    """Create the content, quiz result and admin tables"""
    try:
        async with engine.begin() as conn:
            from ..models import Admin, Year, Module, Subject, Lecture, QuizResult  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
        if is_sqlite:
            logger.info("Running on SQLite: transactions take the database write lock up front")
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise


async def drop_tables():
    async with engine.begin() as conn:
        from ..models import Admin, Year, Module, Subject, Lecture, QuizResult  # noqa: F401

        logger.info("Dropping database tables...")
        await conn.run_sync(Base.metadata.drop_all)


async def ping_database():
    """Round-trip a trivial query; raises when the database is unreachable"""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db():
    try:
        await engine.dispose()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}")
