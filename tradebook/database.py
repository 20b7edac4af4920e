from sqlalchemy import event
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from tradebook.config import get_settings

settings = get_settings()

DATABASE_URL = settings.database_url

# asyncpg behind pgbouncer cannot use prepared statement caching
connect_args = {"statement_cache_size": 0} if DATABASE_URL.startswith("postgresql+asyncpg") else {}

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.database_echo,
    future=True,
    connect_args=connect_args,
    poolclass=NullPool
)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


if engine.dialect.name == "sqlite":
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        # LIKE must match case the way Postgres does
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA case_sensitive_like=ON")
        cursor.close()


async def init_models():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
