from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from calsync.core.config import settings
from contextlib import asynccontextmanager

DATABASE_URL = settings.DATABASE_URL

def _engine_options(url: str) -> dict:
    # SQLite (local dev, tests) does not take queue pool sizing
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_timeout": 30,
        "pool_pre_ping": True,  # Enable connection health checks
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
    }

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True,
    **_engine_options(DATABASE_URL),
)

# Regular session factory for request handlers
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Prevent expired object issues
)

Base = declarative_base()

async def init_models():
    # Register every table on Base.metadata before create_all
    import calsync.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_db():
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

@asynccontextmanager
async def get_db_background():
    """Context manager for work outside a request that needs database access"""
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
