from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.platform.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine once per process; the caller owns its disposal."""
    options = dict(echo=False, future=True, pool_pre_ping=True)
    if not settings.DATABASE_URL.startswith("sqlite"):
        options.update(
            pool_recycle=1800,
            pool_size=20,
            max_overflow=30,  # (burst capacity)
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    return create_async_engine(settings.DATABASE_URL, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
