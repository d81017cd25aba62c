"""
SQLAlchemy async setup.

The engine is built lazily from ``Settings.database_url`` so tests can point
the application at another database by overriding ``get_db_session``.
"""
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from ctpga_manager.config import get_settings

Base = declarative_base()


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    return create_async_engine(get_settings().database_url, echo=False, future=True)


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker:
    return async_sessionmaker(get_engine(), expire_on_commit=False, class_=AsyncSession)


async def get_db_session():
    """Dependency for getting a database session."""
    async with get_session_factory()() as session:
        yield session


async def create_tables(engine: AsyncEngine = None) -> None:
    """Create all tables registered on ``Base``."""
    # Import models so they are registered on the metadata
    from ctpga_manager.auth import models as _auth_models  # noqa: F401
    from ctpga_manager.activities import models as _activity_models  # noqa: F401
    from ctpga_manager.feedback import models as _feedback_models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
