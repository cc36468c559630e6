import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)


def get_async_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """Creates an asynchronous SQLAlchemy engine instance."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if not db_url.startswith("sqlite"):
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=1800)
    return create_async_engine(db_url, **kwargs)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Creates an asynchronous session factory."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Important for async usage, especially with FastAPI
    )


def normalise_async_url(db_url: Optional[str]) -> Optional[str]:
    """Maps plain driver URLs onto their async drivers (asyncpg, aiosqlite)."""
    if not db_url:
        return None
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("sqlite:///") or db_url == "sqlite://":
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return db_url
