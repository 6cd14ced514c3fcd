import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.debug and not settings.is_production}
    # SQLite (local runs) uses its own pool; pool sizing applies to PostgreSQL only
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return options


logger.info(
    "Connecting to database: %s",
    make_url(settings.database_url).render_as_string(hide_password=True),
)

engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Rows stay readable after commit; services re-select when they need fresh values
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=True,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Services commit their own work; leftovers roll back."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
