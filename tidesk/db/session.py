from typing import AsyncGenerator
import logging
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from tidesk.core.config import get_settings
from tidesk.core.exceptions import BusinessLogicError

logger = logging.getLogger(__name__)


def get_engine() -> AsyncEngine:
    """Create and return the async SQLAlchemy engine.

    Returns:
        Async engine instance.
    """

    return create_async_engine(str(get_settings().DB_URL), echo=False, poolclass=NullPool)


engine = get_engine()
SessionLocal = async_sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an `AsyncSession` and ensures cleanup.

    Yields:
        AsyncSession: Database session for request scope.
    """

    async with SessionLocal() as session:
        try:
            yield session
        except Exception as exc:
            if isinstance(exc, HTTPException) and exc.status_code in (401, 403, 404, 409):
                logger.debug("Request rejected: %s", exc.detail)
            elif isinstance(exc, BusinessLogicError) and exc.status_code < 500:
                logger.debug("Request rejected: %s", exc.message)
            else:
                logger.exception("DB session error: %s", exc)
            await session.rollback()
            raise
