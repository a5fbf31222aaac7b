"""FastAPI dependency injection helpers."""

from typing import Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.config import settings
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.database import async_session_factory
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.infrastructure.redis_client import get_redis
from pickup_coord.services import access


async def get_db(redis: aioredis.Redis = Depends(get_redis)) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error.

    Events buffered by the request are published only after the commit.
    On error only the rolled-back events are dropped: writes a service
    committed early (deadline expiry) are still announced.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            events.discard(session)
            raise
        finally:
            await events.publish_pending(session, redis)


async def get_caller_id(
    caller_id: Optional[str] = Header(None, alias=settings.identity_header),
) -> Optional[str]:
    return caller_id


async def get_profile(
    caller_id: Optional[str] = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
) -> ProfileModel:
    """The caller's profile; 401 when the header is missing or unknown."""
    return await access.resolve_profile(db, caller_id)
