"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  One ``StaticPool`` connection per test keeps
the in-memory database alive across sessions; tables are created from the
production ``Base.metadata``.

Service calls take an explicit ``now`` so deadlines are deterministic.
"""

from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from pickup_coord.domain.enums import ProfileRole
from pickup_coord.infrastructure import models  # noqa: F401  (registers tables)
from pickup_coord.infrastructure.database import Base
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import invitations, pickup_requests, trips


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# A Tuesday noon, local time
NOW = datetime(2026, 3, 10, 12, 0)
DEPARTURE = NOW + timedelta(hours=3)

ORIGIN = "서울특별시 강남구 역삼동 123-4"
DESTINATION = "대치 수학학원"


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=1)
    redis.publish = AsyncMock(return_value=1)
    return redis


# ── Factories ─────────────────────────────────────────────────────────


async def make_profile(
    session: AsyncSession,
    external_id: str,
    *,
    role: ProfileRole = ProfileRole.USER,
    school_name: Optional[str] = None,
) -> ProfileModel:
    profile = ProfileModel(external_id=external_id, role=role, school_name=school_name)
    session.add(profile)
    await session.flush()
    return profile


async def make_request(
    session: AsyncSession,
    requester: ProfileModel,
    *,
    pickup_time: datetime = DEPARTURE,
    origin_text: str = ORIGIN,
    destination_text: str = DESTINATION,
    now: datetime = NOW,
):
    return await pickup_requests.create_request(
        session,
        requester,
        pickup_time=pickup_time,
        origin_text=origin_text,
        origin_lat=37.5006,
        origin_lng=127.0364,
        destination_text=destination_text,
        destination_lat=37.4990,
        destination_lng=127.0580,
        now=now,
    )


async def make_trip(
    session: AsyncSession,
    provider: ProfileModel,
    *,
    scheduled_start_at: datetime = DEPARTURE,
    title: Optional[str] = None,
    is_test: bool = False,
    now: datetime = NOW,
):
    return await trips.create_trip(
        session,
        provider,
        scheduled_start_at=scheduled_start_at,
        title=title,
        is_test=is_test,
        now=now,
    )


async def invite(session: AsyncSession, provider, trip, request, *, now: datetime = NOW):
    return await invitations.send_invitation(
        session, provider, trip_id=trip.id, pickup_request_id=request.id, now=now
    )


async def matched_rider(session: AsyncSession, provider, trip, external_id: str, **kwargs):
    """A requester whose request was invited onto *trip* and accepted."""
    now = kwargs.pop("now", NOW)
    requester = await make_profile(session, external_id)
    request = await make_request(session, requester, now=now, **kwargs)
    invitation = await invite(session, provider, trip, request, now=now)
    await invitations.accept_invitation(session, requester, invitation.id, now=now)
    return requester, request, invitation
