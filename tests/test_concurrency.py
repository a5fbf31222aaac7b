"""
Concurrency and background-work tests.

Demonstrates:
1. Distributed lock acquire / release semantics (mocked Redis).
2. The expiry sweeper skips a cycle when another process holds the lock.
3. One sweep cycle expires / locks every due row and publishes afterwards.
4. Post-commit event publishing never raises on a Redis failure.
5. Two sessions racing for the last seat of a trip: exactly one wins.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pickup_coord.api import dependencies
from pickup_coord.domain.enums import InvitationStatus, RequestStatus, TripStatus
from pickup_coord.domain.errors import ConstraintViolation, InvalidStateTransition
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.database import Base
from pickup_coord.infrastructure.locks import DistributedLock, LockNotAcquired
from pickup_coord.infrastructure.models import (
    InvitationModel,
    PickupRequestModel,
    ProfileModel,
    TripModel,
)
from pickup_coord.infrastructure.repositories import InvitationRepository
from pickup_coord.services import invitations
from pickup_coord.workers import sweeper
from tests.conftest import DEPARTURE, NOW, invite, make_profile, make_request, make_trip


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with("lock:test-key", lock.token, nx=True, ex=10)

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_is_compare_and_delete(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        _, numkeys, key, token = mock_redis.eval.call_args.args
        assert (numkeys, key, token) == (1, "lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass


class TestSweeper:
    @pytest.mark.asyncio
    async def test_cycle_skipped_when_lock_held(self, mock_redis):
        mock_redis.set = AsyncMock(return_value=False)
        session_factory = AsyncMock()

        with patch.object(sweeper, "get_redis", AsyncMock(return_value=mock_redis)):
            report = await sweeper.run_sweep_cycle(now=NOW, session_factory=session_factory)

        assert report is None
        session_factory.assert_not_called()
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_cycle_expires_overdue_rows(self, session_factory, mock_redis):
        async with session_factory() as session:
            provider = await make_profile(session, "prov-1")
            requester = await make_profile(session, "req-1")
            trip = await make_trip(session, provider)
            request = await make_request(session, requester)
            invitation = await invite(session, provider, trip, request)
            ids = (trip.id, request.id, invitation.id)
            await session.commit()

        with patch.object(sweeper, "get_redis", AsyncMock(return_value=mock_redis)):
            report = await sweeper.run_sweep_cycle(
                now=DEPARTURE + timedelta(hours=1), session_factory=session_factory
            )

        assert report.requests_expired == 1
        assert report.trips_expired == 1
        assert report.trips_locked == 0
        # expired together with its request, not as an overdue invitation
        assert report.invitations_expired == 0
        mock_redis.eval.assert_awaited_once()

        channels = [c.args[0] for c in mock_redis.publish.await_args_list]
        assert events.INVALIDATE_CHANNEL in channels

        async with session_factory() as session:
            trip_id, request_id, invitation_id = ids
            assert (await session.get(TripModel, trip_id)).status == TripStatus.EXPIRED
            assert (
                await session.get(PickupRequestModel, request_id)
            ).status == RequestStatus.EXPIRED
            assert (
                await session.get(InvitationModel, invitation_id)
            ).status == InvitationStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_cycle_locks_trips_inside_cutoff(self, session_factory, mock_redis):
        async with session_factory() as session:
            provider = await make_profile(session, "prov-1")
            await make_trip(session, provider)
            await make_trip(session, provider, scheduled_start_at=DEPARTURE + timedelta(days=1))
            await session.commit()

        with patch.object(sweeper, "get_redis", AsyncMock(return_value=mock_redis)):
            report = await sweeper.run_sweep_cycle(
                now=DEPARTURE - timedelta(minutes=10), session_factory=session_factory
            )

        assert (report.trips_locked, report.trips_expired, report.total) == (1, 0, 1)

    @pytest.mark.asyncio
    async def test_second_cycle_is_a_no_op(self, session_factory, mock_redis):
        async with session_factory() as session:
            provider = await make_profile(session, "prov-1")
            await make_trip(session, provider)
            await session.commit()

        later = DEPARTURE + timedelta(hours=1)
        with patch.object(sweeper, "get_redis", AsyncMock(return_value=mock_redis)):
            first = await sweeper.run_sweep_cycle(now=later, session_factory=session_factory)
            second = await sweeper.run_sweep_cycle(now=later, session_factory=session_factory)

        assert first.total == 1
        assert second.total == 0


class TestEventPublishing:
    @pytest.mark.asyncio
    async def test_publishes_after_commit_and_clears(self, db_session, mock_redis):
        events.invalidate(db_session, "/trips", "/my")
        events.broadcast(db_session, "trip:1", {"id": 1, "status": "LOCKED"})

        await events.publish_pending(db_session, mock_redis)

        calls = [c.args for c in mock_redis.publish.await_args_list]
        assert calls[0] == (events.INVALIDATE_CHANNEL, json.dumps(["/my", "/trips"]))
        assert calls[1][0] == "realtime:trip:1"
        assert events.pending(db_session) == (set(), [])

    @pytest.mark.asyncio
    async def test_redis_failure_is_swallowed(self, db_session, mock_redis):
        mock_redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        events.invalidate(db_session, "/trips")

        await events.publish_pending(db_session, mock_redis)

        assert events.pending(db_session) == (set(), [])

    def test_discard_drops_everything(self):
        session = SimpleNamespace(info={})
        events.invalidate(session, "/trips")
        events.discard(session)
        assert events.pending(session) == (set(), [])

    def test_discard_keeps_committed_events(self):
        session = SimpleNamespace(info={})
        events.invalidate(session, "/invitations")
        events.mark_committed(session)
        events.invalidate(session, "/trips")
        events.broadcast(session, "trip:1", {"id": 1})

        events.discard(session)

        assert events.pending(session) == ({"/invitations"}, [])

    @pytest.mark.asyncio
    async def test_refused_request_still_announces_committed_expiry(
        self, session_factory, mock_redis
    ):
        later_day = DEPARTURE + timedelta(days=2)
        async with session_factory() as session:
            provider = await make_profile(session, "prov-1")
            requester = await make_profile(session, "req-1")
            trip = await make_trip(session, provider, scheduled_start_at=later_day)
            request = await make_request(session, requester, pickup_time=later_day)
            invitation = await invite(session, provider, trip, request)
            requester_id, invitation_id = requester.id, invitation.id
            await session.commit()

        with patch.object(dependencies, "async_session_factory", session_factory):
            db = dependencies.get_db(mock_redis)
            session = await db.__anext__()
            requester = await session.get(ProfileModel, requester_id)
            with pytest.raises(InvalidStateTransition, match="invitation has expired") as refused:
                await invitations.accept_invitation(
                    session, requester, invitation_id, now=NOW + timedelta(hours=25)
                )
            with pytest.raises(InvalidStateTransition):
                await db.athrow(refused.value)

        published = {c.args[0]: c.args[1] for c in mock_redis.publish.await_args_list}
        assert "/invitations" in json.loads(published[events.INVALIDATE_CHANNEL])

        async with session_factory() as session:
            stored = await session.get(InvitationModel, invitation_id)
            assert stored.status == InvitationStatus.EXPIRED


class TestConcurrentSend:
    """Two sessions send invitations for the last seat of one trip at once.

    ``SELECT ... FOR UPDATE`` serialises them on PostgreSQL only.  SQLite
    ignores it, so here the database writer lock and the recount after the
    insert must keep the trip within capacity.  A file database with
    ``NullPool`` gives each session its own connection.
    """

    @pytest.mark.asyncio
    async def test_last_seat_goes_to_one_sender(self, tmp_path):
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", poolclass=NullPool
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        async with factory() as session:
            provider = await make_profile(session, "prov-1")
            trip = await make_trip(session, provider)
            requests = [
                await make_request(session, await make_profile(session, f"req-{n}"))
                for n in range(4)
            ]
            for request in requests[:2]:
                await invite(session, provider, trip, request)
            provider_id, trip_id = provider.id, trip.id
            racing = [r.id for r in requests[2:]]
            await session.commit()

        async def send(request_id):
            async with factory() as session:
                sender = await session.get(ProfileModel, provider_id)
                invitation = await invitations.send_invitation(
                    session, sender, trip_id=trip_id, pickup_request_id=request_id, now=NOW
                )
                await session.commit()
                return invitation.id

        try:
            results = await asyncio.gather(*(send(i) for i in racing), return_exceptions=True)

            won = [r for r in results if isinstance(r, int)]
            lost = [r for r in results if isinstance(r, BaseException)]
            assert len(won) == 1
            assert len(lost) == 1
            assert isinstance(lost[0], ConstraintViolation)

            async with factory() as session:
                assert await InvitationRepository(session).count_for_trip(trip_id) == 3
        finally:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
            await engine.dispose()
