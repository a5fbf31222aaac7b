"""Trip lifecycle tests: departure, pickup progress, no-shows, arrivals and reviews."""

from __future__ import annotations

from datetime import timedelta

import pytest

from pickup_coord.domain.enums import (
    CancelReason,
    InvitationStatus,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.errors import (
    AuthorizationDenied,
    ConstraintViolation,
    InvalidStateTransition,
    NotFound,
    ValidationFailed,
)
from pickup_coord.services import arrivals, expiry, pickup_requests, reviews, trips
from pickup_coord.services.common import policy
from tests.conftest import DEPARTURE, NOW, make_profile, make_trip, matched_rider


class TestCreateTrip:
    @pytest.mark.asyncio
    async def test_defaults(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)

        assert trip.status == TripStatus.OPEN
        assert trip.is_locked is False
        assert trip.capacity == 3
        assert trip.title == "3/10 15:00 pickup group"

    @pytest.mark.asyncio
    async def test_start_in_past_refused(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        with pytest.raises(ValidationFailed):
            await make_trip(db_session, provider, scheduled_start_at=NOW - timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_listing_settles_deadlines_and_hides_test_trips(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        stale = await make_trip(db_session, provider, title="stale")
        await make_trip(db_session, provider, title="rehearsal", is_test=True)
        fresh = await make_trip(
            db_session, provider, scheduled_start_at=DEPARTURE + timedelta(days=1)
        )

        later = DEPARTURE + timedelta(hours=1)
        listed = await trips.list_my_trips(db_session, provider, now=later)

        assert [t.id for t, _ in listed] == [fresh.id, stale.id]
        assert stale.status == TripStatus.EXPIRED
        assert fresh.status == TripStatus.OPEN

        with_test = await trips.list_my_trips(db_session, provider, include_test=True, now=later)
        assert len(with_test) == 3


class TestStartTrip:
    @pytest.mark.asyncio
    async def test_start_needs_a_met_student(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")

        with pytest.raises(ConstraintViolation, match="no confirmed students"):
            await trips.start_trip(db_session, provider, trip.id, now=NOW)

        participant = await trips.mark_met(db_session, provider, trip.id, request.id, now=NOW)
        assert participant.is_met_at_pickup is True

        started = await trips.start_trip(db_session, provider, trip.id, now=NOW)
        assert started.status == TripStatus.IN_PROGRESS
        assert started.is_locked is True
        assert started.start_at == NOW
        assert request.status == RequestStatus.IN_PROGRESS
        assert request.progress_stage == ProgressStage.STARTED
        assert request.started_at == NOW

    @pytest.mark.asyncio
    async def test_start_twice_refused(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")
        await trips.mark_met(db_session, provider, trip.id, request.id, now=NOW)
        await trips.start_trip(db_session, provider, trip.id, now=NOW)

        with pytest.raises(InvalidStateTransition, match="already departed"):
            await trips.start_trip(db_session, provider, trip.id, now=NOW)

    @pytest.mark.asyncio
    async def test_only_owner_can_start(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        stranger = await make_profile(db_session, "prov-2")
        trip = await make_trip(db_session, provider)

        with pytest.raises(AuthorizationDenied):
            await trips.start_trip(db_session, stranger, trip.id, now=NOW)

    @pytest.mark.asyncio
    async def test_mark_met_unknown_participant(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)

        with pytest.raises(NotFound, match="Trip participant"):
            await trips.mark_met(db_session, provider, trip.id, 999, now=NOW)

    @pytest.mark.asyncio
    async def test_mark_picked_up_after_start(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")

        with pytest.raises(InvalidStateTransition, match="not started"):
            await trips.mark_picked_up(db_session, provider, trip.id, request.id, now=NOW)

        await trips.mark_met(db_session, provider, trip.id, request.id, now=NOW)
        await trips.start_trip(db_session, provider, trip.id, now=NOW)
        picked = await trips.mark_picked_up(
            db_session, provider, trip.id, request.id, now=NOW + timedelta(minutes=5)
        )
        assert picked.progress_stage == ProgressStage.PICKED_UP
        assert picked.picked_up_at == NOW + timedelta(minutes=5)


class TestDepartureWindow:
    """The trip may start until its grace period ends; its riders wait for it."""

    @pytest.mark.asyncio
    async def test_sweep_after_pickup_time_keeps_riders_startable(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        requester, request, _ = await matched_rider(db_session, provider, trip, "req-1")
        await trips.mark_met(db_session, provider, trip.id, request.id, now=NOW)

        late = DEPARTURE + timedelta(minutes=5)
        report = await expiry.sweep(db_session, late, policy)
        assert report.requests_expired == 0
        assert trip.status == TripStatus.LOCKED
        seen = await pickup_requests.get_request(db_session, requester, request.id, now=late)
        assert seen.status == RequestStatus.MATCHED

        await trips.start_trip(db_session, provider, trip.id, now=late)
        assert trip.status == TripStatus.IN_PROGRESS
        assert request.status == RequestStatus.IN_PROGRESS

        await arrivals.confirm_arrival(
            db_session, provider, trip.id, request.id,
            photo_url="https://cdn.example/1.jpg", now=late + timedelta(hours=1),
        )
        assert trip.status == TripStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_riders_expire_with_their_trip(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")

        report = await expiry.sweep(db_session, DEPARTURE + timedelta(minutes=31), policy)

        assert (report.requests_expired, report.trips_expired) == (1, 1)
        assert trip.status == TripStatus.EXPIRED
        assert request.status == RequestStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_reading_an_expired_trip_expires_its_riders(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")

        await trips.get_trip(db_session, provider, trip.id, now=DEPARTURE + timedelta(hours=1))

        assert trip.status == TripStatus.EXPIRED
        assert request.status == RequestStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_met_flag_on_a_dead_request_does_not_count(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")
        await trips.mark_met(db_session, provider, trip.id, request.id, now=NOW)
        request.status = RequestStatus.EXPIRED
        await db_session.flush()

        with pytest.raises(ConstraintViolation, match="no confirmed students"):
            await trips.start_trip(db_session, provider, trip.id, now=NOW)

    @pytest.mark.asyncio
    async def test_rider_who_never_started_does_not_block_completion(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, rider, _ = await matched_rider(db_session, provider, trip, "req-1")
        _, stale, _ = await matched_rider(db_session, provider, trip, "req-2")
        await trips.mark_met(db_session, provider, trip.id, rider.id, now=NOW)
        stale.status = RequestStatus.EXPIRED
        await db_session.flush()
        await trips.start_trip(db_session, provider, trip.id, now=NOW)
        assert stale.started_at is None

        await arrivals.confirm_arrival(
            db_session, provider, trip.id, rider.id,
            photo_url="https://cdn.example/1.jpg", now=NOW + timedelta(hours=4),
        )
        assert trip.status == TripStatus.COMPLETED

class TestCancelUnmet:
    @pytest.mark.asyncio
    async def test_no_show_is_cancelled_and_seat_released(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, present, _ = await matched_rider(db_session, provider, trip, "req-1")
        _, absent, absent_invitation = await matched_rider(db_session, provider, trip, "req-2")
        await trips.mark_met(db_session, provider, trip.id, present.id, now=NOW)

        cancelled = await trips.cancel_unmet(
            db_session, provider, trip.id, [absent.id, absent.id], now=NOW
        )

        assert cancelled == [absent.id]
        assert absent.status == RequestStatus.CANCELLED
        assert absent.cancel_reason_code == CancelReason.NO_SHOW
        assert absent_invitation.status == InvitationStatus.EXPIRED
        _, views = await trips.get_trip(db_session, provider, trip.id, now=NOW)
        assert [v.request.id for v in views] == [present.id]

    @pytest.mark.asyncio
    async def test_met_student_cannot_be_cancelled(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, present, _ = await matched_rider(db_session, provider, trip, "req-1")
        await trips.mark_met(db_session, provider, trip.id, present.id, now=NOW)

        with pytest.raises(ConstraintViolation, match="already met"):
            await trips.cancel_unmet(db_session, provider, trip.id, [present.id], now=NOW)


class TestArrivals:
    async def _started_trip(self, session, riders=2):
        provider = await make_profile(session, "prov-1")
        trip = await make_trip(session, provider)
        matched = [
            await matched_rider(session, provider, trip, f"req-{n}") for n in range(riders)
        ]
        for _, request, _ in matched:
            await trips.mark_met(session, provider, trip.id, request.id, now=NOW)
        await trips.start_trip(session, provider, trip.id, now=NOW)
        return provider, trip, matched

    @pytest.mark.asyncio
    async def test_last_arrival_completes_trip(self, db_session):
        provider, trip, matched = await self._started_trip(db_session)
        (_, first, _), (_, second, _) = matched
        arrived_at = NOW + timedelta(hours=4)

        await arrivals.confirm_arrival(
            db_session, provider, trip.id, first.id,
            photo_url="https://cdn.example/1.jpg", now=arrived_at,
        )
        assert first.status == RequestStatus.COMPLETED
        assert first.progress_stage == ProgressStage.ARRIVED
        assert trip.status == TripStatus.IN_PROGRESS

        await arrivals.confirm_arrival(
            db_session, provider, trip.id, second.id,
            photo_url="https://cdn.example/2.jpg", now=arrived_at,
        )
        assert trip.status == TripStatus.COMPLETED
        assert trip.completed_at == arrived_at

        listed = await arrivals.list_arrivals(db_session, provider, trip.id)
        assert {a.pickup_request_id for a in listed} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_arrival_before_start_refused(self, db_session):
        provider = await make_profile(db_session, "prov-1")
        trip = await make_trip(db_session, provider)
        _, request, _ = await matched_rider(db_session, provider, trip, "req-1")

        with pytest.raises(InvalidStateTransition, match="trip in progress"):
            await arrivals.confirm_arrival(
                db_session, provider, trip.id, request.id,
                photo_url="https://cdn.example/1.jpg", now=NOW,
            )

    @pytest.mark.asyncio
    async def test_review_after_completion(self, db_session):
        provider, trip, matched = await self._started_trip(db_session, riders=1)
        requester, request, _ = matched[0]

        with pytest.raises(InvalidStateTransition, match="Only completed"):
            await reviews.submit_review(db_session, requester, request.id, rating=5)

        await arrivals.confirm_arrival(
            db_session, provider, trip.id, request.id,
            photo_url="https://cdn.example/1.jpg", now=NOW + timedelta(hours=4),
        )
        review = await reviews.submit_review(
            db_session, requester, request.id, rating=4, comment="  On time  "
        )
        assert review.provider_profile_id == provider.id
        assert review.comment == "On time"

        with pytest.raises(ConstraintViolation, match="already reviewed"):
            await reviews.submit_review(db_session, requester, request.id, rating=5)

        assert (await reviews.get_my_review(db_session, requester, request.id)).id == review.id
        assert [r.id for r in await reviews.list_trip_reviews(db_session, provider, trip.id)] == [
            review.id
        ]
