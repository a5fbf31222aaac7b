"""
Trip lifecycle
==============

OPEN -> LOCKED -> IN_PROGRESS -> COMPLETED, or -> EXPIRED / CANCELLED.

* A trip **locks** when it fills up (see ``invitations.accept``), when it
  comes within the invite cut-off of its start, or when it starts.
* **Start** needs at least one seated student marked "met at pickup"; it
  moves every seated participant to IN_PROGRESS / STARTED in the same
  transaction.  Seated requests do not expire at their pickup time; they
  expire with the trip once its grace period is over.
* Time-based lock / expiry is applied through :mod:`services.expiry`
  before any read or write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock, rules
from pickup_coord.domain.enums import (
    RIDER_REQUEST_STATUSES,
    CancelReason,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.errors import NotFound
from pickup_coord.domain.lifecycle import advance
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import (
    PickupRequestModel,
    ProfileModel,
    TripModel,
    TripParticipantModel,
)
from pickup_coord.infrastructure.repositories import (
    ParticipantRepository,
    PickupRequestRepository,
    TripRepository,
)
from pickup_coord.services import access, expiry
from pickup_coord.services.common import INVITATION_VIEWS, REQUEST_VIEWS, TRIP_VIEWS, policy
from pickup_coord.services.pickup_requests import apply_cancellation

logger = logging.getLogger(__name__)


@dataclass
class ParticipantView:
    participant: TripParticipantModel
    request: PickupRequestModel


def default_title(scheduled_start_at: datetime) -> str:
    return (
        f"{scheduled_start_at.month}/{scheduled_start_at.day} "
        f"{scheduled_start_at.hour}:00 pickup group"
    )


def _announce(session: AsyncSession, trip: TripModel) -> None:
    events.invalidate(session, *TRIP_VIEWS, *REQUEST_VIEWS)
    events.broadcast(
        session,
        f"trip:{trip.id}",
        {"id": trip.id, "status": TripStatus(trip.status).value, "is_locked": trip.is_locked},
    )


async def _participant_views(
    session: AsyncSession, trip_id: int
) -> list[ParticipantView]:
    participants = await ParticipantRepository(session).list_for_trip(trip_id)
    requests = await PickupRequestRepository(session).get_many(
        p.pickup_request_id for p in participants
    )
    return [
        ParticipantView(participant=p, request=requests[p.pickup_request_id])
        for p in participants
        if p.pickup_request_id in requests
    ]


async def _load_participant(
    session: AsyncSession, trip: TripModel, request_id: int
) -> TripParticipantModel:
    participant = await ParticipantRepository(session).get(trip.id, request_id)
    if participant is None:
        raise NotFound("Trip participant")
    return participant


# ── Create / read ─────────────────────────────────────────────────────


async def create_trip(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    scheduled_start_at: datetime,
    title: Optional[str] = None,
    is_test: bool = False,
    now: Optional[datetime] = None,
) -> TripModel:
    rules.check_new_trip(scheduled_start_at, now or clock.now())
    trip = await TripRepository(session).add(
        TripModel(
            provider_profile_id=profile.id,
            title=(title or "").strip() or default_title(scheduled_start_at),
            scheduled_start_at=scheduled_start_at,
            status=TripStatus.OPEN,
            is_locked=False,
            capacity=policy.trip_capacity,
            is_test=is_test,
        )
    )
    events.invalidate(session, *TRIP_VIEWS)
    logger.info("Trip %s created by profile %s", trip.id, profile.id)
    return trip


async def list_my_trips(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    status: Optional[TripStatus] = None,
    include_test: bool = False,
    now: Optional[datetime] = None,
) -> list[tuple[TripModel, int]]:
    """``(trip, participant_count)`` for the caller's trips, newest first."""
    now = now or clock.now()
    await expiry.settle_due_trips(session, now, policy, provider_profile_id=profile.id)
    trips = await TripRepository(session).list_for_provider(
        profile.id, status=status, include_test=include_test
    )
    counts = await ParticipantRepository(session).count_for_trips(t.id for t in trips)
    return [(t, counts.get(t.id, 0)) for t in trips]


async def list_completed_trips(
    session: AsyncSession, profile: ProfileModel
) -> list[tuple[TripModel, int]]:
    trips = await TripRepository(session).list_for_provider(
        profile.id, status=TripStatus.COMPLETED, include_test=True
    )
    counts = await ParticipantRepository(session).count_for_trips(t.id for t in trips)
    return [(t, counts.get(t.id, 0)) for t in trips]


async def get_trip(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    *,
    now: Optional[datetime] = None,
) -> tuple[TripModel, list[ParticipantView]]:
    trip = await access.trip_as_provider(session, profile, trip_id)
    await expiry.settle_trip(session, trip, now or clock.now(), policy)
    return trip, await _participant_views(session, trip.id)


async def list_participants(
    session: AsyncSession, profile: ProfileModel, trip_id: int
) -> list[ParticipantView]:
    trip = await access.trip_as_provider(session, profile, trip_id)
    return await _participant_views(session, trip.id)


# ── Departure ─────────────────────────────────────────────────────────


async def start_trip(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    *,
    now: Optional[datetime] = None,
) -> TripModel:
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id)
    await expiry.settle_trip(session, trip, now, policy)

    trip = await access.trip_as_provider(session, profile, trip_id, for_update=True)
    participants = await ParticipantRepository(session).list_for_trip(trip.id)
    requests = await PickupRequestRepository(session).get_many(
        p.pickup_request_id for p in participants
    )
    riders = [r for r in requests.values() if r.status in RIDER_REQUEST_STATUSES]
    met = {p.pickup_request_id for p in participants if p.is_met_at_pickup}
    met_count = sum(1 for r in riders if r.id in met)
    rules.check_start(trip, met_count=met_count, now=now, policy=policy)

    advance(trip, TripStatus.IN_PROGRESS)
    trip.is_locked = True
    trip.start_at = now
    await expiry.expire_pending_invitations(session, now, trip_id=trip.id)

    # a cancel still waiting for approval lapses: the student rides
    for request in riders:
        advance(request, RequestStatus.IN_PROGRESS)
        request.progress_stage = ProgressStage.STARTED
        request.started_at = now

    _announce(session, trip)
    events.invalidate(session, *INVITATION_VIEWS)
    logger.info("Trip %s started with %d student(s)", trip.id, len(riders))
    return trip


async def mark_met(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    request_id: int,
    *,
    now: Optional[datetime] = None,
) -> TripParticipantModel:
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id)
    await expiry.settle_trip(session, trip, now, policy)
    rules.check_mark_met(trip, now=now, policy=policy)

    participant = await _load_participant(session, trip, request_id)
    participant.is_met_at_pickup = True
    events.invalidate(session, *TRIP_VIEWS)
    return participant


async def mark_picked_up(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    request_id: int,
    *,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id)
    await _load_participant(session, trip, request_id)
    request = await PickupRequestRepository(session).get_by_id(request_id)
    if request is None:
        raise NotFound("Pickup request")

    rules.check_mark_picked_up(trip, request)
    request.progress_stage = ProgressStage.PICKED_UP
    request.picked_up_at = now
    events.invalidate(session, *TRIP_VIEWS, *REQUEST_VIEWS)
    events.broadcast(
        session,
        f"pickup_request:{request.id}",
        {"id": request.id, "progress_stage": ProgressStage.PICKED_UP.value},
    )
    return request


async def cancel_unmet(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    request_ids: Sequence[int],
    *,
    reason_code: CancelReason = CancelReason.NO_SHOW,
    reason_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[int]:
    """Cancel the listed students who never showed up; returns their ids."""
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id)
    await expiry.settle_trip(session, trip, now, policy)

    requests = PickupRequestRepository(session)
    targets: list[PickupRequestModel] = []
    for request_id in dict.fromkeys(request_ids):
        participant = await _load_participant(session, trip, request_id)
        rules.check_cancel_unmet(trip, participant, now=now, policy=policy)
        request = await requests.get_by_id(request_id)
        if request is None:
            raise NotFound("Pickup request")
        targets.append(request)

    for request in targets:
        await apply_cancellation(
            session, request, reason_code=reason_code, reason_text=reason_text, now=now
        )
    logger.info("Trip %s: cancelled %d unmet student(s)", trip.id, len(targets))
    return [r.id for r in targets]
