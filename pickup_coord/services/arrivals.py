"""Arrival confirmation: the provider drops a student off with a photo."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock, rules
from pickup_coord.domain.enums import ProgressStage, RequestStatus, TripStatus
from pickup_coord.domain.errors import NotFound
from pickup_coord.domain.lifecycle import advance
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import ProfileModel, TripArrivalModel
from pickup_coord.infrastructure.repositories import (
    ArrivalRepository,
    ParticipantRepository,
    PickupRequestRepository,
)
from pickup_coord.services import access
from pickup_coord.services.common import REQUEST_VIEWS, TRIP_VIEWS

logger = logging.getLogger(__name__)


async def confirm_arrival(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    request_id: int,
    *,
    photo_url: str,
    now: Optional[datetime] = None,
) -> TripArrivalModel:
    """Record the drop-off; completes the trip once every student arrived."""
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id, for_update=True)
    participants = await ParticipantRepository(session).list_for_trip(trip.id)
    if request_id not in {p.pickup_request_id for p in participants}:
        raise NotFound("Trip participant")
    request = await PickupRequestRepository(session).get_by_id(request_id)
    arrivals = ArrivalRepository(session)
    rules.check_arrival(
        trip, request, already_arrived=await arrivals.exists_for_request(request_id)
    )

    arrival = await arrivals.add(
        TripArrivalModel(trip_id=trip.id, pickup_request_id=request_id, photo_url=photo_url)
    )
    advance(request, RequestStatus.COMPLETED)
    request.progress_stage = ProgressStage.ARRIVED

    # only students who set off with the trip need to arrive
    riders = await PickupRequestRepository(session).get_many(
        p.pickup_request_id for p in participants
    )
    on_board = {r.id for r in riders.values() if r.started_at is not None}
    arrived = {a.pickup_request_id for a in await arrivals.list_for_trip(trip.id)}
    if arrived >= on_board:
        advance(trip, TripStatus.COMPLETED)
        trip.arrived_at = now
        trip.completed_at = now
        logger.info("Trip %s completed: all %d student(s) arrived", trip.id, len(arrived))

    events.invalidate(session, *TRIP_VIEWS, *REQUEST_VIEWS)
    events.broadcast(
        session,
        f"trip:{trip.id}",
        {"id": trip.id, "status": TripStatus(trip.status).value, "arrived": request_id},
    )
    return arrival


async def list_arrivals(
    session: AsyncSession, profile: ProfileModel, trip_id: int
) -> list[TripArrivalModel]:
    trip = await access.trip_as_provider(session, profile, trip_id)
    return await ArrivalRepository(session).list_for_trip(trip.id)
