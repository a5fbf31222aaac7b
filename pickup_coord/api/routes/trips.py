"""
Trip endpoints (provider side)
==============================

POST /api/v1/trips                                         -- create a trip
GET  /api/v1/trips/mine                                    -- caller's trips + participant counts
GET  /api/v1/trips/completed                               -- caller's completed trips
GET  /api/v1/trips/{id}                                    -- trip with participants
GET  /api/v1/trips/{id}/participants                       -- participants in seat order
GET  /api/v1/trips/{id}/invitations                        -- invitations sent for the trip
POST /api/v1/trips/{id}/start                              -- depart
POST /api/v1/trips/{id}/participants/{request_id}/met      -- student met at pickup
POST /api/v1/trips/{id}/participants/{request_id}/picked-up
POST /api/v1/trips/{id}/cancel-unmet                       -- cancel no-show students
POST /api/v1/trips/{id}/arrivals/{request_id}              -- confirm drop-off (photo URL)
GET  /api/v1/trips/{id}/arrivals
GET  /api/v1/trips/{id}/reviews
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import (
    ArrivalCreate,
    ArrivalResponse,
    CancelledResponse,
    CancelUnmetBody,
    Envelope,
    InvitationDetailResponse,
    MetResponse,
    ParticipantResponse,
    PickupRequestResponse,
    ReviewResponse,
    TripCreate,
    TripDetailResponse,
    TripResponse,
    ok,
)
from pickup_coord.domain.enums import TripStatus
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import arrivals, invitations, reviews, trips

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post("", status_code=201, response_model=Envelope[TripResponse], summary="Create a trip")
@limiter.limit(RATE_LIMIT)
async def create_trip(
    request: Request,
    body: TripCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    trip = await trips.create_trip(
        db,
        profile,
        scheduled_start_at=body.scheduled_start_at,
        title=body.title,
        is_test=body.is_test,
    )
    return ok(TripResponse.build(trip))


@router.get("/mine", response_model=Envelope[list[TripResponse]], summary="List the caller's trips")
@limiter.limit(RATE_LIMIT)
async def list_my_trips(
    request: Request,
    status: Optional[TripStatus] = None,
    include_test: bool = False,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await trips.list_my_trips(db, profile, status=status, include_test=include_test)
    return ok([TripResponse.build(trip, count) for trip, count in rows])


@router.get(
    "/completed",
    response_model=Envelope[list[TripResponse]],
    summary="List the caller's completed trips",
)
@limiter.limit(RATE_LIMIT)
async def list_completed_trips(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await trips.list_completed_trips(db, profile)
    return ok([TripResponse.build(trip, count) for trip, count in rows])


@router.get("/{trip_id}", response_model=Envelope[TripDetailResponse], summary="Get a trip")
@limiter.limit(RATE_LIMIT)
async def get_trip(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    trip, views = await trips.get_trip(db, profile, trip_id)
    detail = TripDetailResponse.model_validate(trip)
    detail.participants = [ParticipantResponse.build(v) for v in views]
    detail.participant_count = len(views)
    return ok(detail)


@router.get(
    "/{trip_id}/participants",
    response_model=Envelope[list[ParticipantResponse]],
    summary="Participants in seat order",
)
@limiter.limit(RATE_LIMIT)
async def list_participants(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    views = await trips.list_participants(db, profile, trip_id)
    return ok([ParticipantResponse.build(v) for v in views])


@router.get(
    "/{trip_id}/invitations",
    response_model=Envelope[list[InvitationDetailResponse]],
    summary="Invitations sent for a trip",
)
@limiter.limit(RATE_LIMIT)
async def list_trip_invitations(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    details = await invitations.list_for_trip(db, profile, trip_id)
    return ok([InvitationDetailResponse.build(d) for d in details])


@router.post("/{trip_id}/start", response_model=Envelope[TripResponse], summary="Start a trip")
@limiter.limit(RATE_LIMIT)
async def start_trip(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    trip = await trips.start_trip(db, profile, trip_id)
    return ok(TripResponse.build(trip))


@router.post(
    "/{trip_id}/participants/{request_id}/met",
    response_model=Envelope[MetResponse],
    summary="Mark a student as met at pickup",
)
@limiter.limit(RATE_LIMIT)
async def mark_met(
    request: Request,
    trip_id: int,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    participant = await trips.mark_met(db, profile, trip_id, request_id)
    return ok(MetResponse.model_validate(participant))


@router.post(
    "/{trip_id}/participants/{request_id}/picked-up",
    response_model=Envelope[PickupRequestResponse],
    summary="Mark a student as picked up",
)
@limiter.limit(RATE_LIMIT)
async def mark_picked_up(
    request: Request,
    trip_id: int,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    pickup = await trips.mark_picked_up(db, profile, trip_id, request_id)
    return ok(PickupRequestResponse.model_validate(pickup))


@router.post(
    "/{trip_id}/cancel-unmet",
    response_model=Envelope[CancelledResponse],
    summary="Cancel students who did not show up",
)
@limiter.limit(RATE_LIMIT)
async def cancel_unmet(
    request: Request,
    trip_id: int,
    body: CancelUnmetBody,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    cancelled = await trips.cancel_unmet(
        db,
        profile,
        trip_id,
        body.pickup_request_ids,
        reason_code=body.reason_code,
        reason_text=body.reason_text,
    )
    return ok(CancelledResponse(cancelled=cancelled))


@router.post(
    "/{trip_id}/arrivals/{request_id}",
    status_code=201,
    response_model=Envelope[ArrivalResponse],
    summary="Confirm a student's arrival",
)
@limiter.limit(RATE_LIMIT)
async def confirm_arrival(
    request: Request,
    trip_id: int,
    request_id: int,
    body: ArrivalCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    arrival = await arrivals.confirm_arrival(
        db, profile, trip_id, request_id, photo_url=body.photo_url
    )
    return ok(ArrivalResponse.model_validate(arrival))


@router.get(
    "/{trip_id}/arrivals",
    response_model=Envelope[list[ArrivalResponse]],
    summary="Arrivals confirmed on a trip",
)
@limiter.limit(RATE_LIMIT)
async def list_arrivals(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await arrivals.list_arrivals(db, profile, trip_id)
    return ok([ArrivalResponse.model_validate(a) for a in rows])


@router.get(
    "/{trip_id}/reviews",
    response_model=Envelope[list[ReviewResponse]],
    summary="Reviews left for a trip",
)
@limiter.limit(RATE_LIMIT)
async def list_reviews(
    request: Request,
    trip_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await reviews.list_trip_reviews(db, profile, trip_id)
    return ok([ReviewResponse.model_validate(r) for r in rows])
