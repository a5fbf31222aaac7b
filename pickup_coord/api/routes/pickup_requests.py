"""
Pickup-request endpoints
========================

POST /api/v1/pickup-requests                     -- create a request
GET  /api/v1/pickup-requests/mine                -- caller's requests
GET  /api/v1/pickup-requests/available           -- open requests (area-level, for providers)
GET  /api/v1/pickup-requests/{id}                -- one of the caller's requests
POST /api/v1/pickup-requests/{id}/cancel         -- cancel (REQUESTED / MATCHED only)
POST /api/v1/pickup-requests/{id}/cancel-request -- ask the provider to cancel (MATCHED)
POST /api/v1/pickup-requests/{id}/approve-cancel -- provider approves a pending cancel
GET  /api/v1/pickup-requests/{id}/invitations    -- invitations received
GET  /api/v1/pickup-requests/{id}/review         -- caller's review
POST /api/v1/pickup-requests/{id}/review         -- rate a completed pickup
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import (
    AvailableRequestResponse,
    CancelBody,
    CancelRequestBody,
    Envelope,
    InvitationDetailResponse,
    PickupRequestCreate,
    PickupRequestResponse,
    ReviewCreate,
    ReviewResponse,
    ok,
)
from pickup_coord.domain.enums import RequestStatus
from pickup_coord.infrastructure.identity import IdentityClient, get_identity_client
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import invitations, pickup_requests, reviews

router = APIRouter(prefix="/pickup-requests", tags=["pickup-requests"])


@router.post(
    "",
    status_code=201,
    response_model=Envelope[PickupRequestResponse],
    summary="Create a pickup request",
)
@limiter.limit(RATE_LIMIT)
async def create_pickup_request(
    request: Request,
    body: PickupRequestCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    pickup = await pickup_requests.create_request(db, profile, **body.model_dump())
    return ok(PickupRequestResponse.model_validate(pickup))


@router.get(
    "/mine",
    response_model=Envelope[list[PickupRequestResponse]],
    summary="List the caller's pickup requests",
)
@limiter.limit(RATE_LIMIT)
async def list_my_pickup_requests(
    request: Request,
    status: Optional[RequestStatus] = None,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await pickup_requests.list_my_requests(db, profile, status=status)
    return ok([PickupRequestResponse.model_validate(r) for r in rows])


@router.get(
    "/available",
    response_model=Envelope[list[AvailableRequestResponse]],
    summary="Open pickup requests a provider can invite",
)
@limiter.limit(RATE_LIMIT)
async def list_available_pickup_requests(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await pickup_requests.list_available(db)
    return ok([AvailableRequestResponse.model_validate(r) for r in rows])


@router.get(
    "/{request_id}",
    response_model=Envelope[PickupRequestResponse],
    summary="Get one of the caller's pickup requests",
)
@limiter.limit(RATE_LIMIT)
async def get_pickup_request(
    request: Request,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    pickup = await pickup_requests.get_request(db, profile, request_id)
    return ok(PickupRequestResponse.model_validate(pickup))


@router.post(
    "/{request_id}/cancel",
    response_model=Envelope[PickupRequestResponse],
    summary="Cancel a pickup request",
)
@limiter.limit(RATE_LIMIT)
async def cancel_pickup_request(
    request: Request,
    request_id: int,
    body: CancelBody,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    pickup = await pickup_requests.cancel_request(
        db,
        profile,
        request_id,
        reason_code=body.reason_code,
        reason_text=body.reason_text,
    )
    return ok(PickupRequestResponse.model_validate(pickup))


@router.post(
    "/{request_id}/cancel-request",
    response_model=Envelope[PickupRequestResponse],
    summary="Ask the trip's provider to cancel a matched pickup",
)
@limiter.limit(RATE_LIMIT)
async def request_pickup_cancel(
    request: Request,
    request_id: int,
    body: Optional[CancelRequestBody] = None,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    body = body or CancelRequestBody()
    pickup = await pickup_requests.request_cancel(
        db,
        profile,
        request_id,
        reason_code=body.reason_code,
        reason_text=body.reason_text,
    )
    return ok(PickupRequestResponse.model_validate(pickup))


@router.post(
    "/{request_id}/approve-cancel",
    response_model=Envelope[PickupRequestResponse],
    summary="Approve a requester's cancellation (trip provider only)",
)
@limiter.limit(RATE_LIMIT)
async def approve_pickup_cancel(
    request: Request,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    pickup = await pickup_requests.approve_cancel(db, profile, request_id)
    return ok(PickupRequestResponse.model_validate(pickup))


@router.get(
    "/{request_id}/invitations",
    response_model=Envelope[list[InvitationDetailResponse]],
    summary="Invitations received for a pickup request",
)
@limiter.limit(RATE_LIMIT)
async def list_request_invitations(
    request: Request,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    details = await invitations.list_for_request(db, profile, request_id, identity)
    return ok([InvitationDetailResponse.build(d) for d in details])


@router.get(
    "/{request_id}/review",
    response_model=Envelope[ReviewResponse],
    summary="The caller's review of a completed pickup",
)
@limiter.limit(RATE_LIMIT)
async def get_my_review(
    request: Request,
    request_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    review = await reviews.get_my_review(db, profile, request_id)
    return ok(ReviewResponse.model_validate(review) if review else None)


@router.post(
    "/{request_id}/review",
    status_code=201,
    response_model=Envelope[ReviewResponse],
    summary="Rate a completed pickup",
)
@limiter.limit(RATE_LIMIT)
async def submit_review(
    request: Request,
    request_id: int,
    body: ReviewCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    review = await reviews.submit_review(
        db, profile, request_id, rating=body.rating, comment=body.comment
    )
    return ok(ReviewResponse.model_validate(review))
