"""
Invitation endpoints
====================

POST /api/v1/invitations                       -- provider invites a request onto a trip
GET  /api/v1/invitations/mine                  -- invitations the caller sent
GET  /api/v1/invitations/unread                -- unread message counts (?invitation_ids=...)
GET  /api/v1/invitations/{id}                  -- either party
POST /api/v1/invitations/{id}/accept           -- requester accepts
POST /api/v1/invitations/{id}/reject           -- requester declines
GET  /api/v1/invitations/{id}/messages         -- message thread
POST /api/v1/invitations/{id}/messages         -- send a message
POST /api/v1/invitations/{id}/messages/read    -- mark the thread read
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import (
    Envelope,
    InvitationCreate,
    InvitationDetailResponse,
    InvitationResponse,
    MessageCreate,
    MessageResponse,
    ReadMarkerResponse,
    ok,
)
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import invitations, messages

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.post(
    "",
    status_code=201,
    response_model=Envelope[InvitationResponse],
    summary="Invite a pickup request onto a trip",
)
@limiter.limit(RATE_LIMIT)
async def send_invitation(
    request: Request,
    body: InvitationCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    invitation = await invitations.send_invitation(
        db, profile, trip_id=body.trip_id, pickup_request_id=body.pickup_request_id
    )
    return ok(InvitationResponse.model_validate(invitation))


@router.get(
    "/mine",
    response_model=Envelope[list[InvitationDetailResponse]],
    summary="Invitations the caller sent",
)
@limiter.limit(RATE_LIMIT)
async def list_my_invitations(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    details = await invitations.list_mine(db, profile)
    return ok([InvitationDetailResponse.build(d) for d in details])


@router.get(
    "/unread",
    response_model=Envelope[dict[int, int]],
    summary="Unread message counts per invitation",
)
@limiter.limit(RATE_LIMIT)
async def unread_counts(
    request: Request,
    invitation_ids: list[int] = Query(default=[]),
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(await messages.unread_counts(db, profile, invitation_ids))


@router.get(
    "/{invitation_id}",
    response_model=Envelope[InvitationDetailResponse],
    summary="Get an invitation",
)
@limiter.limit(RATE_LIMIT)
async def get_invitation(
    request: Request,
    invitation_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    detail = await invitations.get_invitation(db, profile, invitation_id)
    return ok(InvitationDetailResponse.build(detail))


@router.post(
    "/{invitation_id}/accept",
    response_model=Envelope[InvitationResponse],
    summary="Accept an invitation",
)
@limiter.limit(RATE_LIMIT)
async def accept_invitation(
    request: Request,
    invitation_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    invitation = await invitations.accept_invitation(db, profile, invitation_id)
    return ok(InvitationResponse.model_validate(invitation))


@router.post(
    "/{invitation_id}/reject",
    response_model=Envelope[InvitationResponse],
    summary="Reject an invitation",
)
@limiter.limit(RATE_LIMIT)
async def reject_invitation(
    request: Request,
    invitation_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    invitation = await invitations.reject_invitation(db, profile, invitation_id)
    return ok(InvitationResponse.model_validate(invitation))


@router.get(
    "/{invitation_id}/messages",
    response_model=Envelope[list[MessageResponse]],
    summary="Message thread for an invitation",
)
@limiter.limit(RATE_LIMIT)
async def list_messages(
    request: Request,
    invitation_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await messages.list_messages(db, profile, invitation_id)
    return ok([MessageResponse.model_validate(m) for m in rows])


@router.post(
    "/{invitation_id}/messages",
    status_code=201,
    response_model=Envelope[MessageResponse],
    summary="Send a message",
)
@limiter.limit(RATE_LIMIT)
async def send_message(
    request: Request,
    invitation_id: int,
    body: MessageCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    message = await messages.send_message(db, profile, invitation_id, body.body)
    return ok(MessageResponse.model_validate(message))


@router.post(
    "/{invitation_id}/messages/read",
    response_model=Envelope[ReadMarkerResponse],
    summary="Mark the thread as read",
)
@limiter.limit(RATE_LIMIT)
async def mark_read(
    request: Request,
    invitation_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    marker = await messages.mark_read(db, profile, invitation_id)
    return ok(ReadMarkerResponse.model_validate(marker))
