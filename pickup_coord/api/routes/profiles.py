"""
Profile endpoints
=================

POST /api/v1/profiles/sync -- create (or refresh) the caller's profile
GET  /api/v1/profiles/me   -- the caller's profile
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_caller_id, get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import Envelope, ProfileResponse, ProfileSyncRequest, ok
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import profiles

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post(
    "/sync",
    response_model=Envelope[ProfileResponse],
    summary="Create the caller's profile on first sign-in",
)
@limiter.limit(RATE_LIMIT)
async def sync_profile(
    request: Request,
    body: Optional[ProfileSyncRequest] = None,
    caller_id: Optional[str] = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
):
    profile = await profiles.sync_profile(
        db, caller_id, school_name=body.school_name if body else None
    )
    return ok(ProfileResponse.model_validate(profile))


@router.get("/me", response_model=Envelope[ProfileResponse], summary="Current profile")
@limiter.limit(RATE_LIMIT)
async def me(request: Request, profile: ProfileModel = Depends(get_profile)):
    return ok(ProfileResponse.model_validate(profile))
