"""
Calendar endpoints (month views, ``month=YYYY-MM``)
===================================================

GET /api/v1/calendar/available-trips -- {date: joinable trip count}
GET /api/v1/calendar/open-requests   -- {date: open request count}
GET /api/v1/calendar/my-requests     -- {date: {count, statuses}}
GET /api/v1/calendar/my-trips        -- {date: {count, statuses}}
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import DaySummaryResponse, Envelope, ok
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import calendar

router = APIRouter(prefix="/calendar", tags=["calendar"])

MONTH = Query(..., description="Month as YYYY-MM")


@router.get("/available-trips", response_model=Envelope[dict[str, int]])
@limiter.limit(RATE_LIMIT)
async def available_trips(
    request: Request,
    month: str = MONTH,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(await calendar.available_trips(db, month))


@router.get("/open-requests", response_model=Envelope[dict[str, int]])
@limiter.limit(RATE_LIMIT)
async def open_requests(
    request: Request,
    month: str = MONTH,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(await calendar.open_requests(db, month))


@router.get("/my-requests", response_model=Envelope[dict[str, DaySummaryResponse]])
@limiter.limit(RATE_LIMIT)
async def my_requests(
    request: Request,
    month: str = MONTH,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(await calendar.my_requests(db, profile, month))


@router.get("/my-trips", response_model=Envelope[dict[str, DaySummaryResponse]])
@limiter.limit(RATE_LIMIT)
async def my_trips(
    request: Request,
    month: str = MONTH,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(await calendar.my_trips(db, profile, month))
