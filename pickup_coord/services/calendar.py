"""Month calendars for the create / history screens (read-only)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock
from pickup_coord.domain.calendar import count_by_day, month_bounds, summarize_by_day
from pickup_coord.domain.enums import RequestStatus, TripStatus
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.infrastructure.repositories import (
    ParticipantRepository,
    PickupRequestRepository,
    TripRepository,
)
from pickup_coord.services.common import policy


async def available_trips(session: AsyncSession, month: str) -> dict[str, int]:
    """Days with joinable trips: OPEN / LOCKED, real, with a free seat."""
    start, end = month_bounds(month)
    trips = await TripRepository(session).list_in_range(
        start, end, statuses=(TripStatus.OPEN, TripStatus.LOCKED)
    )
    seats = await ParticipantRepository(session).count_for_trips(t.id for t in trips)
    return count_by_day(
        t.scheduled_start_at
        for t in trips
        if seats.get(t.id, 0) < (t.capacity or policy.trip_capacity)
    )


async def open_requests(
    session: AsyncSession, month: str, *, now: Optional[datetime] = None
) -> dict[str, int]:
    now = now or clock.now()
    start, end = month_bounds(month)
    requests = await PickupRequestRepository(session).list_in_range(
        start, end, status=RequestStatus.REQUESTED
    )
    return count_by_day(r.pickup_time for r in requests if r.pickup_time > now)


async def my_requests(
    session: AsyncSession, profile: ProfileModel, month: str
) -> dict[str, dict]:
    start, end = month_bounds(month)
    requests = await PickupRequestRepository(session).list_in_range(
        start, end, requester_profile_id=profile.id
    )
    return summarize_by_day(
        (r.pickup_time, RequestStatus(r.status).value) for r in requests
    )


async def my_trips(session: AsyncSession, profile: ProfileModel, month: str) -> dict[str, dict]:
    start, end = month_bounds(month)
    trips = await TripRepository(session).list_in_range(
        start, end, provider_profile_id=profile.id, include_test=True
    )
    return summarize_by_day(
        (t.scheduled_start_at or t.created_at, TripStatus(t.status).value) for t in trips
    )
