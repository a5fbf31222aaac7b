"""
Pickup-request lifecycle
========================

REQUESTED -> MATCHED -> IN_PROGRESS -> COMPLETED, or -> CANCELLED / EXPIRED.
MATCHED -> CANCEL_REQUESTED -> CANCELLED when the provider approves.

Cancellation is the only multi-row write here: the request flips to
CANCELLED with a conditional ``status = previous`` update, its open
invitations expire, and its trip seat is released, all in the caller's
transaction.  A requester can cancel directly or ask the trip's provider
to approve it (``request_cancel`` / ``approve_cancel``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.config import settings
from pickup_coord.domain import area, clock, rules
from pickup_coord.domain.enums import (
    CancelReason,
    DestinationType,
    InvitationStatus,
    RequestStatus,
)
from pickup_coord.domain.errors import InvalidStateTransition, NotFound
from pickup_coord.domain.lifecycle import advance
from pickup_coord.domain.slots import slot_key
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import PickupRequestModel, ProfileModel
from pickup_coord.infrastructure.repositories import (
    InvitationRepository,
    ParticipantRepository,
    PickupRequestRepository,
    TripRepository,
)
from pickup_coord.services import access, expiry
from pickup_coord.services.common import INVITATION_VIEWS, REQUEST_VIEWS, TRIP_VIEWS, policy

logger = logging.getLogger(__name__)


@dataclass
class AvailableRequest:
    """Privacy-reduced view of an open request, shown to providers."""

    id: int
    pickup_time: datetime
    slot_key: str
    origin_area: str
    destination_area: str
    destination_type: DestinationType
    area_cell: str
    has_pending_invitation: bool


async def create_request(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    pickup_time: datetime,
    origin_text: str,
    origin_lat: float,
    origin_lng: float,
    destination_text: str,
    destination_lat: float,
    destination_lng: float,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    now = now or clock.now()
    rules.check_new_request(pickup_time, now)

    request = await PickupRequestRepository(session).add(
        PickupRequestModel(
            requester_profile_id=profile.id,
            pickup_time=pickup_time,
            origin_text=origin_text,
            origin_lat=origin_lat,
            origin_lng=origin_lng,
            destination_text=destination_text,
            destination_lat=destination_lat,
            destination_lng=destination_lng,
            status=RequestStatus.REQUESTED,
        )
    )
    events.invalidate(session, *REQUEST_VIEWS)
    logger.info("Pickup request %s created by profile %s", request.id, profile.id)
    return request


async def list_my_requests(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    status: Optional[RequestStatus] = None,
    now: Optional[datetime] = None,
) -> list[PickupRequestModel]:
    now = now or clock.now()
    await expiry.expire_overdue_requests(
        session, now, policy, requester_profile_id=profile.id
    )
    return await PickupRequestRepository(session).list_for_requester(profile.id, status)


async def get_request(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    *,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    request = await access.request_as_requester(session, profile, request_id)
    await expiry.expire_request_if_due(session, request, now or clock.now(), policy)
    return request


async def _release_seat(
    session: AsyncSession, request: PickupRequestModel, now: datetime
) -> bool:
    """Expire the request's invitations and free its trip seat, if it held one."""
    await expiry.expire_pending_invitations(session, now, pickup_request_id=request.id)
    accepted = await InvitationRepository(session).get_accepted_for_request(request.id)
    if accepted is not None:
        advance(accepted, InvitationStatus.EXPIRED)
        accepted.responded_at = now
    return bool(await ParticipantRepository(session).delete_by_request(request.id))


async def _finish_cancellation(
    session: AsyncSession,
    request: PickupRequestModel,
    previous: RequestStatus,
    *,
    now: datetime,
    **values,
) -> bool:
    updated = await PickupRequestRepository(session).update_if_status(
        request.id, previous, status=RequestStatus.CANCELLED, cancelled_at=now, **values
    )
    if not updated:
        raise InvalidStateTransition(
            "This pickup request was changed by someone else. Please reload and try again."
        )
    await session.refresh(request)
    released = await _release_seat(session, request, now)

    events.invalidate(session, *REQUEST_VIEWS, *TRIP_VIEWS, *INVITATION_VIEWS)
    events.broadcast(
        session,
        f"pickup_request:{request.id}",
        {"id": request.id, "status": RequestStatus.CANCELLED.value},
    )
    return released


async def apply_cancellation(
    session: AsyncSession,
    request: PickupRequestModel,
    *,
    reason_code: CancelReason,
    reason_text: Optional[str],
    now: datetime,
    **values,
) -> PickupRequestModel:
    """Cancel *request* and release everything it holds.  Does not commit."""
    rules.check_cancel(request)
    previous = RequestStatus(request.status)
    released = await _finish_cancellation(
        session,
        request,
        previous,
        now=now,
        cancel_reason_code=reason_code,
        cancel_reason_text=reason_text,
        **values,
    )
    logger.info(
        "Pickup request %s cancelled from %s (%s), seat released=%s",
        request.id,
        previous.value,
        reason_code.value,
        released,
    )
    return request


async def cancel_request(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    *,
    reason_code: CancelReason,
    reason_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    now = now or clock.now()
    request = await access.request_as_requester(session, profile, request_id)
    await expiry.expire_request_if_due(session, request, now, policy)
    return await apply_cancellation(
        session, request, reason_code=reason_code, reason_text=reason_text, now=now
    )


async def request_cancel(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    *,
    reason_code: CancelReason = CancelReason.CANCEL,
    reason_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    """Requester side of the provider-approved cancel.

    A REQUESTED pickup holds no seat, so it is cancelled on the spot.  A
    MATCHED one moves to CANCEL_REQUESTED and keeps its seat until the
    trip's provider approves; asking closes an hour before pickup.
    """
    now = now or clock.now()
    request = await access.request_as_requester(session, profile, request_id)
    await expiry.expire_request_if_due(session, request, now, policy)
    rules.check_request_cancel(request, now=now, policy=policy)

    if request.status == RequestStatus.REQUESTED:
        return await apply_cancellation(
            session,
            request,
            reason_code=reason_code,
            reason_text=reason_text,
            now=now,
            cancel_requested_at=now,
            cancel_approved_at=now,
        )

    trip = await TripRepository(session).get_for_request(request.id)
    if trip is None:
        raise NotFound("Trip participant")
    updated = await PickupRequestRepository(session).update_if_status(
        request.id,
        RequestStatus.MATCHED,
        status=RequestStatus.CANCEL_REQUESTED,
        cancel_requested_at=now,
        cancel_reason_code=reason_code,
        cancel_reason_text=reason_text,
    )
    if not updated:
        raise InvalidStateTransition(
            "This pickup request was changed by someone else. Please reload and try again."
        )
    await session.refresh(request)

    events.invalidate(session, *REQUEST_VIEWS, *TRIP_VIEWS)
    events.broadcast(
        session,
        f"trip:{trip.id}",
        {"id": trip.id, "cancel_requested": request.id},
    )
    logger.info("Pickup request %s asked trip %s to cancel", request.id, trip.id)
    return request


async def approve_cancel(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    *,
    now: Optional[datetime] = None,
) -> PickupRequestModel:
    """Provider side: accept a pending cancel and give the seat back."""
    now = now or clock.now()
    request = await PickupRequestRepository(session).get_by_id(request_id)
    if request is None:
        raise NotFound("Pickup request")
    trip = await TripRepository(session).get_for_request(request.id)
    if trip is None:
        raise NotFound("Trip participant")
    trip = await access.trip_as_provider(session, profile, trip.id)
    await expiry.settle_trip(session, trip, now, policy)

    trip = await access.trip_as_provider(session, profile, trip.id, for_update=True)
    rules.check_approve_cancel(trip, request, now=now, policy=policy)
    released = await _finish_cancellation(
        session,
        request,
        RequestStatus.CANCEL_REQUESTED,
        now=now,
        cancel_approved_at=now,
        cancel_approved_by=profile.id,
    )
    logger.info(
        "Trip %s approved the cancel of pickup request %s, seat released=%s",
        trip.id,
        request.id,
        released,
    )
    return request


async def list_available(
    session: AsyncSession, *, now: Optional[datetime] = None
) -> list[AvailableRequest]:
    """Open requests for providers, stripped to area-level detail."""
    now = now or clock.now()
    await expiry.expire_overdue_requests(session, now, policy)
    open_requests = await PickupRequestRepository(session).list_open()
    with_pending = await InvitationRepository(session).requests_with_pending(
        r.id for r in open_requests
    )
    return [
        AvailableRequest(
            id=r.id,
            pickup_time=r.pickup_time,
            slot_key=slot_key(r.pickup_time),
            origin_area=area.extract_area(r.origin_text),
            destination_area=area.extract_area(r.destination_text),
            destination_type=area.destination_type(r.destination_text),
            area_cell=area.area_cell(r.origin_lat, r.origin_lng, settings.h3_resolution),
            has_pending_invitation=r.id in with_pending,
        )
        for r in open_requests
    ]
