"""
Invitation Broker
=================

An invitation offers one seat on a trip to one pickup request.

    PENDING -> ACCEPTED | REJECTED | EXPIRED
    ACCEPTED -> EXPIRED             (only when the request is cancelled)

PENDING and ACCEPTED both hold a seat.  Limits (see ``domain.rules``):

* trip:      PENDING + ACCEPTED <= capacity (3)
* provider:  PENDING            <  3 system-wide
* provider:  ACCEPTED per slot  <  3 (slot = pickup hour)

Concurrency
-----------
Send and accept re-read the trip with ``SELECT ... FOR UPDATE`` after the
expiry safety net has run, so two callers racing for the last seat are
serialised on the trip row.  Row locks only exist on PostgreSQL, so send
also recounts the trip after its insert and refuses a seat past capacity.
Everything an accept writes (invitation, participant, request, trip lock)
commits or rolls back together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock, rules
from pickup_coord.domain.enums import (
    INVITATION_STATUS_RANK,
    InvitationStatus,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.errors import ConstraintViolation, NotFound
from pickup_coord.domain.lifecycle import advance
from pickup_coord.domain.slots import slot_bounds
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.identity import IdentityClient, PublicProfile
from pickup_coord.infrastructure.models import (
    InvitationModel,
    PickupRequestModel,
    ProfileModel,
    TripModel,
    TripParticipantModel,
)
from pickup_coord.infrastructure.repositories import (
    InvitationRepository,
    PickupRequestRepository,
    ProfileRepository,
    TripRepository,
)
from pickup_coord.services import access, expiry
from pickup_coord.services.common import INVITATION_VIEWS, TRIP_VIEWS, policy

logger = logging.getLogger(__name__)

DUPLICATE_PENDING_MESSAGE = "You already have a pending invitation for this request."


@dataclass
class InvitationDetail:
    invitation: InvitationModel
    trip: TripModel
    request: PickupRequestModel
    provider_profile: Optional[PublicProfile] = None

    @property
    def reveal_location(self) -> bool:
        """Exact address / coordinates are shared only once accepted."""
        return self.invitation.status == InvitationStatus.ACCEPTED


def sort_by_status(invitations: list[InvitationModel]) -> list[InvitationModel]:
    """PENDING, ACCEPTED, REJECTED, EXPIRED; newest first within a status."""
    newest_first = sorted(
        invitations, key=lambda i: (i.created_at or datetime.min, i.id), reverse=True
    )
    return sorted(
        newest_first, key=lambda i: INVITATION_STATUS_RANK[InvitationStatus(i.status)]
    )


async def _details(
    session: AsyncSession, invitations: list[InvitationModel]
) -> list[InvitationDetail]:
    trips = await TripRepository(session).get_many(i.trip_id for i in invitations)
    requests = await PickupRequestRepository(session).get_many(
        i.pickup_request_id for i in invitations
    )
    return [
        InvitationDetail(
            invitation=i, trip=trips[i.trip_id], request=requests[i.pickup_request_id]
        )
        for i in invitations
    ]


def _announce(session: AsyncSession, invitation: InvitationModel) -> None:
    events.invalidate(session, *INVITATION_VIEWS)
    events.broadcast(
        session,
        f"invitation:{invitation.id}",
        {
            "id": invitation.id,
            "trip_id": invitation.trip_id,
            "pickup_request_id": invitation.pickup_request_id,
            "status": InvitationStatus(invitation.status).value,
        },
    )


# ── Send ──────────────────────────────────────────────────────────────


async def send_invitation(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    trip_id: int,
    pickup_request_id: int,
    now: Optional[datetime] = None,
) -> InvitationModel:
    now = now or clock.now()
    trip = await access.trip_as_provider(session, profile, trip_id)
    request = await PickupRequestRepository(session).get_by_id(pickup_request_id)
    if request is None:
        raise NotFound("Pickup request")

    await expiry.settle_trip(session, trip, now, policy)
    await expiry.expire_request_if_due(session, request, now, policy)
    await expiry.expire_overdue_invitations(session, now, provider_profile_id=profile.id)
    await expiry.expire_overdue_invitations(session, now, trip_id=trip.id)

    trip = await access.trip_as_provider(session, profile, trip_id, for_update=True)
    repo = InvitationRepository(session)
    counts = rules.SendCounts(
        duplicate_pending=await repo.has_pending_pair(request.id, profile.id),
        provider_pending=await repo.count_pending_for_provider(profile.id),
        trip_active=await repo.count_for_trip(trip.id),
    )
    try:
        rules.check_send(trip, request, counts=counts, now=now, policy=policy)
    except ConstraintViolation as exc:
        logger.warning(
            "Invite refused (trip=%s request=%s): %s", trip.id, request.id, exc.message
        )
        raise

    invitation = InvitationModel(
        trip_id=trip.id,
        pickup_request_id=request.id,
        provider_profile_id=profile.id,
        requester_profile_id=request.requester_profile_id,
        status=InvitationStatus.PENDING,
        expires_at=now + policy.invitation_ttl,
    )
    try:
        await repo.add(invitation)
    except IntegrityError as exc:
        # partial unique index on (request, provider) WHERE PENDING
        raise ConstraintViolation(DUPLICATE_PENDING_MESSAGE) from exc
    # recount under this transaction's write lock; SQLite ignores FOR UPDATE
    if await repo.count_for_trip(trip.id) > trip.capacity:
        logger.warning(
            "Invite refused (trip=%s request=%s): lost the race for the last seat",
            trip.id,
            request.id,
        )
        raise ConstraintViolation("This trip is full.")

    _announce(session, invitation)
    logger.info(
        "Invitation %s sent: trip=%s request=%s", invitation.id, trip.id, request.id
    )
    return invitation


# ── Respond ───────────────────────────────────────────────────────────


async def accept_invitation(
    session: AsyncSession,
    profile: ProfileModel,
    invitation_id: int,
    *,
    now: Optional[datetime] = None,
) -> InvitationModel:
    now = now or clock.now()
    invitation = await access.invitation_as_requester(session, profile, invitation_id)
    requests = PickupRequestRepository(session)
    trips = TripRepository(session)
    request = await requests.get_by_id(invitation.pickup_request_id)
    trip = await trips.get_by_id(invitation.trip_id)

    # committed even when the accept below is refused
    await expiry.expire_request_if_due(session, request, now, policy)
    await expiry.settle_trip(session, trip, now, policy)
    await expiry.expire_overdue_invitations(session, now, id=invitation.id)

    trip = await trips.get_for_update(trip.id)
    repo = InvitationRepository(session)
    slot_start, slot_end = slot_bounds(request.pickup_time)
    counts = rules.AcceptCounts(
        trip_active_others=await repo.count_for_trip(trip.id, exclude_id=invitation.id),
        trip_accepted=await repo.count_for_trip(trip.id, (InvitationStatus.ACCEPTED,)),
        slot_accepted=await repo.count_accepted_in_slot(
            invitation.provider_profile_id, slot_start, slot_end
        ),
    )
    plan = rules.plan_accept(
        invitation, trip, request, counts=counts, now=now, policy=policy
    )

    advance(invitation, InvitationStatus.ACCEPTED)
    invitation.responded_at = now
    session.add(
        TripParticipantModel(
            trip_id=trip.id,
            pickup_request_id=request.id,
            requester_profile_id=request.requester_profile_id,
            sequence_order=plan.sequence_order,
            is_met_at_pickup=False,
        )
    )
    advance(request, RequestStatus.MATCHED)
    request.progress_stage = ProgressStage.MATCHED
    superseded = await expiry.expire_pending_invitations(
        session, now, pickup_request_id=request.id
    )

    if plan.lock_trip:
        advance(trip, TripStatus.LOCKED)
        trip.is_locked = True
        released = await expiry.expire_pending_invitations(session, now, trip_id=trip.id)
        logger.info(
            "Trip %s full: locked, %d pending invitation(s) expired", trip.id, released
        )
        events.broadcast(
            session, f"trip:{trip.id}", {"id": trip.id, "status": TripStatus.LOCKED.value}
        )

    _announce(session, invitation)
    events.invalidate(session, *TRIP_VIEWS)
    logger.info(
        "Invitation %s accepted (seat %d/%d, %d superseded)",
        invitation.id,
        plan.sequence_order,
        trip.capacity,
        superseded,
    )
    return invitation


async def reject_invitation(
    session: AsyncSession,
    profile: ProfileModel,
    invitation_id: int,
    *,
    now: Optional[datetime] = None,
) -> InvitationModel:
    invitation = await access.invitation_as_requester(session, profile, invitation_id)
    rules.check_reject(invitation)
    advance(invitation, InvitationStatus.REJECTED)
    invitation.responded_at = now or clock.now()
    _announce(session, invitation)
    logger.info("Invitation %s rejected", invitation.id)
    return invitation


# ── Read ──────────────────────────────────────────────────────────────


async def list_for_trip(
    session: AsyncSession,
    profile: ProfileModel,
    trip_id: int,
    *,
    now: Optional[datetime] = None,
) -> list[InvitationDetail]:
    trip = await access.trip_as_provider(session, profile, trip_id)
    await expiry.expire_overdue_invitations(session, now or clock.now(), trip_id=trip.id)
    invitations = await InvitationRepository(session).list_for_trip(trip.id)
    return await _details(session, sort_by_status(invitations))


async def list_for_request(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    identity: IdentityClient,
    *,
    now: Optional[datetime] = None,
) -> list[InvitationDetail]:
    """Invitations a requester received, with each provider's public profile."""
    request = await access.request_as_requester(session, profile, request_id)
    await expiry.expire_overdue_invitations(
        session, now or clock.now(), pickup_request_id=request.id
    )
    invitations = await InvitationRepository(session).list_for_request(request.id)
    details = await _details(session, sort_by_status(invitations))

    providers = await ProfileRepository(session).get_many(
        d.invitation.provider_profile_id for d in details
    )
    public = await identity.get_public_profiles(p.external_id for p in providers.values())
    for detail in details:
        provider = providers.get(detail.invitation.provider_profile_id)
        if provider is not None:
            detail.provider_profile = public.get(provider.external_id)
    return details


async def get_invitation(
    session: AsyncSession,
    profile: ProfileModel,
    invitation_id: int,
    *,
    now: Optional[datetime] = None,
) -> InvitationDetail:
    invitation, _ = await access.invitation_as_party(session, profile, invitation_id)
    await expiry.expire_overdue_invitations(session, now or clock.now(), id=invitation.id)
    [detail] = await _details(session, [invitation])
    return detail


async def list_mine(
    session: AsyncSession,
    profile: ProfileModel,
    *,
    now: Optional[datetime] = None,
) -> list[InvitationDetail]:
    """Invitations the caller sent as a provider."""
    await expiry.expire_overdue_invitations(
        session, now or clock.now(), provider_profile_id=profile.id
    )
    invitations = await InvitationRepository(session).list_for_provider(
        profile.id,
        (InvitationStatus.PENDING, InvitationStatus.ACCEPTED, InvitationStatus.EXPIRED),
    )
    return await _details(session, invitations)
