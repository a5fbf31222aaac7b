"""
Profile resolution and capability checks.

Every operation first turns the caller's external identity into a profile
row, then asks for a capability on the entity it wants to act on
("provider of trip X", "requester of request Y", "party to invitation Z").
Each check raises ``NotFound`` for unknown ids and ``AuthorizationDenied``
for a wrong owner, so handlers never compare profile ids themselves.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain.enums import ProfileRole, SenderRole
from pickup_coord.domain.errors import (
    AuthenticationRequired,
    AuthorizationDenied,
    NotFound,
    ProfileNotFound,
)
from pickup_coord.infrastructure.models import (
    InvitationModel,
    PickupRequestModel,
    ProfileModel,
    TripModel,
)
from pickup_coord.infrastructure.repositories import (
    InvitationRepository,
    PickupRequestRepository,
    ProfileRepository,
    TripRepository,
)


async def resolve_profile(session: AsyncSession, external_id: Optional[str]) -> ProfileModel:
    if not external_id:
        raise AuthenticationRequired()
    profile = await ProfileRepository(session).get_by_external_id(external_id)
    if profile is None:
        raise ProfileNotFound()
    return profile


def require_admin(profile: ProfileModel) -> ProfileModel:
    if profile.role != ProfileRole.ADMIN:
        raise AuthorizationDenied("Administrator access is required.")
    return profile


async def trip_as_provider(
    session: AsyncSession, profile: ProfileModel, trip_id: int, *, for_update: bool = False
) -> TripModel:
    repo = TripRepository(session)
    trip = await (repo.get_for_update(trip_id) if for_update else repo.get_by_id(trip_id))
    if trip is None:
        raise NotFound("Trip")
    if trip.provider_profile_id != profile.id:
        raise AuthorizationDenied("You do not have access to this trip.")
    return trip


async def request_as_requester(
    session: AsyncSession, profile: ProfileModel, request_id: int
) -> PickupRequestModel:
    request = await PickupRequestRepository(session).get_by_id(request_id)
    if request is None:
        raise NotFound("Pickup request")
    if request.requester_profile_id != profile.id:
        raise AuthorizationDenied("You do not have access to this pickup request.")
    return request


async def invitation_as_requester(
    session: AsyncSession, profile: ProfileModel, invitation_id: int
) -> InvitationModel:
    invitation = await InvitationRepository(session).get_by_id(invitation_id)
    if invitation is None:
        raise NotFound("Invitation")
    if invitation.requester_profile_id != profile.id:
        raise AuthorizationDenied("Only the invited requester can respond to this invitation.")
    return invitation


async def invitation_as_party(
    session: AsyncSession, profile: ProfileModel, invitation_id: int
) -> tuple[InvitationModel, SenderRole]:
    """The invitation plus the side (provider / requester) the caller is on."""
    invitation = await InvitationRepository(session).get_by_id(invitation_id)
    if invitation is None:
        raise NotFound("Invitation")
    if invitation.provider_profile_id == profile.id:
        return invitation, SenderRole.PROVIDER
    if invitation.requester_profile_id == profile.id:
        return invitation, SenderRole.REQUESTER
    raise AuthorizationDenied("You do not have access to this invitation.")
