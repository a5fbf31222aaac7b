"""
Pickup messages
===============

A private thread per invitation between its provider and its requester.
Read state is one ``last_read_at`` marker per (invitation, profile); a
message is unread for a profile when it came from the other side after
that marker.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import (
    MessageReadModel,
    PickupMessageModel,
    ProfileModel,
)
from pickup_coord.infrastructure.repositories import MessageRepository
from pickup_coord.services import access

logger = logging.getLogger(__name__)


async def list_messages(
    session: AsyncSession, profile: ProfileModel, invitation_id: int
) -> list[PickupMessageModel]:
    invitation, _ = await access.invitation_as_party(session, profile, invitation_id)
    return await MessageRepository(session).list_for_invitation(invitation.id)


async def send_message(
    session: AsyncSession,
    profile: ProfileModel,
    invitation_id: int,
    body: str,
    *,
    now: Optional[datetime] = None,
) -> PickupMessageModel:
    invitation, role = await access.invitation_as_party(session, profile, invitation_id)
    # stamped on the same local clock as the read markers
    message = await MessageRepository(session).add(
        PickupMessageModel(
            invitation_id=invitation.id,
            trip_id=invitation.trip_id,
            pickup_request_id=invitation.pickup_request_id,
            sender_profile_id=profile.id,
            sender_role=role,
            body=body.strip(),
            created_at=now or clock.now(),
        )
    )
    events.broadcast(
        session,
        f"invitation:{invitation.id}:messages",
        {
            "id": message.id,
            "sender_profile_id": profile.id,
            "sender_role": role.value,
            "body": message.body,
        },
    )
    return message


async def mark_read(
    session: AsyncSession,
    profile: ProfileModel,
    invitation_id: int,
    *,
    now: Optional[datetime] = None,
) -> MessageReadModel:
    invitation, _ = await access.invitation_as_party(session, profile, invitation_id)
    repo = MessageRepository(session)
    marker = await repo.get_read_marker(invitation.id, profile.id)
    if marker is None:
        marker = await repo.add(
            MessageReadModel(
                invitation_id=invitation.id,
                profile_id=profile.id,
                last_read_at=now or clock.now(),
            )
        )
    else:
        marker.last_read_at = now or clock.now()
    return marker


async def unread_counts(
    session: AsyncSession, profile: ProfileModel, invitation_ids: Iterable[int]
) -> dict[int, int]:
    """Unread messages per invitation; every id must be one the caller is party to."""
    visible = []
    for invitation_id in dict.fromkeys(invitation_ids):
        invitation, _ = await access.invitation_as_party(session, profile, invitation_id)
        visible.append(invitation.id)

    repo = MessageRepository(session)
    markers = await repo.read_markers(visible, profile.id)
    counts: dict[int, int] = defaultdict(int)
    for message in await repo.list_from_others(visible, profile.id):
        last_read = markers.get(message.invitation_id)
        if last_read is None or message.created_at > last_read:
            counts[message.invitation_id] += 1
    return {invitation_id: counts.get(invitation_id, 0) for invitation_id in visible}
