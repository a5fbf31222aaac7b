"""
Deadline predicates.

The single definition of "is this row due for a time-based transition".
Both the recurring sweep and the read-time safety net call these; all are
pure and idempotent (a row already moved on is never due again).

A REQUESTED request is due at its pickup time.  A request that holds a
seat (MATCHED / CANCEL_REQUESTED) follows its trip instead: it stays
valid for as long as the trip can still start, and expires with it.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .enums import (
    RIDER_REQUEST_STATUSES,
    InvitationStatus,
    RequestStatus,
    TripStatus,
)


def request_is_overdue(request, now: datetime) -> bool:
    """REQUESTED whose pickup time has passed."""
    return request.status == RequestStatus.REQUESTED and request.pickup_time < now


def trip_is_overdue(trip, now: datetime, grace: timedelta) -> bool:
    """OPEN / LOCKED and past its scheduled start plus the grace period."""
    return (
        trip.status in (TripStatus.OPEN, TripStatus.LOCKED)
        and now > trip.scheduled_start_at + grace
    )


def trip_is_lock_due(
    trip, now: datetime, cutoff: timedelta, grace: timedelta
) -> bool:
    """OPEN and inside the pre-departure window, but not yet overdue."""
    return (
        trip.status == TripStatus.OPEN
        and now >= trip.scheduled_start_at - cutoff
        and not trip_is_overdue(trip, now, grace)
    )


def rider_is_stranded(request, trip, now: datetime, grace: timedelta) -> bool:
    """A seated request whose trip can no longer start."""
    if request.status not in RIDER_REQUEST_STATUSES:
        return False
    return trip.status in (TripStatus.EXPIRED, TripStatus.CANCELLED) or trip_is_overdue(
        trip, now, grace
    )


def invitation_is_overdue(invitation, now: datetime) -> bool:
    return (
        invitation.status == InvitationStatus.PENDING
        and invitation.expires_at < now
    )
