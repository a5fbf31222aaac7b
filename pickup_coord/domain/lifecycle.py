"""
Lifecycle enforcement for status-bearing rows.

Every status change on a pickup request, trip or invitation goes through
``advance``, which consults the transition tables in :mod:`enums`.  It
works on ORM rows directly: anything with a ``status`` attribute will do.
"""

from __future__ import annotations

from .enums import (
    INVITATION_TRANSITIONS,
    REQUEST_TRANSITIONS,
    TRIP_TRANSITIONS,
    InvitationStatus,
    RequestStatus,
    TripStatus,
)
from .errors import InvalidStateTransition

_TABLES = {
    RequestStatus: REQUEST_TRANSITIONS,
    TripStatus: TRIP_TRANSITIONS,
    InvitationStatus: INVITATION_TRANSITIONS,
}


def can_advance(current, new_status) -> bool:
    status_type = type(new_status)
    return new_status in _TABLES[status_type].get(status_type(current), set())


def advance(entity, new_status) -> None:
    """Move *entity* to *new_status* if the transition is legal, else raise."""
    current = type(new_status)(entity.status)
    if not can_advance(current, new_status):
        raise InvalidStateTransition(
            f"Cannot move from {current.value} to {new_status.value}."
        )
    entity.status = new_status
