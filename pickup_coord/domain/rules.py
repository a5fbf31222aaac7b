"""
Lifecycle Rule Engine
=====================

One pure decision function per transition.  Each takes snapshots of the
rows involved (ORM rows, or anything with the same attributes), the
counts the caller loaded, and ``now``.  A violated precondition raises
the matching :mod:`errors` class; a passing check returns ``None`` or,
for accept, the plan of writes to apply.

Checks run in a fixed order so the caller always sees the first failing
rule's message.

Send invitation
---------------
1. trip not expired          5. request date == trip date
2. trip not locked           6. no duplicate PENDING (request, provider)
3. > cutoff before start     7. provider PENDING < limit
4. request open (REQUESTED)  8. trip PENDING+ACCEPTED < capacity

Accept invitation
-----------------
1. request not expired       5. trip not locked
2. trip not expired          6. other active invitations < capacity
3. invitation not expired    7. request still REQUESTED
4. invitation PENDING        8. provider ACCEPTED in slot < limit
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from .enums import (
    CANCELLABLE_REQUEST_STATUSES,
    DEPARTED_TRIP_STATUSES,
    InvitationStatus,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from .errors import ConstraintViolation, InvalidStateTransition, ValidationFailed
from .expiry import invitation_is_overdue, request_is_overdue, trip_is_overdue
from .slots import same_day


@dataclass(frozen=True)
class Policy:
    trip_capacity: int = 3
    provider_pending_limit: int = 3
    slot_accept_limit: int = 3
    invitation_ttl: timedelta = timedelta(hours=24)
    invite_cutoff: timedelta = timedelta(minutes=30)
    trip_expiry_grace: timedelta = timedelta(minutes=30)
    cancel_request_cutoff: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, settings) -> "Policy":
        return cls(
            trip_capacity=settings.trip_capacity,
            provider_pending_limit=settings.provider_pending_limit,
            slot_accept_limit=settings.slot_accept_limit,
            invitation_ttl=timedelta(hours=settings.invitation_ttl_hours),
            invite_cutoff=timedelta(minutes=settings.invite_cutoff_minutes),
            trip_expiry_grace=timedelta(minutes=settings.trip_expiry_grace_minutes),
            cancel_request_cutoff=timedelta(minutes=settings.cancel_request_cutoff_minutes),
        )


# ── Shared guards ─────────────────────────────────────────────────────


def _ensure_trip_not_expired(trip, now: datetime, policy: Policy) -> None:
    if trip.status == TripStatus.EXPIRED or trip_is_overdue(
        trip, now, policy.trip_expiry_grace
    ):
        raise InvalidStateTransition("This trip has expired.")


def _ensure_request_not_expired(request, now: datetime) -> None:
    if request.status == RequestStatus.EXPIRED or request_is_overdue(request, now):
        raise InvalidStateTransition("This pickup request has expired.")


def _ensure_trip_open(trip) -> None:
    if trip.is_locked or trip.status != TripStatus.OPEN:
        raise InvalidStateTransition("This trip is locked and no longer takes invitations.")


# ── Creation ──────────────────────────────────────────────────────────


def check_new_request(pickup_time: datetime, now: datetime) -> None:
    if pickup_time <= now:
        raise ValidationFailed("Pickup time must be in the future.")


def check_new_trip(scheduled_start_at: datetime, now: datetime) -> None:
    if scheduled_start_at <= now:
        raise ValidationFailed("Scheduled start must be in the future.")


# ── Invitations ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class SendCounts:
    duplicate_pending: bool
    provider_pending: int
    trip_active: int


def check_send(trip, request, *, counts: SendCounts, now: datetime, policy: Policy) -> None:
    _ensure_trip_not_expired(trip, now, policy)
    _ensure_trip_open(trip)
    if trip.scheduled_start_at - now <= policy.invite_cutoff:
        minutes = int(policy.invite_cutoff.total_seconds() // 60)
        raise ConstraintViolation(
            f"Invitations close {minutes} minutes before departure."
        )
    _ensure_request_not_expired(request, now)
    if request.status != RequestStatus.REQUESTED:
        raise InvalidStateTransition("This pickup request is no longer open.")
    if not same_day(request.pickup_time, trip.scheduled_start_at):
        raise ConstraintViolation("The pickup date does not match the trip date.")
    if counts.duplicate_pending:
        raise ConstraintViolation("You already have a pending invitation for this request.")
    if counts.provider_pending >= policy.provider_pending_limit:
        raise ConstraintViolation(
            f"You already have the maximum {policy.provider_pending_limit} "
            "pending invitations."
        )
    if counts.trip_active >= trip.capacity:
        raise ConstraintViolation("This trip is full.")


@dataclass(frozen=True)
class AcceptCounts:
    trip_active_others: int  # PENDING+ACCEPTED on the trip, excluding this one
    trip_accepted: int
    slot_accepted: int  # provider's ACCEPTED in the request's hour slot


@dataclass(frozen=True)
class AcceptPlan:
    sequence_order: int
    lock_trip: bool


def plan_accept(
    invitation,
    trip,
    request,
    *,
    counts: AcceptCounts,
    now: datetime,
    policy: Policy,
) -> AcceptPlan:
    _ensure_request_not_expired(request, now)
    _ensure_trip_not_expired(trip, now, policy)
    if invitation.status == InvitationStatus.EXPIRED or invitation_is_overdue(
        invitation, now
    ):
        raise InvalidStateTransition("This invitation has expired.")
    if invitation.status != InvitationStatus.PENDING:
        raise InvalidStateTransition(
            f"This invitation is already {InvitationStatus(invitation.status).value}."
        )
    _ensure_trip_open(trip)
    if counts.trip_active_others >= trip.capacity:
        raise ConstraintViolation("This trip is full.")
    if request.status != RequestStatus.REQUESTED:
        raise ConstraintViolation("This pickup request already accepted another invitation.")
    if counts.slot_accepted >= policy.slot_accept_limit:
        raise ConstraintViolation(
            "This provider has no seats left in this time slot."
        )
    sequence_order = counts.trip_accepted + 1
    return AcceptPlan(
        sequence_order=sequence_order,
        lock_trip=sequence_order >= trip.capacity,
    )


def check_reject(invitation) -> None:
    if invitation.status != InvitationStatus.PENDING:
        raise InvalidStateTransition("Only pending invitations can be rejected.")


# ── Trips ─────────────────────────────────────────────────────────────


def _ensure_not_departed(trip, now: datetime, policy: Policy) -> None:
    _ensure_trip_not_expired(trip, now, policy)
    if trip.status in DEPARTED_TRIP_STATUSES:
        raise InvalidStateTransition("This trip has already departed.")
    if trip.status == TripStatus.CANCELLED:
        raise InvalidStateTransition("This trip has been cancelled.")


def check_start(trip, *, met_count: int, now: datetime, policy: Policy) -> None:
    _ensure_not_departed(trip, now, policy)
    if met_count == 0:
        raise ConstraintViolation(
            "There are no confirmed students. Mark at least one student as met first."
        )


def check_mark_met(trip, *, now: datetime, policy: Policy) -> None:
    _ensure_not_departed(trip, now, policy)


def check_mark_picked_up(trip, request) -> None:
    if not trip.is_locked:
        raise InvalidStateTransition("The trip has not started yet.")
    if request.progress_stage != ProgressStage.STARTED:
        raise InvalidStateTransition("This student is not waiting for pickup.")


def check_cancel_unmet(trip, participant, *, now: datetime, policy: Policy) -> None:
    _ensure_not_departed(trip, now, policy)
    if participant.is_met_at_pickup:
        raise ConstraintViolation("A student already met at pickup cannot be cancelled.")


def check_arrival(trip, request, *, already_arrived: bool) -> None:
    if trip.status != TripStatus.IN_PROGRESS:
        raise InvalidStateTransition("Arrival can only be confirmed on a trip in progress.")
    if request.status != RequestStatus.IN_PROGRESS:
        raise InvalidStateTransition("This student is not on board.")
    if already_arrived:
        raise ConstraintViolation("Arrival was already confirmed for this student.")


# ── Requests ──────────────────────────────────────────────────────────


def check_cancel(request) -> None:
    if request.status not in CANCELLABLE_REQUEST_STATUSES:
        raise InvalidStateTransition(
            "Only requested or matched pickups can be cancelled."
        )


def check_review(request, *, already_reviewed: bool) -> None:
    if request.status != RequestStatus.COMPLETED:
        raise InvalidStateTransition("Only completed pickups can be reviewed.")
    if already_reviewed:
        raise ConstraintViolation("You have already reviewed this pickup.")


def _describe(delta: timedelta) -> str:
    minutes = int(delta.total_seconds() // 60)
    if minutes % 60:
        return f"{minutes} minutes"
    hours = minutes // 60
    return "1 hour" if hours == 1 else f"{hours} hours"


def check_request_cancel(request, *, now: datetime, policy: Policy) -> None:
    """Open requests cancel at once; matched ones must ask early enough."""
    if request.status not in CANCELLABLE_REQUEST_STATUSES:
        raise InvalidStateTransition(
            "A cancellation cannot be requested for a pickup in status "
            f"{RequestStatus(request.status).value}."
        )
    if (
        request.status == RequestStatus.MATCHED
        and request.pickup_time - now <= policy.cancel_request_cutoff
    ):
        raise ConstraintViolation(
            "Cancellation can only be requested up to "
            f"{_describe(policy.cancel_request_cutoff)} before departure."
        )


def check_approve_cancel(trip, request, *, now: datetime, policy: Policy) -> None:
    _ensure_not_departed(trip, now, policy)
    if request.status != RequestStatus.CANCEL_REQUESTED:
        raise InvalidStateTransition(
            "There is no cancellation request to approve for this pickup."
        )
