"""
Deadline enforcement
====================

Applies the predicates in :mod:`pickup_coord.domain.expiry` to rows.  The
same functions serve two callers:

* the **recurring sweep** (``sweep``), run by ``workers.sweeper``;
* the **read-time safety net**, called by every service before it reads or
  mutates a deadline-bearing row.

Every function is idempotent.  When something was due, the change is
committed immediately: an expiry stands even if the operation that
noticed it goes on to fail (e.g. accepting an invitation that turned out
to be expired).

Cascades
--------
* request expired          -> its PENDING invitations expire
* trip expired / locked    -> its PENDING invitations expire
* trip expired             -> its seated (MATCHED / CANCEL_REQUESTED) requests expire
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain.enums import (
    RIDER_REQUEST_STATUSES,
    InvitationStatus,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.expiry import (
    request_is_overdue,
    rider_is_stranded,
    trip_is_lock_due,
    trip_is_overdue,
)
from pickup_coord.domain.lifecycle import advance
from pickup_coord.domain.rules import Policy
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import PickupRequestModel, TripModel
from pickup_coord.infrastructure.repositories import (
    InvitationRepository,
    PickupRequestRepository,
    TripRepository,
)
from pickup_coord.services.common import INVITATION_VIEWS, REQUEST_VIEWS, TRIP_VIEWS

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    requests_expired: int = 0
    trips_locked: int = 0
    trips_expired: int = 0
    invitations_expired: int = 0

    @property
    def total(self) -> int:
        return (
            self.requests_expired
            + self.trips_locked
            + self.trips_expired
            + self.invitations_expired
        )


async def _persist(session: AsyncSession, *paths: str) -> None:
    events.invalidate(session, *paths)
    await session.commit()
    events.mark_committed(session)


# ── Invitations ───────────────────────────────────────────────────────


async def expire_pending_invitations(
    session: AsyncSession, now: datetime, **filters
) -> int:
    """Expire PENDING invitations matching *filters*.  Does not commit."""
    pending = await InvitationRepository(session).list_pending(**filters)
    for invitation in pending:
        advance(invitation, InvitationStatus.EXPIRED)
        invitation.responded_at = now
    return len(pending)


async def expire_overdue_invitations(
    session: AsyncSession, now: datetime, **filters
) -> int:
    """Expire PENDING invitations past ``expires_at`` (optionally filtered)."""
    overdue = await InvitationRepository(session).list_overdue(now, **filters)
    for invitation in overdue:
        advance(invitation, InvitationStatus.EXPIRED)
        invitation.responded_at = now
    if overdue:
        await _persist(session, *INVITATION_VIEWS)
        logger.info("Expired %d overdue invitation(s)", len(overdue))
    return len(overdue)


# ── Requests ──────────────────────────────────────────────────────────


async def _expire_request(session: AsyncSession, request: PickupRequestModel, now: datetime) -> None:
    advance(request, RequestStatus.EXPIRED)
    await expire_pending_invitations(session, now, pickup_request_id=request.id)


async def expire_request_if_due(
    session: AsyncSession, request: PickupRequestModel, now: datetime, policy: Policy
) -> bool:
    due = request_is_overdue(request, now)
    if not due and request.status in RIDER_REQUEST_STATUSES:
        trip = await TripRepository(session).get_for_request(request.id)
        due = trip is not None and rider_is_stranded(
            request, trip, now, policy.trip_expiry_grace
        )
    if not due:
        return False
    await _expire_request(session, request, now)
    await _persist(session, *REQUEST_VIEWS, *INVITATION_VIEWS)
    logger.info("Pickup request %s expired", request.id)
    return True


async def expire_overdue_requests(
    session: AsyncSession, now: datetime, policy: Policy, **filters
) -> int:
    """Expire open requests past pickup time and seated ones whose trip is gone."""
    requests = PickupRequestRepository(session)
    overdue = await requests.list_overdue(now, **filters)
    overdue += await requests.list_stranded(now, policy.trip_expiry_grace, **filters)
    for request in overdue:
        await _expire_request(session, request, now)
    if overdue:
        await _persist(session, *REQUEST_VIEWS, *INVITATION_VIEWS)
        logger.info("Expired %d overdue pickup request(s)", len(overdue))
    return len(overdue)


# ── Trips ─────────────────────────────────────────────────────────────


async def _apply_trip_deadline(
    session: AsyncSession, trip: TripModel, now: datetime, policy: Policy
) -> TripStatus | None:
    """Lock or expire *trip* when due; returns the status applied, if any."""
    if trip_is_overdue(trip, now, policy.trip_expiry_grace):
        advance(trip, TripStatus.EXPIRED)
        riders = await PickupRequestRepository(session).list_stranded(
            now, policy.trip_expiry_grace, trip_id=trip.id
        )
        for request in riders:
            await _expire_request(session, request, now)
    elif trip_is_lock_due(trip, now, policy.invite_cutoff, policy.trip_expiry_grace):
        advance(trip, TripStatus.LOCKED)
        trip.is_locked = True
    else:
        return None
    await expire_pending_invitations(session, now, trip_id=trip.id)
    return TripStatus(trip.status)


async def settle_trip(
    session: AsyncSession, trip: TripModel, now: datetime, policy: Policy
) -> bool:
    applied = await _apply_trip_deadline(session, trip, now, policy)
    if applied is None:
        return False
    await _persist(session, *TRIP_VIEWS, *REQUEST_VIEWS, *INVITATION_VIEWS)
    logger.info("Trip %s moved to %s by deadline", trip.id, applied.value)
    return True


async def settle_due_trips(
    session: AsyncSession, now: datetime, policy: Policy, **filters
) -> tuple[int, int]:
    """Lock / expire every due trip (optionally filtered).  Returns (locked, expired)."""
    candidates = await TripRepository(session).list_time_due(
        now + policy.invite_cutoff, **filters
    )
    locked = expired = 0
    for trip in candidates:
        applied = await _apply_trip_deadline(session, trip, now, policy)
        if applied == TripStatus.LOCKED:
            locked += 1
        elif applied == TripStatus.EXPIRED:
            expired += 1
    if locked or expired:
        await _persist(session, *TRIP_VIEWS, *REQUEST_VIEWS, *INVITATION_VIEWS)
        logger.info("Deadline pass: %d trip(s) locked, %d expired", locked, expired)
    return locked, expired


# ── Sweep ─────────────────────────────────────────────────────────────


async def sweep(session: AsyncSession, now: datetime, policy: Policy) -> SweepReport:
    """Evaluate every deadline-bearing row once."""
    report = SweepReport()
    report.requests_expired = await expire_overdue_requests(session, now, policy)
    report.trips_locked, report.trips_expired = await settle_due_trips(
        session, now, policy
    )
    report.invitations_expired = await expire_overdue_invitations(session, now)
    return report
