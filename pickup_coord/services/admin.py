"""
Admin Override
==============

Operator tooling: dashboard numbers, provider document review and a trip
status override that deliberately bypasses the lifecycle rules.

Every mutation appends an ``admin_logs`` row inside a SAVEPOINT; a failure
to write the audit row is logged and never undoes the action itself.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import clock
from pickup_coord.domain.enums import (
    DocumentStatus,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.errors import NotFound
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import (
    AdminLogModel,
    ProfileModel,
    ProviderDocumentModel,
    TripModel,
)
from pickup_coord.infrastructure.repositories import (
    AdminLogRepository,
    DocumentRepository,
    ParticipantRepository,
    PickupRequestRepository,
    ProfileRepository,
    TripRepository,
)
from pickup_coord.services import access
from pickup_coord.services.common import ADMIN_VIEWS, REQUEST_VIEWS, TRIP_VIEWS

logger = logging.getLogger(__name__)

UNASSIGNED_SCHOOL = "Unassigned"

MATCHED_OR_LATER = {
    RequestStatus.MATCHED,
    RequestStatus.CANCEL_REQUESTED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.ARRIVED,
    RequestStatus.COMPLETED,
}

# trip status -> (request status, progress stage) pushed to participants
_PARTICIPANT_SYNC = {
    TripStatus.IN_PROGRESS: (RequestStatus.IN_PROGRESS, ProgressStage.STARTED),
    TripStatus.ARRIVED: (RequestStatus.ARRIVED, ProgressStage.ARRIVED),
    TripStatus.COMPLETED: (RequestStatus.COMPLETED, ProgressStage.COMPLETED),
}


@dataclass
class AdminStats:
    total_profiles: int
    pending_documents: int
    active_trips: int
    total_trips: int


@dataclass
class SchoolStats:
    school_name: str
    request_count: int = 0
    provider_count: int = 0
    matched_count: int = 0

    @property
    def match_rate(self) -> int:
        if not self.request_count:
            return 0
        return round(self.matched_count / self.request_count * 100)


async def _log_action(
    session: AsyncSession,
    admin: ProfileModel,
    action_type: str,
    target_id,
    details: Optional[dict] = None,
) -> None:
    try:
        async with session.begin_nested():
            session.add(
                AdminLogModel(
                    admin_profile_id=admin.id,
                    action_type=action_type,
                    target_id=str(target_id),
                    details=details or {},
                )
            )
    except SQLAlchemyError:
        logger.exception("Failed to log admin action %s on %s", action_type, target_id)


# ── Dashboard ─────────────────────────────────────────────────────────


async def stats(session: AsyncSession, admin: ProfileModel) -> AdminStats:
    access.require_admin(admin)
    trips = TripRepository(session)
    return AdminStats(
        total_profiles=await ProfileRepository(session).count_all(),
        pending_documents=await DocumentRepository(session).count_pending(),
        active_trips=await trips.count(TripStatus.IN_PROGRESS),
        total_trips=await trips.count(),
    )


async def school_stats(session: AsyncSession, admin: ProfileModel) -> list[SchoolStats]:
    """Per-school request volume, provider count and match rate."""
    access.require_admin(admin)
    schools: dict[str, SchoolStats] = {}

    def row(name: Optional[str]) -> SchoolStats:
        key = name or UNASSIGNED_SCHOOL
        if key not in schools:
            schools[key] = SchoolStats(school_name=key)
        return schools[key]

    for name in await ProfileRepository(session).school_names():
        row(name)

    for name, status in await PickupRequestRepository(session).school_rows():
        entry = row(name)
        entry.request_count += 1
        if RequestStatus(status) in MATCHED_OR_LATER:
            entry.matched_count += 1

    providers: dict[str, set[int]] = defaultdict(set)
    for name, provider_id in await TripRepository(session).provider_schools():
        providers[name or UNASSIGNED_SCHOOL].add(provider_id)
    for key, ids in providers.items():
        row(key).provider_count = len(ids)

    return sorted(schools.values(), key=lambda s: s.request_count, reverse=True)


async def admin_logs(session: AsyncSession, admin: ProfileModel) -> list[AdminLogModel]:
    access.require_admin(admin)
    return await AdminLogRepository(session).list_recent(100)


# ── Provider documents ────────────────────────────────────────────────


async def pending_documents(
    session: AsyncSession, admin: ProfileModel
) -> list[ProviderDocumentModel]:
    access.require_admin(admin)
    return await DocumentRepository(session).list_pending()


async def _review_document(
    session: AsyncSession,
    admin: ProfileModel,
    document_id: int,
    status: DocumentStatus,
    reason: Optional[str],
    now: Optional[datetime],
) -> ProviderDocumentModel:
    access.require_admin(admin)
    document = await DocumentRepository(session).get_by_id(document_id)
    if document is None:
        raise NotFound("Document")
    document.status = status
    document.rejection_reason = reason
    document.reviewed_at = now or clock.now()
    await session.flush()
    events.invalidate(session, *ADMIN_VIEWS, "/admin/approvals")
    logger.info("Document %s %s by admin %s", document.id, status.value, admin.id)
    return document


async def approve_document(
    session: AsyncSession,
    admin: ProfileModel,
    document_id: int,
    *,
    now: Optional[datetime] = None,
) -> ProviderDocumentModel:
    document = await _review_document(
        session, admin, document_id, DocumentStatus.APPROVED, None, now
    )
    await _log_action(session, admin, "APPROVE_DOCUMENT", document.id)
    return document


async def reject_document(
    session: AsyncSession,
    admin: ProfileModel,
    document_id: int,
    reason: str,
    *,
    now: Optional[datetime] = None,
) -> ProviderDocumentModel:
    document = await _review_document(
        session, admin, document_id, DocumentStatus.REJECTED, reason, now
    )
    await _log_action(session, admin, "REJECT_DOCUMENT", document.id, {"reason": reason})
    return document


# ── Trip override ─────────────────────────────────────────────────────


async def override_trip_status(
    session: AsyncSession,
    admin: ProfileModel,
    trip_id: int,
    status: TripStatus,
    *,
    now: Optional[datetime] = None,
) -> TripModel:
    """Force a trip into *status*; no transition checks are applied."""
    access.require_admin(admin)
    now = now or clock.now()
    trip = await TripRepository(session).get_for_update(trip_id)
    if trip is None:
        raise NotFound("Trip")

    old_status = TripStatus(trip.status)
    trip.status = status
    trip.is_locked = status != TripStatus.OPEN
    if status == TripStatus.IN_PROGRESS:
        trip.start_at = now
    elif status == TripStatus.ARRIVED:
        trip.arrived_at = now
    elif status == TripStatus.COMPLETED:
        trip.completed_at = now

    synced = 0
    if status in _PARTICIPANT_SYNC:
        request_status, stage = _PARTICIPANT_SYNC[status]
        participants = await ParticipantRepository(session).list_for_trip(trip.id)
        requests = await PickupRequestRepository(session).get_many(
            p.pickup_request_id for p in participants
        )
        for request in requests.values():
            request.status = request_status
            request.progress_stage = stage
            if status == TripStatus.IN_PROGRESS and request.started_at is None:
                request.started_at = now
            synced += 1
    await session.flush()

    events.invalidate(session, *ADMIN_VIEWS, *TRIP_VIEWS, *REQUEST_VIEWS, f"/trips/{trip.id}")
    events.broadcast(session, f"trip:{trip.id}", {"id": trip.id, "status": status.value})
    logger.warning(
        "Admin %s forced trip %s %s -> %s (%d request(s) synced)",
        admin.id,
        trip.id,
        old_status.value,
        status.value,
        synced,
    )
    await _log_action(
        session,
        admin,
        "OVERRIDE_TRIP_STATUS",
        trip.id,
        {"old_status": old_status.value, "new_status": status.value},
    )
    return trip
