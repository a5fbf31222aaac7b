"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Nothing here commits; the caller owns the
transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AdminLogModel,
    InvitationModel,
    MessageReadModel,
    PickupMessageModel,
    PickupRequestModel,
    ProfileModel,
    ProviderDocumentModel,
    TripArrivalModel,
    TripModel,
    TripParticipantModel,
    TripReviewModel,
)
from pickup_coord.domain.enums import (
    ACTIVE_INVITATION_STATUSES,
    DocumentStatus,
    RIDER_REQUEST_STATUSES,
    InvitationStatus,
    RequestStatus,
    TripStatus,
)


class _Repository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, row):
        self.session.add(row)
        await self.session.flush()
        return row


class ProfileRepository(_Repository):
    async def get_by_id(self, profile_id: int) -> Optional[ProfileModel]:
        return await self.session.get(ProfileModel, profile_id)

    async def get_by_external_id(self, external_id: str) -> Optional[ProfileModel]:
        result = await self.session.execute(
            select(ProfileModel).where(ProfileModel.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def get_many(self, profile_ids: Iterable[int]) -> dict[int, ProfileModel]:
        ids = set(profile_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(ProfileModel).where(ProfileModel.id.in_(ids))
        )
        return {p.id: p for p in result.scalars().all()}

    async def count_all(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(ProfileModel)
        )
        return result.scalar() or 0

    async def school_names(self) -> list[Optional[str]]:
        result = await self.session.execute(select(ProfileModel.school_name).distinct())
        return list(result.scalars().all())


class PickupRequestRepository(_Repository):
    async def get_by_id(self, request_id: int) -> Optional[PickupRequestModel]:
        return await self.session.get(PickupRequestModel, request_id)

    async def get_many(self, request_ids: Iterable[int]) -> dict[int, PickupRequestModel]:
        ids = set(request_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(PickupRequestModel).where(PickupRequestModel.id.in_(ids))
        )
        return {r.id: r for r in result.scalars().all()}

    async def list_for_requester(
        self, profile_id: int, status: RequestStatus | None = None
    ) -> list[PickupRequestModel]:
        query = (
            select(PickupRequestModel)
            .where(PickupRequestModel.requester_profile_id == profile_id)
            .order_by(PickupRequestModel.pickup_time.desc(), PickupRequestModel.id.desc())
        )
        if status:
            query = query.where(PickupRequestModel.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_open(self) -> list[PickupRequestModel]:
        result = await self.session.execute(
            select(PickupRequestModel)
            .where(PickupRequestModel.status == RequestStatus.REQUESTED)
            .order_by(PickupRequestModel.pickup_time, PickupRequestModel.id)
        )
        return list(result.scalars().all())

    async def list_overdue(self, now: datetime, **filters) -> list[PickupRequestModel]:
        """REQUESTED rows whose pickup time has passed."""
        query = select(PickupRequestModel).where(
            PickupRequestModel.status == RequestStatus.REQUESTED,
            PickupRequestModel.pickup_time < now,
        )
        if "requester_profile_id" in filters:
            query = query.where(
                PickupRequestModel.requester_profile_id == filters["requester_profile_id"]
            )
        if "ids" in filters:
            query = query.where(PickupRequestModel.id.in_(filters["ids"]))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_stranded(
        self, now: datetime, grace: timedelta, **filters
    ) -> list[PickupRequestModel]:
        """Seated requests whose trip can no longer start."""
        query = (
            select(PickupRequestModel)
            .join(
                TripParticipantModel,
                TripParticipantModel.pickup_request_id == PickupRequestModel.id,
            )
            .join(TripModel, TripModel.id == TripParticipantModel.trip_id)
            .where(
                PickupRequestModel.status.in_(RIDER_REQUEST_STATUSES),
                or_(
                    TripModel.status.in_((TripStatus.EXPIRED, TripStatus.CANCELLED)),
                    and_(
                        TripModel.status.in_((TripStatus.OPEN, TripStatus.LOCKED)),
                        TripModel.scheduled_start_at < now - grace,
                    ),
                ),
            )
        )
        if "requester_profile_id" in filters:
            query = query.where(
                PickupRequestModel.requester_profile_id == filters["requester_profile_id"]
            )
        if "trip_id" in filters:
            query = query.where(TripModel.id == filters["trip_id"])
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        requester_profile_id: int | None = None,
        status: RequestStatus | None = None,
    ) -> list[PickupRequestModel]:
        query = select(PickupRequestModel).where(
            PickupRequestModel.pickup_time >= start,
            PickupRequestModel.pickup_time < end,
        )
        if requester_profile_id is not None:
            query = query.where(
                PickupRequestModel.requester_profile_id == requester_profile_id
            )
        if status:
            query = query.where(PickupRequestModel.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update_if_status(
        self, request_id: int, previous: RequestStatus, **values
    ) -> bool:
        """Conditional update; ``False`` if the row moved on concurrently."""
        result = await self.session.execute(
            update(PickupRequestModel)
            .where(
                PickupRequestModel.id == request_id,
                PickupRequestModel.status == previous,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    async def school_rows(self) -> list[tuple[Optional[str], RequestStatus]]:
        """``(school_name, status)`` for every request, joined to its owner."""
        result = await self.session.execute(
            select(ProfileModel.school_name, PickupRequestModel.status).join(
                ProfileModel,
                ProfileModel.id == PickupRequestModel.requester_profile_id,
            )
        )
        return list(result.all())


class TripRepository(_Repository):
    async def get_by_id(self, trip_id: int) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def get_for_update(self, trip_id: int) -> Optional[TripModel]:
        """SELECT ... FOR UPDATE; serialises seat changes on one trip."""
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, trip_ids: Iterable[int]) -> dict[int, TripModel]:
        ids = set(trip_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(TripModel).where(TripModel.id.in_(ids))
        )
        return {t.id: t for t in result.scalars().all()}

    async def get_for_request(self, request_id: int) -> Optional[TripModel]:
        """The trip *request_id* holds a seat on, if any."""
        result = await self.session.execute(
            select(TripModel)
            .join(TripParticipantModel, TripParticipantModel.trip_id == TripModel.id)
            .where(TripParticipantModel.pickup_request_id == request_id)
        )
        return result.scalars().first()

    async def list_for_provider(
        self,
        profile_id: int,
        status: TripStatus | None = None,
        include_test: bool = False,
    ) -> list[TripModel]:
        query = (
            select(TripModel)
            .where(TripModel.provider_profile_id == profile_id)
            .order_by(TripModel.scheduled_start_at.desc(), TripModel.id.desc())
        )
        if status:
            query = query.where(TripModel.status == status)
        if not include_test:
            query = query.where(TripModel.is_test.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_time_due(self, horizon: datetime, **filters) -> list[TripModel]:
        """OPEN / LOCKED trips starting at or before *horizon*."""
        query = select(TripModel).where(
            TripModel.status.in_((TripStatus.OPEN, TripStatus.LOCKED)),
            TripModel.scheduled_start_at <= horizon,
        )
        if "provider_profile_id" in filters:
            query = query.where(
                TripModel.provider_profile_id == filters["provider_profile_id"]
            )
        if "ids" in filters:
            query = query.where(TripModel.id.in_(filters["ids"]))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        statuses: Sequence[TripStatus] | None = None,
        provider_profile_id: int | None = None,
        include_test: bool = False,
    ) -> list[TripModel]:
        query = select(TripModel).where(
            TripModel.scheduled_start_at >= start,
            TripModel.scheduled_start_at < end,
        )
        if statuses:
            query = query.where(TripModel.status.in_(statuses))
        if provider_profile_id is not None:
            query = query.where(TripModel.provider_profile_id == provider_profile_id)
        if not include_test:
            query = query.where(TripModel.is_test.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, status: TripStatus | None = None) -> int:
        query = select(func.count()).select_from(TripModel)
        if status:
            query = query.where(TripModel.status == status)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def provider_schools(self) -> list[tuple[Optional[str], int]]:
        """Distinct ``(school_name, provider_id)`` pairs of trip owners."""
        result = await self.session.execute(
            select(ProfileModel.school_name, TripModel.provider_profile_id)
            .join(ProfileModel, ProfileModel.id == TripModel.provider_profile_id)
            .distinct()
        )
        return list(result.all())


class InvitationRepository(_Repository):
    async def get_by_id(self, invitation_id: int) -> Optional[InvitationModel]:
        return await self.session.get(InvitationModel, invitation_id)

    async def count_pending_for_provider(self, provider_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(InvitationModel)
            .where(
                InvitationModel.provider_profile_id == provider_id,
                InvitationModel.status == InvitationStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def has_pending_pair(self, request_id: int, provider_id: int) -> bool:
        result = await self.session.execute(
            select(InvitationModel.id).where(
                InvitationModel.pickup_request_id == request_id,
                InvitationModel.provider_profile_id == provider_id,
                InvitationModel.status == InvitationStatus.PENDING,
            )
        )
        return result.first() is not None

    async def count_for_trip(
        self,
        trip_id: int,
        statuses: Sequence[InvitationStatus] = ACTIVE_INVITATION_STATUSES,
        exclude_id: int | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(InvitationModel)
            .where(
                InvitationModel.trip_id == trip_id,
                InvitationModel.status.in_(statuses),
            )
        )
        if exclude_id is not None:
            query = query.where(InvitationModel.id != exclude_id)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def count_accepted_in_slot(
        self, provider_id: int, slot_start: datetime, slot_end: datetime
    ) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(InvitationModel)
            .join(
                PickupRequestModel,
                PickupRequestModel.id == InvitationModel.pickup_request_id,
            )
            .where(
                InvitationModel.provider_profile_id == provider_id,
                InvitationModel.status == InvitationStatus.ACCEPTED,
                PickupRequestModel.pickup_time >= slot_start,
                PickupRequestModel.pickup_time < slot_end,
            )
        )
        return result.scalar() or 0

    async def list_where(self, *criteria, newest_first: bool = True) -> list[InvitationModel]:
        order = (
            (InvitationModel.created_at.desc(), InvitationModel.id.desc())
            if newest_first
            else (InvitationModel.id,)
        )
        result = await self.session.execute(
            select(InvitationModel).where(*criteria).order_by(*order)
        )
        return list(result.scalars().all())

    async def list_for_trip(self, trip_id: int) -> list[InvitationModel]:
        return await self.list_where(InvitationModel.trip_id == trip_id)

    async def list_for_request(self, request_id: int) -> list[InvitationModel]:
        return await self.list_where(InvitationModel.pickup_request_id == request_id)

    async def list_for_provider(
        self, provider_id: int, statuses: Sequence[InvitationStatus]
    ) -> list[InvitationModel]:
        return await self.list_where(
            InvitationModel.provider_profile_id == provider_id,
            InvitationModel.status.in_(statuses),
        )

    async def list_pending(self, **filters) -> list[InvitationModel]:
        criteria = [InvitationModel.status == InvitationStatus.PENDING]
        for column in ("trip_id", "pickup_request_id", "provider_profile_id"):
            if column in filters:
                criteria.append(getattr(InvitationModel, column) == filters[column])
        if "exclude_id" in filters:
            criteria.append(InvitationModel.id != filters["exclude_id"])
        return await self.list_where(*criteria, newest_first=False)

    async def list_overdue(self, now: datetime, **filters) -> list[InvitationModel]:
        criteria = [
            InvitationModel.status == InvitationStatus.PENDING,
            InvitationModel.expires_at < now,
        ]
        for column in ("trip_id", "pickup_request_id", "provider_profile_id", "id"):
            if column in filters:
                criteria.append(getattr(InvitationModel, column) == filters[column])
        return await self.list_where(*criteria, newest_first=False)

    async def get_accepted_for_request(self, request_id: int) -> Optional[InvitationModel]:
        result = await self.session.execute(
            select(InvitationModel).where(
                InvitationModel.pickup_request_id == request_id,
                InvitationModel.status == InvitationStatus.ACCEPTED,
            )
        )
        return result.scalars().first()

    async def requests_with_pending(self, request_ids: Iterable[int]) -> set[int]:
        ids = set(request_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(InvitationModel.pickup_request_id)
            .where(
                InvitationModel.pickup_request_id.in_(ids),
                InvitationModel.status == InvitationStatus.PENDING,
            )
            .distinct()
        )
        return set(result.scalars().all())


class ParticipantRepository(_Repository):
    async def get(self, trip_id: int, request_id: int) -> Optional[TripParticipantModel]:
        result = await self.session.execute(
            select(TripParticipantModel).where(
                TripParticipantModel.trip_id == trip_id,
                TripParticipantModel.pickup_request_id == request_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_request(self, request_id: int) -> Optional[TripParticipantModel]:
        result = await self.session.execute(
            select(TripParticipantModel).where(
                TripParticipantModel.pickup_request_id == request_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_trip(self, trip_id: int) -> list[TripParticipantModel]:
        result = await self.session.execute(
            select(TripParticipantModel)
            .where(TripParticipantModel.trip_id == trip_id)
            .order_by(TripParticipantModel.sequence_order)
        )
        return list(result.scalars().all())

    async def count_for_trips(self, trip_ids: Iterable[int]) -> dict[int, int]:
        ids = set(trip_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(TripParticipantModel.trip_id, func.count())
            .where(TripParticipantModel.trip_id.in_(ids))
            .group_by(TripParticipantModel.trip_id)
        )
        return {trip_id: n for trip_id, n in result.all()}

    async def delete_by_request(self, request_id: int) -> int:
        result = await self.session.execute(
            delete(TripParticipantModel)
            .where(TripParticipantModel.pickup_request_id == request_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0


class ArrivalRepository(_Repository):
    async def exists_for_request(self, request_id: int) -> bool:
        result = await self.session.execute(
            select(TripArrivalModel.id).where(
                TripArrivalModel.pickup_request_id == request_id
            )
        )
        return result.first() is not None

    async def list_for_trip(self, trip_id: int) -> list[TripArrivalModel]:
        result = await self.session.execute(
            select(TripArrivalModel)
            .where(TripArrivalModel.trip_id == trip_id)
            .order_by(TripArrivalModel.id)
        )
        return list(result.scalars().all())


class ReviewRepository(_Repository):
    async def get_by_request(self, request_id: int) -> Optional[TripReviewModel]:
        result = await self.session.execute(
            select(TripReviewModel).where(
                TripReviewModel.pickup_request_id == request_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_trip(self, trip_id: int) -> list[TripReviewModel]:
        result = await self.session.execute(
            select(TripReviewModel)
            .where(TripReviewModel.trip_id == trip_id)
            .order_by(TripReviewModel.created_at.desc(), TripReviewModel.id.desc())
        )
        return list(result.scalars().all())


class MessageRepository(_Repository):
    async def list_for_invitation(self, invitation_id: int) -> list[PickupMessageModel]:
        result = await self.session.execute(
            select(PickupMessageModel)
            .where(PickupMessageModel.invitation_id == invitation_id)
            .order_by(PickupMessageModel.created_at, PickupMessageModel.id)
        )
        return list(result.scalars().all())

    async def get_read_marker(
        self, invitation_id: int, profile_id: int
    ) -> Optional[MessageReadModel]:
        result = await self.session.execute(
            select(MessageReadModel).where(
                MessageReadModel.invitation_id == invitation_id,
                MessageReadModel.profile_id == profile_id,
            )
        )
        return result.scalar_one_or_none()

    async def read_markers(
        self, invitation_ids: Iterable[int], profile_id: int
    ) -> dict[int, datetime]:
        ids = set(invitation_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(MessageReadModel.invitation_id, MessageReadModel.last_read_at).where(
                MessageReadModel.invitation_id.in_(ids),
                MessageReadModel.profile_id == profile_id,
            )
        )
        return dict(result.all())

    async def list_from_others(
        self, invitation_ids: Iterable[int], profile_id: int
    ) -> list[PickupMessageModel]:
        ids = set(invitation_ids)
        if not ids:
            return []
        result = await self.session.execute(
            select(PickupMessageModel).where(
                PickupMessageModel.invitation_id.in_(ids),
                PickupMessageModel.sender_profile_id != profile_id,
            )
        )
        return list(result.scalars().all())


class DocumentRepository(_Repository):
    async def get_by_id(self, document_id: int) -> Optional[ProviderDocumentModel]:
        return await self.session.get(ProviderDocumentModel, document_id)

    async def list_pending(self) -> list[ProviderDocumentModel]:
        result = await self.session.execute(
            select(ProviderDocumentModel)
            .where(ProviderDocumentModel.status == DocumentStatus.PENDING)
            .order_by(ProviderDocumentModel.created_at, ProviderDocumentModel.id)
        )
        return list(result.scalars().all())

    async def list_for_provider(self, provider_id: int) -> list[ProviderDocumentModel]:
        result = await self.session.execute(
            select(ProviderDocumentModel)
            .where(ProviderDocumentModel.provider_profile_id == provider_id)
            .order_by(ProviderDocumentModel.id.desc())
        )
        return list(result.scalars().all())

    async def count_pending(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ProviderDocumentModel)
            .where(ProviderDocumentModel.status == DocumentStatus.PENDING)
        )
        return result.scalar() or 0


class AdminLogRepository(_Repository):
    async def list_recent(self, limit: int = 100) -> list[AdminLogModel]:
        result = await self.session.execute(
            select(AdminLogModel)
            .order_by(AdminLogModel.created_at.desc(), AdminLogModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
