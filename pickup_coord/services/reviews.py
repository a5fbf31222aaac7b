"""Trip reviews: one rating per completed pickup request."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain import rules
from pickup_coord.domain.errors import ConstraintViolation, NotFound
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import ProfileModel, TripReviewModel
from pickup_coord.infrastructure.repositories import (
    ParticipantRepository,
    ReviewRepository,
    TripRepository,
)
from pickup_coord.services import access

logger = logging.getLogger(__name__)


async def submit_review(
    session: AsyncSession,
    profile: ProfileModel,
    request_id: int,
    *,
    rating: int,
    comment: Optional[str] = None,
) -> TripReviewModel:
    request = await access.request_as_requester(session, profile, request_id)
    reviews = ReviewRepository(session)
    rules.check_review(
        request, already_reviewed=await reviews.get_by_request(request.id) is not None
    )
    participant = await ParticipantRepository(session).get_by_request(request.id)
    if participant is None:
        raise NotFound("Trip for this pickup request")
    trip = await TripRepository(session).get_by_id(participant.trip_id)

    try:
        review = await reviews.add(
            TripReviewModel(
                trip_id=trip.id,
                pickup_request_id=request.id,
                reviewer_profile_id=profile.id,
                provider_profile_id=trip.provider_profile_id,
                rating=rating,
                comment=(comment or "").strip() or None,
            )
        )
    except IntegrityError as exc:
        raise ConstraintViolation("You have already reviewed this pickup.") from exc

    events.invalidate(session, "/my", f"/pickup-requests/{request.id}")
    logger.info("Review %s (%d stars) for trip %s", review.id, rating, trip.id)
    return review


async def get_my_review(
    session: AsyncSession, profile: ProfileModel, request_id: int
) -> Optional[TripReviewModel]:
    request = await access.request_as_requester(session, profile, request_id)
    return await ReviewRepository(session).get_by_request(request.id)


async def list_trip_reviews(
    session: AsyncSession, profile: ProfileModel, trip_id: int
) -> list[TripReviewModel]:
    trip = await access.trip_as_provider(session, profile, trip_id)
    return await ReviewRepository(session).list_for_trip(trip.id)
