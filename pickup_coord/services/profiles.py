"""Profile sync: the first sign-in creates the local profile row."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain.enums import ProfileRole
from pickup_coord.domain.errors import AuthenticationRequired
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.infrastructure.repositories import ProfileRepository

logger = logging.getLogger(__name__)


async def sync_profile(
    session: AsyncSession, external_id: Optional[str], *, school_name: Optional[str] = None
) -> ProfileModel:
    """Idempotent: returns the existing row, updating the school when given."""
    if not external_id:
        raise AuthenticationRequired()
    repo = ProfileRepository(session)
    profile = await repo.get_by_external_id(external_id)
    if profile is None:
        profile = await repo.add(
            ProfileModel(
                external_id=external_id,
                role=ProfileRole.USER,
                school_name=school_name or None,
            )
        )
        logger.info("Profile %s created for %s", profile.id, external_id)
    elif school_name:
        profile.school_name = school_name
    return profile
