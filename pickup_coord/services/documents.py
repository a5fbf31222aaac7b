"""Provider verification documents (file URLs only; admins review them)."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.domain.enums import DocumentStatus
from pickup_coord.infrastructure import events
from pickup_coord.infrastructure.models import ProfileModel, ProviderDocumentModel
from pickup_coord.infrastructure.repositories import DocumentRepository
from pickup_coord.services.common import ADMIN_VIEWS

logger = logging.getLogger(__name__)


async def submit_document(
    session: AsyncSession, profile: ProfileModel, *, document_type: str, file_url: str
) -> ProviderDocumentModel:
    document = await DocumentRepository(session).add(
        ProviderDocumentModel(
            provider_profile_id=profile.id,
            document_type=document_type.strip(),
            file_url=file_url,
            status=DocumentStatus.PENDING,
        )
    )
    events.invalidate(session, *ADMIN_VIEWS, "/admin/approvals")
    logger.info("Document %s (%s) submitted by %s", document.id, document_type, profile.id)
    return document


async def list_my_documents(
    session: AsyncSession, profile: ProfileModel
) -> list[ProviderDocumentModel]:
    return await DocumentRepository(session).list_for_provider(profile.id)
