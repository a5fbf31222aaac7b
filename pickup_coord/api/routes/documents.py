"""
Provider document endpoints
===========================

POST /api/v1/documents      -- submit a verification document (URL)
GET  /api/v1/documents/mine -- the caller's submissions
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import DocumentCreate, DocumentResponse, Envelope, ok
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import documents

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", status_code=201, response_model=Envelope[DocumentResponse])
@limiter.limit(RATE_LIMIT)
async def submit_document(
    request: Request,
    body: DocumentCreate,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    document = await documents.submit_document(
        db, profile, document_type=body.document_type, file_url=body.file_url
    )
    return ok(DocumentResponse.model_validate(document))


@router.get("/mine", response_model=Envelope[list[DocumentResponse]])
@limiter.limit(RATE_LIMIT)
async def list_my_documents(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await documents.list_my_documents(db, profile)
    return ok([DocumentResponse.model_validate(d) for d in rows])
