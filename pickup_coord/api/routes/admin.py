"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                     -- simple health check
GET  /api/v1/admin/stats                      -- dashboard counters
GET  /api/v1/admin/schools                    -- per-school request / match stats
GET  /api/v1/admin/documents/pending          -- provider documents awaiting review
POST /api/v1/admin/documents/{id}/approve
POST /api/v1/admin/documents/{id}/reject
POST /api/v1/admin/trips/{id}/status          -- force a trip status
GET  /api/v1/admin/logs                       -- newest 100 audit rows
POST /api/v1/admin/sweep                      -- run one expiry sweep now
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_coord.api.dependencies import get_db, get_profile
from pickup_coord.api.middleware import RATE_LIMIT, limiter
from pickup_coord.api.schemas import (
    AdminLogResponse,
    AdminStatsResponse,
    DocumentRejectBody,
    DocumentResponse,
    Envelope,
    HealthResponse,
    SchoolStatsResponse,
    SweepResponse,
    TripResponse,
    TripStatusOverride,
    ok,
)
from pickup_coord.infrastructure.models import ProfileModel
from pickup_coord.services import access, admin
from pickup_coord.workers import sweeper

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=Envelope[AdminStatsResponse], summary="Dashboard counters")
@limiter.limit(RATE_LIMIT)
async def get_stats(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    return ok(AdminStatsResponse.model_validate(await admin.stats(db, profile)))


@router.get(
    "/schools",
    response_model=Envelope[list[SchoolStatsResponse]],
    summary="Request volume and match rate per school",
)
@limiter.limit(RATE_LIMIT)
async def get_school_stats(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await admin.school_stats(db, profile)
    return ok([SchoolStatsResponse.model_validate(s) for s in rows])


@router.get(
    "/documents/pending",
    response_model=Envelope[list[DocumentResponse]],
    summary="Provider documents awaiting review",
)
@limiter.limit(RATE_LIMIT)
async def get_pending_documents(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await admin.pending_documents(db, profile)
    return ok([DocumentResponse.model_validate(d) for d in rows])


@router.post(
    "/documents/{document_id}/approve",
    response_model=Envelope[DocumentResponse],
    summary="Approve a provider document",
)
@limiter.limit(RATE_LIMIT)
async def approve_document(
    request: Request,
    document_id: int,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    document = await admin.approve_document(db, profile, document_id)
    return ok(DocumentResponse.model_validate(document))


@router.post(
    "/documents/{document_id}/reject",
    response_model=Envelope[DocumentResponse],
    summary="Reject a provider document",
)
@limiter.limit(RATE_LIMIT)
async def reject_document(
    request: Request,
    document_id: int,
    body: DocumentRejectBody,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    document = await admin.reject_document(db, profile, document_id, body.reason)
    return ok(DocumentResponse.model_validate(document))


@router.post(
    "/trips/{trip_id}/status",
    response_model=Envelope[TripResponse],
    summary="Force a trip into a status",
)
@limiter.limit(RATE_LIMIT)
async def override_trip_status(
    request: Request,
    trip_id: int,
    body: TripStatusOverride,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    trip = await admin.override_trip_status(db, profile, trip_id, body.status)
    return ok(TripResponse.build(trip))


@router.get("/logs", response_model=Envelope[list[AdminLogResponse]], summary="Audit trail")
@limiter.limit(RATE_LIMIT)
async def get_admin_logs(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
    db: AsyncSession = Depends(get_db),
):
    rows = await admin.admin_logs(db, profile)
    return ok([AdminLogResponse.model_validate(log) for log in rows])


@router.post("/sweep", response_model=Envelope[SweepResponse], summary="Run one expiry sweep")
@limiter.limit(RATE_LIMIT)
async def run_sweep(
    request: Request,
    profile: ProfileModel = Depends(get_profile),
):
    access.require_admin(profile)
    report = await sweeper.run_sweep_cycle()
    if report is None:
        return ok(SweepResponse(ran=False))
    return ok(
        SweepResponse(
            ran=True,
            requests_expired=report.requests_expired,
            trips_locked=report.trips_locked,
            trips_expired=report.trips_expired,
            invitations_expired=report.invitations_expired,
        )
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
