"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from pickup_coord.domain import area, clock
from pickup_coord.domain.enums import CancelReason, TripStatus
from pickup_coord.domain.slots import slot_key
from pickup_coord.infrastructure.identity import PublicProfile

T = TypeVar("T")

# Service area: South Korea
LAT_MIN, LAT_MAX = 33.0, 38.6
LNG_MIN, LNG_MAX = 124.5, 132.0


class Envelope(BaseModel, Generic[T]):
    """Every response body: ``{"success", "data", "error"}``."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


def ok(data=None) -> dict:
    return {"success": True, "data": data, "error": None}


# ── Requests ──────────────────────────────────────────────────────────


class ProfileSyncRequest(BaseModel):
    school_name: Optional[str] = Field(None, max_length=120)


class PickupRequestCreate(BaseModel):
    pickup_time: datetime
    origin_text: str = Field(..., min_length=1, max_length=500)
    origin_lat: float = Field(..., ge=LAT_MIN, le=LAT_MAX)
    origin_lng: float = Field(..., ge=LNG_MIN, le=LNG_MAX)
    destination_text: str = Field(..., min_length=1, max_length=500)
    destination_lat: float = Field(..., ge=LAT_MIN, le=LAT_MAX)
    destination_lng: float = Field(..., ge=LNG_MIN, le=LNG_MAX)

    @field_validator("pickup_time")
    @classmethod
    def to_local_time(cls, value: datetime) -> datetime:
        return clock.to_local(value)


class CancelBody(BaseModel):
    reason_code: CancelReason
    reason_text: Optional[str] = Field(None, max_length=500)


class CancelRequestBody(BaseModel):
    reason_code: CancelReason = CancelReason.CANCEL
    reason_text: Optional[str] = Field(None, max_length=500)


class TripCreate(BaseModel):
    scheduled_start_at: datetime
    title: Optional[str] = Field(None, max_length=100)
    is_test: bool = False

    @field_validator("scheduled_start_at")
    @classmethod
    def to_local_time(cls, value: datetime) -> datetime:
        return clock.to_local(value)


class CancelUnmetBody(BaseModel):
    pickup_request_ids: list[int] = Field(..., min_length=1)
    reason_code: CancelReason = CancelReason.NO_SHOW
    reason_text: Optional[str] = Field(None, max_length=500)


class InvitationCreate(BaseModel):
    trip_id: int
    pickup_request_id: int


class ArrivalCreate(BaseModel):
    photo_url: str = Field(..., min_length=1, max_length=1000)


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=1000)


class DocumentCreate(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=50)
    file_url: str = Field(..., min_length=1, max_length=1000)


class DocumentRejectBody(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TripStatusOverride(BaseModel):
    status: TripStatus


# ── Responses ─────────────────────────────────────────────────────────


class ProfileResponse(BaseModel):
    id: int
    external_id: str
    role: str
    school_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PickupRequestResponse(BaseModel):
    id: int
    requester_profile_id: int
    pickup_time: datetime
    origin_text: str
    origin_lat: float
    origin_lng: float
    destination_text: str
    destination_lat: float
    destination_lng: float
    status: str
    progress_stage: Optional[str] = None
    cancel_reason_code: Optional[str] = None
    cancel_reason_text: Optional[str] = None
    started_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_requested_at: Optional[datetime] = None
    cancel_approved_at: Optional[datetime] = None
    cancel_approved_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailableRequestResponse(BaseModel):
    id: int
    pickup_time: datetime
    slot_key: str
    origin_area: str
    destination_area: str
    destination_type: str
    area_cell: str
    has_pending_invitation: bool

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    provider_profile_id: int
    title: str
    scheduled_start_at: datetime
    status: str
    is_locked: bool
    capacity: int
    is_test: bool
    start_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    participant_count: int = 0

    model_config = {"from_attributes": True}

    @classmethod
    def build(cls, trip, participant_count: int = 0) -> "TripResponse":
        response = cls.model_validate(trip)
        response.participant_count = participant_count
        return response


class ParticipantResponse(BaseModel):
    pickup_request_id: int
    requester_profile_id: int
    sequence_order: int
    is_met_at_pickup: bool
    status: str
    progress_stage: Optional[str] = None
    pickup_time: datetime
    origin_text: str
    destination_text: str
    picked_up_at: Optional[datetime] = None

    @classmethod
    def build(cls, view) -> "ParticipantResponse":
        p, r = view.participant, view.request
        return cls(
            pickup_request_id=p.pickup_request_id,
            requester_profile_id=p.requester_profile_id,
            sequence_order=p.sequence_order,
            is_met_at_pickup=p.is_met_at_pickup,
            status=r.status,
            progress_stage=r.progress_stage,
            pickup_time=r.pickup_time,
            origin_text=r.origin_text,
            destination_text=r.destination_text,
            picked_up_at=r.picked_up_at,
        )


class TripDetailResponse(TripResponse):
    participants: list[ParticipantResponse] = []


class MetResponse(BaseModel):
    pickup_request_id: int
    is_met_at_pickup: bool

    model_config = {"from_attributes": True}


class CancelledResponse(BaseModel):
    cancelled: list[int]


class InvitationResponse(BaseModel):
    id: int
    trip_id: int
    pickup_request_id: int
    provider_profile_id: int
    requester_profile_id: int
    status: str
    expires_at: datetime
    responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class InvitationDetailResponse(InvitationResponse):
    """Invitation joined with its trip and an area-level request summary.

    Exact addresses and coordinates are filled in only once ACCEPTED.
    """

    trip_title: str
    trip_scheduled_start_at: datetime
    trip_status: str
    pickup_time: datetime
    slot_key: str
    origin_area: str
    destination_area: str
    origin_text: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_text: Optional[str] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    provider_profile: Optional[PublicProfile] = None

    @classmethod
    def build(cls, detail) -> "InvitationDetailResponse":
        base = InvitationResponse.model_validate(detail.invitation).model_dump()
        request, trip = detail.request, detail.trip
        exact = {}
        if detail.reveal_location:
            exact = {
                "origin_text": request.origin_text,
                "origin_lat": request.origin_lat,
                "origin_lng": request.origin_lng,
                "destination_text": request.destination_text,
                "destination_lat": request.destination_lat,
                "destination_lng": request.destination_lng,
            }
        return cls(
            **base,
            **exact,
            trip_title=trip.title,
            trip_scheduled_start_at=trip.scheduled_start_at,
            trip_status=trip.status,
            pickup_time=request.pickup_time,
            slot_key=slot_key(request.pickup_time),
            origin_area=area.extract_area(request.origin_text),
            destination_area=area.extract_area(request.destination_text),
            provider_profile=detail.provider_profile,
        )


class ArrivalResponse(BaseModel):
    id: int
    trip_id: int
    pickup_request_id: int
    photo_url: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: int
    trip_id: int
    pickup_request_id: int
    provider_profile_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: int
    invitation_id: int
    sender_profile_id: int
    sender_role: str
    body: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReadMarkerResponse(BaseModel):
    invitation_id: int
    last_read_at: datetime

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: int
    provider_profile_id: int
    document_type: str
    file_url: str
    status: str
    rejection_reason: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AdminStatsResponse(BaseModel):
    total_profiles: int
    pending_documents: int
    active_trips: int
    total_trips: int

    model_config = {"from_attributes": True}


class SchoolStatsResponse(BaseModel):
    school_name: str
    request_count: int
    provider_count: int
    match_rate: int

    model_config = {"from_attributes": True}


class AdminLogResponse(BaseModel):
    id: int
    admin_profile_id: int
    action_type: str
    target_id: Optional[str] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    ran: bool
    requests_expired: int = 0
    trips_locked: int = 0
    trips_expired: int = 0
    invitations_expired: int = 0


class DaySummaryResponse(BaseModel):
    count: int
    statuses: list[str]


class HealthResponse(BaseModel):
    status: str = "ok"
