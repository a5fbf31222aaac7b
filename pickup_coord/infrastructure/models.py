"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite in tests).

Tables
------
* ``profiles``           -- identity-linked accounts (requester, provider, admin)
* ``pickup_requests``    -- a requester's ask for a ride
* ``trips``              -- a provider's ride group (capacity 3)
* ``invitations``        -- trip seat offers to pickup requests
* ``trip_participants``  -- accepted invitations materialised as membership
* ``trip_arrivals``      -- per-student arrival confirmation (photo URL)
* ``trip_reviews``       -- one rating per completed pickup request
* ``pickup_messages``    -- provider <-> requester thread per invitation
* ``message_reads``      -- last-read marker per (invitation, profile)
* ``provider_documents`` -- provider verification uploads (URL only)
* ``admin_logs``         -- append-only admin audit trail

Business timestamps (pickup / schedule / expiry) are naive local time.

Indexes
-------
* **Partial unique** on ``invitations (pickup_request_id, provider_profile_id)
  WHERE status = 'PENDING'`` -- backs the duplicate-pending rule.
* **B-Tree** on status and owner columns used by list and sweep queries.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)

from .database import Base
from pickup_coord.domain.enums import (
    CancelReason,
    DocumentStatus,
    InvitationStatus,
    ProfileRole,
    ProgressStage,
    RequestStatus,
    SenderRole,
    TripStatus,
)


class ProfileModel(Base):
    __tablename__ = "profiles"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(128), unique=True, nullable=False)
    role = Column(Enum(ProfileRole), default=ProfileRole.USER, nullable=False)
    school_name = Column(String(120), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class PickupRequestModel(Base):
    __tablename__ = "pickup_requests"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    pickup_time = Column(DateTime, nullable=False)

    origin_text = Column(String(500), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_text = Column(String(500), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)

    status = Column(
        Enum(RequestStatus), default=RequestStatus.REQUESTED, nullable=False
    )
    progress_stage = Column(Enum(ProgressStage), nullable=True)
    cancel_reason_code = Column(Enum(CancelReason), nullable=True)
    cancel_reason_text = Column(String(500), nullable=True)

    started_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_requested_at = Column(DateTime, nullable=True)
    cancel_approved_at = Column(DateTime, nullable=True)
    cancel_approved_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_pickup_requests_status", "status"),
        Index("idx_pickup_requests_requester", "requester_profile_id"),
        Index("idx_pickup_requests_time", "pickup_time"),
    )


class TripModel(Base):
    __tablename__ = "trips"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    title = Column(String(100), nullable=False)
    scheduled_start_at = Column(DateTime, nullable=False)
    status = Column(Enum(TripStatus), default=TripStatus.OPEN, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    capacity = Column(Integer, default=3, nullable=False)
    is_test = Column(Boolean, default=False, nullable=False)

    start_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_provider", "provider_profile_id"),
        Index("idx_trips_scheduled", "scheduled_start_at"),
    )


class InvitationModel(Base):
    __tablename__ = "invitations"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    pickup_request_id = Column(
        Integer, ForeignKey("pickup_requests.id"), nullable=False
    )
    provider_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    requester_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    status = Column(
        Enum(InvitationStatus), default=InvitationStatus.PENDING, nullable=False
    )
    expires_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_invitations_trip", "trip_id"),
        Index("idx_invitations_request", "pickup_request_id"),
        Index("idx_invitations_provider_status", "provider_profile_id", "status"),
        Index(
            "uq_invitations_pending_pair",
            "pickup_request_id",
            "provider_profile_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )


class TripParticipantModel(Base):
    __tablename__ = "trip_participants"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    pickup_request_id = Column(
        Integer, ForeignKey("pickup_requests.id"), unique=True, nullable=False
    )
    requester_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    sequence_order = Column(Integer, nullable=False)
    is_met_at_pickup = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_trip_participants_trip", "trip_id"),)


class TripArrivalModel(Base):
    __tablename__ = "trip_arrivals"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    pickup_request_id = Column(
        Integer, ForeignKey("pickup_requests.id"), unique=True, nullable=False
    )
    photo_url = Column(String(1000), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_trip_arrivals_trip", "trip_id"),)


class TripReviewModel(Base):
    __tablename__ = "trip_reviews"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    pickup_request_id = Column(
        Integer, ForeignKey("pickup_requests.id"), unique=True, nullable=False
    )
    reviewer_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    provider_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(String(1000), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_trip_reviews_trip", "trip_id"),)


class PickupMessageModel(Base):
    __tablename__ = "pickup_messages"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    invitation_id = Column(Integer, ForeignKey("invitations.id"), nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    pickup_request_id = Column(
        Integer, ForeignKey("pickup_requests.id"), nullable=False
    )
    sender_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    sender_role = Column(Enum(SenderRole), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_pickup_messages_invitation", "invitation_id"),)


class MessageReadModel(Base):
    __tablename__ = "message_reads"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    invitation_id = Column(Integer, ForeignKey("invitations.id"), nullable=False)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    last_read_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("invitation_id", "profile_id", name="uq_message_reads"),
    )


class ProviderDocumentModel(Base):
    __tablename__ = "provider_documents"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    document_type = Column(String(50), nullable=False)
    file_url = Column(String(1000), nullable=False)
    status = Column(
        Enum(DocumentStatus), default=DocumentStatus.PENDING, nullable=False
    )
    rejection_reason = Column(String(500), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("idx_provider_documents_status", "status"),)


class AdminLogModel(Base):
    __tablename__ = "admin_logs"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    action_type = Column(String(50), nullable=False)
    target_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_admin_logs_created", "created_at"),)
