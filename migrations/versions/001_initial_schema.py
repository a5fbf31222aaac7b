"""Initial schema: profiles, pickup requests, trips, invitations and satellites.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

REQUEST_STATUS = sa.Enum(
    "REQUESTED",
    "MATCHED",
    "IN_PROGRESS",
    "ARRIVED",
    "COMPLETED",
    "CANCELLED",
    "EXPIRED",
    "CANCEL_REQUESTED",
    name="requeststatus",
)
TRIP_STATUS = sa.Enum(
    "OPEN",
    "LOCKED",
    "IN_PROGRESS",
    "ARRIVED",
    "COMPLETED",
    "CANCELLED",
    "EXPIRED",
    name="tripstatus",
)
INVITATION_STATUS = sa.Enum(
    "PENDING", "ACCEPTED", "REJECTED", "EXPIRED", name="invitationstatus"
)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime, server_default=sa.func.now())


def upgrade() -> None:
    # ── profiles ──────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(128), unique=True, nullable=False),
        sa.Column(
            "role",
            sa.Enum("USER", "ADMIN", name="profilerole"),
            default="USER",
            nullable=False,
        ),
        sa.Column("school_name", sa.String(120), nullable=True),
        _created_at(),
    )

    # ── pickup_requests ───────────────────────────────────────────────
    op.create_table(
        "pickup_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "requester_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("pickup_time", sa.DateTime, nullable=False),
        sa.Column("origin_text", sa.String(500), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=False),
        sa.Column("origin_lng", sa.Float, nullable=False),
        sa.Column("destination_text", sa.String(500), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("status", REQUEST_STATUS, default="REQUESTED", nullable=False),
        sa.Column(
            "progress_stage",
            sa.Enum(
                "MATCHED",
                "STARTED",
                "PICKED_UP",
                "ARRIVED",
                "COMPLETED",
                name="progressstage",
            ),
            nullable=True,
        ),
        sa.Column(
            "cancel_reason_code",
            sa.Enum("CANCEL", "NO_SHOW", name="cancelreason"),
            nullable=True,
        ),
        sa.Column("cancel_reason_text", sa.String(500), nullable=True),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("picked_up_at", sa.DateTime, nullable=True),
        sa.Column("cancelled_at", sa.DateTime, nullable=True),
        sa.Column("cancel_requested_at", sa.DateTime, nullable=True),
        sa.Column("cancel_approved_at", sa.DateTime, nullable=True),
        sa.Column(
            "cancel_approved_by",
            sa.Integer,
            sa.ForeignKey("profiles.id"),
            nullable=True,
        ),
        _created_at(),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_pickup_requests_status", "pickup_requests", ["status"])
    op.create_index(
        "idx_pickup_requests_requester", "pickup_requests", ["requester_profile_id"]
    )
    op.create_index("idx_pickup_requests_time", "pickup_requests", ["pickup_time"])

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "provider_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("scheduled_start_at", sa.DateTime, nullable=False),
        sa.Column("status", TRIP_STATUS, default="OPEN", nullable=False),
        sa.Column("is_locked", sa.Boolean, default=False, nullable=False),
        sa.Column("capacity", sa.Integer, default=3, nullable=False),
        sa.Column("is_test", sa.Boolean, default=False, nullable=False),
        sa.Column("start_at", sa.DateTime, nullable=True),
        sa.Column("arrived_at", sa.DateTime, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_provider", "trips", ["provider_profile_id"])
    op.create_index("idx_trips_scheduled", "trips", ["scheduled_start_at"])

    # ── invitations ───────────────────────────────────────────────────
    op.create_table(
        "invitations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column(
            "pickup_request_id",
            sa.Integer,
            sa.ForeignKey("pickup_requests.id"),
            nullable=False,
        ),
        sa.Column(
            "provider_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column(
            "requester_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("status", INVITATION_STATUS, default="PENDING", nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("responded_at", sa.DateTime, nullable=True),
        _created_at(),
    )
    op.create_index("idx_invitations_trip", "invitations", ["trip_id"])
    op.create_index("idx_invitations_request", "invitations", ["pickup_request_id"])
    op.create_index(
        "idx_invitations_provider_status",
        "invitations",
        ["provider_profile_id", "status"],
    )
    # One PENDING invitation per (request, provider) pair
    op.create_index(
        "uq_invitations_pending_pair",
        "invitations",
        ["pickup_request_id", "provider_profile_id"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    # ── trip_participants ─────────────────────────────────────────────
    op.create_table(
        "trip_participants",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column(
            "pickup_request_id",
            sa.Integer,
            sa.ForeignKey("pickup_requests.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "requester_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("sequence_order", sa.Integer, nullable=False),
        sa.Column("is_met_at_pickup", sa.Boolean, default=False, nullable=False),
        _created_at(),
    )
    op.create_index("idx_trip_participants_trip", "trip_participants", ["trip_id"])

    # ── trip_arrivals / trip_reviews ──────────────────────────────────
    op.create_table(
        "trip_arrivals",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column(
            "pickup_request_id",
            sa.Integer,
            sa.ForeignKey("pickup_requests.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("photo_url", sa.String(1000), nullable=False),
        _created_at(),
    )
    op.create_index("idx_trip_arrivals_trip", "trip_arrivals", ["trip_id"])

    op.create_table(
        "trip_reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column(
            "pickup_request_id",
            sa.Integer,
            sa.ForeignKey("pickup_requests.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "reviewer_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column(
            "provider_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.String(1000), nullable=True),
        _created_at(),
    )
    op.create_index("idx_trip_reviews_trip", "trip_reviews", ["trip_id"])

    # ── pickup_messages / message_reads ───────────────────────────────
    op.create_table(
        "pickup_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "invitation_id", sa.Integer, sa.ForeignKey("invitations.id"), nullable=False
        ),
        sa.Column("trip_id", sa.Integer, sa.ForeignKey("trips.id"), nullable=False),
        sa.Column(
            "pickup_request_id",
            sa.Integer,
            sa.ForeignKey("pickup_requests.id"),
            nullable=False,
        ),
        sa.Column(
            "sender_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column(
            "sender_role",
            sa.Enum("PROVIDER", "REQUESTER", name="senderrole"),
            nullable=False,
        ),
        sa.Column("body", sa.Text, nullable=False),
        _created_at(),
    )
    op.create_index(
        "idx_pickup_messages_invitation", "pickup_messages", ["invitation_id"]
    )

    op.create_table(
        "message_reads",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "invitation_id", sa.Integer, sa.ForeignKey("invitations.id"), nullable=False
        ),
        sa.Column("profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("last_read_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("invitation_id", "profile_id", name="uq_message_reads"),
    )

    # ── provider_documents / admin_logs ───────────────────────────────
    op.create_table(
        "provider_documents",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "provider_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("document_type", sa.String(50), nullable=False),
        sa.Column("file_url", sa.String(1000), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "APPROVED", "REJECTED", name="documentstatus"),
            default="PENDING",
            nullable=False,
        ),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("reviewed_at", sa.DateTime, nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_provider_documents_status", "provider_documents", ["status"]
    )

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "admin_profile_id", sa.Integer, sa.ForeignKey("profiles.id"), nullable=False
        ),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=True),
        sa.Column("details", sa.JSON, nullable=True),
        _created_at(),
    )
    op.create_index("idx_admin_logs_created", "admin_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("admin_logs")
    op.drop_table("provider_documents")
    op.drop_table("message_reads")
    op.drop_table("pickup_messages")
    op.drop_table("trip_reviews")
    op.drop_table("trip_arrivals")
    op.drop_table("trip_participants")
    op.drop_table("invitations")
    op.drop_table("trips")
    op.drop_table("pickup_requests")
    op.drop_table("profiles")
    for enum_name in (
        "senderrole",
        "documentstatus",
        "invitationstatus",
        "tripstatus",
        "cancelreason",
        "progressstage",
        "requeststatus",
        "profilerole",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
