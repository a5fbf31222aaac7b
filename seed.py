"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 1 admin, 3 providers and 6 requesters (identity ids ``seed-*``)
  - 6 pickup requests around Gangnam / Seocho for tomorrow afternoon
  - 2 trips: one OPEN with a PENDING invitation, one LOCKED and full
  - 1 provider document awaiting review
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from pickup_coord.config import settings
from pickup_coord.domain import clock
from pickup_coord.domain.enums import (
    DocumentStatus,
    InvitationStatus,
    ProfileRole,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.infrastructure.database import async_session_factory, engine
from pickup_coord.infrastructure.models import (
    InvitationModel,
    PickupRequestModel,
    ProfileModel,
    ProviderDocumentModel,
    TripModel,
    TripParticipantModel,
)

PROFILES = [
    {"external_id": "seed-admin", "role": ProfileRole.ADMIN, "school": None},
    {"external_id": "seed-provider-1", "role": ProfileRole.USER, "school": "Daechi Middle School"},
    {"external_id": "seed-provider-2", "role": ProfileRole.USER, "school": "Seocho High School"},
    {"external_id": "seed-provider-3", "role": ProfileRole.USER, "school": None},
    {"external_id": "seed-requester-1", "role": ProfileRole.USER, "school": "Daechi Middle School"},
    {"external_id": "seed-requester-2", "role": ProfileRole.USER, "school": "Daechi Middle School"},
    {"external_id": "seed-requester-3", "role": ProfileRole.USER, "school": "Seocho High School"},
    {"external_id": "seed-requester-4", "role": ProfileRole.USER, "school": "Seocho High School"},
    {"external_id": "seed-requester-5", "role": ProfileRole.USER, "school": None},
    {"external_id": "seed-requester-6", "role": ProfileRole.USER, "school": None},
]

# (origin, origin lat/lng, destination, destination lat/lng)
ROUTES = [
    ("서울특별시 강남구 대치동 316", (37.4946, 127.0630), "대치 수학학원", (37.4990, 127.0580)),
    ("서울특별시 강남구 역삼동 123", (37.5006, 127.0364), "대치 영어학원", (37.4985, 127.0575)),
    ("서울특별시 서초구 서초동 1303", (37.4919, 127.0076), "서초고등학교", (37.4890, 127.0130)),
    ("서울특별시 서초구 반포동 20", (37.5040, 127.0050), "서초고등학교", (37.4890, 127.0130)),
    ("서울특별시 강남구 도곡동 467", (37.4880, 127.0480), "우리집 아파트", (37.4836, 127.0540)),
    ("서울특별시 송파구 잠실동 40", (37.5133, 127.1001), "잠실 피아노학원", (37.5110, 127.0860)),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(ProfileModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = clock.now()
        pickup_at = (now + timedelta(days=1)).replace(hour=16, minute=0, second=0, microsecond=0)

        # ── Profiles ──────────────────────────────────────────────────
        profiles = []
        for p in PROFILES:
            m = ProfileModel(external_id=p["external_id"], role=p["role"], school_name=p["school"])
            session.add(m)
            profiles.append(m)
        await session.flush()
        print(f"  Created {len(profiles)} profiles")
        providers, requesters = profiles[1:4], profiles[4:]

        # ── Pickup requests ───────────────────────────────────────────
        requests = []
        for requester, (origin, o, destination, d) in zip(requesters, ROUTES):
            m = PickupRequestModel(
                requester_profile_id=requester.id,
                pickup_time=pickup_at,
                origin_text=origin,
                origin_lat=o[0],
                origin_lng=o[1],
                destination_text=destination,
                destination_lat=d[0],
                destination_lng=d[1],
                status=RequestStatus.REQUESTED,
            )
            session.add(m)
            requests.append(m)
        await session.flush()
        print(f"  Created {len(requests)} pickup requests")

        # ── Trips ─────────────────────────────────────────────────────
        open_trip = TripModel(
            provider_profile_id=providers[0].id,
            title=f"{pickup_at.month}/{pickup_at.day} {pickup_at.hour}:00 pickup group",
            scheduled_start_at=pickup_at,
            status=TripStatus.OPEN,
            is_locked=False,
            capacity=settings.trip_capacity,
        )
        full_trip = TripModel(
            provider_profile_id=providers[1].id,
            title="Seocho afternoon run",
            scheduled_start_at=pickup_at,
            status=TripStatus.LOCKED,
            is_locked=True,
            capacity=settings.trip_capacity,
        )
        session.add_all([open_trip, full_trip])
        await session.flush()
        print("  Created 2 trips")

        # ── Invitations / participants ────────────────────────────────
        session.add(
            InvitationModel(
                trip_id=open_trip.id,
                pickup_request_id=requests[0].id,
                provider_profile_id=providers[0].id,
                requester_profile_id=requests[0].requester_profile_id,
                status=InvitationStatus.PENDING,
                expires_at=now + timedelta(hours=settings.invitation_ttl_hours),
            )
        )
        for seat, request in enumerate(requests[2:5], start=1):
            session.add(
                InvitationModel(
                    trip_id=full_trip.id,
                    pickup_request_id=request.id,
                    provider_profile_id=providers[1].id,
                    requester_profile_id=request.requester_profile_id,
                    status=InvitationStatus.ACCEPTED,
                    expires_at=now + timedelta(hours=settings.invitation_ttl_hours),
                    responded_at=now,
                )
            )
            session.add(
                TripParticipantModel(
                    trip_id=full_trip.id,
                    pickup_request_id=request.id,
                    requester_profile_id=request.requester_profile_id,
                    sequence_order=seat,
                )
            )
            request.status = RequestStatus.MATCHED
            request.progress_stage = ProgressStage.MATCHED
        await session.flush()
        print("  Created 4 invitations (1 pending, 3 accepted)")

        # ── Provider documents ────────────────────────────────────────
        session.add(
            ProviderDocumentModel(
                provider_profile_id=providers[2].id,
                document_type="DRIVER_LICENSE",
                file_url="https://storage.example.com/documents/seed-provider-3/license.jpg",
                status=DocumentStatus.PENDING,
            )
        )

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
