"""Unit tests for the lifecycle rule engine and deadline predicates."""

from datetime import datetime, timedelta

import pytest

from pickup_coord.domain import rules
from pickup_coord.domain.enums import (
    InvitationStatus,
    ProgressStage,
    RequestStatus,
    TripStatus,
)
from pickup_coord.domain.errors import (
    ConstraintViolation,
    InvalidStateTransition,
    ValidationFailed,
)
from pickup_coord.domain.expiry import (
    invitation_is_overdue,
    request_is_overdue,
    rider_is_stranded,
    trip_is_lock_due,
    trip_is_overdue,
)
from pickup_coord.infrastructure.models import (
    InvitationModel,
    PickupRequestModel,
    TripModel,
    TripParticipantModel,
)

NOW = datetime(2026, 3, 10, 12, 0)
START = NOW + timedelta(hours=3)
POLICY = rules.Policy()

NO_COUNTS = rules.SendCounts(duplicate_pending=False, provider_pending=0, trip_active=0)


def _trip(**kwargs) -> TripModel:
    kwargs.setdefault("scheduled_start_at", START)
    kwargs.setdefault("status", TripStatus.OPEN)
    kwargs.setdefault("is_locked", False)
    kwargs.setdefault("capacity", 3)
    return TripModel(id=1, provider_profile_id=1, **kwargs)


def _request(**kwargs) -> PickupRequestModel:
    kwargs.setdefault("pickup_time", START)
    kwargs.setdefault("status", RequestStatus.REQUESTED)
    return PickupRequestModel(id=7, requester_profile_id=2, **kwargs)


def _invitation(**kwargs) -> InvitationModel:
    kwargs.setdefault("expires_at", NOW + timedelta(hours=24))
    kwargs.setdefault("status", InvitationStatus.PENDING)
    return InvitationModel(id=3, trip_id=1, pickup_request_id=7, **kwargs)


def _participant(request_id=7, *, met=False) -> TripParticipantModel:
    return TripParticipantModel(
        trip_id=1, pickup_request_id=request_id, sequence_order=1, is_met_at_pickup=met
    )


def _accept_counts(active_others=0, accepted=0, slot=0) -> rules.AcceptCounts:
    return rules.AcceptCounts(
        trip_active_others=active_others, trip_accepted=accepted, slot_accepted=slot
    )


class TestCreation:
    def test_pickup_time_must_be_future(self):
        with pytest.raises(ValidationFailed, match="Pickup time"):
            rules.check_new_request(NOW, NOW)

    def test_trip_start_must_be_future(self):
        with pytest.raises(ValidationFailed, match="Scheduled start"):
            rules.check_new_trip(NOW - timedelta(minutes=1), NOW)
        rules.check_new_trip(START, NOW)


class TestSendInvitation:
    def test_happy_path(self):
        rules.check_send(_trip(), _request(), counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_expired_trip_checked_first(self):
        # also locked and inside the cutoff; expiry wins
        trip = _trip(status=TripStatus.EXPIRED, is_locked=True)
        with pytest.raises(InvalidStateTransition, match="trip has expired"):
            rules.check_send(trip, _request(), counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_locked_trip(self):
        trip = _trip(status=TripStatus.LOCKED, is_locked=True)
        with pytest.raises(InvalidStateTransition, match="locked"):
            rules.check_send(trip, _request(), counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_cutoff_before_departure(self):
        now = START - timedelta(minutes=30)
        with pytest.raises(ConstraintViolation, match="30 minutes before departure"):
            rules.check_send(_trip(), _request(), counts=NO_COUNTS, now=now, policy=POLICY)

    def test_just_outside_cutoff_is_allowed(self):
        now = START - timedelta(minutes=31)
        rules.check_send(_trip(), _request(), counts=NO_COUNTS, now=now, policy=POLICY)

    def test_request_must_be_open(self):
        request = _request(status=RequestStatus.MATCHED)
        with pytest.raises(InvalidStateTransition, match="no longer open"):
            rules.check_send(_trip(), request, counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_overdue_request_reports_expired(self):
        request = _request(pickup_time=NOW - timedelta(minutes=1))
        with pytest.raises(InvalidStateTransition, match="request has expired"):
            rules.check_send(_trip(), request, counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_date_must_match(self):
        request = _request(pickup_time=START + timedelta(days=1))
        with pytest.raises(ConstraintViolation, match="date does not match"):
            rules.check_send(_trip(), request, counts=NO_COUNTS, now=NOW, policy=POLICY)

    def test_duplicate_pending(self):
        counts = rules.SendCounts(duplicate_pending=True, provider_pending=0, trip_active=0)
        with pytest.raises(ConstraintViolation, match="already have a pending"):
            rules.check_send(_trip(), _request(), counts=counts, now=NOW, policy=POLICY)

    def test_provider_pending_limit(self):
        counts = rules.SendCounts(duplicate_pending=False, provider_pending=3, trip_active=0)
        with pytest.raises(ConstraintViolation, match="maximum 3 pending"):
            rules.check_send(_trip(), _request(), counts=counts, now=NOW, policy=POLICY)

    def test_trip_full(self):
        counts = rules.SendCounts(duplicate_pending=False, provider_pending=2, trip_active=3)
        with pytest.raises(ConstraintViolation, match="trip is full"):
            rules.check_send(_trip(), _request(), counts=counts, now=NOW, policy=POLICY)


class TestAcceptInvitation:
    def test_first_accept_takes_seat_one(self):
        plan = rules.plan_accept(
            _invitation(), _trip(), _request(), counts=_accept_counts(), now=NOW, policy=POLICY
        )
        assert plan == rules.AcceptPlan(sequence_order=1, lock_trip=False)

    def test_third_accept_locks_trip(self):
        plan = rules.plan_accept(
            _invitation(),
            _trip(),
            _request(),
            counts=_accept_counts(active_others=2, accepted=2),
            now=NOW,
            policy=POLICY,
        )
        assert plan.sequence_order == 3
        assert plan.lock_trip is True

    def test_overdue_invitation(self):
        invitation = _invitation(expires_at=NOW - timedelta(seconds=1))
        with pytest.raises(InvalidStateTransition, match="invitation has expired"):
            rules.plan_accept(
                invitation, _trip(), _request(), counts=_accept_counts(), now=NOW, policy=POLICY
            )

    def test_already_resolved(self):
        invitation = _invitation(status=InvitationStatus.REJECTED)
        with pytest.raises(InvalidStateTransition, match="already REJECTED"):
            rules.plan_accept(
                invitation, _trip(), _request(), counts=_accept_counts(), now=NOW, policy=POLICY
            )

    def test_request_expiry_checked_before_invitation(self):
        request = _request(status=RequestStatus.EXPIRED)
        invitation = _invitation(status=InvitationStatus.EXPIRED)
        with pytest.raises(InvalidStateTransition, match="pickup request has expired"):
            rules.plan_accept(
                invitation, _trip(), request, counts=_accept_counts(), now=NOW, policy=POLICY
            )

    def test_trip_full(self):
        with pytest.raises(ConstraintViolation, match="trip is full"):
            rules.plan_accept(
                _invitation(),
                _trip(),
                _request(),
                counts=_accept_counts(active_others=3, accepted=3),
                now=NOW,
                policy=POLICY,
            )

    def test_request_already_matched(self):
        request = _request(status=RequestStatus.MATCHED)
        with pytest.raises(ConstraintViolation, match="already accepted another"):
            rules.plan_accept(
                _invitation(), _trip(), request, counts=_accept_counts(), now=NOW, policy=POLICY
            )

    def test_slot_limit(self):
        with pytest.raises(ConstraintViolation, match="no seats left in this time slot"):
            rules.plan_accept(
                _invitation(),
                _trip(),
                _request(),
                counts=_accept_counts(slot=3),
                now=NOW,
                policy=POLICY,
            )


class TestReject:
    def test_only_pending(self):
        rules.check_reject(_invitation())
        with pytest.raises(InvalidStateTransition, match="Only pending"):
            rules.check_reject(_invitation(status=InvitationStatus.ACCEPTED))


class TestTripRules:
    def test_start_requires_met_student(self):
        with pytest.raises(ConstraintViolation, match="no confirmed students"):
            rules.check_start(_trip(), met_count=0, now=NOW, policy=POLICY)

    @pytest.mark.parametrize("status", [TripStatus.OPEN, TripStatus.LOCKED])
    def test_start_allowed_before_departure(self, status):
        rules.check_start(_trip(status=status), met_count=1, now=NOW, policy=POLICY)

    def test_start_twice(self):
        trip = _trip(status=TripStatus.IN_PROGRESS, is_locked=True)
        with pytest.raises(InvalidStateTransition, match="already departed"):
            rules.check_start(trip, met_count=1, now=NOW, policy=POLICY)

    def test_start_after_grace_reports_expired(self):
        now = START + timedelta(minutes=31)
        with pytest.raises(InvalidStateTransition, match="trip has expired"):
            rules.check_start(_trip(), met_count=1, now=now, policy=POLICY)

    def test_picked_up_requires_started_trip(self):
        request = _request(status=RequestStatus.IN_PROGRESS)
        request.progress_stage = ProgressStage.STARTED
        with pytest.raises(InvalidStateTransition, match="not started"):
            rules.check_mark_picked_up(_trip(), request)
        rules.check_mark_picked_up(_trip(status=TripStatus.IN_PROGRESS, is_locked=True), request)

    def test_cancel_unmet_refuses_met_student(self):
        participant = _participant(met=True)
        with pytest.raises(ConstraintViolation, match="already met"):
            rules.check_cancel_unmet(_trip(), participant, now=NOW, policy=POLICY)
        rules.check_cancel_unmet(
            _trip(), _participant(8), now=NOW, policy=POLICY
        )

    def test_arrival_requires_trip_in_progress(self):
        request = _request(status=RequestStatus.IN_PROGRESS)
        with pytest.raises(InvalidStateTransition, match="trip in progress"):
            rules.check_arrival(_trip(), request, already_arrived=False)
        with pytest.raises(ConstraintViolation, match="already confirmed"):
            rules.check_arrival(
                _trip(status=TripStatus.IN_PROGRESS), request, already_arrived=True
            )


class TestRequestRules:
    @pytest.mark.parametrize("status", [RequestStatus.REQUESTED, RequestStatus.MATCHED])
    def test_cancellable(self, status):
        rules.check_cancel(_request(status=status))

    @pytest.mark.parametrize(
        "status",
        [RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, RequestStatus.EXPIRED],
    )
    def test_not_cancellable(self, status):
        with pytest.raises(InvalidStateTransition, match="Only requested or matched"):
            rules.check_cancel(_request(status=status))

    def test_open_request_cancel_needs_no_cutoff(self):
        rules.check_request_cancel(
            _request(pickup_time=NOW + timedelta(minutes=5)), now=NOW, policy=POLICY
        )

    def test_matched_cancel_request_closes_an_hour_before(self):
        matched = _request(status=RequestStatus.MATCHED)
        rules.check_request_cancel(matched, now=START - timedelta(minutes=61), policy=POLICY)
        with pytest.raises(ConstraintViolation, match="up to 1 hour before departure"):
            rules.check_request_cancel(matched, now=START - timedelta(hours=1), policy=POLICY)

    @pytest.mark.parametrize(
        "status", [RequestStatus.CANCEL_REQUESTED, RequestStatus.IN_PROGRESS]
    )
    def test_cancel_request_only_from_open_states(self, status):
        with pytest.raises(InvalidStateTransition, match="cannot be requested"):
            rules.check_request_cancel(_request(status=status), now=NOW, policy=POLICY)

    def test_approve_needs_pending_cancel(self):
        rules.check_approve_cancel(
            _trip(), _request(status=RequestStatus.CANCEL_REQUESTED), now=NOW, policy=POLICY
        )
        with pytest.raises(InvalidStateTransition, match="no cancellation request"):
            rules.check_approve_cancel(
                _trip(), _request(status=RequestStatus.MATCHED), now=NOW, policy=POLICY
            )

    def test_approve_refused_once_departed(self):
        trip = _trip(status=TripStatus.IN_PROGRESS, is_locked=True)
        with pytest.raises(InvalidStateTransition, match="already departed"):
            rules.check_approve_cancel(
                trip, _request(status=RequestStatus.CANCEL_REQUESTED), now=NOW, policy=POLICY
            )

    def test_review_only_completed_once(self):
        with pytest.raises(InvalidStateTransition, match="Only completed"):
            rules.check_review(_request(status=RequestStatus.MATCHED), already_reviewed=False)
        with pytest.raises(ConstraintViolation, match="already reviewed"):
            rules.check_review(_request(status=RequestStatus.COMPLETED), already_reviewed=True)


class TestDeadlines:
    def test_request_overdue_only_while_open(self):
        past = NOW - timedelta(minutes=1)
        assert request_is_overdue(_request(pickup_time=past), NOW)
        # a seated request follows its trip, not its own pickup time
        assert not request_is_overdue(
            _request(pickup_time=past, status=RequestStatus.MATCHED), NOW
        )
        assert not request_is_overdue(
            _request(pickup_time=past, status=RequestStatus.IN_PROGRESS), NOW
        )
        assert not request_is_overdue(_request(), NOW)

    def test_trip_overdue_after_grace(self):
        grace = POLICY.trip_expiry_grace
        assert not trip_is_overdue(_trip(), START + grace, grace)
        assert trip_is_overdue(_trip(), START + grace + timedelta(seconds=1), grace)
        assert not trip_is_overdue(
            _trip(status=TripStatus.IN_PROGRESS), START + timedelta(hours=5), grace
        )

    def test_lock_window(self):
        cutoff, grace = POLICY.invite_cutoff, POLICY.trip_expiry_grace
        assert not trip_is_lock_due(_trip(), START - timedelta(minutes=31), cutoff, grace)
        assert trip_is_lock_due(_trip(), START - cutoff, cutoff, grace)
        assert not trip_is_lock_due(
            _trip(status=TripStatus.LOCKED), START - cutoff, cutoff, grace
        )
        assert not trip_is_lock_due(_trip(), START + timedelta(hours=1), cutoff, grace)

    def test_invitation_overdue(self):
        assert invitation_is_overdue(_invitation(expires_at=NOW - timedelta(seconds=1)), NOW)
        assert not invitation_is_overdue(
            _invitation(expires_at=NOW - timedelta(seconds=1), status=InvitationStatus.ACCEPTED),
            NOW,
        )

    def test_seated_request_stranded_only_with_its_trip(self):
        grace = POLICY.trip_expiry_grace
        seated = _request(pickup_time=NOW - timedelta(hours=1), status=RequestStatus.MATCHED)
        assert not rider_is_stranded(seated, _trip(), START + timedelta(minutes=5), grace)
        assert rider_is_stranded(seated, _trip(), START + grace + timedelta(seconds=1), grace)
        assert rider_is_stranded(seated, _trip(status=TripStatus.EXPIRED), NOW, grace)

    def test_pending_cancel_is_stranded_too(self):
        grace = POLICY.trip_expiry_grace
        waiting = _request(status=RequestStatus.CANCEL_REQUESTED)
        assert rider_is_stranded(waiting, _trip(status=TripStatus.CANCELLED), NOW, grace)

    def test_open_or_started_request_never_stranded(self):
        grace = POLICY.trip_expiry_grace
        late = START + timedelta(hours=2)
        assert not rider_is_stranded(_request(), _trip(), late, grace)
        assert not rider_is_stranded(
            _request(status=RequestStatus.IN_PROGRESS),
            _trip(status=TripStatus.IN_PROGRESS, is_locked=True),
            late,
            grace,
        )
