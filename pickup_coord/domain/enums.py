"""Domain enumerations and state-transition rules."""

import enum


class ProfileRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class RequestStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    MATCHED = "MATCHED"
    IN_PROGRESS = "IN_PROGRESS"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"


class ProgressStage(str, enum.Enum):
    MATCHED = "MATCHED"
    STARTED = "STARTED"
    PICKED_UP = "PICKED_UP"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"


class TripStatus(str, enum.Enum):
    OPEN = "OPEN"
    LOCKED = "LOCKED"
    IN_PROGRESS = "IN_PROGRESS"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class InvitationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class CancelReason(str, enum.Enum):
    CANCEL = "CANCEL"
    NO_SHOW = "NO_SHOW"


class DocumentStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SenderRole(str, enum.Enum):
    PROVIDER = "PROVIDER"
    REQUESTER = "REQUESTER"


class DestinationType(str, enum.Enum):
    ACADEMY = "ACADEMY"
    SCHOOL = "SCHOOL"
    HOME = "HOME"
    OTHER = "OTHER"


# State machines: map current status -> set of valid next statuses

REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.REQUESTED: {
        RequestStatus.MATCHED,
        RequestStatus.CANCELLED,
        RequestStatus.EXPIRED,
    },
    RequestStatus.MATCHED: {
        RequestStatus.IN_PROGRESS,
        RequestStatus.CANCELLED,
        RequestStatus.EXPIRED,
        RequestStatus.CANCEL_REQUESTED,
    },
    # a pending cancel lapses if the trip starts or expires first
    RequestStatus.CANCEL_REQUESTED: {
        RequestStatus.CANCELLED,
        RequestStatus.IN_PROGRESS,
        RequestStatus.EXPIRED,
    },
    RequestStatus.IN_PROGRESS: {RequestStatus.ARRIVED, RequestStatus.COMPLETED},
    RequestStatus.ARRIVED: {RequestStatus.COMPLETED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.CANCELLED: set(),
    RequestStatus.EXPIRED: set(),
}

TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.OPEN: {
        TripStatus.LOCKED,
        TripStatus.IN_PROGRESS,
        TripStatus.CANCELLED,
        TripStatus.EXPIRED,
    },
    TripStatus.LOCKED: {
        TripStatus.IN_PROGRESS,
        TripStatus.CANCELLED,
        TripStatus.EXPIRED,
    },
    TripStatus.IN_PROGRESS: {TripStatus.ARRIVED, TripStatus.COMPLETED},
    TripStatus.ARRIVED: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
    TripStatus.EXPIRED: set(),
}

INVITATION_TRANSITIONS: dict[InvitationStatus, set[InvitationStatus]] = {
    InvitationStatus.PENDING: {
        InvitationStatus.ACCEPTED,
        InvitationStatus.REJECTED,
        InvitationStatus.EXPIRED,
    },
    # an accepted seat is released when the request is cancelled
    InvitationStatus.ACCEPTED: {InvitationStatus.EXPIRED},
    InvitationStatus.REJECTED: set(),
    InvitationStatus.EXPIRED: set(),
}

# Statuses that occupy a seat on a trip
ACTIVE_INVITATION_STATUSES = (InvitationStatus.PENDING, InvitationStatus.ACCEPTED)

# Fixed display / sort order for invitation lists
INVITATION_STATUS_RANK: dict[InvitationStatus, int] = {
    InvitationStatus.PENDING: 0,
    InvitationStatus.ACCEPTED: 1,
    InvitationStatus.REJECTED: 2,
    InvitationStatus.EXPIRED: 3,
}

CANCELLABLE_REQUEST_STATUSES = (RequestStatus.REQUESTED, RequestStatus.MATCHED)
# Requests holding a seat on a trip that has not departed
RIDER_REQUEST_STATUSES = (RequestStatus.MATCHED, RequestStatus.CANCEL_REQUESTED)
DEPARTED_TRIP_STATUSES = (
    TripStatus.IN_PROGRESS,
    TripStatus.ARRIVED,
    TripStatus.COMPLETED,
)
