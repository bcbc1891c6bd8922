"""Domain enumerations and state-transition rules."""

import enum


class TripStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# State machine: maps current status -> set of valid next statuses
TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.REQUESTED: {TripStatus.ACCEPTED, TripStatus.CANCELLED},
    TripStatus.ACCEPTED: {TripStatus.IN_PROGRESS, TripStatus.CANCELLED},
    TripStatus.IN_PROGRESS: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}

ACTIVE_STATUSES = frozenset(
    {TripStatus.REQUESTED, TripStatus.ACCEPTED, TripStatus.IN_PROGRESS}
)
TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})


class UserRole(str, enum.Enum):
    RIDER = "user"
    DRIVER = "driver"


class TripEvent(str, enum.Enum):
    """Names of the events pushed over the socket channel."""

    NEW_TRIP_REQUEST = "new-trip-request"
    TRIP_ACCEPTED = "trip-accepted"
    TRIP_UPDATED = "trip-updated"
    DRIVER_LOCATION = "driver-location"
