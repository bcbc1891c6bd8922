"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Trip``: enforces valid lifecycle transitions
  (REQUESTED -> ACCEPTED -> IN_PROGRESS -> COMPLETED | CANCELLED).
- ``Trip.from_payload`` parses the JSON wire shape pushed to clients, so the
  client library and the server agree on one representation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import TERMINAL_STATUSES, TRIP_TRANSITIONS, TripStatus


class InvalidStateTransition(Exception):
    """Raised when a trip status change violates the state machine."""

    def __init__(self, current: TripStatus, new: TripStatus):
        self.current = current
        self.new = new
        super().__init__(
            f"Cannot transition from {current.value} to {new.value}"
        )


def check_transition(current: TripStatus, new: TripStatus) -> None:
    """Raise ``InvalidStateTransition`` unless *current* -> *new* is legal."""
    if new not in TRIP_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(current, new)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        return cls(float(data["lat"]), float(data["lng"]))


@dataclass(frozen=True)
class Car:
    model: str
    color: str
    plate: str


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Driver:
    id: Optional[int] = None
    name: str = ""
    car: Optional[Car] = None
    position: Optional[Location] = None
    is_available: bool = False

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Driver":
        car = data.get("car")
        position = data.get("position")
        return cls(
            id=data.get("_id"),
            name=data.get("name", ""),
            car=Car(**car) if car else None,
            position=Location.from_dict(position) if position else None,
            is_available=bool(data.get("isAvailable", False)),
        )


@dataclass
class Trip:
    id: Optional[int] = None
    rider_id: int = 0
    pickup: Location = field(default_factory=lambda: Location(0, 0))
    dropoff: Location = field(default_factory=lambda: Location(0, 0))
    status: TripStatus = TripStatus.REQUESTED
    driver_id: Optional[int] = None
    driver: Optional[Driver] = None
    fare: Optional[float] = None
    cancel_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, new_status: TripStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        check_transition(self.status, new_status)
        self.status = new_status

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Trip":
        """Build a trip from the JSON shape served by the API and socket."""
        driver_ref = data.get("driverId")
        driver: Optional[Driver] = None
        driver_id: Optional[int] = None
        if isinstance(driver_ref, dict):
            driver = Driver.from_payload(driver_ref)
            driver_id = driver.id
        elif driver_ref is not None:
            driver_id = int(driver_ref)

        created = data.get("createdAt")
        return cls(
            id=data["_id"],
            rider_id=data.get("riderId", 0),
            pickup=Location.from_dict(data["pickupLocation"]),
            dropoff=Location.from_dict(data["dropoffLocation"]),
            status=TripStatus(data["status"]),
            driver_id=driver_id,
            driver=driver,
            fare=data.get("fare"),
            cancel_reason=data.get("cancelReason"),
            created_at=datetime.fromisoformat(created) if created else None,
        )
