"""
Client-observed trip lifecycle.

The server owns trip status; ``TripTracker`` only mirrors it for one rider
or driver app.  App state is ``idle`` when no trip is being followed,
otherwise the followed trip's status.

Updates only ever move the followed trip forward along the server's state
machine.  A repeated status refreshes the trip data; a status that is not
reachable from the current one (late or duplicated delivery) is ignored.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ridehail.domain.entities import Location, Trip
from ridehail.domain.enums import TRIP_TRANSITIONS, TripEvent, TripStatus

logger = logging.getLogger(__name__)

IDLE = "idle"

Listener = Callable[[str, Optional[Trip]], None]


class TripTracker:
    def __init__(self, role: str = "user"):
        self.role = role
        self.trip: Optional[Trip] = None
        self.offers: dict[int, Trip] = {}
        self.driver_position: Optional[Location] = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> str:
        return self.trip.status.value if self.trip else IDLE

    @property
    def is_driver(self) -> bool:
        return self.role == "driver"

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self.state, self.trip)

    # ── Inputs ────────────────────────────────────────────────────────

    def follow(self, trip: Optional[Trip]) -> None:
        """Start following *trip* (e.g. the response of a request/accept)."""
        self.trip = trip
        self.driver_position = None
        if trip is not None:
            self.offers.pop(trip.id, None)
            if trip.driver and trip.driver.position:
                self.driver_position = trip.driver.position
        self._notify()

    def reset(self) -> None:
        """Go back to ``idle`` (after the app shows a finished trip)."""
        self.follow(None)

    def apply(self, event: str, data: Any) -> bool:
        """Apply one socket event.  Returns True when app state changed."""
        if event == TripEvent.NEW_TRIP_REQUEST.value:
            return self._on_offer(Trip.from_payload(data))
        if event in (TripEvent.TRIP_ACCEPTED.value, TripEvent.TRIP_UPDATED.value):
            return self._on_trip(Trip.from_payload(data))
        if event == TripEvent.DRIVER_LOCATION.value:
            self._on_driver_location(data)
            return False
        logger.debug("Ignoring socket event %s", event)
        return False

    # ── Handlers ──────────────────────────────────────────────────────

    def _on_offer(self, trip: Trip) -> bool:
        if not self.is_driver or trip.status != TripStatus.REQUESTED:
            return False
        if self.trip and not self.trip.is_terminal:
            return False
        self.offers[trip.id] = trip
        return False

    def _on_trip(self, trip: Trip) -> bool:
        if trip.status != TripStatus.REQUESTED:
            self.offers.pop(trip.id, None)

        if not self.trip or self.trip.id != trip.id:
            return False

        current = self.trip.status
        if trip.status != current and trip.status not in TRIP_TRANSITIONS[current]:
            logger.debug(
                "Dropping out-of-order update %s -> %s for trip %s",
                current.value, trip.status.value, trip.id,
            )
            return False

        self.trip = trip
        if trip.driver and trip.driver.position:
            self.driver_position = trip.driver.position
        if trip.status != current:
            self._notify()
            return True
        return False

    def _on_driver_location(self, data: dict[str, Any]) -> None:
        if self.trip and data.get("tripId") == self.trip.id:
            self.driver_position = Location.from_dict(data["position"])
