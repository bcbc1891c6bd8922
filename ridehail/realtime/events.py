"""
Trip event fan-out.

Routes and the dispatch worker call these helpers after their database work
is flushed; the helpers decide which rooms hear about it.

Besides the trip room, each open request has an *offer room* holding the
drivers it was offered to.  When the request stops being REQUESTED those
drivers get one ``trip-updated`` so they can withdraw the offer, and the
offer room is closed.
"""

from __future__ import annotations

from typing import Any, Iterable

from .rooms import rooms, trip_room, user_room
from ridehail.domain.enums import TERMINAL_STATUSES, TripEvent, TripStatus


def offer_room(trip_id: int) -> str:
    return f"offer:{trip_id}"


async def trip_requested(
    trip: dict[str, Any], rider_id: int, driver_user_ids: Iterable[int]
) -> int:
    """Open the trip room for the rider and offer the trip to drivers."""
    rooms.join(trip_room(trip["_id"]), rider_id)
    return await offer_trip(trip, driver_user_ids)


async def offer_trip(trip: dict[str, Any], driver_user_ids: Iterable[int]) -> int:
    """Send ``new-trip-request`` to drivers not yet offered this trip."""
    room = offer_room(trip["_id"])
    already = rooms.members(room)
    sent = 0
    for user_id in driver_user_ids:
        if user_id in already:
            continue
        rooms.join(room, user_id)
        sent += await rooms.emit(
            user_room(user_id), TripEvent.NEW_TRIP_REQUEST.value, trip
        )
    return sent


async def trip_accepted(trip: dict[str, Any], driver_user_id: int) -> None:
    room = trip_room(trip["_id"])
    rooms.join(room, driver_user_id)
    await rooms.emit(room, TripEvent.TRIP_ACCEPTED.value, trip)
    await trip_updated(trip)


async def trip_updated(trip: dict[str, Any]) -> None:
    """
    Broadcast a status change to the trip room.  Drivers holding an offer
    for a trip that left REQUESTED are told once; terminal trips close their
    room afterwards.
    """
    trip_id = trip["_id"]
    room = trip_room(trip_id)
    status = TripStatus(trip["status"])
    await rooms.emit(room, TripEvent.TRIP_UPDATED.value, trip)

    if status != TripStatus.REQUESTED:
        offered = rooms.members(offer_room(trip_id)) - rooms.members(room)
        for user_id in offered:
            await rooms.emit(user_room(user_id), TripEvent.TRIP_UPDATED.value, trip)
        rooms.close(offer_room(trip_id))

    if status in TERMINAL_STATUSES:
        rooms.close(room)


async def driver_moved(trip_id: int, driver_id: int, lat: float, lng: float) -> None:
    await rooms.emit(
        trip_room(trip_id),
        TripEvent.DRIVER_LOCATION.value,
        {"tripId": trip_id, "driverId": driver_id, "position": {"lat": lat, "lng": lng}},
    )
