"""
Trip endpoints
==============

POST /api/trips/request          -- rider requests a trip (201)
GET  /api/trips/active           -- caller's current trip, or null
GET  /api/trips/pending          -- REQUESTED trips near the calling driver
GET  /api/trips/{trip_id}        -- trip details
POST /api/trips/{trip_id}/accept   -- driver takes the trip (at most one wins)
POST /api/trips/{trip_id}/start    -- assigned driver picked the rider up
POST /api/trips/{trip_id}/complete -- assigned driver dropped the rider off
POST /api/trips/{trip_id}/cancel   -- rider or assigned driver cancels

Every status change is a compare-and-set on the trip row, committed before
the matching socket event is emitted.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import (
    get_current_driver,
    get_current_rider,
    get_current_user,
    get_db,
)
from ridehail.api.middleware import RATE, limiter
from ridehail.api.schemas import (
    CancelRequest,
    TripRequest,
    TripResponse,
    trip_payload,
)
from ridehail.config import settings
from ridehail.domain.entities import Location, check_transition
from ridehail.domain.enums import TripStatus, UserRole
from ridehail.domain.geo import cell_for, cells_within, rank_by_distance
from ridehail.domain.pricing import PricingEngine
from ridehail.infrastructure.models import DriverModel, TripModel, UserModel
from ridehail.infrastructure.repositories import (
    DriverRepository,
    TripRepository,
    utcnow,
)
from ridehail.realtime import events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


# ── Helpers ───────────────────────────────────────────────────────────


async def _load_trip(repo: TripRepository, trip_id: int) -> TripModel:
    trip = await repo.get_by_id(trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return trip


async def _advance(
    repo: TripRepository,
    trip: TripModel,
    new_status: TripStatus,
    **values,
) -> TripModel:
    """Move *trip* to *new_status* or raise 409; returns the fresh row."""
    current = TripStatus(trip.status)
    check_transition(current, new_status)
    if not await repo.compare_and_set(trip.id, current, new_status, **values):
        raise HTTPException(
            status_code=409, detail="Trip was modified concurrently"
        )
    return await repo.reload(trip.id)


async def _driver_for(db: AsyncSession, user: UserModel) -> Optional[DriverModel]:
    if user.role != UserRole.DRIVER:
        return None
    return await DriverRepository(db).get_by_user_id(user.id)


def _require_assigned(trip: TripModel, driver: DriverModel) -> None:
    if trip.driver_id != driver.id:
        raise HTTPException(status_code=403, detail="Not the assigned driver")


async def _check_idempotency_key(
    repo: TripRepository, key: str, rider_id: int
) -> Optional[TripModel]:
    """The rider's earlier trip for *key*; 409 if another rider used it."""
    existing = await repo.get_by_idempotency_key(key)
    if existing and existing.rider_id != rider_id:
        raise HTTPException(status_code=409, detail="Idempotency key already used")
    return existing


# ── Rider ─────────────────────────────────────────────────────────────


@router.post(
    "/request",
    status_code=201,
    response_model=TripResponse,
    summary="Request a trip",
    responses={409: {"description": "Rider already has an active trip."}},
)
@limiter.limit(RATE)
async def request_trip(
    request: Request,
    body: TripRequest,
    rider: UserModel = Depends(get_current_rider),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    drivers = DriverRepository(db)
    rider_id = rider.id

    # ── Idempotency guard ─────────────────────────────────────────
    if body.idempotency_key:
        existing = await _check_idempotency_key(repo, body.idempotency_key, rider_id)
        if existing:
            return TripResponse.from_model(existing)

    if await repo.get_active_for_rider(rider_id):
        raise HTTPException(status_code=409, detail="Rider already has an active trip")

    pickup = Location(body.pickup_location.lat, body.pickup_location.lng)
    dropoff = Location(body.dropoff_location.lat, body.dropoff_location.lng)

    counts = await repo.count_by_status()
    fare = PricingEngine(settings.base_fare, settings.rate_per_km).estimate_fare(
        pickup,
        dropoff,
        open_requests=counts[TripStatus.REQUESTED] + 1,
        available_drivers=await drivers.count_available(),
    )

    try:
        trip = await repo.create_trip(
            rider_id=rider_id,
            pickup_lat=pickup.lat,
            pickup_lng=pickup.lng,
            dropoff_lat=dropoff.lat,
            dropoff_lng=dropoff.lng,
            pickup_cell=cell_for(pickup.lat, pickup.lng, settings.h3_resolution),
            fare=fare,
            idempotency_key=body.idempotency_key,
        )
    except IntegrityError:
        # A concurrent request from this rider got its trip in first.
        await db.rollback()
        if body.idempotency_key:
            existing = await _check_idempotency_key(
                repo, body.idempotency_key, rider_id
            )
            if existing:
                return TripResponse.from_model(existing)
        raise HTTPException(status_code=409, detail="Rider already has an active trip")

    nearby = await drivers.find_nearby(
        pickup.lat, pickup.lng, settings.nearby_radius_km, settings.h3_resolution
    )
    await db.commit()

    trip = await repo.reload(trip.id)
    payload = trip_payload(trip)
    offered = await events.trip_requested(
        payload, rider_id, [d.user_id for d, _ in nearby]
    )
    logger.info(
        "Trip %d requested by rider %d (%d nearby drivers, %d offers delivered)",
        trip.id, rider_id, len(nearby), offered,
    )
    return TripResponse.from_model(trip)


# ── Shared ────────────────────────────────────────────────────────────


@router.get(
    "/active",
    response_model=Optional[TripResponse],
    summary="Current non-terminal trip of the caller",
)
@limiter.limit(RATE)
async def active_trip(
    request: Request,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    driver = await _driver_for(db, user)
    if driver:
        trip = await repo.get_active_for_driver(driver.id)
    else:
        trip = await repo.get_active_for_rider(user.id)
    return TripResponse.from_model(trip) if trip else None


@router.get(
    "/pending",
    response_model=list[TripResponse],
    summary="Open requests near the calling driver",
)
@limiter.limit(RATE)
async def pending_trips(
    request: Request,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    if driver.lat is None or driver.lng is None:
        return []
    radius = settings.nearby_radius_km
    cells = cells_within(driver.lat, driver.lng, radius, settings.h3_resolution)
    trips = await TripRepository(db).get_requested(cells)
    ranked = rank_by_distance(
        driver.lat,
        driver.lng,
        ((t, t.pickup_lat, t.pickup_lng) for t in trips),
        radius,
    )
    return [TripResponse.from_model(t) for t, _ in ranked]


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
@limiter.limit(RATE)
async def get_trip(
    request: Request,
    trip_id: int,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    trip = await _load_trip(TripRepository(db), trip_id)
    if trip.rider_id == user.id:
        return TripResponse.from_model(trip)

    driver = await _driver_for(db, user)
    if driver and (
        trip.driver_id == driver.id or TripStatus(trip.status) == TripStatus.REQUESTED
    ):
        return TripResponse.from_model(trip)
    raise HTTPException(status_code=403, detail="Not a party to this trip")


# ── Driver ────────────────────────────────────────────────────────────


@router.post(
    "/{trip_id}/accept",
    response_model=TripResponse,
    summary="Accept a requested trip",
    description=(
        "At most one driver can accept a trip.  Concurrent accepts for the "
        "same trip all but one receive 409."
    ),
)
@limiter.limit(RATE)
async def accept_trip(
    request: Request,
    trip_id: int,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    trip = await _load_trip(repo, trip_id)

    if await repo.get_active_for_driver(driver.id):
        raise HTTPException(status_code=409, detail="Driver already has an active trip")

    check_transition(TripStatus(trip.status), TripStatus.ACCEPTED)
    # Claim the driver first; a losing trip update rolls the claim back.
    if not await DriverRepository(db).claim(driver):
        raise HTTPException(status_code=409, detail="Driver is not available")
    won = await repo.compare_and_set(
        trip.id,
        TripStatus.REQUESTED,
        TripStatus.ACCEPTED,
        driver_id=driver.id,
        accepted_at=utcnow(),
    )
    if not won:
        logger.info("Driver %d lost the race for trip %d", driver.id, trip.id)
        raise HTTPException(status_code=409, detail="Trip already taken")

    await db.commit()

    trip = await repo.reload(trip.id)
    await events.trip_accepted(trip_payload(trip), driver.user_id)
    logger.info("Trip %d accepted by driver %d", trip.id, driver.id)
    return TripResponse.from_model(trip)


@router.post("/{trip_id}/start", response_model=TripResponse, summary="Start a trip")
@limiter.limit(RATE)
async def start_trip(
    request: Request,
    trip_id: int,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    trip = await _load_trip(repo, trip_id)
    _require_assigned(trip, driver)

    trip = await _advance(repo, trip, TripStatus.IN_PROGRESS, started_at=utcnow())
    await db.commit()

    await events.trip_updated(trip_payload(trip))
    return TripResponse.from_model(trip)


@router.post(
    "/{trip_id}/complete", response_model=TripResponse, summary="Complete a trip"
)
@limiter.limit(RATE)
async def complete_trip(
    request: Request,
    trip_id: int,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    trip = await _load_trip(repo, trip_id)
    _require_assigned(trip, driver)

    trip = await _advance(repo, trip, TripStatus.COMPLETED, finished_at=utcnow())
    await DriverRepository(db).set_available(driver, True)
    await db.commit()

    await events.trip_updated(trip_payload(trip))
    logger.info("Trip %d completed", trip.id)
    return TripResponse.from_model(trip)


@router.post(
    "/{trip_id}/cancel",
    response_model=TripResponse,
    summary="Cancel a trip",
    description=(
        "Riders may cancel their own REQUESTED or ACCEPTED trips; the assigned "
        "driver may cancel an ACCEPTED trip.  The driver becomes available "
        "again."
    ),
)
@limiter.limit(RATE)
async def cancel_trip(
    request: Request,
    trip_id: int,
    body: Optional[CancelRequest] = None,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = TripRepository(db)
    trip = await _load_trip(repo, trip_id)

    driver = await _driver_for(db, user)
    if trip.rider_id == user.id:
        default_reason = "cancelled_by_rider"
    elif driver and trip.driver_id == driver.id:
        default_reason = "cancelled_by_driver"
    else:
        raise HTTPException(status_code=403, detail="Not a party to this trip")

    assigned = trip.driver
    reason = (body.reason if body and body.reason else None) or default_reason
    trip = await _advance(
        repo, trip, TripStatus.CANCELLED,
        cancel_reason=reason, finished_at=utcnow(),
    )
    if assigned:
        await DriverRepository(db).set_available(assigned, True)
    await db.commit()

    await events.trip_updated(trip_payload(trip))
    logger.info("Trip %d cancelled (%s)", trip.id, reason)
    return TripResponse.from_model(trip)
