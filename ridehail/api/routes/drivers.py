"""
Driver endpoints
================

PATCH /api/drivers/availability -- driver goes on / off duty
PATCH /api/drivers/location     -- driver reports a position fix
GET   /api/drivers/nearby       -- available drivers around a point
GET   /api/drivers/me           -- calling driver's profile
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_current_driver, get_current_user, get_db
from ridehail.api.middleware import RATE, limiter
from ridehail.api.schemas import AvailabilityRequest, DriverResponse, LatLng
from ridehail.config import settings
from ridehail.infrastructure.models import DriverModel, UserModel
from ridehail.infrastructure.repositories import DriverRepository, TripRepository
from ridehail.realtime import events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get("/me", response_model=DriverResponse, summary="Calling driver")
@limiter.limit(RATE)
async def me(
    request: Request,
    driver: DriverModel = Depends(get_current_driver),
):
    return DriverResponse.from_model(driver)


@router.patch(
    "/availability",
    response_model=DriverResponse,
    summary="Toggle driver availability",
    responses={409: {"description": "Driver is on an active trip."}},
)
@limiter.limit(RATE)
async def set_availability(
    request: Request,
    body: AvailabilityRequest,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    if body.is_available and await TripRepository(db).get_active_for_driver(driver.id):
        raise HTTPException(
            status_code=409, detail="Cannot go available during an active trip"
        )
    await DriverRepository(db).set_available(driver, body.is_available)
    logger.info("Driver %d availability -> %s", driver.id, body.is_available)
    return DriverResponse.from_model(driver)


@router.patch(
    "/location",
    response_model=DriverResponse,
    summary="Report the driver's current position",
)
@limiter.limit(RATE)
async def update_location(
    request: Request,
    body: LatLng,
    driver: DriverModel = Depends(get_current_driver),
    db: AsyncSession = Depends(get_db),
):
    await DriverRepository(db).update_location(
        driver, body.lat, body.lng, settings.h3_resolution
    )
    active = await TripRepository(db).get_active_for_driver(driver.id)
    await db.commit()

    if active:
        await events.driver_moved(active.id, driver.id, body.lat, body.lng)
    return DriverResponse.from_model(driver)


@router.get(
    "/nearby",
    response_model=list[DriverResponse],
    summary="Available drivers near a point, nearest first",
)
@limiter.limit(RATE)
async def nearby_drivers(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    radius = min(radius_km or settings.nearby_radius_km, settings.max_radius_km)
    found = await DriverRepository(db).find_nearby(
        lat, lng, radius, settings.h3_resolution, limit=limit
    )
    return [DriverResponse.from_model(d, distance) for d, distance in found]
