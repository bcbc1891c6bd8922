"""
Admin / observability endpoints
===============================

GET /api/admin/stats  -- trip counts per status, available drivers, sockets
GET /api/health       -- simple health check (see ``health_router``)
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_db
from ridehail.api.middleware import RATE, limiter
from ridehail.api.schemas import HealthResponse, StatsResponse
from ridehail.infrastructure import redis_client
from ridehail.infrastructure.repositories import DriverRepository, TripRepository
from ridehail.realtime.rooms import rooms

router = APIRouter(prefix="/admin", tags=["admin"])
health_router = APIRouter(tags=["admin"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Trip and driver counters",
)
@limiter.limit(RATE)
async def stats(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    return StatsResponse(
        trips=await TripRepository(db).count_by_status(),
        available_drivers=await DriverRepository(db).count_available(),
        online_users=rooms.online_count(),
    )


@health_router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse(redis=await redis_client.ping())
