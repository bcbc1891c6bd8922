"""
Background Dispatch Worker
==========================

Runs every ``DISPATCH_INTERVAL_SECONDS`` (default 10 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the dispatch
  cycle at a time across multiple API processes.
* Expiry uses the same compare-and-set as the API, so a request that a
  driver accepts mid-cycle is left alone.

Algorithm per cycle
-------------------
1. Fetch all REQUESTED trips, oldest first.
2. Requests older than ``REQUEST_TIMEOUT_SECONDS`` are cancelled with reason
   ``no_driver_found`` and the rider is notified.
3. The rest are re-offered to available drivers inside a search radius
   that widens with the request's age.  Drivers already offered the trip
   are skipped, and so is any trip that left REQUESTED since the cycle
   started.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ridehail.api.schemas import trip_payload
from ridehail.config import settings
from ridehail.domain.dispatch import NO_DRIVER_FOUND, DispatchPolicy, age_seconds
from ridehail.domain.enums import TripStatus
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.locks import DistributedLock
from ridehail.infrastructure.redis_client import get_redis
from ridehail.infrastructure.repositories import (
    DriverRepository,
    TripRepository,
    utcnow,
)
from ridehail.realtime import events

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


def policy_from_settings() -> DispatchPolicy:
    return DispatchPolicy(
        base_radius_km=settings.nearby_radius_km,
        step_km=settings.radius_step_km,
        max_radius_km=settings.max_radius_km,
        interval_seconds=settings.dispatch_interval_seconds,
        timeout_seconds=settings.request_timeout_seconds,
    )


# ── Public API ────────────────────────────────────────────────────────


async def start_dispatch_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Dispatch worker started (interval=%ds)", settings.dispatch_interval_seconds
    )


async def stop_dispatch_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Dispatch worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a dispatch cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_dispatch_cycle()
        except Exception:
            logger.exception("Unhandled error in dispatch cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.dispatch_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_dispatch_cycle(
    now: datetime | None = None,
    policy: DispatchPolicy | None = None,
) -> tuple[int, int]:
    """
    Execute one dispatch cycle.

    Returns ``(expired, reoffered)``: trips cancelled for lack of a driver,
    and offers delivered to newly in-range drivers.
    """
    now = now or datetime.now(timezone.utc)
    policy = policy or policy_from_settings()

    redis = await get_redis()
    lock = DistributedLock(redis, "dispatch", ttl_seconds=60)
    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping cycle")
        return 0, 0

    expired = reoffered = 0
    try:
        async with async_session_factory() as session:
            trips = TripRepository(session)
            drivers = DriverRepository(session)

            pending = await trips.get_requested()
            if not pending:
                return 0, 0

            to_expire = []
            to_offer = []
            for trip in pending:
                age = age_seconds(trip.created_at, now)
                if policy.is_expired(age):
                    to_expire.append(trip)
                else:
                    to_offer.append((trip, policy.search_radius_km(age)))

            # 1. Expire stale requests
            cancelled = []
            for trip in to_expire:
                if await trips.compare_and_set(
                    trip.id,
                    TripStatus.REQUESTED,
                    TripStatus.CANCELLED,
                    cancel_reason=NO_DRIVER_FOUND,
                    finished_at=utcnow(),
                ):
                    cancelled.append(trip.id)
            await session.commit()

            for trip_id in cancelled:
                trip = await trips.reload(trip_id)
                await events.trip_updated(trip_payload(trip))
            expired = len(cancelled)

            # 2. Re-offer the rest inside a widening radius
            for trip, radius in to_offer:
                nearby = await drivers.find_nearby(
                    trip.pickup_lat, trip.pickup_lng, radius, settings.h3_resolution
                )
                if not nearby:
                    continue
                # Skip requests accepted or cancelled since the SELECT above.
                fresh = await trips.reload(trip.id)
                if fresh is None or TripStatus(fresh.status) != TripStatus.REQUESTED:
                    continue
                reoffered += await events.offer_trip(
                    trip_payload(fresh), [d.user_id for d, _ in nearby]
                )

            if expired or reoffered:
                logger.info(
                    "Dispatch cycle: %d expired, %d offers sent", expired, reoffered
                )
    except Exception:
        logger.exception("Error in dispatch cycle")
    finally:
        await lock.release()

    return expired, reoffered
