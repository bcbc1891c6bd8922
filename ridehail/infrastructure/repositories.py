"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.

Status changes go through ``TripRepository.compare_and_set``: a single
conditional ``UPDATE ... WHERE status = :expected``.  When two drivers race
to accept the same trip, the database serialises the two statements and
only one of them matches a row.  ``DriverRepository.claim`` uses the same
conditional form on ``drivers.is_available`` so a driver is never assigned
two trips.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DriverModel, TripModel, UserModel
from ridehail.domain.enums import ACTIVE_STATUSES, TripStatus, UserRole
from ridehail.domain.geo import cell_for, cells_within, rank_by_distance


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.RIDER,
    ) -> UserModel:
        user = UserModel(
            name=name, email=email, password_hash=password_hash, role=role
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_driver(
        self, *, user: UserModel, car_model: str, car_color: str, car_plate: str
    ) -> DriverModel:
        driver = DriverModel(
            user_id=user.id,
            car_model=car_model,
            car_color=car_color,
            car_plate=car_plate,
            is_available=False,
        )
        driver.user = user
        self.session.add(driver)
        await self.session.flush()
        return driver

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_by_user_id(self, user_id: int) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel).where(DriverModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def update_location(
        self, driver: DriverModel, lat: float, lng: float, resolution: int
    ) -> DriverModel:
        driver.lat = lat
        driver.lng = lng
        driver.h3_cell = cell_for(lat, lng, resolution)
        driver.location_updated_at = utcnow()
        await self.session.flush()
        return driver

    async def set_available(self, driver: DriverModel, available: bool) -> None:
        driver.is_available = available
        await self.session.flush()

    async def claim(self, driver: DriverModel) -> bool:
        """
        Atomically flip an available driver to busy.

        Returns ``False`` when the driver is already busy, e.g. because a
        concurrent accept claimed them first.
        """
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver.id, DriverModel.is_available.is_(True))
            .values(is_available=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self.session.refresh(driver, ["is_available"])
        return True

    async def find_nearby(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        resolution: int,
        limit: int | None = None,
    ) -> list[tuple[DriverModel, float]]:
        """Available drivers within *radius_km*, nearest first."""
        cells = cells_within(lat, lng, radius_km, resolution)
        result = await self.session.execute(
            select(DriverModel).where(
                DriverModel.is_available.is_(True),
                DriverModel.h3_cell.in_(cells),
            )
        )
        ranked = rank_by_distance(
            lat,
            lng,
            ((d, d.lat, d.lng) for d in result.scalars().all()),
            radius_km,
        )
        return ranked[:limit] if limit else ranked

    async def count_available(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DriverModel)
            .where(DriverModel.is_available.is_(True))
        )
        return result.scalar() or 0


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_trip(
        self,
        *,
        rider_id: int,
        pickup_lat: float,
        pickup_lng: float,
        dropoff_lat: float,
        dropoff_lng: float,
        pickup_cell: str,
        fare: float | None = None,
        idempotency_key: str | None = None,
    ) -> TripModel:
        trip = TripModel(
            rider_id=rider_id,
            pickup_lat=pickup_lat,
            pickup_lng=pickup_lng,
            dropoff_lat=dropoff_lat,
            dropoff_lng=dropoff_lng,
            pickup_cell=pickup_cell,
            fare=fare,
            idempotency_key=idempotency_key,
            status=TripStatus.REQUESTED,
        )
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get_by_id(self, trip_id: int) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def reload(self, trip_id: int) -> Optional[TripModel]:
        """Re-read a trip, overwriting any stale state in the identity map."""
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def get_active_for_rider(self, rider_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(
                TripModel.rider_id == rider_id,
                TripModel.status.in_(ACTIVE_STATUSES),
            )
            .order_by(TripModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active_for_driver(self, driver_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(
                TripModel.driver_id == driver_id,
                TripModel.status.in_(
                    [TripStatus.ACCEPTED, TripStatus.IN_PROGRESS]
                ),
            )
            .order_by(TripModel.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_requested(
        self, cells: list[str] | None = None
    ) -> list[TripModel]:
        query = select(TripModel).where(TripModel.status == TripStatus.REQUESTED)
        if cells is not None:
            query = query.where(TripModel.pickup_cell.in_(cells))
        result = await self.session.execute(query.order_by(TripModel.created_at))
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[TripStatus, int]:
        result = await self.session.execute(
            select(TripModel.status, func.count()).group_by(TripModel.status)
        )
        counts = {status: 0 for status in TripStatus}
        for status, count in result.all():
            counts[TripStatus(status)] = count
        return counts

    async def compare_and_set(
        self,
        trip_id: int,
        expected: TripStatus,
        new: TripStatus,
        **values: Any,
    ) -> bool:
        """
        Atomically move *trip_id* from *expected* to *new*.

        Returns ``False`` when the trip is no longer in *expected* (another
        request got there first).  Extra column *values* are written in the
        same statement.
        """
        result = await self.session.execute(
            update(TripModel)
            .where(TripModel.id == trip_id, TripModel.status == expected)
            .values(status=new, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
