"""
SQLAlchemy ORM models.

Tables
------
* ``users``    -- riders and drivers (``role`` tells them apart)
* ``drivers``  -- driver profile: car, availability, last known position
* ``trips``    -- ride requests and their lifecycle

Indexes
-------
* **B-Tree** on ``drivers.h3_cell`` + ``is_available`` for the nearby-driver
  query (H3 cells act as the spatial index).
* **B-Tree** on ``trips.status``, ``rider_id``, ``driver_id``,
  ``pickup_cell`` and ``idempotency_key`` for API and dispatch look-ups.
* **Partial unique** on ``trips.rider_id`` over active statuses: a rider
  holds at most one REQUESTED / ACCEPTED / IN_PROGRESS trip.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base
from ridehail.domain.enums import TripStatus, UserRole

ACTIVE_TRIP_FILTER = text("status IN ('REQUESTED', 'ACCEPTED', 'IN_PROGRESS')")


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.RIDER, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    driver = relationship(
        "DriverModel", back_populates="user", uselist=False, lazy="selectin"
    )


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    car_model = Column(String(80), nullable=False)
    car_color = Column(String(40), nullable=False)
    car_plate = Column(String(20), nullable=False)
    is_available = Column(Boolean, default=False, nullable=False)

    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("UserModel", back_populates="driver", lazy="selectin")

    __table_args__ = (
        Index("idx_drivers_cell_available", "h3_cell", "is_available"),
    )

    @property
    def name(self) -> str:
        return self.user.name if self.user else ""


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)
    pickup_cell = Column(String(20), nullable=False)

    status = Column(Enum(TripStatus), default=TripStatus.REQUESTED, nullable=False)
    fare = Column(Float, nullable=True)
    idempotency_key = Column(String(64), unique=True, nullable=True)
    cancel_reason = Column(String(120), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    driver = relationship("DriverModel", lazy="selectin")

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_rider", "rider_id"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_pickup_cell", "pickup_cell"),
        Index("idx_trips_idempotency", "idempotency_key"),
        Index(
            "uq_trips_rider_active",
            "rider_id",
            unique=True,
            postgresql_where=ACTIVE_TRIP_FILTER,
            sqlite_where=ACTIVE_TRIP_FILTER,
        ),
    )
