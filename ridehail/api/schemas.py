"""
Pydantic request / response schemas for the REST API.

Field aliases follow the JSON shape the rider and driver apps already
consume (``_id``, ``riderId``, ``pickupLocation`` ...).  Python code uses the
snake_case names; ``populate_by_name`` accepts either on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from ridehail.domain.enums import TripStatus, UserRole
from ridehail.infrastructure.models import DriverModel, TripModel

_aliased = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Shared ────────────────────────────────────────────────────────────


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CarSchema(BaseModel):
    model: str = Field(..., min_length=1, max_length=80)
    color: str = Field(..., min_length=1, max_length=40)
    plate: str = Field(..., min_length=1, max_length=20)


# ── Requests ──────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = UserRole.RIDER
    car: Optional[CarSchema] = None

    @model_validator(mode="after")
    def _driver_needs_car(self) -> "RegisterRequest":
        if self.role == UserRole.DRIVER and self.car is None:
            raise ValueError("drivers must register a car")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TripRequest(BaseModel):
    model_config = _aliased

    pickup_location: LatLng = Field(..., alias="pickupLocation")
    dropoff_location: LatLng = Field(..., alias="dropoffLocation")
    idempotency_key: Optional[str] = Field(
        None,
        alias="idempotencyKey",
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=120)


class AvailabilityRequest(BaseModel):
    model_config = _aliased

    is_available: bool = Field(..., alias="isAvailable")


# ── Responses ─────────────────────────────────────────────────────────


class TokenResponse(BaseModel):
    token: str
    role: UserRole


class DriverResponse(BaseModel):
    model_config = _aliased

    id: int = Field(..., alias="_id")
    name: str
    car: CarSchema
    position: Optional[LatLng] = None
    is_available: bool = Field(..., alias="isAvailable")
    distance_km: Optional[float] = Field(None, alias="distanceKm")

    @classmethod
    def from_model(
        cls, driver: DriverModel, distance_km: float | None = None
    ) -> "DriverResponse":
        position = None
        if driver.lat is not None and driver.lng is not None:
            position = LatLng(lat=driver.lat, lng=driver.lng)
        return cls(
            id=driver.id,
            name=driver.name,
            car=CarSchema(
                model=driver.car_model,
                color=driver.car_color,
                plate=driver.car_plate,
            ),
            position=position,
            is_available=driver.is_available,
            distance_km=round(distance_km, 3) if distance_km is not None else None,
        )


class TripResponse(BaseModel):
    model_config = _aliased

    id: int = Field(..., alias="_id")
    rider_id: int = Field(..., alias="riderId")
    driver: Optional[DriverResponse] = Field(None, alias="driverId")
    pickup_location: LatLng = Field(..., alias="pickupLocation")
    dropoff_location: LatLng = Field(..., alias="dropoffLocation")
    status: TripStatus
    fare: Optional[float] = None
    cancel_reason: Optional[str] = Field(None, alias="cancelReason")
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @classmethod
    def from_model(cls, trip: TripModel) -> "TripResponse":
        return cls(
            id=trip.id,
            rider_id=trip.rider_id,
            driver=DriverResponse.from_model(trip.driver) if trip.driver else None,
            pickup_location=LatLng(lat=trip.pickup_lat, lng=trip.pickup_lng),
            dropoff_location=LatLng(lat=trip.dropoff_lat, lng=trip.dropoff_lng),
            status=TripStatus(trip.status),
            fare=trip.fare,
            cancel_reason=trip.cancel_reason,
            created_at=trip.created_at,
        )


def trip_payload(trip: TripModel) -> dict[str, Any]:
    """JSON-ready trip dict, as pushed over the socket channel."""
    return TripResponse.from_model(trip).model_dump(by_alias=True, mode="json")


class StatsResponse(BaseModel):
    model_config = _aliased

    trips: dict[TripStatus, int]
    available_drivers: int = Field(..., alias="availableDrivers")
    online_users: int = Field(..., alias="onlineUsers")


class HealthResponse(BaseModel):
    status: str = "ok"
    redis: bool = True


class ErrorResponse(BaseModel):
    detail: str
