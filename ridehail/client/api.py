"""
HTTP client for the rider and driver apps.

* Base URL and timeout come from settings (``BACKEND_URL``, 20 s default).
* Every request carries ``Authorization: Bearer <token>`` when the token
  provider returns one.  The provider defaults to the session's
  ``valid_token``; apps that keep the token elsewhere register their own.
* Every response body, success or error, is checked for the server's
  expired-token shape; the session's expiry guard fires once until the next
  login.
* Failures are raised as ``ApiError`` with a message picked from the body's
  ``error``, ``message`` or ``detail`` field.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx

from ridehail.client.session import Session
from ridehail.config import settings
from ridehail.domain.entities import Driver, Location, Trip

logger = logging.getLogger(__name__)

DEFAULT_ERROR = "Something went wrong, please try again."

TokenProvider = Callable[[], Optional[str]]


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def error_message(payload: Any, fallback: str = DEFAULT_ERROR) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


class ApiClient:
    def __init__(
        self,
        session: Optional[Session] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_provider: Optional[TokenProvider] = None,
    ):
        self.session = session or Session()
        self.token_provider = token_provider or self.session.valid_token
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.backend_url,
            timeout=timeout or settings.client_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def register_token_provider(self, provider: TokenProvider) -> None:
        self.token_provider = provider

    # ── Transport ─────────────────────────────────────────────────────

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        headers = kwargs.pop("headers", {})
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ApiError(DEFAULT_ERROR) from exc

        try:
            payload = response.json() if response.content else None
        except ValueError:
            payload = None

        self.session.guard.check(payload)
        if response.is_error:
            raise ApiError(error_message(payload), response.status_code)
        return payload

    # ── Auth ──────────────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> str:
        try:
            data = await self.request(
                "POST", "/api/auth/login", json={"email": email, "password": password}
            )
        except ApiError:
            logger.error("Login failed for %s", email)
            raise
        self.session.login(data["token"], data["role"])
        return data["role"]

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: str = "user",
        car: Optional[dict[str, str]] = None,
    ) -> str:
        body: dict[str, Any] = {
            "name": name, "email": email, "password": password, "role": role
        }
        if car:
            body["car"] = car
        data = await self.request("POST", "/api/auth/register", json=body)
        self.session.login(data["token"], data["role"])
        return data["role"]

    def logout(self) -> None:
        self.session.logout()

    # ── Trips ─────────────────────────────────────────────────────────

    async def request_trip(
        self,
        pickup: Location,
        dropoff: Location,
        idempotency_key: Optional[str] = None,
    ) -> Trip:
        body: dict[str, Any] = {
            "pickupLocation": {"lat": pickup.lat, "lng": pickup.lng},
            "dropoffLocation": {"lat": dropoff.lat, "lng": dropoff.lng},
        }
        if idempotency_key:
            body["idempotencyKey"] = idempotency_key
        return Trip.from_payload(
            await self.request("POST", "/api/trips/request", json=body)
        )

    async def get_trip(self, trip_id: int) -> Trip:
        return Trip.from_payload(await self.request("GET", f"/api/trips/{trip_id}"))

    async def active_trip(self) -> Optional[Trip]:
        data = await self.request("GET", "/api/trips/active")
        return Trip.from_payload(data) if data else None

    async def pending_trips(self) -> list[Trip]:
        return [
            Trip.from_payload(t)
            for t in await self.request("GET", "/api/trips/pending")
        ]

    async def accept_trip(self, trip_id: int) -> Trip:
        return await self._trip_action(trip_id, "accept")

    async def start_trip(self, trip_id: int) -> Trip:
        return await self._trip_action(trip_id, "start")

    async def complete_trip(self, trip_id: int) -> Trip:
        return await self._trip_action(trip_id, "complete")

    async def cancel_trip(self, trip_id: int, reason: Optional[str] = None) -> Trip:
        body = {"reason": reason} if reason else None
        return await self._trip_action(trip_id, "cancel", json=body)

    async def _trip_action(self, trip_id: int, action: str, **kwargs: Any) -> Trip:
        return Trip.from_payload(
            await self.request("POST", f"/api/trips/{trip_id}/{action}", **kwargs)
        )

    # ── Drivers ───────────────────────────────────────────────────────

    async def set_availability(self, available: bool) -> Driver:
        return Driver.from_payload(
            await self.request(
                "PATCH", "/api/drivers/availability", json={"isAvailable": available}
            )
        )

    async def update_location(self, position: Location) -> Driver:
        return Driver.from_payload(
            await self.request(
                "PATCH",
                "/api/drivers/location",
                json={"lat": position.lat, "lng": position.lng},
            )
        )

    async def nearby_drivers(
        self, position: Location, radius_km: Optional[float] = None
    ) -> list[Driver]:
        params: dict[str, Any] = {"lat": position.lat, "lng": position.lng}
        if radius_km:
            params["radius_km"] = radius_km
        data = await self.request("GET", "/api/drivers/nearby", params=params)
        return [Driver.from_payload(d) for d in data]
