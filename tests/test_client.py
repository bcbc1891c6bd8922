"""
Client library tests.

``ApiClient`` is driven through ``httpx.MockTransport``; the tracker and the
socket helpers are exercised with plain payload dicts, and ``TripSocket.listen``
against a local ``websockets`` server.
"""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest
import websockets

from ridehail.api.security import create_access_token
from ridehail.client.api import DEFAULT_ERROR, ApiClient, ApiError, error_message
from ridehail.client.channel import TripSocket, decode_message, socket_url
from ridehail.client.session import (
    ExpiryGuard,
    Session,
    decode_jwt_payload,
    is_expired_token_payload,
    is_token_expired,
)
from ridehail.client.tracker import IDLE, TripTracker
from ridehail.domain.entities import Location, Trip
from ridehail.domain.enums import TripStatus, UserRole

EXPIRED_BODY = {
    "error": "Token no válido o expirado.",
    "detalle": {"reason": "jwt expired"},
}


def _token(expires=timedelta(hours=1), role=UserRole.RIDER):
    return create_access_token(1, role, expires)


def _trip(trip_id=1, status="REQUESTED", driver=None):
    return {
        "_id": trip_id,
        "riderId": 3,
        "driverId": driver,
        "pickupLocation": {"lat": 19.4326, "lng": -99.1332},
        "dropoffLocation": {"lat": 19.4270, "lng": -99.1677},
        "status": status,
        "fare": 7.1,
    }


def _driver(position=(19.43, -99.13)):
    return {
        "_id": 2,
        "name": "Carlos",
        "car": {"model": "Kia Rio", "color": "Red", "plate": "GHI-789"},
        "position": {"lat": position[0], "lng": position[1]},
        "isAvailable": False,
    }


# ── Session ───────────────────────────────────────────────────────────


class TestSession:
    def test_valid_token(self):
        session = Session(token=_token(), role="user")
        assert session.is_authenticated
        assert session.user_role == "user"

    def test_expired_token_is_cleared(self):
        session = Session(token=_token(timedelta(seconds=-5)), role="user")
        assert session.token is None
        assert not session.is_authenticated
        assert session.user_role is None

    def test_restored_expired_token_reports_expiry(self):
        calls = []
        session = Session(
            token=_token(timedelta(seconds=-5)),
            role="user",
            on_expired=lambda: calls.append(1),
        )
        assert calls == [1]
        assert session.token is None
        assert not session.is_authenticated
        assert calls == [1]

    def test_logout(self):
        session = Session()
        session.login(_token(), "driver")
        assert session.user_role == "driver"
        session.logout()
        assert not session.is_authenticated

    def test_token_helpers(self):
        assert decode_jwt_payload("garbage") is None
        assert not is_token_expired("garbage")
        assert is_token_expired(_token(timedelta(seconds=-5)))
        assert decode_jwt_payload(_token())["role"] == "user"

    def test_expired_payload_shape(self):
        assert is_expired_token_payload(EXPIRED_BODY)
        assert not is_expired_token_payload(
            {**EXPIRED_BODY, "detalle": {"reason": "invalid token"}}
        )
        assert not is_expired_token_payload({"error": "Trip already taken"})
        assert not is_expired_token_payload(None)


class TestExpiryGuard:
    def test_fires_once_until_reset(self):
        calls = []
        guard = ExpiryGuard(on_expired=lambda: calls.append(1))

        assert guard.check(EXPIRED_BODY)
        assert guard.check(EXPIRED_BODY)
        assert len(calls) == 1

        guard.reset()
        guard.check(EXPIRED_BODY)
        assert len(calls) == 2

    def test_ignores_other_payloads(self):
        calls = []
        guard = ExpiryGuard(on_expired=lambda: calls.append(1))
        assert not guard.check({"error": "nope"})
        assert calls == []


# ── ApiClient ─────────────────────────────────────────────────────────


def test_error_message_precedence():
    assert error_message({"error": "a", "message": "b"}) == "a"
    assert error_message({"message": "b", "detail": "c"}) == "b"
    assert error_message({"detail": "c"}) == "c"
    assert error_message({"detail": [{"msg": "x"}]}) == DEFAULT_ERROR
    assert error_message(None, "fallback") == "fallback"


class TestApiClient:
    @pytest.mark.asyncio
    async def test_login_then_authorized_request(self):
        token = _token()
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/api/auth/login":
                return httpx.Response(200, json={"token": token, "role": "user"})
            return httpx.Response(200, json=_trip())

        async with ApiClient(
            base_url="http://test", transport=httpx.MockTransport(handler)
        ) as api:
            assert await api.login("a@example.com", "secret123") == "user"
            trip = await api.request_trip(
                Location(19.4326, -99.1332),
                Location(19.4270, -99.1677),
                idempotency_key="k-1",
            )

        assert "Authorization" not in seen[0].headers
        assert seen[1].headers["Authorization"] == f"Bearer {token}"
        assert json.loads(seen[1].content)["idempotencyKey"] == "k-1"
        assert trip.id == 1
        assert trip.status == TripStatus.REQUESTED

    @pytest.mark.asyncio
    async def test_error_response_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(409, json={"detail": "Trip already taken"})

        async with ApiClient(
            base_url="http://test", transport=httpx.MockTransport(handler)
        ) as api:
            with pytest.raises(ApiError) as exc_info:
                await api.accept_trip(1)

        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "Trip already taken"

    @pytest.mark.asyncio
    async def test_expired_response_fires_guard_once(self):
        calls = []
        session = Session(token=_token(), role="user", on_expired=lambda: calls.append(1))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json=EXPIRED_BODY)

        async with ApiClient(
            session, base_url="http://test", transport=httpx.MockTransport(handler)
        ) as api:
            for _ in range(2):
                with pytest.raises(ApiError) as exc_info:
                    await api.active_trip()
                assert exc_info.value.message == "Token no válido o expirado."

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_token_provider(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json=None)

        async with ApiClient(
            base_url="http://test",
            transport=httpx.MockTransport(handler),
            token_provider=lambda: "abc",
        ) as api:
            await api.active_trip()
            api.register_token_provider(lambda: None)
            await api.active_trip()

        assert seen == ["Bearer abc", None]

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with ApiClient(
            base_url="http://test", transport=httpx.MockTransport(handler)
        ) as api:
            with pytest.raises(ApiError, match=DEFAULT_ERROR):
                await api.pending_trips()

    @pytest.mark.asyncio
    async def test_driver_calls(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/drivers/nearby":
                assert request.url.params["radius_km"] == "5"
                return httpx.Response(200, json=[{**_driver(), "distanceKm": 0.4}])
            return httpx.Response(200, json=_driver())

        async with ApiClient(
            base_url="http://test", transport=httpx.MockTransport(handler)
        ) as api:
            driver = await api.update_location(Location(19.43, -99.13))
            nearby = await api.nearby_drivers(Location(19.43, -99.13), radius_km=5)

        assert driver.car.model == "Kia Rio"
        assert [d.id for d in nearby] == [2]


# ── TripTracker ───────────────────────────────────────────────────────


def _following(status="REQUESTED", role="user"):
    tracker = TripTracker(role)
    tracker.follow(Trip.from_payload(_trip(status=status)))
    return tracker


class TestTripTracker:
    def test_starts_idle(self):
        assert TripTracker().state == IDLE

    def test_moves_forward(self):
        states = []
        tracker = _following()
        tracker.subscribe(lambda state, trip: states.append(state))

        assert tracker.apply("trip-accepted", _trip(status="ACCEPTED", driver=_driver()))
        assert tracker.apply("trip-updated", _trip(status="IN_PROGRESS", driver=_driver()))
        assert tracker.apply("trip-updated", _trip(status="COMPLETED", driver=_driver()))

        assert states == ["ACCEPTED", "IN_PROGRESS", "COMPLETED"]
        assert tracker.trip.driver.name == "Carlos"

        tracker.reset()
        assert tracker.state == IDLE

    def test_ignores_out_of_order_update(self):
        tracker = _following("IN_PROGRESS")
        assert not tracker.apply("trip-updated", _trip(status="ACCEPTED"))
        assert tracker.state == "IN_PROGRESS"

    def test_repeated_status_refreshes_data(self):
        tracker = _following("ACCEPTED")
        assert not tracker.apply(
            "trip-updated", _trip(status="ACCEPTED", driver=_driver((19.5, -99.2)))
        )
        assert tracker.driver_position == Location(19.5, -99.2)

    def test_ignores_other_trips(self):
        tracker = _following()
        assert not tracker.apply("trip-accepted", _trip(trip_id=99, status="ACCEPTED"))
        assert tracker.state == "REQUESTED"

    def test_driver_location(self):
        tracker = _following("ACCEPTED")
        tracker.apply(
            "driver-location",
            {"tripId": 1, "driverId": 2, "position": {"lat": 19.44, "lng": -99.14}},
        )
        assert tracker.driver_position == Location(19.44, -99.14)

        tracker.apply(
            "driver-location",
            {"tripId": 5, "driverId": 9, "position": {"lat": 0, "lng": 0}},
        )
        assert tracker.driver_position == Location(19.44, -99.14)

    def test_driver_collects_and_withdraws_offers(self):
        tracker = TripTracker("driver")
        tracker.apply("new-trip-request", _trip(trip_id=4))
        tracker.apply("new-trip-request", _trip(trip_id=5))
        assert set(tracker.offers) == {4, 5}

        tracker.apply("trip-updated", _trip(trip_id=4, status="ACCEPTED"))
        assert set(tracker.offers) == {5}
        assert tracker.state == IDLE

    def test_busy_driver_ignores_offers(self):
        tracker = _following("ACCEPTED", role="driver")
        tracker.apply("new-trip-request", _trip(trip_id=8))
        assert tracker.offers == {}

    def test_rider_ignores_offers(self):
        tracker = TripTracker("user")
        tracker.apply("new-trip-request", _trip(trip_id=4))
        assert tracker.offers == {}


# ── Socket helpers ────────────────────────────────────────────────────


def test_socket_url():
    assert socket_url("https://api.example.com", "abc") == "wss://api.example.com/ws?token=abc"
    assert socket_url("http://localhost:8000", "abc") == "ws://localhost:8000/ws?token=abc"


def test_decode_message():
    assert decode_message('{"event": "trip-updated", "data": {"_id": 1}}') == (
        "trip-updated",
        {"_id": 1},
    )
    assert decode_message("not json") is None
    assert decode_message('{"data": 1}') is None


def test_trip_socket_feeds_tracker():
    tracker = _following()
    channel = TripSocket("http://localhost:8000", "abc", tracker)
    assert channel.url == "ws://localhost:8000/ws?token=abc"

    message = json.dumps({"event": "trip-accepted", "data": _trip(status="ACCEPTED")})
    assert channel.handle(message)
    assert tracker.state == "ACCEPTED"
    assert not channel.handle("garbage")


@pytest.mark.asyncio
async def test_trip_socket_listens_until_server_closes():
    tracker = _following()
    accepted = json.dumps({"event": "trip-accepted", "data": _trip(status="ACCEPTED", driver=2)})

    async def handler(ws):
        await ws.send(accepted)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        channel = TripSocket(f"http://127.0.0.1:{port}", "abc", tracker)
        await asyncio.wait_for(channel.listen(), timeout=5)

    assert tracker.state == "ACCEPTED"
    assert tracker.trip.driver_id == 2
